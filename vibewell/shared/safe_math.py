"""
Overflow-checked arithmetic helpers

Every operation keeps its result inside the safe integer range
[-(2**53 - 1), 2**53 - 1] so values survive a round trip through JSON
clients that store numbers as doubles (prices, counters, audit scores).
"""

import math
import re
import string
from functools import reduce
from typing import Any, Iterable, Union

Number = Union[int, float]

MAX_SAFE_INTEGER = 2**53 - 1
MIN_SAFE_INTEGER = -(2**53 - 1)

_DIGITS = string.digits + string.ascii_lowercase


class SafeMathError(ValueError):
    """Raised when an arithmetic operation would leave the safe range"""


def _to_number(value: Any) -> Number:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    try:
        text = str(value).strip()
        if not text:
            return 0
        return float(text)
    except (TypeError, ValueError):
        return math.nan


def _is_nan(*values: Number) -> bool:
    return any(isinstance(v, float) and math.isnan(v) for v in values)


def _out_of_range(value: Number) -> bool:
    return value > MAX_SAFE_INTEGER or value < MIN_SAFE_INTEGER


def _to_int32(value: Number) -> int:
    # Non-finite values wrap to 0, like a JavaScript int32 conversion
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    value = int(value) & 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def add(a: Any, b: Any) -> Number:
    num_a, num_b = _to_number(a), _to_number(b)
    if _is_nan(num_a, num_b):
        raise SafeMathError("SafeMath: Cannot add NaN values")

    result = num_a + num_b
    if _out_of_range(result):
        raise SafeMathError(f"SafeMath: Addition overflow: {num_a} + {num_b}")
    return result


def subtract(a: Any, b: Any) -> Number:
    num_a, num_b = _to_number(a), _to_number(b)
    if _is_nan(num_a, num_b):
        raise SafeMathError("SafeMath: Cannot subtract NaN values")

    result = num_a - num_b
    if _out_of_range(result):
        raise SafeMathError(f"SafeMath: Subtraction overflow: {num_a} - {num_b}")
    return result


def multiply(a: Any, b: Any) -> Number:
    num_a, num_b = _to_number(a), _to_number(b)
    if _is_nan(num_a, num_b):
        raise SafeMathError("SafeMath: Cannot multiply NaN values")

    if num_a == 0 or num_b == 0:
        return 0
    if num_a == 1:
        return num_b
    if num_b == 1:
        return num_a

    # Check before multiplying so huge ints never get materialised
    if abs(num_a) > MAX_SAFE_INTEGER / abs(num_b):
        raise SafeMathError(f"SafeMath: Multiplication overflow: {num_a} * {num_b}")

    result = num_a * num_b
    if _out_of_range(result):
        raise SafeMathError(f"SafeMath: Multiplication overflow: {num_a} * {num_b}")
    return result


def divide(a: Any, b: Any) -> float:
    num_a, num_b = _to_number(a), _to_number(b)
    if _is_nan(num_a, num_b):
        raise SafeMathError("SafeMath: Cannot divide NaN values")
    if num_b == 0:
        raise SafeMathError("SafeMath: Division by zero")
    return num_a / num_b


def modulo(a: Any, b: Any) -> Number:
    """Remainder with the sign of the dividend (truncated division)"""
    num_a, num_b = _to_number(a), _to_number(b)
    if _is_nan(num_a, num_b):
        raise SafeMathError("SafeMath: Cannot perform modulo on NaN values")
    if num_b == 0:
        raise SafeMathError("SafeMath: Modulo by zero")

    if isinstance(num_a, int) and isinstance(num_b, int):
        remainder = abs(num_a) % abs(num_b)
        return -remainder if num_a < 0 else remainder
    return math.fmod(num_a, num_b)


def increment(a: Any) -> Number:
    return add(a, 1)


def decrement(a: Any) -> Number:
    return subtract(a, 1)


def shift_left(a: Any, bits: Any) -> int:
    num_a, num_bits = _to_number(a), _to_number(bits)
    if _is_nan(num_a, num_bits):
        raise SafeMathError("SafeMath: Cannot shift NaN values")
    if num_bits < 0:
        raise SafeMathError("SafeMath: Cannot shift by negative amount")
    if num_bits >= 32:
        raise SafeMathError("SafeMath: Shift amount too large")

    limit = 2 ** (31 - int(num_bits))
    if num_a >= limit or num_a <= -limit:
        raise SafeMathError(f"SafeMath: Shift left overflow: {num_a} << {num_bits}")

    return _to_int32(_to_int32(num_a) << int(num_bits))


def shift_right(a: Any, bits: Any) -> int:
    num_a, num_bits = _to_number(a), _to_number(bits)
    if _is_nan(num_a, num_bits):
        raise SafeMathError("SafeMath: Cannot shift NaN values")
    if num_bits < 0:
        raise SafeMathError("SafeMath: Cannot shift by negative amount")

    # 32-bit semantics: the shift count wraps at 32
    return _to_int32(num_a) >> (_to_int32(num_bits) & 31)


def power(base: Any, exponent: Any) -> Number:
    num_base, num_exp = _to_number(base), _to_number(exponent)
    if _is_nan(num_base, num_exp):
        raise SafeMathError("SafeMath: Cannot compute power with NaN values")

    if num_exp == 0:
        return 1
    if num_exp == 1:
        return num_base
    if num_base == 0:
        return 0
    if num_base == 1:
        return 1

    if num_exp > 1:
        estimated = num_exp * math.log(abs(num_base))
        if estimated > math.log(MAX_SAFE_INTEGER):
            raise SafeMathError(
                f"SafeMath: Power operation would overflow: {num_base}^{num_exp}"
            )

    try:
        result = num_base**num_exp
    except (OverflowError, ZeroDivisionError) as e:
        raise SafeMathError(f"SafeMath: Power operation overflow: {num_base}^{num_exp}") from e

    if isinstance(result, complex) or not math.isfinite(result) or _out_of_range(result):
        raise SafeMathError(f"SafeMath: Power operation overflow: {num_base}^{num_exp}")
    return result


def _parse_int_prefix(value: str, radix: int) -> Number:
    """Parse the leading integer of a string in the given radix, NaN if none"""
    if radix != 0 and not 2 <= radix <= 36:
        return math.nan

    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if radix in (0, 16) and re.match(r"0[xX]", text):
        text = text[2:]
        radix = 16
    radix = radix or 10

    valid = _DIGITS[:radix]
    digits = ""
    for char in text.lower():
        if char not in valid:
            break
        digits += char

    if not digits:
        return math.nan
    return sign * int(digits, radix)


def to_integer(value: Any, radix: int = 10) -> int:
    if isinstance(value, str):
        result = _parse_int_prefix(value, radix)
    else:
        number = _to_number(value)
        result = math.nan if _is_nan(number) or math.isinf(number) else math.floor(number)

    if _is_nan(result):
        raise SafeMathError(f"SafeMath: Cannot convert '{value}' to integer")
    if _out_of_range(result):
        raise SafeMathError(f"SafeMath: Integer conversion overflow: {value}")
    return int(result)


def to_number(value: Any) -> Number:
    result = _to_number(value)
    if _is_nan(result):
        raise SafeMathError(f"SafeMath: Cannot convert '{value}' to number")
    if _out_of_range(result):
        raise SafeMathError(f"SafeMath: Number conversion overflow: {value}")
    return result


def safe_sum(values: Iterable[Any]) -> Number:
    """Sum an iterable with overflow checks on every step"""
    return reduce(add, values, 0)
