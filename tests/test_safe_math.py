import math

import pytest

from vibewell.shared import safe_math
from vibewell.shared.safe_math import MAX_SAFE_INTEGER, MIN_SAFE_INTEGER, SafeMathError


class TestArithmetic:
    def test_add_and_subtract(self):
        assert safe_math.add(1, 2) == 3
        assert safe_math.subtract(10, 4.5) == 5.5
        assert safe_math.add("3", 4) == 7

    def test_add_overflow(self):
        with pytest.raises(SafeMathError, match="^SafeMath: Addition overflow"):
            safe_math.add(MAX_SAFE_INTEGER, 1)

    def test_subtract_underflow(self):
        with pytest.raises(SafeMathError):
            safe_math.subtract(MIN_SAFE_INTEGER, 1)

    def test_nan_inputs_rejected(self):
        with pytest.raises(SafeMathError, match="NaN"):
            safe_math.add("not a number", 1)
        with pytest.raises(SafeMathError, match="NaN"):
            safe_math.multiply(math.nan, 2)

    def test_multiply_shortcuts(self):
        assert safe_math.multiply(0, MAX_SAFE_INTEGER) == 0
        assert safe_math.multiply(1, 42) == 42
        assert safe_math.multiply(42, 1) == 42
        assert safe_math.multiply(-3, 4) == -12

    def test_multiply_overflow(self):
        with pytest.raises(SafeMathError, match="Multiplication overflow"):
            safe_math.multiply(MAX_SAFE_INTEGER, 2)

    def test_divide(self):
        assert safe_math.divide(9, 3) == 3
        with pytest.raises(SafeMathError, match="Division by zero"):
            safe_math.divide(1, 0)

    def test_modulo_keeps_sign_of_dividend(self):
        assert safe_math.modulo(7, 3) == 1
        assert safe_math.modulo(-7, 3) == -1
        assert safe_math.modulo(7, -3) == 1
        assert safe_math.modulo(-7.5, 2) == -1.5
        with pytest.raises(SafeMathError, match="Modulo by zero"):
            safe_math.modulo(5, 0)

    def test_increment_decrement(self):
        assert safe_math.increment(41) == 42
        assert safe_math.decrement(43) == 42
        with pytest.raises(SafeMathError):
            safe_math.increment(MAX_SAFE_INTEGER)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            safe_math.divide(1, 0)


class TestShiftsAndPower:
    def test_shift_left(self):
        assert safe_math.shift_left(1, 4) == 16
        with pytest.raises(SafeMathError, match="overflow"):
            safe_math.shift_left(1, 31)
        with pytest.raises(SafeMathError, match="too large"):
            safe_math.shift_left(1, 32)
        with pytest.raises(SafeMathError, match="negative"):
            safe_math.shift_left(1, -1)

    def test_shift_right_is_arithmetic(self):
        assert safe_math.shift_right(-16, 2) == -4
        assert safe_math.shift_right(256, 4) == 16
        # count wraps at 32
        assert safe_math.shift_right(8, 33) == 4

    def test_shift_right_of_infinity_is_zero(self):
        assert safe_math.shift_right(float("inf"), 1) == 0
        assert safe_math.shift_right(float("-inf"), 3) == 0
        assert safe_math.shift_right(64, float("inf")) == 64

    def test_power(self):
        assert safe_math.power(2, 10) == 1024
        assert safe_math.power(5, 0) == 1
        assert safe_math.power(7, 1) == 7
        assert safe_math.power(1, 10**6) == 1
        with pytest.raises(SafeMathError, match="overflow"):
            safe_math.power(2, 60)


class TestConversions:
    def test_to_integer_parses_prefix(self):
        assert safe_math.to_integer("42px") == 42
        assert safe_math.to_integer("  -17 ") == -17
        assert safe_math.to_integer("ff", 16) == 255
        assert safe_math.to_integer("0x1A", 16) == 26

    def test_to_integer_floors_numbers(self):
        assert safe_math.to_integer(3.9) == 3
        assert safe_math.to_integer(-3.5) == -4

    def test_to_integer_rejects_garbage(self):
        with pytest.raises(SafeMathError, match="Cannot convert"):
            safe_math.to_integer("abc")
        with pytest.raises(SafeMathError):
            safe_math.to_integer(math.inf)
        with pytest.raises(SafeMathError, match="overflow"):
            safe_math.to_integer(str(MAX_SAFE_INTEGER + 10))

    def test_to_number(self):
        assert safe_math.to_number("12.5") == 12.5
        assert safe_math.to_number(None) == 0
        assert safe_math.to_number(True) == 1
        with pytest.raises(SafeMathError):
            safe_math.to_number("twelve")

    def test_safe_sum(self):
        assert safe_math.safe_sum([1, 2, 3.5]) == 6.5
        assert safe_math.safe_sum([]) == 0
        with pytest.raises(SafeMathError):
            safe_math.safe_sum([MAX_SAFE_INTEGER, 1])
