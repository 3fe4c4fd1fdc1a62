"""
AR try-on frame processing.

Frames arrive as RGB(A) arrays (or encoded image bytes) together with the
normalized 468-point face mesh produced client-side. Filters are applied in
order to a copy of the frame; the caller's array is never modified.
"""

import logging
from io import BytesIO
from typing import Any, Optional, Sequence, Union

import numpy as np
from PIL import Image, ImageColor, ImageDraw, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Face mesh indices (MediaPipe 468-point topology)
LIPS_INDICES = [61, 146, 91, 181, 84, 17, 314, 405, 321, 375, 291, 409, 270, 269, 267, 0]
LEFT_EYE_INDICES = [263, 249, 390, 373, 374, 380, 381, 382, 362, 263]
RIGHT_EYE_INDICES = [33, 7, 163, 144, 145, 153, 154, 155, 133, 33]

# 5-point cross kernel used for skin smoothing
SMOOTHING_CENTER_WEIGHT = 0.6
SMOOTHING_NEIGHBOR_WEIGHT = 0.1

DEFAULT_EYE_LINER_WIDTH = 2
MAX_FRAME_PIXELS = 4096 * 4096

Landmark = dict[str, float]


class ImageProcessingError(ValueError):
    """Raised when a frame cannot be processed"""


# ============================================================================
# COLOR SPACE HELPERS
# ============================================================================


def rgb_to_hsl(r: float, g: float, b: float) -> tuple[float, float, float]:
    """RGB (0-255) to HSL with h in [0, 360) and s, l in [0, 100]"""
    r, g, b = r / 255, g / 255, b / 255
    high, low = max(r, g, b), min(r, g, b)
    lightness = (high + low) / 2

    if high == low:
        return 0.0, 0.0, lightness * 100

    d = high - low
    saturation = d / (2 - high - low) if lightness > 0.5 else d / (high + low)
    if high == r:
        hue = (g - b) / d + (6 if g < b else 0)
    elif high == g:
        hue = (b - r) / d + 2
    else:
        hue = (r - g) / d + 4

    return hue / 6 * 360, saturation * 100, lightness * 100


def _hue_to_channel(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def hsl_to_rgb(h: float, s: float, lightness: float) -> tuple[int, int, int]:
    """HSL (h 0-360, s/l 0-100) back to rounded RGB (0-255)"""
    h, s, lightness = h / 360, s / 100, lightness / 100

    if s == 0:
        r = g = b = lightness
    else:
        q = lightness * (1 + s) if lightness < 0.5 else lightness + s - lightness * s
        p = 2 * lightness - q
        r = _hue_to_channel(p, q, h + 1 / 3)
        g = _hue_to_channel(p, q, h)
        b = _hue_to_channel(p, q, h - 1 / 3)

    return tuple(int(np.floor(c * 255 + 0.5)) for c in (r, g, b))


def rgb_to_hsl_array(rgb: np.ndarray) -> np.ndarray:
    """Vectorised rgb_to_hsl over an (..., 3) array"""
    rgb = rgb.astype(np.float64) / 255
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    high = rgb.max(axis=-1)
    low = rgb.min(axis=-1)
    lightness = (high + low) / 2
    d = high - low
    chromatic = d > 0
    safe_d = np.where(chromatic, d, 1)

    denominator = np.where(lightness > 0.5, 2 - high - low, high + low)
    saturation = np.where(chromatic, d / np.where(denominator == 0, 1, denominator), 0)

    hue = np.where(
        high == r,
        (g - b) / safe_d + np.where(g < b, 6, 0),
        np.where(high == g, (b - r) / safe_d + 2, (r - g) / safe_d + 4),
    )
    hue = np.where(chromatic, hue / 6 * 360, 0)

    return np.stack([hue, saturation * 100, lightness * 100], axis=-1)


def _hue_to_channel_array(p: np.ndarray, q: np.ndarray, t: np.ndarray) -> np.ndarray:
    t = np.where(t < 0, t + 1, t)
    t = np.where(t > 1, t - 1, t)
    return np.select(
        [t < 1 / 6, t < 1 / 2, t < 2 / 3],
        [p + (q - p) * 6 * t, q, p + (q - p) * (2 / 3 - t) * 6],
        default=p,
    )


def hsl_to_rgb_array(hsl: np.ndarray) -> np.ndarray:
    """Vectorised hsl_to_rgb; returns uint8 (..., 3)"""
    h = hsl[..., 0] / 360
    s = hsl[..., 1] / 100
    lightness = hsl[..., 2] / 100

    q = np.where(lightness < 0.5, lightness * (1 + s), lightness + s - lightness * s)
    p = 2 * lightness - q
    channels = [
        _hue_to_channel_array(p, q, h + 1 / 3),
        _hue_to_channel_array(p, q, h),
        _hue_to_channel_array(p, q, h - 1 / 3),
    ]
    rgb = np.stack(
        [np.where(s == 0, lightness, channel) for channel in channels],
        axis=-1,
    )
    return np.clip(np.floor(rgb * 255 + 0.5), 0, 255).astype(np.uint8)


# ============================================================================
# LANDMARKS
# ============================================================================


def _landmark_at(landmarks: Sequence[Any], index: int) -> Landmark:
    if index >= len(landmarks) or landmarks[index] is None:
        raise ImageProcessingError(f"Missing face landmark {index}")

    point = landmarks[index]
    if isinstance(point, dict):
        return {"x": float(point["x"]), "y": float(point["y"])}
    return {"x": float(point.x), "y": float(point.y)}


def extract_facial_features(landmarks: Sequence[Any]) -> dict[str, Any]:
    """Pick the lip loop and both eye loops out of a face mesh"""
    return {
        "lips": [_landmark_at(landmarks, i) for i in LIPS_INDICES],
        "eyes": [
            [_landmark_at(landmarks, i) for i in LEFT_EYE_INDICES],
            [_landmark_at(landmarks, i) for i in RIGHT_EYE_INDICES],
        ],
    }


def _to_pixels(points: list[Landmark], width: int, height: int) -> list[tuple[float, float]]:
    return [(p["x"] * width, p["y"] * height) for p in points]


# ============================================================================
# FILTERS
# ============================================================================


def _section(settings: dict, name: str) -> Optional[dict]:
    value = settings.get(name)
    if not value:
        return None
    if not isinstance(value, dict):
        raise ImageProcessingError(f"{name} settings must be an object")
    return value


def _to_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ImageProcessingError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ImageProcessingError(f"{name} must be a number") from e
    if not np.isfinite(number):
        raise ImageProcessingError(f"{name} must be a finite number")
    return number


def _number(settings: dict, key: str, default: float) -> float:
    value = settings.get(key)
    return default if value is None else _to_float(value, key)


def _parse_color(settings: dict) -> tuple[int, int, int, int]:
    value = settings.get("color")
    if not isinstance(value, str):
        raise ImageProcessingError("color is required")
    try:
        r, g, b = ImageColor.getrgb(value)[:3]
    except ValueError as e:
        raise ImageProcessingError(f"Invalid color: {value}") from e
    opacity = _number(settings, "opacity", 1.0)
    alpha = int(round(max(0.0, min(1.0, opacity)) * 255))
    return r, g, b, alpha


def apply_makeup_filter(frame: np.ndarray, landmarks: Sequence[Any], settings: dict) -> np.ndarray:
    """Lipstick fill over the lip polygon and liner strokes around both eyes"""
    lipstick = _section(settings, "lipstick")
    eye_makeup = _section(settings, "eye_makeup")
    if not lipstick and not eye_makeup:
        return frame

    features = extract_facial_features(landmarks)
    height, width = frame.shape[:2]
    base = Image.fromarray(frame)
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    if lipstick:
        draw.polygon(_to_pixels(features["lips"], width, height), fill=_parse_color(lipstick))

    if eye_makeup:
        color = _parse_color(eye_makeup)
        line_width = int(_number(eye_makeup, "width", DEFAULT_EYE_LINER_WIDTH)) or DEFAULT_EYE_LINER_WIDTH
        if line_width < 0:
            raise ImageProcessingError("width must not be negative")
        for eye in features["eyes"]:
            points = _to_pixels(eye, width, height)
            draw.line(points + points[:1], fill=color, width=line_width, joint="curve")

    return np.asarray(Image.alpha_composite(base, overlay)).copy()


def apply_skin_smoothing(frame: np.ndarray, strength: float) -> np.ndarray:
    """Blend each interior pixel with its 5-point cross average; borders stay untouched"""
    strength = max(0.0, min(1.0, _to_float(strength, "smoothing")))
    result = frame.copy()
    if strength == 0 or frame.shape[0] < 3 or frame.shape[1] < 3:
        return result

    rgb = frame[..., :3].astype(np.float64)
    center = rgb[1:-1, 1:-1]
    blurred = (
        center * SMOOTHING_CENTER_WEIGHT
        + (rgb[:-2, 1:-1] + rgb[2:, 1:-1] + rgb[1:-1, :-2] + rgb[1:-1, 2:]) * SMOOTHING_NEIGHBOR_WEIGHT
    )
    mixed = blurred * strength + center * (1 - strength)
    result[1:-1, 1:-1, :3] = np.clip(np.rint(mixed), 0, 255).astype(np.uint8)
    return result


def adjust_skin_tone(frame: np.ndarray, adjustment: dict) -> np.ndarray:
    """Shift hue (wrapping at 360), saturation and lightness (clamped to 0-100)"""
    hue = _number(adjustment, "hue", 0.0)
    saturation = _number(adjustment, "saturation", 0.0)
    brightness = _number(adjustment, "brightness", 0.0)

    hsl = rgb_to_hsl_array(frame[..., :3])
    hsl[..., 0] = np.mod(hsl[..., 0] + hue, 360)
    hsl[..., 1] = np.clip(hsl[..., 1] + saturation, 0, 100)
    hsl[..., 2] = np.clip(hsl[..., 2] + brightness, 0, 100)

    result = frame.copy()
    result[..., :3] = hsl_to_rgb_array(hsl)
    return result


def apply_skin_filter(frame: np.ndarray, settings: dict) -> np.ndarray:
    if settings.get("smoothing"):
        frame = apply_skin_smoothing(frame, settings["smoothing"])
    tone_adjustment = _section(settings, "tone_adjustment")
    if tone_adjustment:
        frame = adjust_skin_tone(frame, tone_adjustment)
    return frame


# ============================================================================
# PIPELINE
# ============================================================================


def _as_rgba(frame: np.ndarray) -> np.ndarray:
    if frame.dtype != np.uint8:
        raise ImageProcessingError(f"Unsupported frame dtype: {frame.dtype}")
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ImageProcessingError(f"Unsupported frame shape: {frame.shape}")
    if frame.shape[2] == 4:
        return frame.copy()

    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame, alpha], axis=2)


def decode_frame(data: bytes) -> np.ndarray:
    """Decode PNG/JPEG/WebP bytes into an RGBA array"""
    try:
        with Image.open(BytesIO(data)) as image:
            if image.width * image.height > MAX_FRAME_PIXELS:
                raise ImageProcessingError("Frame is too large")
            return np.asarray(image.convert("RGBA")).copy()
    except Image.DecompressionBombError as e:
        raise ImageProcessingError("Frame is too large") from e
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError("Could not decode image data") from e


def encode_frame(frame: np.ndarray, format: str = "PNG") -> bytes:
    buffer = BytesIO()
    Image.fromarray(frame).save(buffer, format=format)
    return buffer.getvalue()


def process_frame(
    frame: Optional[Union[np.ndarray, bytes]],
    landmarks: Optional[Sequence[Any]],
    filters: Optional[Sequence[dict]],
) -> np.ndarray:
    """Apply the filters in order and return a new RGBA frame"""
    if frame is None or landmarks is None or filters is None or len(frame) == 0:
        raise ImageProcessingError("Missing required data for processing")

    original_channels = None
    if isinstance(frame, (bytes, bytearray)):
        result = decode_frame(bytes(frame))
    else:
        original_channels = frame.shape[2] if frame.ndim == 3 else None
        result = _as_rgba(frame)

    for image_filter in filters:
        filter_type = image_filter.get("type")
        settings = image_filter.get("settings") or {}

        if filter_type == "makeup":
            result = apply_makeup_filter(result, landmarks, settings)
        elif filter_type == "skin":
            result = apply_skin_filter(result, settings)
        elif filter_type == "hair":
            # Rendered in 3D on the client
            continue
        else:
            logger.debug(f"Ignoring unknown filter type: {filter_type}")

    if original_channels == 3:
        return result[..., :3].copy()
    return result
