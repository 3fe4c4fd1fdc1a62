import math

import numpy as np
import pytest
from PIL import Image

from vibewell.services.image_processing import (
    LIPS_INDICES,
    ImageProcessingError,
    adjust_skin_tone,
    apply_makeup_filter,
    apply_skin_smoothing,
    decode_frame,
    encode_frame,
    extract_facial_features,
    hsl_to_rgb,
    hsl_to_rgb_array,
    process_frame,
    rgb_to_hsl,
    rgb_to_hsl_array,
)


def solid_frame(width, height, rgba=(200, 150, 120, 255)):
    return np.tile(np.array(rgba, dtype=np.uint8), (height, width, 1))


def face_mesh(lip_center=(0.5, 0.7), lip_radius=0.1):
    """468 points parked at the frame centre with the lip loop drawn as a circle"""
    landmarks = [{"x": 0.5, "y": 0.5} for _ in range(468)]
    for n, index in enumerate(LIPS_INDICES):
        angle = 2 * math.pi * n / len(LIPS_INDICES)
        landmarks[index] = {
            "x": lip_center[0] + lip_radius * math.cos(angle),
            "y": lip_center[1] + lip_radius * math.sin(angle),
        }
    return landmarks


class TestColorConversion:
    def test_primary_colors(self):
        assert rgb_to_hsl(255, 0, 0) == (0.0, 100.0, 50.0)
        assert hsl_to_rgb(120, 100, 50) == (0, 255, 0)
        assert hsl_to_rgb(240, 100, 50) == (0, 0, 255)

    def test_gray_has_no_saturation(self):
        h, s, lightness = rgb_to_hsl(128, 128, 128)
        assert (h, s) == (0.0, 0.0)
        assert hsl_to_rgb(h, s, lightness) == (128, 128, 128)

    @pytest.mark.parametrize("rgb", [(12, 200, 99), (250, 128, 114), (30, 30, 200)])
    def test_round_trip(self, rgb):
        assert hsl_to_rgb(*rgb_to_hsl(*rgb)) == rgb

    def test_array_versions_match_scalar(self):
        pixels = np.array([[[255, 0, 0], [12, 200, 99], [128, 128, 128]]], dtype=np.uint8)
        hsl = rgb_to_hsl_array(pixels)
        for i, pixel in enumerate(pixels[0]):
            assert tuple(hsl[0, i]) == pytest.approx(rgb_to_hsl(*pixel))
        assert np.array_equal(hsl_to_rgb_array(hsl), pixels)


class TestSkinFilters:
    def test_smoothing_blends_interior_only(self):
        frame = solid_frame(3, 3, (0, 0, 0, 255))
        frame[1, 1, :3] = 255
        result = apply_skin_smoothing(frame, 1.0)
        assert tuple(result[1, 1]) == (153, 153, 153, 255)
        assert tuple(result[0, 1]) == (0, 0, 0, 255)
        # input untouched
        assert frame[1, 1, 0] == 255

    def test_zero_strength_is_identity(self):
        frame = solid_frame(4, 4)
        frame[2, 2, :3] = 0
        assert np.array_equal(apply_skin_smoothing(frame, 0), frame)

    def test_uniform_frame_is_unchanged(self):
        frame = solid_frame(5, 5)
        assert np.array_equal(apply_skin_smoothing(frame, 0.8), frame)

    def test_hue_wraps(self):
        frame = solid_frame(2, 2, (250, 128, 114, 255))
        assert np.array_equal(adjust_skin_tone(frame, {"hue": 360}), frame)

    def test_brightness_is_clamped(self):
        frame = solid_frame(2, 2)
        result = adjust_skin_tone(frame, {"brightness": 100})
        assert tuple(result[0, 0]) == (255, 255, 255, 255)

    def test_non_numeric_strength(self):
        with pytest.raises(ImageProcessingError, match="smoothing must be a number"):
            apply_skin_smoothing(solid_frame(4, 4), "strong")

    def test_non_numeric_tone_shift(self):
        with pytest.raises(ImageProcessingError, match="saturation must be a number"):
            adjust_skin_tone(solid_frame(2, 2), {"saturation": [10]})


class TestMakeup:
    def test_lipstick_fills_lip_polygon(self):
        frame = solid_frame(100, 100, (255, 255, 255, 255))
        result = apply_makeup_filter(frame, face_mesh(), {"lipstick": {"color": "#ff0000", "opacity": 1}})
        assert tuple(result[70, 50]) == (255, 0, 0, 255)
        assert tuple(result[10, 10]) == (255, 255, 255, 255)

    def test_no_settings_is_noop(self):
        frame = solid_frame(10, 10)
        assert apply_makeup_filter(frame, [], {}) is frame

    def test_missing_landmarks(self):
        with pytest.raises(ImageProcessingError, match="Missing face landmark"):
            extract_facial_features([{"x": 0.1, "y": 0.1}] * 10)

    def test_invalid_color(self):
        with pytest.raises(ImageProcessingError, match="Invalid color"):
            apply_makeup_filter(solid_frame(10, 10), face_mesh(), {"lipstick": {"color": "not-a-color"}})

    def test_missing_color(self):
        with pytest.raises(ImageProcessingError, match="color is required"):
            apply_makeup_filter(solid_frame(10, 10), face_mesh(), {"lipstick": {"opacity": 0.5}})

    def test_non_numeric_opacity(self):
        with pytest.raises(ImageProcessingError, match="opacity must be a number"):
            apply_makeup_filter(solid_frame(10, 10), face_mesh(), {"eye_makeup": {"color": "#000", "opacity": "half"}})


class TestProcessFrame:
    def test_requires_inputs(self):
        with pytest.raises(ImageProcessingError, match="Missing required data"):
            process_frame(None, [], [])
        with pytest.raises(ImageProcessingError):
            process_frame(solid_frame(2, 2), None, [])

    def test_rgb_input_keeps_three_channels(self):
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        result = process_frame(frame, [], [{"type": "skin", "settings": {"smoothing": 0.5}}])
        assert result.shape == (4, 4, 3)

    def test_hair_and_unknown_filters_are_skipped(self):
        frame = solid_frame(4, 4)
        result = process_frame(frame, [], [{"type": "hair", "settings": {}}, {"type": "glitter"}])
        assert np.array_equal(result, frame)
        assert result is not frame

    def test_encoded_bytes(self):
        frame = solid_frame(6, 4)
        result = process_frame(encode_frame(frame), [], [])
        assert result.shape == (4, 6, 4)
        assert np.array_equal(result, frame)

    def test_undecodable_bytes(self):
        with pytest.raises(ImageProcessingError, match="Could not decode"):
            decode_frame(b"definitely not a png")

    def test_unsupported_dtype(self):
        with pytest.raises(ImageProcessingError, match="dtype"):
            process_frame(np.zeros((2, 2, 3), dtype=np.float32), [], [])

    def test_decompression_bomb_is_rejected(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
        with pytest.raises(ImageProcessingError, match="too large"):
            decode_frame(encode_frame(solid_frame(10, 10)))
