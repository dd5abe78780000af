"""Tests for the pixel library: colors, diffs, sampling and statistics."""

import numpy as np
import pytest
from conftest import LOGO_RGB, logo_image, to_png

from app.pixels import (
    ImageLoadError,
    color_distance,
    color_name,
    color_presence,
    decode_image,
    delta_e,
    diff_pixels,
    dominant_colors,
    hex_to_rgb,
    rgb_to_hex,
    rgb_to_lab,
    sample_pixels,
    to_rgba_array,
    transparency,
    unique_color_count,
)


class TestColorMath:
    """Hex parsing, Lab conversion and distances."""

    def test_hex_forms(self):
        assert hex_to_rgb("#ff8000") == (255, 128, 0)
        assert hex_to_rgb("FF8000") == (255, 128, 0)
        assert hex_to_rgb("#fff") == (255, 255, 255)

    @pytest.mark.parametrize("value", ["", "#ff80", "white", "#gggggg"])
    def test_invalid_hex_raises(self, value):
        with pytest.raises(ValueError):
            hex_to_rgb(value)

    def test_rgb_to_hex_clamps(self):
        assert rgb_to_hex((300, -4, 15.6)) == "#ff0010"

    def test_lab_of_white_and_black(self):
        white = rgb_to_lab((255, 255, 255))
        black = rgb_to_lab((0, 0, 0))
        assert white[0] == pytest.approx(100, abs=0.1)
        assert black[0] == pytest.approx(0, abs=0.1)

    def test_lab_is_vectorized(self):
        lab = rgb_to_lab(np.array([[255, 0, 0], [0, 0, 255]]))
        assert lab.shape == (2, 3)

    def test_delta_e_identical_is_zero(self):
        lab = rgb_to_lab((12, 200, 99))
        assert delta_e(lab, lab) == 0.0

    def test_color_distance_extremes(self):
        assert color_distance((0, 0, 0), (255, 255, 255)) == pytest.approx(441.67, abs=0.01)
        assert color_distance((10, 10, 10), (10, 10, 10)) == 0.0

    @pytest.mark.parametrize(
        "rgb,name",
        [((255, 255, 255), "White"), ((0, 0, 0), "Black"), ((128, 128, 128), "Gray"), ((230, 20, 20), "Red")],
    )
    def test_color_names(self, rgb, name):
        assert color_name(rgb) == name


class TestDecode:
    def test_rgb_png_becomes_rgba(self):
        decoded = decode_image(to_png(logo_image().convert("RGB")))
        assert decoded.image.mode == "RGBA"
        assert decoded.format == "png"
        assert decoded.dpi is None

    def test_dpi_is_read_from_metadata(self):
        decoded = decode_image(to_png(logo_image(), dpi=300))
        assert decoded.dpi == 300

    def test_garbage_raises(self):
        with pytest.raises(ImageLoadError):
            decode_image(b"definitely not an image")

    def test_size_limit(self):
        content = to_png(logo_image())
        with pytest.raises(ImageLoadError, match="limit"):
            decode_image(content, max_bytes=10)

    def test_dimension_limit(self):
        with pytest.raises(ImageLoadError, match="largest side"):
            decode_image(to_png(logo_image(size=64, block=8)), max_dimension=32)


class TestDiff:
    """Before/after comparison."""

    def test_identical_buffers(self):
        rgba = to_rgba_array(logo_image())
        diff = diff_pixels(rgba, rgba.copy())
        assert diff.pixels_changed == 0
        assert diff.percentage_changed == 0.0
        assert diff.dimensions_match

    def test_threshold_absorbs_small_noise(self):
        before = to_rgba_array(logo_image())
        after = before.copy()
        after[..., 0] = np.clip(after[..., 0].astype(int) - 5, 0, 255).astype(np.uint8)
        assert diff_pixels(before, after, threshold=10).pixels_changed == 0

    def test_alpha_change_counts(self):
        before = to_rgba_array(logo_image(size=10, block=2))
        after = before.copy()
        after[:5, :, 3] = 0
        diff = diff_pixels(before, after)
        assert diff.percentage_changed == pytest.approx(50.0)
        assert diff.color_shift == 0.0

    def test_shape_mismatch_is_total_change(self):
        before = np.zeros((10, 10, 4), dtype=np.uint8)
        after = np.zeros((20, 20, 4), dtype=np.uint8)
        diff = diff_pixels(before, after)
        assert not diff.dimensions_match
        assert diff.percentage_changed == 100.0
        assert diff.total_pixels == 400


class TestSampling:
    def test_sampling_is_repeatable(self):
        rgba = to_rgba_array(logo_image(size=400, block=100))
        first = sample_pixels(rgba, ratio=0.01, minimum=500, maximum=2000)
        second = sample_pixels(rgba, ratio=0.01, minimum=500, maximum=2000)
        assert len(first) == 1600
        assert np.array_equal(first, second)

    def test_transparent_pixels_are_not_sampled(self):
        rgba = np.zeros((20, 20, 4), dtype=np.uint8)
        assert len(sample_pixels(rgba)) == 0

    def test_presence_of_existing_color(self):
        samples = sample_pixels(to_rgba_array(logo_image()))
        presence = color_presence(samples, LOGO_RGB, match_distance=30)
        assert presence.nearest_distance == 0.0
        assert presence.match_pct == pytest.approx(16.0, abs=3.0)

    def test_presence_without_samples(self):
        presence = color_presence(np.empty((0, 3), dtype=np.uint8), (0, 0, 0), match_distance=30)
        assert presence.nearest_distance == float("inf")
        assert presence.sample_size == 0


class TestStats:
    def test_dominant_colors_largest_first(self):
        clusters = dominant_colors(to_rgba_array(logo_image()), 9)
        assert clusters[0].hex == "#ffffff"
        assert clusters[0].percentage == pytest.approx(84.0, abs=0.5)
        assert clusters[1].rgb == LOGO_RGB
        assert sum(c.percentage for c in clusters) == pytest.approx(100.0)

    def test_dominant_colors_are_deterministic(self):
        rgba = to_rgba_array(logo_image())
        assert dominant_colors(rgba) == dominant_colors(rgba)

    def test_transparency(self):
        rgba = to_rgba_array(logo_image(size=10, block=2))
        rgba[:, :5, 3] = 0
        has_alpha, pct = transparency(rgba)
        assert has_alpha
        assert pct == pytest.approx(50.0)

    def test_unique_colors_of_flat_image(self):
        assert unique_color_count(to_rgba_array(logo_image())) == 2
