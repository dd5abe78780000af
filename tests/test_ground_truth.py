"""Tests for ground-truth extraction."""

import numpy as np
import pytest
from conftest import logo_image, to_png
from PIL import Image

from app.analysis import ground_truth
from app.analysis.ground_truth import analyze_decoded, extract_ground_truth, snap_aspect_ratio
from app.core.config import settings
from app.pixels import decode_image


class TestExtractGroundTruth:
    async def test_basic_measurements(self, logo_png):
        analysis = await extract_ground_truth(logo_png)
        assert (analysis.width, analysis.height) == (100, 100)
        assert analysis.format == "png"
        assert analysis.file_size_bytes == len(logo_png)
        assert not analysis.has_transparency
        assert analysis.dominant_colors[0].hex == "#ffffff"
        assert analysis.aspect_ratio == "1:1"

    async def test_same_bytes_same_analysis(self, logo_png):
        """Two analyses of identical bytes are identical."""
        assert await extract_ground_truth(logo_png) == await extract_ground_truth(logo_png)

    async def test_missing_dpi_is_assumed_and_lowers_confidence(self, logo_png):
        analysis = await extract_ground_truth(logo_png)
        assert analysis.dpi_estimated
        assert analysis.dpi_estimate == settings.DEFAULT_DPI
        assert "dpi" in analysis.failed_measurements
        assert analysis.confidence == 95.0

    async def test_embedded_dpi_gives_full_confidence(self):
        analysis = await extract_ground_truth(to_png(logo_image(), dpi=300))
        assert analysis.dpi_estimate == 300
        assert not analysis.dpi_estimated
        assert analysis.confidence == 100.0
        assert analysis.print_size_inches == (0.33, 0.33)
        assert not analysis.is_print_ready

    async def test_corrupt_bytes_are_unmeasurable(self):
        analysis = await extract_ground_truth(b"\x89PNG\r\n\x1a\n truncated")
        assert analysis.confidence == 0.0
        assert analysis.failed_measurements == ("decode",)
        assert analysis.width == 0

    async def test_transparency_is_measured(self):
        arr = np.full((40, 40, 4), 255, dtype=np.uint8)
        arr[:, :10, 3] = 0
        analysis = await extract_ground_truth(to_png(Image.fromarray(arr, "RGBA")))
        assert analysis.has_transparency
        assert analysis.transparent_pct == pytest.approx(25.0)

    async def test_failed_measurement_caps_confidence(self, monkeypatch, logo_png):
        def broken(rgba):
            raise RuntimeError("boom")

        monkeypatch.setattr(ground_truth, "noise_score", broken)
        analysis = await extract_ground_truth(to_png(logo_image(), dpi=300))
        assert "noise" in analysis.failed_measurements
        assert analysis.confidence == 90.0
        assert analysis.noise_score == 0.0

    async def test_large_images_are_measured_on_a_bounded_view(self, monkeypatch):
        monkeypatch.setattr(settings, "ANALYSIS_MAX_PIXELS", 2500)
        decoded = decode_image(to_png(logo_image(size=200, block=80)))
        analysis = await analyze_decoded(decoded)
        assert analysis.downsampled
        assert (analysis.width, analysis.height) == (200, 200)


class TestAspectRatio:
    @pytest.mark.parametrize(
        "size,expected",
        [((1920, 1080), "16:9"), ((1000, 1000), "1:1"), ((3000, 2000), "3:2"), ((1000, 300), "3.33:1")],
    )
    def test_snap(self, size, expected):
        assert snap_aspect_ratio(*size) == expected

    def test_degenerate(self):
        assert snap_aspect_ratio(0, 10) == ""
