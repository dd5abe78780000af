"""Tests for result verification and confidence aggregation."""

import pytest
from conftest import WHITE, logo_image

from app.core.config import settings
from app.pixels import encode_png
from app.schema.analysis import ImageAnalysis
from app.schema.orchestration import ToolExecution
from app.schema.result import ResultValidation
from app.schema.tool import ExecutionOutcome, ToolCallProposal, ValidationResult
from app.tools.background import background_remover
from app.tools.catalog import TOOL_CATALOG
from app.tools.color import color_knockout
from app.verification.confidence import execution_confidence, should_store, turn_confidence
from app.verification.result import ResultValidator


def _framed_subject():
    """White frame around a red block covering 60% of the image."""
    image = logo_image(size=100, block=0)
    image.paste((220, 30, 30, 255), (12, 10, 87, 90))
    return image


class TestResultValidator:
    @pytest.mark.parametrize("tool_name", ["color_knockout", "recolor_image", "background_remover"])
    async def test_unchanged_output_fails(self, logo, tool_name):
        """A tool that hands back the input unchanged did not do its job."""
        result = await ResultValidator().validate(tool_name, logo, encode_png(logo))
        assert not result.success
        assert result.percentage_changed == 0.0
        assert result.pixels_changed == 0

    async def test_unchanged_knockout_asks_for_more(self, logo):
        result = await ResultValidator().validate("color_knockout", logo, encode_png(logo), {"colors": [WHITE]})
        assert result.change_verdict == "too_little"

    async def test_background_removal_in_band(self):
        before = _framed_subject()
        output = await background_remover(before, {})
        result = await ResultValidator().validate("background_remover", before, encode_png(output.image))
        assert result.success
        assert result.percentage_changed == pytest.approx(40.0, abs=0.5)
        assert result.new_transparency_pct == pytest.approx(40.0, abs=0.5)
        assert result.change_verdict is None

    async def test_knockout_success_earns_transparency_bonus(self, logo):
        output = await color_knockout(logo, {"colors": [WHITE], "tolerance": 30})
        result = await ResultValidator().validate(
            "color_knockout", logo, encode_png(output.image), {"colors": [WHITE], "tolerance": 30}
        )
        assert result.success
        assert result.percentage_changed == pytest.approx(84.0, abs=0.5)
        assert result.quality_score == 100.0
        assert result.after_analysis is not None and result.after_analysis.has_transparency

    async def test_mask_mode_is_judged_on_the_removed_share(self, logo):
        params = {"colors": [WHITE], "tolerance": 30, "replaceMode": "mask"}
        output = await color_knockout(logo, params)
        result = await ResultValidator().validate("color_knockout", logo, encode_png(output.image), params)
        assert result.success
        assert result.percentage_changed > 95.0
        assert result.removed_pct == pytest.approx(84.0, abs=0.5)

    async def test_transparency_only_expected_when_the_tool_promises_it(self, logo):
        red = {"hex": "#dc1e1e", "r": 220, "g": 30, "b": 30}
        output = await color_knockout(logo, {"colors": [red], "replaceMode": "color"})
        params = {"colors": [red], "replaceMode": "transparency"}
        strict = await ResultValidator().validate("color_knockout", logo, encode_png(output.image), params)
        assert strict.failure_reason == "No new transparency was produced"

        relaxed_spec = TOOL_CATALOG["color_knockout"].model_copy(update={"must_add_transparency": False})
        relaxed = ResultValidator(catalog={**TOOL_CATALOG, "color_knockout": relaxed_spec})
        result = await relaxed.validate("color_knockout", logo, encode_png(output.image), params)
        assert result.success

    async def test_faint_recolor_is_flagged(self, logo):
        faint = logo.copy()
        faint.paste((235, 30, 30, 255), (30, 30, 70, 70))
        result = await ResultValidator().validate("recolor_image", logo, encode_png(faint))
        assert result.success
        assert any("moved only 15" in w for w in result.warnings)

        strong = logo.copy()
        strong.paste((30, 30, 220, 255), (30, 30, 70, 70))
        result = await ResultValidator().validate("recolor_image", logo, encode_png(strong))
        assert not any("moved only" in w for w in result.warnings)

    async def test_corrupt_output_is_a_failure_not_an_exception(self, logo):
        result = await ResultValidator().validate("color_knockout", logo, b"\x00\x01garbage")
        assert not result.success
        assert result.failure_reason.startswith("Output could not be loaded")

    async def test_upscale_must_grow(self, logo):
        bigger = logo.resize((200, 200))
        grown = await ResultValidator().validate("upscaler", logo, encode_png(bigger), {"scaleFactor": 2})
        assert grown.success
        assert grown.dimensions_changed

        same = await ResultValidator().validate("upscaler", logo, encode_png(logo), {"scaleFactor": 2})
        assert not same.success
        assert "not larger" in same.failure_reason

    async def test_dimension_change_fails_keep_dimension_tools(self, logo):
        cropped = logo.crop((0, 0, 50, 50))
        result = await ResultValidator().validate("recolor_image", logo, encode_png(cropped))
        assert not result.success
        assert "changed the image dimensions" in result.failure_reason

    async def test_info_tool_without_output(self, logo, logo_analysis):
        result = await ResultValidator().validate(
            "extract_color_palette", logo, None, {}, before_analysis=logo_analysis
        )
        assert result.success
        assert result.quality_score == logo_analysis.confidence

    async def test_mutating_tool_without_output(self, logo):
        result = await ResultValidator().validate("upscaler", logo, None, {"scaleFactor": 2})
        assert not result.success

    async def test_noop_rotation_fails(self):
        square = logo_image(size=20, block=0)
        result = await ResultValidator().validate("rotate_flip", square, encode_png(square), {"operation": "flip"})
        assert not result.success

    async def test_unknown_tool(self, logo):
        result = await ResultValidator().validate("magic_wand", logo, encode_png(logo))
        assert not result.success


def _analysis(confidence=95.0) -> ImageAnalysis:
    return ImageAnalysis(width=10, height=10, dpi_estimate=72, confidence=confidence)


def _execution(confidence: float, success: bool = True) -> ToolExecution:
    return ToolExecution(
        tool_call=ToolCallProposal(tool_name="color_knockout"),
        validation=ValidationResult(is_valid=True, confidence=confidence),
        outcome=ExecutionOutcome(tool_name="color_knockout", success=success),
        result_validation=ResultValidation(success=success, quality_score=confidence),
        confidence=confidence,
    )


class TestConfidence:
    def test_weakest_link(self):
        """Ground truth 95, validation 80, prior 75, result 100: the prior decides."""
        confidence = execution_confidence(
            _analysis(95),
            ValidationResult(is_valid=True, confidence=80, historical_confidence=75),
            ExecutionOutcome(tool_name="recolor_image", success=True),
            ResultValidation(success=True, quality_score=100),
        )
        assert confidence == 75.0

    def test_failed_outcome_is_zero(self):
        confidence = execution_confidence(
            _analysis(),
            ValidationResult(is_valid=True, confidence=90),
            ExecutionOutcome(tool_name="recolor_image", success=False, error="boom"),
            None,
        )
        assert confidence == 0.0

    def test_rejected_result_is_zero(self):
        confidence = execution_confidence(
            _analysis(),
            ValidationResult(is_valid=True, confidence=90),
            ExecutionOutcome(tool_name="recolor_image", success=True),
            ResultValidation(success=False, quality_score=90),
        )
        assert confidence == 0.0

    def test_turn_without_tools_uses_ground_truth(self):
        assert turn_confidence(_analysis(88), []) == 88.0

    def test_multi_tool_penalty(self):
        one = turn_confidence(_analysis(), [_execution(80)])
        three = turn_confidence(_analysis(), [_execution(80)] * 3)
        assert one == 80.0
        assert three == 80.0 - settings.MULTI_TOOL_PENALTY

    def test_should_store_threshold(self):
        assert should_store(_execution(settings.HISTORY_STORE_THRESHOLD))
        assert not should_store(_execution(settings.HISTORY_STORE_THRESHOLD - 1))
        assert not should_store(_execution(90, success=False))
