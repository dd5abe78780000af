"""Tests for the execution router."""

import asyncio

import pytest
from pydantic import ValidationError

from app.orchestration.executor import TOOL_REGISTRY, ExecutionRouter, skipped_outcome
from app.pixels import decode_image
from app.schema.tool import ToolCallProposal, ValidatedToolCall, ValidationResult
from app.tools.base import ToolError, ToolOutput
from app.tools.catalog import TOOL_CATALOG


def _validated(tool_name: str, parameters: dict | None = None) -> ValidatedToolCall:
    parameters = parameters or {}
    return ValidatedToolCall(
        tool_name=tool_name,
        parameters=parameters,
        proposal=ToolCallProposal(tool_name=tool_name, parameters=parameters),
        validation=ValidationResult(is_valid=True, confidence=90),
    )


class TestValidatedToolCall:
    def test_cannot_wrap_a_failed_validation(self):
        with pytest.raises(ValidationError):
            ValidatedToolCall(
                tool_name="upscaler",
                parameters={},
                proposal=ToolCallProposal(tool_name="upscaler"),
                validation=ValidationResult(is_valid=False, confidence=0, errors=["nope"]),
            )

    def test_errors_force_invalid(self):
        assert not ValidationResult(is_valid=True, confidence=50, errors=["bad"]).is_valid


class TestExecutionRouter:
    def test_registry_matches_catalog(self):
        assert set(TOOL_REGISTRY) == set(TOOL_CATALOG)

    async def test_raw_proposals_are_refused(self, logo):
        with pytest.raises(TypeError):
            await ExecutionRouter().execute(ToolCallProposal(tool_name="upscaler", parameters={"scaleFactor": 2}), logo)

    async def test_successful_run_encodes_png(self, logo):
        outcome = await ExecutionRouter().execute(
            _validated("rotate_flip", {"operation": "flip", "direction": "horizontal"}), logo
        )
        assert outcome.success
        assert outcome.error is None
        assert decode_image(outcome.result_image).format == "png"
        assert outcome.elapsed_ms >= 0

    async def test_info_tool_returns_data(self, logo):
        outcome = await ExecutionRouter().execute(_validated("pick_color_at_position", {"x": 0, "y": 0}), logo)
        assert outcome.success
        assert outcome.result_image is None
        assert outcome.data["hex"] == "#ffffff"

    async def test_unknown_tool(self, logo):
        outcome = await ExecutionRouter(registry={}).execute(_validated("upscaler", {"scaleFactor": 2}), logo)
        assert not outcome.success
        assert outcome.error == "Tool 'upscaler' not found in registry"

    async def test_timeout(self, logo):
        async def slow(image, params):
            await asyncio.sleep(5)
            return ToolOutput(image=image)

        router = ExecutionRouter(registry={"upscaler": slow}, timeout=0.05)
        outcome = await router.execute(_validated("upscaler", {"scaleFactor": 2}), logo)
        assert not outcome.success
        assert outcome.error == "upscaler timed out after 0.05s"

    async def test_tool_error(self, logo):
        async def broken(image, params):
            raise ToolError("model offline")

        outcome = await ExecutionRouter(registry={"upscaler": broken}).execute(
            _validated("upscaler", {"scaleFactor": 2}), logo
        )
        assert not outcome.success
        assert outcome.error == "model offline"

    async def test_unexpected_exception(self, logo):
        async def crashing(image, params):
            raise KeyError("scaleFactor")

        outcome = await ExecutionRouter(registry={"upscaler": crashing}).execute(
            _validated("upscaler", {"scaleFactor": 2}), logo
        )
        assert not outcome.success
        assert outcome.error.startswith("Exception during upscaler")

    async def test_tools_get_a_private_parameter_copy(self, logo):
        seen = {}

        async def mutating(image, params):
            params["scaleFactor"] = 99
            seen.update(params)
            return ToolOutput(data={})

        call = _validated("upscaler", {"scaleFactor": 2})
        await ExecutionRouter(registry={"upscaler": mutating}).execute(call, logo)
        assert seen["scaleFactor"] == 99
        assert call.parameters["scaleFactor"] == 2


def test_skipped_outcome():
    outcome = skipped_outcome("rotate_flip", {"operation": "flip"}, "dependency failed")
    assert outcome.skipped
    assert not outcome.success
    assert outcome.error == "skipped: dependency failed"
