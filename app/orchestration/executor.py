"""
Execution router — maps tool names to tool functions and runs validated calls.
"""

from __future__ import annotations

import asyncio
import time

from PIL import Image

from app.core.config import settings
from app.core.log import logger
from app.pixels import encode_png
from app.schema.tool import ExecutionOutcome, ValidatedToolCall
from app.tools.background import background_remover
from app.tools.base import ToolError, ToolFunc
from app.tools.color import color_knockout, extract_color_palette, pick_color_at_position, recolor_image
from app.tools.geometry import auto_crop, rotate_flip, upscaler
from app.tools.texture import texture_cut

__all__ = ("ExecutionRouter", "TOOL_REGISTRY")

# ── Tool registry ────────────────────────────────────────────────────────

TOOL_REGISTRY: dict[str, ToolFunc] = {
    # Color
    "color_knockout": color_knockout,
    "recolor_image": recolor_image,
    "extract_color_palette": extract_color_palette,
    "pick_color_at_position": pick_color_at_position,
    # Masks
    "texture_cut": texture_cut,
    "background_remover": background_remover,
    # Geometry
    "upscaler": upscaler,
    "rotate_flip": rotate_flip,
    "auto_crop": auto_crop,
}


class ExecutionRouter:
    """
    Runs exactly one validated tool call against an image.

    Never raises for tool-side problems: unknown tools, tool errors, timeouts
    and unexpected exceptions all come back as a failed ``ExecutionOutcome``.
    """

    def __init__(self, registry: dict[str, ToolFunc] | None = None, timeout: float | None = None):
        self.registry = TOOL_REGISTRY if registry is None else registry
        self.timeout = timeout or settings.TOOL_TIMEOUT_SECONDS

    async def execute(self, call: ValidatedToolCall, image: Image.Image) -> ExecutionOutcome:
        if not isinstance(call, ValidatedToolCall):
            raise TypeError("ExecutionRouter only accepts ValidatedToolCall instances")

        tool_name = call.tool_name
        func = self.registry.get(tool_name)
        if func is None:
            return ExecutionOutcome(
                tool_name=tool_name,
                parameters=call.parameters,
                success=False,
                error=f"Tool '{tool_name}' not found in registry",
            )

        started = time.perf_counter()
        try:
            output = await asyncio.wait_for(func(image, dict(call.parameters)), timeout=self.timeout)
            result_image = None
            if output.image is not None:
                result_image = await asyncio.to_thread(encode_png, output.image)
            outcome = ExecutionOutcome(
                tool_name=tool_name,
                parameters=call.parameters,
                success=True,
                data=output.data,
                result_image=result_image,
                elapsed_ms=_elapsed(started),
            )
            logger.info(f"Tool {tool_name} succeeded in {outcome.elapsed_ms:.0f}ms")
            return outcome

        except asyncio.TimeoutError:
            logger.error(f"Tool {tool_name} timed out after {self.timeout}s")
            return ExecutionOutcome(
                tool_name=tool_name,
                parameters=call.parameters,
                success=False,
                error=f"{tool_name} timed out after {self.timeout}s",
                elapsed_ms=_elapsed(started),
            )

        except ToolError as exc:
            logger.warning(f"Tool {tool_name} failed: {exc}")
            return ExecutionOutcome(
                tool_name=tool_name,
                parameters=call.parameters,
                success=False,
                error=str(exc),
                elapsed_ms=_elapsed(started),
            )

        except Exception as exc:
            logger.error(f"Tool {tool_name} raised {type(exc).__name__}: {exc}")
            return ExecutionOutcome(
                tool_name=tool_name,
                parameters=call.parameters,
                success=False,
                error=f"Exception during {tool_name}: {exc}",
                elapsed_ms=_elapsed(started),
            )


def skipped_outcome(call_name: str, parameters: dict, reason: str) -> ExecutionOutcome:
    """Outcome for a call that was never run."""
    return ExecutionOutcome(
        tool_name=call_name,
        parameters=parameters,
        success=False,
        skipped=True,
        error=f"skipped: {reason}",
    )


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)
