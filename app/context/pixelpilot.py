"""
PixelPilot MCP server — image analysis and conversational editing tools.
"""

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from app.analysis.ground_truth import extract_ground_truth
from app.core.log import logger
from app.core.storage import read_image_payload
from app.orchestration.orchestrator import Orchestrator
from app.pixels import ImageLoadError
from app.schema.orchestration import TurnRequest
from app.tools.catalog import TOOL_CATALOG

__all__ = ("bind_orchestrator", "server")

server = FastMCP("PixelPilot")

_orchestrator: Orchestrator | None = None


def bind_orchestrator(orchestrator: Orchestrator | None) -> None:
    """Attach (or detach, with None) the orchestrator the tools delegate to."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = orchestrator


async def _read(image: str) -> bytes:
    try:
        return await read_image_payload(image)
    except ImageLoadError as exc:
        raise ToolError(str(exc)) from exc


@server.tool()
async def analyze_image(image: str) -> str:
    """
    Measure an image: dimensions, DPI, transparency, dominant colors,
    sharpness, noise and print readiness. ``image`` is a stored handle or a
    base64 payload.
    """
    analysis = await extract_ground_truth(await _read(image))
    return analysis.model_dump_json()


@server.tool()
async def list_tools() -> str:
    """List the image editing tools with their parameter schemas."""
    return "[" + ",".join(spec.model_dump_json() for spec in TOOL_CATALOG.values()) + "]"


@server.tool()
async def edit_image(message: str, image: str, conversation_id: str) -> str:
    """
    Apply a natural-language edit to an image. Returns the turn result,
    including the new image handle and a confidence score.
    """
    if _orchestrator is None:
        raise ToolError("Editing is not available until the service has started")
    content = await _read(image)
    logger.info(f"Conversation {conversation_id}: edit requested over MCP")
    response = await _orchestrator.handle_turn(
        TurnRequest(message=message, image=image, conversation_id=conversation_id),
        content,
    )
    return response.model_dump_json()
