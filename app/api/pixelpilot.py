"""
REST API router — turns, analysis, catalog, history and image handles.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from app.analysis.ground_truth import analyze_decoded
from app.api.deps import get_orchestrator, verify_token
from app.core.config import settings
from app.core.storage import MEDIA_TYPES, get_image_path, read_image_payload
from app.orchestration.orchestrator import Orchestrator
from app.pixels import DecodedImage, ImageLoadError, decode_image
from app.schema.analysis import AnalyzeRequest, ImageAnalysis
from app.schema.history import HistoryStats
from app.schema.orchestration import OrchestratorResponse, TurnRequest
from app.schema.tool import ToolSpec

__all__ = ("router",)

router = APIRouter(
    prefix="/v1",
    tags=["pixelpilot"],
    dependencies=[Depends(verify_token)],
)


async def _load_request_image(image: str) -> tuple[bytes, DecodedImage]:
    """Resolve and decode a request image, mapping unusable input to HTTP 400."""
    try:
        content = await read_image_payload(image)
        decoded = await asyncio.to_thread(
            decode_image,
            content,
            max_bytes=settings.MAX_IMAGE_BYTES,
            max_dimension=settings.MAX_DIMENSION,
        )
    except ImageLoadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if decoded.format not in settings.ALLOWED_FORMATS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported image format: {decoded.format}. Allowed: {', '.join(settings.ALLOWED_FORMATS)}",
        )
    return content, decoded


@router.post("/turns")
async def create_turn(
    body: TurnRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> OrchestratorResponse:
    """Run one conversational edit turn."""
    content, _ = await _load_request_image(body.image)
    return await orchestrator.handle_turn(body, content)


@router.post("/analyze")
async def analyze(body: AnalyzeRequest) -> ImageAnalysis:
    """Ground-truth analysis of an image, without editing it."""
    _, decoded = await _load_request_image(body.image)
    return await analyze_decoded(decoded)


@router.get("/tools")
async def list_tools(orchestrator: Orchestrator = Depends(get_orchestrator)) -> list[ToolSpec]:  # noqa: B008
    """The tool catalog the planner is offered."""
    return list(orchestrator.catalog.values())


@router.get("/history/stats")
async def history_stats(orchestrator: Orchestrator = Depends(get_orchestrator)) -> HistoryStats:  # noqa: B008
    return await orchestrator.history.stats()


@router.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(orchestrator: Orchestrator = Depends(get_orchestrator)) -> None:  # noqa: B008
    await orchestrator.history.clear()


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_conversation(
    conversation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),  # noqa: B008
) -> None:
    if not await orchestrator.conversations.reset(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.get("/images/{handle}")
async def get_image(handle: str) -> FileResponse:
    try:
        path = get_image_path(handle)
    except ImageLoadError as exc:
        raise HTTPException(status_code=404, detail="Image not found") from exc
    if not path.exists():
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path, media_type=MEDIA_TYPES[path.suffix.lstrip(".")])
