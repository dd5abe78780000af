"""
Planner client — the only translator between an LLM provider's function
calling format and ``ToolCallProposal``.

Builds the prompt (ground-truth block, user context, compacted history),
calls Gemini or Claude under a hard timeout and parses the reply into
explanatory text plus a capped list of proposals. Nothing here retries:
retry policy belongs to the orchestrator.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Protocol, Sequence

import yaml
from google.genai.types import (
    AutomaticFunctionCallingConfig,
    Content,
    FunctionDeclaration,
    GenerateContentConfig,
    Part,
    Tool,
)

from app.core.ai import ai_client, get_anthropic_client
from app.core.config import settings
from app.core.log import logger
from app.core.prompts import CONVERSATION_SUMMARY_BLOCK, PLANNER_SYSTEM_PROMPT
from app.schema.analysis import ImageAnalysis
from app.schema.orchestration import ConversationTurn, PlannerReply, Role, UserContext
from app.schema.tool import ToolCallProposal, ToolSpec
from app.tools.catalog import planner_tool_declarations

__all__ = (
    "ClaudePlanner",
    "GeminiPlanner",
    "PlannerClient",
    "PlannerError",
    "build_system_prompt",
    "compact_history",
    "get_planner",
    "parse_tool_calls",
    "render_ground_truth",
)


class PlannerError(Exception):
    """The planner could not be reached or did not answer in time."""


class PlannerClient(Protocol):
    async def propose(
        self,
        image: bytes,
        message: str,
        history: Sequence[ConversationTurn],
        ground_truth: ImageAnalysis,
        catalog: dict[str, ToolSpec],
        user_context: UserContext | None = None,
    ) -> PlannerReply: ...


# ── Prompt building ──────────────────────────────────────────────────────


def render_ground_truth(analysis: ImageAnalysis) -> str:
    """Human-readable, high-salience rendering of the measured facts."""
    if analysis.width == 0 or analysis.height == 0:
        return "• The image could not be decoded; no measurements are available."

    dpi = analysis.dpi_estimate
    print_w, print_h = analysis.print_size_inches
    dpi_note = " (not in metadata, assumed)" if analysis.dpi_estimated else ""
    if analysis.has_transparency:
        transparency = (
            f"YES - {analysis.transparent_pct:.1f}% of pixels are transparent. "
            f"Transparent pixels are NOT white."
        )
    else:
        transparency = "NO - Has solid background"
    colors = ", ".join(f"{c.hex} {c.name} ({c.percentage:.1f}%)" for c in analysis.dominant_colors)
    lines = [
        f"• Dimensions: {analysis.width} × {analysis.height} pixels, aspect {analysis.aspect_ratio}",
        f'• Current print size: {print_w:.2f}" × {print_h:.2f}" at {dpi} DPI{dpi_note}',
        f'• Professional quality (300 DPI): {analysis.width / 300:.2f}" × {analysis.height / 300:.2f}"',
        f'• Good quality (150 DPI): {analysis.width / 150:.2f}" × {analysis.height / 150:.2f}"',
        f"• File format: {analysis.format.upper()}, {analysis.file_size_bytes / 1024:.1f} KB",
        f"• Transparency: {transparency}",
        f"• Image quality: sharpness {analysis.sharpness_score:.0f}/100, noise {analysis.noise_score:.0f}/100",
        f"• Dominant colors: {colors or 'unknown'}",
        f"• Unique colors: {analysis.unique_color_count}",
        f"• Print ready: {'YES' if analysis.is_print_ready else 'NO'}",
    ]
    if analysis.failed_measurements:
        lines.append(f"• Not measured: {', '.join(analysis.failed_measurements)}")
    return "\n".join(lines)


def compact_history(
    turns: Sequence[ConversationTurn],
    char_budget: int | None = None,
    recent: int | None = None,
) -> tuple[list[ConversationTurn], str | None]:
    """
    Split history into turns sent verbatim and a lossy summary of the rest.

    The newest turns win: they are kept whole until either ``recent`` turns
    or the character budget is used up. Older user requests are abbreviated
    into the summary within whatever budget is left.
    """
    char_budget = settings.HISTORY_CHAR_BUDGET if char_budget is None else char_budget
    recent = settings.HISTORY_RECENT_TURNS if recent is None else recent

    kept: list[ConversationTurn] = []
    used = 0
    cut = len(turns)
    for turn in reversed(turns):
        if len(kept) >= recent or used + len(turn.text) > char_budget:
            break
        kept.append(turn)
        used += len(turn.text)
        cut -= 1
    kept.reverse()

    older = [t for t in turns[:cut] if t.role == Role.user]
    if not older:
        return kept, None

    remaining = max(0, char_budget - used)
    lines: list[str] = []
    for turn in reversed(older):
        text = " ".join(turn.text.split())
        line = f"- {text[:117] + '...' if len(text) > 120 else text}"
        if remaining - len(line) < 0:
            break
        lines.append(line)
        remaining -= len(line) + 1
    if not lines:
        return kept, None
    lines.reverse()
    return kept, "\n".join(lines)


def build_system_prompt(
    ground_truth: ImageAnalysis,
    user_context: UserContext | None,
    summary: str | None,
) -> str:
    context = yaml.safe_dump(
        {
            "industry": (user_context.industry if user_context else None) or "general design",
            "expertise_level": (user_context.expertise_level if user_context else None) or "intermediate",
        },
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    ).strip()
    return PLANNER_SYSTEM_PROMPT.format(
        ground_truth=render_ground_truth(ground_truth),
        user_context=context,
        conversation_summary=CONVERSATION_SUMMARY_BLOCK.format(summary=summary) if summary else "",
        max_proposals=settings.MAX_PROPOSALS_PER_TURN,
    )


# ── Reply parsing ────────────────────────────────────────────────────────


def parse_tool_calls(
    raw_calls: Sequence[tuple[Any, Any]],
    max_proposals: int | None = None,
) -> tuple[list[ToolCallProposal], list[str]]:
    """
    Turn provider function calls ``(name, args)`` into proposals.

    Structurally broken calls are dropped with a reason; unknown tool names
    are kept so the validator can reject them visibly.
    """
    max_proposals = settings.MAX_PROPOSALS_PER_TURN if max_proposals is None else max_proposals
    proposals: list[ToolCallProposal] = []
    dropped: list[str] = []
    for index, (name, args) in enumerate(raw_calls):
        if not isinstance(name, str) or not name.strip():
            dropped.append(f"call #{index + 1}: missing tool name")
            continue
        if args is None:
            args = {}
        if not isinstance(args, dict):
            dropped.append(f"call #{index + 1} ({name}): arguments are {type(args).__name__}, expected an object")
            continue
        if len(proposals) >= max_proposals:
            dropped.append(f"call #{index + 1} ({name}): over the limit of {max_proposals} tool calls per turn")
            continue
        proposals.append(ToolCallProposal(tool_name=name.strip(), parameters=dict(args)))

    for reason in dropped:
        logger.warning(f"Planner: dropped proposal, {reason}")
    return proposals, dropped


# ── Providers ────────────────────────────────────────────────────────────


class GeminiPlanner:
    """Gemini function calling via google-genai."""

    def __init__(self, model: str | None = None, timeout: float | None = None, client=None):
        self.model = model or settings.PLANNER_MODEL
        self.timeout = timeout or settings.PLANNER_TIMEOUT_SECONDS
        self.client = client or ai_client

    async def propose(
        self,
        image: bytes,
        message: str,
        history: Sequence[ConversationTurn],
        ground_truth: ImageAnalysis,
        catalog: dict[str, ToolSpec],
        user_context: UserContext | None = None,
    ) -> PlannerReply:
        kept, summary = compact_history(history)
        contents = [
            Content(role="model" if t.role == Role.assistant else "user", parts=[Part.from_text(text=t.text)])
            for t in kept
        ]
        contents.append(
            Content(
                role="user",
                parts=[
                    Part.from_bytes(data=image, mime_type=_mime_type(ground_truth.format)),
                    Part.from_text(text=message),
                ],
            )
        )
        declarations = [
            FunctionDeclaration(name=d["name"], description=d["description"], parameters_json_schema=d["parameters"])
            for d in planner_tool_declarations(catalog)
        ]

        try:
            resp = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=GenerateContentConfig(
                        system_instruction=build_system_prompt(ground_truth, user_context, summary),
                        tools=[Tool(function_declarations=declarations)],
                        automatic_function_calling=AutomaticFunctionCallingConfig(disable=True),
                        temperature=1.0,  # Recommended for Gemini 3
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise PlannerError(f"Gemini planner timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise PlannerError(f"Gemini planner failed: {type(exc).__name__}: {exc}") from exc

        texts: list[str] = []
        raw_calls: list[tuple[Any, Any]] = []
        candidates = resp.candidates or []
        parts = (candidates[0].content.parts or []) if candidates and candidates[0].content else []
        for part in parts:
            if part.function_call is not None:
                raw_calls.append((part.function_call.name, part.function_call.args))
            elif part.text and not part.thought:
                texts.append(part.text)

        proposals, dropped = parse_tool_calls(raw_calls)
        return PlannerReply(text="".join(texts).strip(), proposals=proposals, dropped=dropped)


class ClaudePlanner:
    """Claude tool use via the anthropic SDK."""

    def __init__(self, model: str | None = None, timeout: float | None = None, client=None):
        self.model = model or settings.ANTHROPIC_PLANNER_MODEL
        self.timeout = timeout or settings.PLANNER_TIMEOUT_SECONDS
        self.client = client

    async def propose(
        self,
        image: bytes,
        message: str,
        history: Sequence[ConversationTurn],
        ground_truth: ImageAnalysis,
        catalog: dict[str, ToolSpec],
        user_context: UserContext | None = None,
    ) -> PlannerReply:
        client = self.client or get_anthropic_client()
        if not client:
            raise PlannerError(
                "Anthropic client not configured but USE_ANTHROPIC_AI is True. "
                "Set PXP_ANTHROPIC_API_KEY in .env or disable PXP_USE_ANTHROPIC_AI."
            )

        kept, summary = compact_history(history)
        messages: list[dict[str, Any]] = [
            {"role": "assistant" if t.role == Role.assistant else "user", "content": t.text} for t in kept
        ]
        # The API requires the conversation to open with a user message
        while messages and messages[0]["role"] == "assistant":
            messages.pop(0)
        messages.append(
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": _mime_type(ground_truth.format),
                            "data": base64.b64encode(image).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": message},
                ],
            }
        )
        tools = [
            {"name": d["name"], "description": d["description"], "input_schema": d["parameters"]}
            for d in planner_tool_declarations(catalog)
        ]

        logger.debug(f"Calling Claude API with model: {self.model}")
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(
                    client.messages.create,
                    model=self.model,
                    max_tokens=4096,
                    system=build_system_prompt(ground_truth, user_context, summary),
                    tools=tools,
                    messages=messages,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise PlannerError(f"Claude planner timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise PlannerError(f"Claude planner failed: {type(exc).__name__}: {exc}") from exc

        texts: list[str] = []
        raw_calls: list[tuple[Any, Any]] = []
        for block in resp.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                raw_calls.append((block.name, block.input))

        proposals, dropped = parse_tool_calls(raw_calls)
        return PlannerReply(text="".join(texts).strip(), proposals=proposals, dropped=dropped)


def _mime_type(fmt: str) -> str:
    return {"jpeg": "image/jpeg", "webp": "image/webp", "gif": "image/gif"}.get(fmt, "image/png")


def get_planner() -> PlannerClient:
    if settings.USE_ANTHROPIC_AI:
        return ClaudePlanner()
    return GeminiPlanner()
