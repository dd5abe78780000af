"""
Turn orchestrator — sequences one user turn through the pipeline.

    [correction rollback] → ground truth → plan → for each proposal:
    validate → execute → verify result → aggregate → persist

Stages are strictly sequential; each proposal sees the image produced by the
previous verified one. Persistence (image handles, history records,
conversation state) happens once, at the very end, shielded from
cancellation, so an abandoned turn leaves nothing half-written.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import numpy as np
from PIL import Image

from app.analysis.ground_truth import analyze_decoded
from app.core.config import settings
from app.core.log import logger
from app.core.retry import with_retry
from app.core.storage import is_image_handle, load_image, read_image_payload, save_image
from app.history.store import HistoryStore, make_record
from app.orchestration.conversation import ConversationStore
from app.orchestration.correction import detect_correction
from app.orchestration.executor import ExecutionRouter, skipped_outcome
from app.orchestration.planner import PlannerClient, PlannerError
from app.pixels import ImageLoadError, decode_image, to_rgba_array
from app.schema.analysis import ImageAnalysis
from app.schema.history import HistoryRecord
from app.schema.orchestration import (
    ConversationState,
    ConversationTurn,
    OrchestratorResponse,
    PlannerReply,
    Role,
    ToolExecution,
    TurnRequest,
)
from app.schema.tool import ToolCallProposal, ToolFamily, ToolSpec, ValidatedToolCall
from app.tools.catalog import TOOL_CATALOG
from app.validation.adjust import tweak_for_retry
from app.validation.parameters import ParameterValidator
from app.verification.confidence import execution_confidence, should_store, turn_confidence
from app.verification.result import ResultValidator

__all__ = ("GENERIC_ERROR_MESSAGE", "Orchestrator")

GENERIC_ERROR_MESSAGE = "I encountered an error processing your request. Please try again."
PLANNER_ERROR_MESSAGE = (
    "I couldn't reach the editing planner just now, so I didn't change anything. Please try again in a moment."
)

_RETRYABLE_FAMILIES = (ToolFamily.color_removal, ToolFamily.recolor)


@dataclass
class _WorkingImage:
    """The image a proposal runs against, plus what we know about it."""

    image: Image.Image
    content: bytes
    analysis: ImageAnalysis
    rgba: np.ndarray
    changed: bool = False


@dataclass
class _TurnState:
    executions: list[ToolExecution] = field(default_factory=list)
    records: list[HistoryRecord] = field(default_factory=list)


class Orchestrator:
    """Runs turns. Every collaborator is injected; nothing here is a global."""

    def __init__(
        self,
        planner: PlannerClient,
        history: HistoryStore,
        conversations: ConversationStore,
        catalog: dict[str, ToolSpec] | None = None,
        router: ExecutionRouter | None = None,
        result_validator: ResultValidator | None = None,
        correction_phrases: list[str] | None = None,
    ):
        self.planner = planner
        self.history = history
        self.conversations = conversations
        self.catalog = TOOL_CATALOG if catalog is None else catalog
        self.validator = ParameterValidator(history, self.catalog)
        self.router = router or ExecutionRouter()
        self.result_validator = result_validator or ResultValidator(self.catalog)
        self.correction_phrases = correction_phrases

    async def handle_turn(self, request: TurnRequest, image: bytes | None = None) -> OrchestratorResponse:
        """
        Process one turn. Always returns a response; only cancellation
        propagates.
        """
        conversation_id = request.conversation_id
        with logger.contextualize(conversation_id=conversation_id):
            try:
                return await self._run(request, image)
            except asyncio.CancelledError:
                logger.info(f"Conversation {conversation_id}: turn cancelled, partial work discarded")
                raise
            except Exception as exc:
                logger.exception(f"Conversation {conversation_id}: turn failed: {exc}")
                return OrchestratorResponse(
                    success=False,
                    message=GENERIC_ERROR_MESSAGE,
                    conversation_id=conversation_id,
                    overall_confidence=0.0,
                    error=f"{type(exc).__name__}: {exc}",
                )

    async def _run(self, request: TurnRequest, content: bytes | None) -> OrchestratorResponse:
        conversation_id = request.conversation_id
        state = await self.conversations.get(conversation_id)
        history = list(request.conversation_history) if request.conversation_history is not None else state.turns
        last_assistant = next((t.text for t in reversed(history) if t.role == Role.assistant), None)

        # 1. Correction → rollback to the state before the last committed edit
        is_correction = detect_correction(request.message, last_assistant, self.correction_phrases)
        rolled_back = False
        notes: list[str] = []
        base_handle: str | None = None
        try:
            if is_correction and state.undo_stack:
                base_handle = state.undo_stack[-1]
                content = await load_image(base_handle)
                rolled_back = True
                logger.info(f"Conversation {conversation_id}: correction detected, rolled back to {base_handle}")
            else:
                if is_correction:
                    logger.info(f"Conversation {conversation_id}: correction detected, nothing to roll back")
                    notes.append("There was no earlier edit to undo, so I worked from the current image.")
                if content is None:
                    content = await read_image_payload(request.image)
                if is_image_handle(request.image.strip()):
                    base_handle = request.image.strip()

            # 2. Ground truth
            decoded = await asyncio.to_thread(
                decode_image,
                content,
                max_bytes=settings.MAX_IMAGE_BYTES,
                max_dimension=settings.MAX_DIMENSION,
            )
        except ImageLoadError as exc:
            logger.warning(f"Conversation {conversation_id}: unusable image: {exc}")
            return OrchestratorResponse(
                success=False,
                message=f"I couldn't read that image, so I didn't change anything. {exc}",
                conversation_id=conversation_id,
                error=str(exc),
                is_correction=is_correction,
            )

        ground_truth = await analyze_decoded(decoded)
        logger.info(
            f"Conversation {conversation_id}: ground truth {ground_truth.width}x{ground_truth.height} "
            f"{ground_truth.format}, confidence {ground_truth.confidence:g}"
        )

        # 3. Plan
        try:
            reply: PlannerReply = await with_retry(
                self.planner.propose,
                content,
                request.message,
                history,
                ground_truth,
                self.catalog,
                request.user_context,
                max_retries=settings.PLANNER_MAX_RETRIES,
                retryable=(PlannerError,),
                label=f"Conversation {conversation_id}: planner",
            )
        except PlannerError as exc:
            response = OrchestratorResponse(
                success=False,
                message=PLANNER_ERROR_MESSAGE,
                conversation_id=conversation_id,
                overall_confidence=0.0,
                error=str(exc),
                is_correction=is_correction,
                ground_truth=ground_truth,
            )
            await asyncio.shield(
                self._commit(state, request, history, response, None, base_handle, content, rolled_back, [])
            )
            return response

        logger.info(
            f"Conversation {conversation_id}: planner proposed {len(reply.proposals)} tool call(s)"
            + (f", dropped {len(reply.dropped)}" if reply.dropped else "")
        )

        # 4. Validate → execute → verify, one proposal at a time
        working = _WorkingImage(
            image=decoded.image,
            content=content,
            analysis=ground_truth,
            rgba=to_rgba_array(decoded.image),
        )
        turn = _TurnState()
        dependency_failed = False
        for proposal in reply.proposals:
            spec = self.catalog.get(proposal.tool_name)
            if dependency_failed and (spec is None or spec.mutates_image):
                logger.info(f"Conversation {conversation_id}: {proposal.tool_name} skipped, an earlier edit failed")
                turn.executions.append(
                    ToolExecution(
                        tool_call=proposal,
                        outcome=skipped_outcome(proposal.tool_name, proposal.parameters, "dependency failed"),
                    )
                )
                continue

            verdict = await self.validator.validate(proposal, working.analysis, working.rgba)
            logger.info(
                f"Conversation {conversation_id}: {proposal.tool_name} validation "
                f"{'passed' if verdict.result.is_valid else 'failed'} (confidence {verdict.result.confidence:g})"
                + (f": {'; '.join(verdict.result.errors)}" if verdict.result.errors else "")
            )
            if verdict.call is None:
                turn.executions.append(ToolExecution(tool_call=proposal, validation=verdict.result))
                continue

            execution = await self._execute(conversation_id, verdict.call, working)
            turn.executions.append(execution)
            verified = (
                execution.outcome is not None
                and execution.outcome.success
                and execution.result_validation is not None
                and execution.result_validation.success
            )
            if not verified:
                if spec is not None and spec.mutates_image:
                    dependency_failed = True
                continue

            if should_store(execution):
                turn.records.append(
                    make_record(
                        working.analysis,
                        execution.outcome.tool_name,
                        execution.outcome.parameters,
                        True,
                        min(execution.validation.confidence, execution.result_validation.quality_score),
                    )
                )

            if spec.mutates_image and execution.outcome.result_image is not None:
                after = await asyncio.to_thread(decode_image, execution.outcome.result_image)
                working = _WorkingImage(
                    image=after.image,
                    content=execution.outcome.result_image,
                    analysis=execution.result_validation.after_analysis or working.analysis,
                    rgba=to_rgba_array(after.image),
                    changed=True,
                )

        # 5. Aggregate
        overall = turn_confidence(ground_truth, turn.executions)
        success = all(_verified(e) for e in turn.executions)
        message = _compose_message(reply.text, turn.executions, notes)
        logger.info(
            f"Conversation {conversation_id}: turn complete, {len(turn.executions)} tool call(s), "
            f"success={success}, overall confidence {overall:g}"
        )

        response = OrchestratorResponse(
            success=success,
            message=message,
            tool_executions=turn.executions,
            overall_confidence=overall,
            conversation_id=conversation_id,
            is_correction=is_correction,
            rolled_back=rolled_back,
            ground_truth=ground_truth,
        )

        # 6. Persist, all or nothing
        result_content = working.content if working.changed else None
        handle = await asyncio.shield(
            self._commit(
                state, request, history, response, result_content, base_handle, content, rolled_back, turn.records
            )
        )
        response.image_handle = handle
        return response

    async def _execute(self, conversation_id: str, call: ValidatedToolCall, working: _WorkingImage) -> ToolExecution:
        """Run one validated call, with one parameter-tweaked retry when the change was out of band."""
        spec = self.catalog[call.tool_name]
        outcome = await self.router.execute(call, working.image)
        result = None
        if outcome.success:
            result = await self.result_validator.validate(
                call.tool_name, working.image, outcome.result_image, call.parameters, working.analysis
            )
            logger.info(
                f"Conversation {conversation_id}: {call.tool_name} changed {result.percentage_changed:.1f}%, "
                f"result {'verified' if result.success else 'rejected'}"
                + (f": {result.failure_reason}" if result.failure_reason else "")
            )
        else:
            logger.info(f"Conversation {conversation_id}: {call.tool_name} failed: {outcome.error}")

        retried = False
        if spec.family in _RETRYABLE_FAMILIES:
            for _attempt in range(settings.QUALITY_RETRY_MAX):
                if result is None or result.success or result.change_verdict is None:
                    break
                tweaked = tweak_for_retry(call.parameters, result.change_verdict)
                if tweaked is None:
                    break
                verdict = await self.validator.validate(
                    ToolCallProposal(tool_name=call.tool_name, parameters=tweaked), working.analysis, working.rgba
                )
                if verdict.call is None:
                    break
                logger.info(
                    f"Conversation {conversation_id}: retrying {call.tool_name} ({result.change_verdict.replace('_', ' ')})"
                )
                retry_outcome = await self.router.execute(verdict.call, working.image)
                if not retry_outcome.success:
                    break
                call, outcome, retried = verdict.call, retry_outcome, True
                result = await self.result_validator.validate(
                    call.tool_name, working.image, outcome.result_image, call.parameters, working.analysis
                )

        return ToolExecution(
            tool_call=call.proposal,
            validation=call.validation,
            outcome=outcome,
            result_validation=result,
            confidence=execution_confidence(working.analysis, call.validation, outcome, result),
            retried=retried,
        )

    async def _commit(
        self,
        state: ConversationState,
        request: TurnRequest,
        history: list[ConversationTurn],
        response: OrchestratorResponse,
        result_content: bytes | None,
        base_handle: str | None,
        base_content: bytes,
        rolled_back: bool,
        records: list[HistoryRecord],
    ) -> str | None:
        conversation_id = state.conversation_id
        if rolled_back:
            state.undo_stack.pop()
            state.current_handle = base_handle
        if base_handle is None:
            base_handle = await save_image(base_content, _stored_format(base_content))
            state.current_handle = base_handle
        if result_content is not None:
            new_handle = await save_image(result_content, "png")
            state.undo_stack = [*state.undo_stack, base_handle][-settings.UNDO_MAX_DEPTH :]
            state.current_handle = new_handle
            logger.info(f"Conversation {conversation_id}: committed {new_handle}")
        elif not rolled_back:
            state.current_handle = base_handle

        for record in records:
            await self.history.record(record)
        if records:
            logger.info(f"Conversation {conversation_id}: stored {len(records)} history record(s)")

        state.turns = [
            *history,
            ConversationTurn(role=Role.user, text=request.message),
            ConversationTurn(role=Role.assistant, text=response.message),
        ][-settings.CONVERSATION_MAX_TURNS :]
        await self.conversations.save(state)
        return state.current_handle


def _verified(execution: ToolExecution) -> bool:
    return (
        execution.outcome is not None
        and execution.outcome.success
        and execution.result_validation is not None
        and execution.result_validation.success
    )


def _stored_format(content: bytes) -> str:
    if content.startswith(b"\xff\xd8"):
        return "jpeg"
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "webp"
    if content[:3] == b"GIF":
        return "gif"
    return "png"


def _compose_message(planner_text: str, executions: list[ToolExecution], notes: list[str]) -> str:
    """Human-readable account of the turn, including why anything did not happen."""
    lines: list[str] = [*notes]
    if planner_text:
        lines.append(planner_text)

    for execution in executions:
        name = execution.tool_call.tool_name
        if execution.validation is not None and not execution.validation.is_valid:
            reasons = "; ".join(execution.validation.errors)
            lines.append(f"I didn't run {name} because it didn't check out against the image: {reasons}")
        elif execution.outcome is not None and execution.outcome.skipped:
            lines.append(f"I skipped {name} because an earlier step failed.")
        elif execution.outcome is not None and not execution.outcome.success:
            lines.append(f"{name} failed: {execution.outcome.error}")
        elif execution.result_validation is not None and not execution.result_validation.success:
            reason = execution.result_validation.failure_reason
            lines.append(f"{name} ran, but the result didn't pass verification: {reason}")
        elif execution.outcome is not None and execution.outcome.data:
            lines.append(f"{name}: {_summarize_data(execution.outcome.data)}")

    if not lines:
        done = [e.tool_call.tool_name for e in executions if _verified(e)]
        lines.append(f"Done: {', '.join(done)}." if done else "I didn't find anything to change.")
    return "\n\n".join(lines)


def _summarize_data(data: dict) -> str:
    if "palette" in data:
        return ", ".join(f"{c['hex']} ({c['percentage']:.1f}%)" for c in data["palette"])
    if "hex" in data:
        return f"{data['hex']} at ({data.get('x')}, {data.get('y')})"
    return ", ".join(f"{k}={v}" for k, v in data.items())
