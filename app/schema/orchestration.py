"""
Orchestration models — turn request, conversation state, per-call record and
the turn response.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from app.schema.analysis import ImageAnalysis
from app.schema.result import ResultValidation
from app.schema.tool import ExecutionOutcome, ToolCallProposal, ValidationResult


class Role(StrEnum):
    user = "user"
    assistant = "assistant"


class ConversationTurn(BaseModel):
    role: Role
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class UserContext(BaseModel):
    industry: str | None = None
    expertise_level: str | None = None


class TurnRequest(BaseModel):
    """One user turn as handed over by the transport layer."""

    message: str = Field(..., min_length=1, max_length=4000)
    image: str = Field(..., min_length=1, description="Stored image handle, base64 payload or data URL")
    conversation_id: str = Field(..., min_length=1, max_length=128)
    conversation_history: list[ConversationTurn] | None = None
    user_context: UserContext | None = None


class PlannerReply(BaseModel):
    text: str = ""
    proposals: list[ToolCallProposal] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)  # reasons for discarded proposals


class ConversationState(BaseModel):
    conversation_id: str
    turns: list[ConversationTurn] = Field(default_factory=list)
    current_handle: str | None = None
    undo_stack: list[str] = Field(default_factory=list)  # pre-edit handles, newest last

    @property
    def last_assistant_text(self) -> str | None:
        for turn in reversed(self.turns):
            if turn.role == Role.assistant:
                return turn.text
        return None


class ToolExecution(BaseModel):
    """Everything the pipeline learned about one proposal."""

    tool_call: ToolCallProposal
    validation: ValidationResult | None = None
    outcome: ExecutionOutcome | None = None
    result_validation: ResultValidation | None = None
    confidence: float = Field(ge=0.0, le=100.0, default=0.0)
    retried: bool = False


class OrchestratorResponse(BaseModel):
    """The only thing a turn ever returns."""

    success: bool
    message: str
    tool_executions: list[ToolExecution] = Field(default_factory=list)
    overall_confidence: float = Field(ge=0.0, le=100.0, default=0.0)
    conversation_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None
    is_correction: bool = False
    rolled_back: bool = False
    image_handle: str | None = None
    ground_truth: ImageAnalysis | None = None
