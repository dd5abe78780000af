"""
Log entry schema definition.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class LogEntry(BaseModel):
    """One JSON log line."""

    model_config = ConfigDict(from_attributes=True)

    asctime: datetime = Field(..., description="Timestamp of the log entry")
    levelname: str = Field(..., description="Log level name")
    correlation_id: str = Field(default="", description="Request correlation id")
    source: str = Field(default="", description="Emitting module")
    conversation_id: str | None = Field(default=None, description="Conversation the line belongs to, when inside a turn")
    message: str = Field(..., description="Log message content")

    @field_serializer("asctime")
    def serialize_asctime(self, asctime: datetime) -> str:
        return asctime.strftime(r"%Y-%m-%d %H:%M:%S,%f")[:-3]
