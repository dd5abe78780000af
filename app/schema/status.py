"""
Service status models: health check and index
"""

from pydantic import BaseModel, Field
from ulid import ULID


class HealthCheckResponse(BaseModel):
    """
    Liveness plus the state of the stores a turn depends on.
    """

    status: str = Field(default="OK", description="Service status")
    version: str = Field(..., description="Service version")
    uptime: float = Field(..., description="Service uptime in seconds")
    exec_id: ULID = Field(..., description="Service execution ID")
    orchestrator_ready: bool = Field(default=False, description="Turns can be accepted")
    history_backend: str | None = Field(default=None, description="memory or lancedb")
    history_degraded: bool = Field(default=False, description="Vector index unavailable, history served from memory")


class IndexResponse(BaseModel):
    message: str = Field(default="PixelPilot image editing service", description="Welcome message")
    docs: str = Field(default="/docs", description="OpenAPI documentation")
