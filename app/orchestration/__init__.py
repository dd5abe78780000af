"""Turn orchestration package — plan, validate, execute, verify, persist."""

from app.orchestration.correction import detect_correction
from app.orchestration.executor import TOOL_REGISTRY, ExecutionRouter
from app.orchestration.orchestrator import Orchestrator
from app.orchestration.planner import PlannerError, get_planner

__all__ = (
    "TOOL_REGISTRY",
    "ExecutionRouter",
    "Orchestrator",
    "PlannerError",
    "detect_correction",
    "get_planner",
)
