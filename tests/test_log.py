"""Tests for the JSON log line format."""

import json
from datetime import datetime
from types import SimpleNamespace

from ulid import ULID

from app.core.config import settings
from app.core.log import log_serializer
from app.schema.status import HealthCheckResponse


def _record(message: str, **extra) -> dict:
    return {
        "time": datetime(2026, 1, 2, 3, 4, 5, 678000),
        "level": SimpleNamespace(name="INFO"),
        "name": "app.orchestration.orchestrator",
        "message": message,
        "extra": extra,
    }


class TestLogSerializer:
    def test_one_json_line(self):
        line = json.loads(log_serializer(_record("Conversation c1: turn complete")))
        assert line["asctime"] == "2026-01-02 03:04:05,678"
        assert line["levelname"] == "INFO"
        assert line["source"] == "app.orchestration.orchestrator"
        assert line["message"] == "Conversation c1: turn complete"
        assert line["correlation_id"] == ""
        assert "conversation_id" not in line

    def test_turn_lines_carry_the_conversation(self):
        line = json.loads(log_serializer(_record("planner proposed 1 tool call(s)", conversation_id="c1")))
        assert line["conversation_id"] == "c1"

    def test_long_messages_are_truncated(self):
        line = json.loads(log_serializer(_record("x" * (settings.LOG_MESSAGE_MAX_LEN + 50))))
        assert len(line["message"]) == settings.LOG_MESSAGE_MAX_LEN
        assert line["message"].endswith("...")


def test_health_defaults():
    health = HealthCheckResponse(version="0.1.0", uptime=1.5, exec_id=ULID())
    assert not health.orchestrator_ready
    assert health.history_backend is None
