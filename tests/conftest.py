"""Shared fixtures: synthetic images, a scripted planner and in-memory stores."""

import io
import os
import tempfile

os.environ.setdefault("PXP_GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("PXP_APP_AUTH_KEY", "test-auth-key")
os.environ.setdefault("PXP_HISTORY_BACKEND", "memory")
os.environ.setdefault("PXP_CONVERSATION_BACKEND", "memory")
os.environ.setdefault("PXP_STORAGE_DIR", tempfile.mkdtemp(prefix="pixelpilot-tests-"))

import numpy as np  # noqa: E402
import pytest  # noqa: E402
from PIL import Image  # noqa: E402

from app.analysis.ground_truth import extract_ground_truth  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.history.store import InMemoryHistoryStore  # noqa: E402
from app.orchestration.conversation import InMemoryConversationStore  # noqa: E402
from app.orchestration.orchestrator import Orchestrator  # noqa: E402
from app.schema.orchestration import PlannerReply  # noqa: E402

LOGO_RGB = (220, 30, 30)
WHITE = {"hex": "#ffffff", "r": 255, "g": 255, "b": 255}


def logo_image(size: int = 100, block: int = 40) -> Image.Image:
    """White square with a red block in the middle."""
    arr = np.full((size, size, 4), 255, dtype=np.uint8)
    start = (size - block) // 2
    arr[start : start + block, start : start + block, :3] = LOGO_RGB
    return Image.fromarray(arr, "RGBA")


def to_png(image: Image.Image, dpi: int | None = None) -> bytes:
    buf = io.BytesIO()
    if dpi:
        image.save(buf, format="PNG", dpi=(dpi, dpi))
    else:
        image.save(buf, format="PNG")
    return buf.getvalue()


class FakePlanner:
    """Returns scripted replies in order; an exception in the script is raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies) or [PlannerReply()]
        self.calls: list[dict] = []

    async def propose(self, image, message, history, ground_truth, catalog, user_context=None):
        self.calls.append({"image": image, "message": message, "history": list(history), "ground_truth": ground_truth})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STORAGE_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def logo():
    return logo_image()


@pytest.fixture
def logo_png(logo):
    return to_png(logo)


@pytest.fixture
async def logo_analysis(logo_png):
    return await extract_ground_truth(logo_png)


@pytest.fixture
def history():
    return InMemoryHistoryStore(max_records=100)


@pytest.fixture
def conversations():
    return InMemoryConversationStore()


@pytest.fixture
def planner():
    return FakePlanner()


@pytest.fixture
def orchestrator(planner, history, conversations):
    return Orchestrator(planner=planner, history=history, conversations=conversations)
