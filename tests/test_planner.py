"""Tests for planner prompt building, reply parsing and the provider adapters."""

import asyncio
from types import SimpleNamespace

import pytest

from app.orchestration.planner import (
    ClaudePlanner,
    GeminiPlanner,
    PlannerError,
    build_system_prompt,
    compact_history,
    parse_tool_calls,
    render_ground_truth,
)
from app.schema.analysis import ImageAnalysis
from app.schema.orchestration import ConversationTurn, Role, UserContext
from app.tools.catalog import TOOL_CATALOG


def _turns(*texts: str) -> list[ConversationTurn]:
    return [ConversationTurn(role=Role.user if i % 2 == 0 else Role.assistant, text=t) for i, t in enumerate(texts)]


class TestParseToolCalls:
    def test_broken_calls_are_dropped_with_reasons(self):
        proposals, dropped = parse_tool_calls(
            [
                ("color_knockout", {"colors": []}),
                (None, {}),
                ("rotate_flip", "flip it"),
                ("magic_wand", None),
            ],
            max_proposals=5,
        )
        assert [p.tool_name for p in proposals] == ["color_knockout", "magic_wand"]
        assert proposals[1].parameters == {}
        assert dropped[0] == "call #2: missing tool name"
        assert "expected an object" in dropped[1]

    def test_cap_keeps_the_first_calls(self):
        calls = [("upscaler", {"scaleFactor": i}) for i in range(2, 9)]
        proposals, dropped = parse_tool_calls(calls, max_proposals=5)
        assert [p.parameters["scaleFactor"] for p in proposals] == [2, 3, 4, 5, 6]
        assert len(dropped) == 2
        assert all("over the limit of 5" in reason for reason in dropped)

    def test_no_calls(self):
        assert parse_tool_calls([]) == ([], [])


class TestCompactHistory:
    def test_empty(self):
        assert compact_history([]) == ([], None)

    def test_short_history_is_kept_whole(self):
        turns = _turns("remove the white", "Done.")
        kept, summary = compact_history(turns, char_budget=1000, recent=6)
        assert kept == turns
        assert summary is None

    def test_older_user_turns_are_summarized(self):
        turns = _turns("make it red", "ok", "now upscale", "ok", "flip it", "ok")
        kept, summary = compact_history(turns, char_budget=1000, recent=2)
        assert [t.text for t in kept] == ["flip it", "ok"]
        assert summary.splitlines() == ["- make it red", "- now upscale"]

    def test_char_budget_is_respected(self):
        turns = _turns("a" * 400, "b" * 400, "c" * 400)
        kept, _ = compact_history(turns, char_budget=900, recent=10)
        assert [t.text[0] for t in kept] == ["b", "c"]

    def test_long_requests_are_abbreviated(self):
        turns = _turns("x" * 300, "ok", "latest", "ok")
        _, summary = compact_history(turns, char_budget=1000, recent=2)
        assert summary == "- " + "x" * 117 + "..."


class TestPrompt:
    def test_transparency_is_called_out(self):
        analysis = ImageAnalysis(
            width=800, height=600, dpi_estimate=72, has_transparency=True, transparent_pct=42.0, confidence=95
        )
        text = render_ground_truth(analysis)
        assert "800 × 600 pixels" in text
        assert "42.0% of pixels are transparent" in text
        assert "Transparent pixels are NOT white" in text

    def test_unmeasurable_image(self):
        assert "could not be decoded" in render_ground_truth(ImageAnalysis.unmeasurable())

    def test_system_prompt_sections(self):
        analysis = ImageAnalysis(width=100, height=100, dpi_estimate=300, confidence=100)
        prompt = build_system_prompt(analysis, UserContext(industry="apparel"), "- make it red")
        assert "<ground_truth_data>" in prompt
        assert "industry: apparel" in prompt
        assert "expertise_level: intermediate" in prompt
        assert "<conversation_summary>" in prompt
        assert "- make it red" in prompt

    def test_summary_block_is_omitted_without_summary(self):
        analysis = ImageAnalysis(width=100, height=100, dpi_estimate=300, confidence=100)
        assert "<conversation_summary>" not in build_system_prompt(analysis, None, None)


def _gemini_part(function_call=None, text=None, thought=None):
    return SimpleNamespace(function_call=function_call, text=text, thought=thought)


class _FakeGeminiModels:
    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.requests = []

    async def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


def _gemini_client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


class TestGeminiPlanner:
    async def test_function_calls_become_proposals(self, logo_png, logo_analysis):
        response = SimpleNamespace(
            candidates=[
                SimpleNamespace(
                    content=SimpleNamespace(
                        parts=[
                            _gemini_part(text="thinking...", thought=True),
                            _gemini_part(text="Flipping it for you."),
                            _gemini_part(
                                function_call=SimpleNamespace(
                                    name="rotate_flip", args={"operation": "flip", "direction": "horizontal"}
                                )
                            ),
                        ]
                    )
                )
            ]
        )
        models = _FakeGeminiModels(response=response)
        planner = GeminiPlanner(model="test-model", timeout=5, client=_gemini_client(models))
        reply = await planner.propose(logo_png, "flip it", _turns("hi", "hello"), logo_analysis, TOOL_CATALOG)

        assert reply.text == "Flipping it for you."
        assert reply.proposals[0].tool_name == "rotate_flip"
        assert reply.proposals[0].parameters == {"operation": "flip", "direction": "horizontal"}
        request = models.requests[0]
        assert request["model"] == "test-model"
        assert len(request["contents"]) == 3
        assert request["contents"][1].role == "model"

    async def test_provider_error_becomes_planner_error(self, logo_png, logo_analysis):
        planner = GeminiPlanner(timeout=5, client=_gemini_client(_FakeGeminiModels(error=RuntimeError("quota"))))
        with pytest.raises(PlannerError, match="quota"):
            await planner.propose(logo_png, "flip it", [], logo_analysis, TOOL_CATALOG)

    async def test_timeout_becomes_planner_error(self, logo_png, logo_analysis):
        planner = GeminiPlanner(timeout=0.05, client=_gemini_client(_FakeGeminiModels(delay=5)))
        with pytest.raises(PlannerError, match="timed out"):
            await planner.propose(logo_png, "flip it", [], logo_analysis, TOOL_CATALOG)

    async def test_empty_candidates(self, logo_png, logo_analysis):
        planner = GeminiPlanner(timeout=5, client=_gemini_client(_FakeGeminiModels(response=SimpleNamespace(candidates=None))))
        reply = await planner.propose(logo_png, "what is this?", [], logo_analysis, TOOL_CATALOG)
        assert reply.proposals == []
        assert reply.text == ""


class _FakeAnthropicMessages:
    def __init__(self, content):
        self.content = content
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(content=self.content)


class TestClaudePlanner:
    async def test_tool_use_blocks_become_proposals(self, logo_png, logo_analysis):
        messages = _FakeAnthropicMessages(
            [
                SimpleNamespace(type="text", text="Upscaling 2x."),
                SimpleNamespace(type="tool_use", name="upscaler", input={"scaleFactor": 2}),
            ]
        )
        planner = ClaudePlanner(model="test-model", timeout=5, client=SimpleNamespace(messages=messages))
        history = [ConversationTurn(role=Role.assistant, text="Hi!"), *_turns("make it bigger", "Sure?")]
        reply = await planner.propose(logo_png, "yes", history, logo_analysis, TOOL_CATALOG)

        assert reply.text == "Upscaling 2x."
        assert reply.proposals[0].parameters == {"scaleFactor": 2}
        request = messages.requests[0]
        assert request["messages"][0]["role"] == "user"
        assert request["messages"][-1]["content"][0]["source"]["media_type"] == "image/png"
        assert {t["name"] for t in request["tools"]} == set(TOOL_CATALOG)

    async def test_missing_client(self, monkeypatch, logo_png, logo_analysis):
        monkeypatch.setattr("app.orchestration.planner.get_anthropic_client", lambda: None)
        with pytest.raises(PlannerError, match="not configured"):
            await ClaudePlanner().propose(logo_png, "hi", [], logo_analysis, TOOL_CATALOG)
