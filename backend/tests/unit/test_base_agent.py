"""Unit tests for the oracle boundary: reply decoding, retries, cost tracking."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from proxyvote.core.config import settings
from proxyvote.modules.review.agent_schemas import AgendaRow, FactHit
from proxyvote.modules.review.agents.base import DEFAULT_MODELS, BaseAgent, LLMClient, LLMReply
from proxyvote.modules.review.cost_tracker import CostTracker
from proxyvote.modules.review.errors import ExtractionCallFailure, ExtractionParseError


class FlakyClient(LLMClient):
    """LLMClient whose provider call fails ``failures`` times, then answers."""

    def __init__(self, failures: int, **kwargs) -> None:
        self.sleeps: list[float] = []
        super().__init__("google", sleep=self.sleeps.append, **kwargs)
        self.failures = failures
        self.attempts = 0

    def _call_gemini(self, system_prompt, user_content, model, response_schema) -> LLMReply:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("upstream reset")
        return LLMReply(text="[]", provider="google", model=model)


class EchoAgent(BaseAgent):
    agent_name = "Echo"
    stage = "test"
    text_fields = ("page_number",)


# ---------------------------------------------------------------------------
# Reply decoding
# ---------------------------------------------------------------------------


def test_parse_reply_returns_typed_rows() -> None:
    rows = BaseAgent.parse_reply(
        '```json\n[{"id": 1, "number": "第1号議案", "title": "t", "description": "d"}]\n```',
        list[AgendaRow],
    )
    assert rows == [AgendaRow(id="1", number="第1号議案", title="t", description="d")]


def test_parse_reply_rejects_non_json() -> None:
    with pytest.raises(ExtractionParseError, match="not JSON"):
        BaseAgent.parse_reply("Sorry, I cannot help with that.", list[AgendaRow], label="agenda")


def test_parse_reply_rejects_wrong_shape() -> None:
    with pytest.raises(ExtractionParseError) as exc_info:
        BaseAgent.parse_reply('[{"title": "missing id"}]', list[AgendaRow], label="agenda")
    assert exc_info.value.label == "agenda"


def test_parse_reply_rejects_wrong_field_type() -> None:
    with pytest.raises(ExtractionParseError):
        BaseAgent.parse_reply('[{"indicator_id": ["a"], "factual_value": "x", "page_number": "1"}]', list[FactHit])


def test_call_llm_records_cost_and_decodes(make_client) -> None:
    tracker = CostTracker()
    client = make_client([[{"indicatorId": "ind-1", "factualValue": "ROE 8%", "pageNumber": None}]])
    agent = EchoAgent(client, cost_tracker=tracker)

    hits = agent.call_llm("find facts", list[FactHit], label="chunk-1")

    assert hits == [FactHit(indicator_id="ind-1", factual_value="ROE 8%", page_number="")]
    assert agent.model == "fake-extraction"
    assert tracker.records[0].stage == "test"
    assert tracker.records[0].label == "chunk-1"
    assert client.calls[0]["response_schema"] == list[FactHit]


def test_prompt_files_exist_for_every_stage() -> None:
    for name in ("agenda.txt", "indicators.txt", "facts.txt", "decision.txt"):
        assert BaseAgent.load_prompt(name)
    assert "[PAGE: n]" in BaseAgent.load_prompt("facts.txt")


def test_missing_prompt_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        BaseAgent.load_prompt("does_not_exist.txt")


# ---------------------------------------------------------------------------
# Transport retries
# ---------------------------------------------------------------------------


def test_transport_failure_is_retried_with_backoff() -> None:
    client = FlakyClient(failures=2, max_retries=2, backoff_seconds=0.5)

    reply = client.generate("sys", "user", model="gemini-2.5-flash", label="agenda")

    assert reply.text == "[]"
    assert client.attempts == 3
    assert client.sleeps == [0.5, 1.0]


def test_transport_failure_after_retries_raises_call_failure() -> None:
    client = FlakyClient(failures=5, max_retries=1, backoff_seconds=0)

    with pytest.raises(ExtractionCallFailure, match="ConnectionError"):
        client.generate("sys", "user", model="gemini-2.5-flash", label="agenda")
    assert client.attempts == 2


def test_parse_errors_are_not_retried(make_client) -> None:
    client = make_client(["not json", "[]"])
    agent = EchoAgent(client)

    with pytest.raises(ExtractionParseError):
        agent.call_llm("x", list[FactHit])
    assert len(client.calls) == 1


def test_unsupported_provider_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported provider"):
        LLMClient("openai")


# ---------------------------------------------------------------------------
# Row-by-row decoding
# ---------------------------------------------------------------------------


def test_parse_rows_drops_only_invalid_rows() -> None:
    rows = BaseAgent.parse_rows(
        '[{"indicator_id": "a", "factual_value": "x", "page_number": "1"},'
        ' {"factual_value": "no id"},'
        ' {"indicator_id": "b", "factual_value": "y", "page_number": 2}]',
        FactHit,
        label="chunk",
    )
    assert [r.indicator_id for r in rows] == ["a", "b"]
    assert rows[1].page_number == "2"


def test_parse_rows_rejects_non_json_and_non_array() -> None:
    with pytest.raises(ExtractionParseError, match="not JSON"):
        BaseAgent.parse_rows("<html>", FactHit)
    with pytest.raises(ExtractionParseError, match="not an array"):
        BaseAgent.parse_rows("42", FactHit)


def test_call_llm_rows_sends_array_schema(make_client) -> None:
    client = make_client([[{"indicatorId": None, "factualValue": "x", "pageNumber": "1"}]])
    agent = EchoAgent(client)
    agent.text_fields = ("indicator_id", "page_number")

    hits = agent.call_llm_rows("find facts", FactHit, label="chunk-1")

    assert hits == [FactHit(indicator_id="", factual_value="x", page_number="1")]
    assert client.calls[0]["response_schema"] == list[FactHit]


# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------


def test_configured_model_applies_to_configured_provider() -> None:
    with patch.object(settings, "review_provider", "google"), \
            patch.object(settings, "extraction_model", "gemini-2.5-flash-lite"):
        assert LLMClient("google").default_model("extraction") == "gemini-2.5-flash-lite"


def test_configured_model_ignored_for_other_provider() -> None:
    with patch.object(settings, "review_provider", "google"), \
            patch.object(settings, "reasoning_model", "gemini-2.5-pro"):
        assert LLMClient("anthropic").default_model("reasoning") == DEFAULT_MODELS["anthropic"]["reasoning"]
