"""Shared test fixtures for the proxy vote review test suite."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import fitz
import pytest
from httpx import ASGITransport, AsyncClient

from proxyvote.main import app
from proxyvote.modules.review.agents.base import LLMReply
from proxyvote.modules.review.schemas import AgendaItem, Indicator


class FakeLLMClient:
    """Stands in for LLMClient: replies come from a queue or a responder.

    A reply may be a str (sent as-is), any JSON-serializable value, or an
    exception instance (raised from generate()).
    """

    provider = "fake"

    def __init__(
        self,
        replies: list[Any] | None = None,
        responder: Callable[[str, str], Any] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.responder = responder
        self.calls: list[dict[str, Any]] = []

    def default_model(self, tier: str) -> str:
        return f"fake-{tier}"

    def generate(
        self,
        system_prompt: str,
        user_content: str,
        *,
        model: str,
        response_schema: Any = None,
        label: str = "",
    ) -> LLMReply:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_content": user_content,
            "model": model,
            "response_schema": response_schema,
            "label": label,
        })
        if self.responder is not None:
            reply = self.responder(user_content, label)
        else:
            reply = self.replies.pop(0)

        if isinstance(reply, Exception):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False)
        return LLMReply(text=text, provider="fake", model=model, input_tokens=1000, output_tokens=100)


def build_pdf(pages: list[str]) -> bytes:
    """Build a PDF with one page per entry; an empty entry gives a blank page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def paged_text(page_count: int, body: str = "text") -> str:
    """Page-tagged text with markers 1..page_count, as pdf_service renders it."""
    return "".join(f"\n[PAGE: {n}]\n{body} {n}\n" for n in range(1, page_count + 1))


@pytest.fixture
def make_client() -> type[FakeLLMClient]:
    return FakeLLMClient


@pytest.fixture
def make_pdf() -> Callable[[list[str]], bytes]:
    return build_pdf


@pytest.fixture
def make_paged_text() -> Callable[..., str]:
    return paged_text


@pytest.fixture
def agenda_items() -> list[AgendaItem]:
    return [
        AgendaItem(id="1", number="第1号議案", title="剰余金の処分の件", description="期末配当 1株につき50円"),
        AgendaItem(id="2", number="第2号議案", title="取締役8名選任の件", description="取締役8名の選任"),
        AgendaItem(id="3", number="第3号議案", title="監査役1名選任の件", description="監査役1名の選任"),
    ]


@pytest.fixture
def indicators() -> list[Indicator]:
    return [
        Indicator(id="ind-1", agenda_id="2", metric_name="ROE", threshold="5年平均5%未満なら反対", description=""),
        Indicator(id="ind-2", agenda_id="2", metric_name="女性取締役", threshold="1名以上", description=""),
        Indicator(id="ind-3", agenda_id="1", metric_name="配当性向", threshold="30%以上", description=""),
    ]


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
