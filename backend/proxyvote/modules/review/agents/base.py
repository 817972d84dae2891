"""Review BaseAgent — the extraction oracle boundary.

LLMClient is the transport: one request/response per call against the
configured provider, with bounded retries on transport failures.
BaseAgent turns a reply into typed rows: code-fence stripping, sanitizing
and pydantic validation. A reply that does not decode raises
ExtractionParseError; the transport raises ExtractionCallFailure.

Providers supported:
  - google (Gemini, JSON mode with response_schema)
  - anthropic (Claude, JSON schema appended to the system prompt)
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from proxyvote.core.config import settings
from proxyvote.modules.review.agents.sanitizer import sanitize_rows, strip_code_fences
from proxyvote.modules.review.cost_tracker import CostTracker
from proxyvote.modules.review.errors import ExtractionCallFailure, ExtractionParseError

logger = structlog.get_logger()

# Default models per provider and tier. "extraction" serves the agenda and
# indicator stages, "reasoning" the fact and decision stages.
DEFAULT_MODELS: dict[str, dict[str, str]] = {
    "google": {
        "extraction": "gemini-2.5-flash",
        "reasoning": "gemini-2.5-pro",
    },
    "anthropic": {
        "extraction": "claude-3-5-haiku-20241022",
        "reasoning": "claude-sonnet-4-20250514",
    },
}

# Directory where prompt templates live
_PROMPTS_DIR = Path(__file__).parent / "prompts"


@dataclass
class LLMReply:
    """Raw reply text plus usage metadata for one oracle call."""

    text: str
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    duration_ms: int = 0


class LLMClient:
    """Provider-agnostic oracle transport.

    Transport failures are retried up to ``max_retries`` extra times with
    exponential backoff; parse failures are the caller's concern and are
    never retried here.
    """

    def __init__(
        self,
        provider: str | None = None,
        *,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider or settings.review_provider
        if self.provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {self.provider}")
        self.max_retries = settings.extraction_max_retries if max_retries is None else max_retries
        self.backoff_seconds = (
            settings.extraction_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep

        # Lazy-initialized clients
        self._gemini_client: Any = None
        self._anthropic_client: Any = None

    def default_model(self, tier: str) -> str:
        # Configured models belong to the configured provider only.
        configured = ""
        if self.provider == settings.review_provider:
            configured = settings.reasoning_model if tier == "reasoning" else settings.extraction_model
        return configured or DEFAULT_MODELS[self.provider][tier]

    # ------------------------------------------------------------------
    # LLM client builders (lazy)
    # ------------------------------------------------------------------

    def _get_gemini_client(self) -> Any:
        if self._gemini_client is None:
            from google import genai
            from google.genai import types as genai_types

            self._gemini_client = genai.Client(
                api_key=settings.google_ai_api_key,
                http_options=genai_types.HttpOptions(timeout=settings.llm_timeout_ms),
            )
        return self._gemini_client

    def _get_anthropic_client(self) -> Any:
        if self._anthropic_client is None:
            import anthropic

            self._anthropic_client = anthropic.Anthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_ms / 1000,
            )
        return self._anthropic_client

    # ------------------------------------------------------------------
    # Unified call with retry
    # ------------------------------------------------------------------

    def generate(
        self,
        system_prompt: str,
        user_content: str,
        *,
        model: str,
        response_schema: Any = None,
        label: str = "",
    ) -> LLMReply:
        """Send one request and return the raw reply.

        Raises ExtractionCallFailure once all attempts are spent.
        """
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                return self._generate_once(
                    system_prompt, user_content,
                    model=model, response_schema=response_schema, label=label,
                )
            except ExtractionCallFailure as e:
                if attempt == attempts - 1:
                    logger.error(
                        "Oracle call failed, giving up",
                        label=label,
                        attempts=attempts,
                        error=str(e),
                    )
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Oracle call failed, retrying",
                    label=label,
                    attempt=attempt + 1,
                    delay_s=delay,
                    error=str(e),
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

    def _generate_once(
        self,
        system_prompt: str,
        user_content: str,
        *,
        model: str,
        response_schema: Any,
        label: str,
    ) -> LLMReply:
        start = time.time()
        try:
            if self.provider == "google":
                reply = self._call_gemini(system_prompt, user_content, model, response_schema)
            else:
                reply = self._call_anthropic(system_prompt, user_content, model, response_schema)
        except ExtractionCallFailure:
            raise
        except Exception as e:
            raise ExtractionCallFailure(f"{type(e).__name__}: {e}", label=label) from e

        if not reply.text or not reply.text.strip():
            raise ExtractionCallFailure("empty reply", label=label)

        reply.duration_ms = int((time.time() - start) * 1000)
        logger.info(
            "Oracle call",
            provider=self.provider,
            model=model,
            label=label,
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
            duration_ms=reply.duration_ms,
        )
        return reply

    def _call_gemini(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        response_schema: Any,
    ) -> LLMReply:
        from google.genai import types

        client = self._get_gemini_client()
        config_kwargs: dict[str, Any] = {
            "system_instruction": system_prompt,
            "temperature": 0.0,
            "response_mime_type": "application/json",
        }
        if response_schema is not None:
            config_kwargs["response_schema"] = response_schema

        response = client.models.generate_content(
            model=model,
            contents=user_content,
            config=types.GenerateContentConfig(**config_kwargs),
        )

        usage = response.usage_metadata
        return LLMReply(
            text=response.text or "",
            provider="google",
            model=model,
            input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
            cache_read_tokens=getattr(usage, "cached_content_token_count", 0) or 0,
        )

    def _call_anthropic(
        self,
        system_prompt: str,
        user_content: str,
        model: str,
        response_schema: Any,
    ) -> LLMReply:
        client = self._get_anthropic_client()
        system = system_prompt
        if response_schema is not None:
            schema = json.dumps(TypeAdapter(response_schema).json_schema(), ensure_ascii=False)
            system = (
                f"{system_prompt}\n\n"
                f"Respond with JSON only, matching this JSON Schema:\n{schema}"
            )

        response = client.messages.create(
            model=model,
            max_tokens=8192,
            system=system,
            messages=[{"role": "user", "content": user_content}],
        )

        usage = response.usage
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return LLMReply(
            text=text,
            provider="anthropic",
            model=model,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            cache_read_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
        )


class BaseAgent:
    """Base class for all review agents.

    Provides:
      - Prompt loading from prompts/ directory
      - call_llm(): oracle call + all-or-nothing decoding into typed rows
      - call_llm_rows(): oracle call + per-row decoding, invalid rows dropped
      - Cost tracking integration
    """

    agent_name: str = "base"
    stage: str = ""
    model_tier: str = "extraction"
    prompt_file: str = ""
    # Free-text fields whose null / missing value is read as "".
    text_fields: tuple[str, ...] = ()

    def __init__(
        self,
        client: LLMClient | None = None,
        model: str | None = None,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self.client = client or LLMClient()
        self.model = model or self.client.default_model(self.model_tier)
        self.cost_tracker = cost_tracker
        self._system_prompt = self.load_prompt(self.prompt_file) if self.prompt_file else ""

        logger.debug(f"{self.agent_name} initialized", model=self.model)

    # ------------------------------------------------------------------
    # Prompt loading
    # ------------------------------------------------------------------

    @staticmethod
    def load_prompt(filename: str) -> str:
        """Load a prompt template from the prompts/ directory."""
        path = _PROMPTS_DIR / filename
        if not path.exists():
            raise FileNotFoundError(f"Prompt file not found: {path}")
        return path.read_text(encoding="utf-8").strip()

    # ------------------------------------------------------------------
    # Oracle call
    # ------------------------------------------------------------------

    def _request(self, user_content: str, response_schema: Any, label: str) -> LLMReply:
        reply = self.client.generate(
            self._system_prompt,
            user_content,
            model=self.model,
            response_schema=response_schema,
            label=label,
        )

        if self.cost_tracker:
            self.cost_tracker.record(
                provider=reply.provider,
                model=reply.model,
                stage=self.stage,
                label=label,
                input_tokens=reply.input_tokens,
                output_tokens=reply.output_tokens,
                cache_read_tokens=reply.cache_read_tokens,
                duration_ms=reply.duration_ms,
            )
        return reply

    def call_llm(self, user_content: str, reply_type: Any, *, label: str = "") -> Any:
        """Call the oracle and decode its reply as ``reply_type`` (all or nothing)."""
        reply = self._request(user_content, reply_type, label)
        return self.parse_reply(reply.text, reply_type, label=label, text_fields=self.text_fields)

    def call_llm_rows(self, user_content: str, row_type: Any, *, label: str = "") -> list[Any]:
        """Call the oracle for an array of ``row_type``; invalid rows are dropped."""
        reply = self._request(user_content, list[row_type], label)
        return self.parse_rows(reply.text, row_type, label=label, text_fields=self.text_fields)

    # ------------------------------------------------------------------
    # JSON parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_json(raw_text: str) -> Any:
        """Parse LLM output as JSON, stripping code fences if present."""
        return json.loads(strip_code_fences(raw_text))

    @classmethod
    def _decode_json(cls, raw_text: str, label: str) -> Any:
        try:
            return cls.parse_json(raw_text)
        except json.JSONDecodeError as e:
            raise ExtractionParseError(f"reply is not JSON: {e}", label=label) from e

    @classmethod
    def parse_reply(
        cls,
        raw_text: str,
        reply_type: Any,
        *,
        label: str = "",
        text_fields: Iterable[str] = (),
    ) -> Any:
        """Decode raw reply text into ``reply_type`` or raise ExtractionParseError."""
        data = cls._decode_json(raw_text, label)
        try:
            return TypeAdapter(reply_type).validate_python(sanitize_rows(data, text_fields))
        except ValidationError as e:
            raise ExtractionParseError(
                f"reply does not match schema ({e.error_count()} errors): {e}",
                label=label,
            ) from e

    @classmethod
    def parse_rows(
        cls,
        raw_text: str,
        row_type: Any,
        *,
        label: str = "",
        text_fields: Iterable[str] = (),
    ) -> list[Any]:
        """Decode a JSON array row by row.

        A reply that is not JSON or not an array raises ExtractionParseError;
        a single row that fails validation is logged and dropped.
        """
        rows = sanitize_rows(cls._decode_json(raw_text, label), text_fields)
        if not isinstance(rows, list):
            raise ExtractionParseError(
                f"reply is not an array: {type(rows).__name__}", label=label
            )

        adapter = TypeAdapter(row_type)
        parsed: list[Any] = []
        for index, row in enumerate(rows):
            try:
                parsed.append(adapter.validate_python(row))
            except ValidationError as e:
                logger.warning(
                    "Reply row dropped",
                    label=label,
                    row=index,
                    errors=e.error_count(),
                    error=str(e),
                )
        return parsed
