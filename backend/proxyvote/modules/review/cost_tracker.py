"""Review Cost Tracker — token counting & cost estimation per oracle call.

Each record carries the pipeline stage and the document (or agenda / chunk)
it was spent on, so a run can be broken down by stage as well as by model.

Usage:
    tracker = CostTracker()
    tracker.record("google", "gemini-2.5-pro", stage="facts",
                   input_tokens=120_000, output_tokens=900, label="有報 p.1-50")
    print(tracker.summary_text())
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Pricing per 1M tokens (USD): (input, output, cache_read)
# ---------------------------------------------------------------------------

_PRICING: dict[str, tuple[float, float, float]] = {
    "gemini-2.5-flash": (0.30, 2.50, 0.075),
    "gemini-2.5-flash-lite": (0.10, 0.40, 0.025),
    "gemini-2.5-pro": (1.25, 10.00, 0.31),
    "gemini-2.0-flash": (0.10, 0.40, 0.025),
    "claude-sonnet-4-20250514": (3.00, 15.00, 0.30),
    "claude-opus-4-20250514": (15.00, 75.00, 1.50),
    "claude-3-5-haiku-20241022": (0.80, 4.00, 0.08),
}

_FALLBACK_PRICING = (3.00, 15.00, 0.30)


def _get_pricing(model: str) -> tuple[float, float, float]:
    """Look up pricing for a model; longest partial match wins."""
    if model in _PRICING:
        return _PRICING[model]
    candidates = [key for key in _PRICING if key in model]
    if candidates:
        return _PRICING[max(candidates, key=len)]
    logger.warning("Unknown model pricing, using fallback", model=model)
    return _FALLBACK_PRICING


@dataclass
class TokenRecord:
    """Token usage for a single oracle call."""

    provider: str
    model: str
    stage: str = ""
    label: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    duration_ms: int = 0
    cost_usd: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.cache_read_tokens

    def compute_cost(self) -> None:
        input_price, output_price, cache_read_price = _get_pricing(self.model)
        self.cost_usd = (
            (self.input_tokens / 1_000_000) * input_price
            + (self.output_tokens / 1_000_000) * output_price
            + (self.cache_read_tokens / 1_000_000) * cache_read_price
        )


class CostTracker:
    """Tracks token usage and costs across one review run."""

    def __init__(self) -> None:
        self.records: list[TokenRecord] = []
        self._start_time = time.time()

    def record(
        self,
        provider: str,
        model: str,
        *,
        stage: str = "",
        label: str = "",
        input_tokens: int = 0,
        output_tokens: int = 0,
        cache_read_tokens: int = 0,
        duration_ms: int = 0,
    ) -> TokenRecord:
        rec = TokenRecord(
            provider=provider,
            model=model,
            stage=stage,
            label=label,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read_tokens,
            duration_ms=duration_ms,
        )
        rec.compute_cost()
        self.records.append(rec)

        logger.debug(
            "Cost tracked",
            stage=stage,
            label=label,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=f"${rec.cost_usd:.4f}",
        )
        return rec

    @staticmethod
    def _aggregate(records: list[TokenRecord]) -> dict[str, Any]:
        calls = len(records)
        cost = sum(r.cost_usd for r in records)
        return {
            "calls": calls,
            "input_tokens": sum(r.input_tokens for r in records),
            "output_tokens": sum(r.output_tokens for r in records),
            "cache_read_tokens": sum(r.cache_read_tokens for r in records),
            "total_tokens": sum(r.total_tokens for r in records),
            "cost_usd": round(cost, 4),
            "avg_duration_ms": round(sum(r.duration_ms for r in records) / max(calls, 1)),
        }

    def summary(self) -> dict[str, Any]:
        """Totals plus breakdowns per provider/model and per stage."""
        by_model: dict[str, list[TokenRecord]] = {}
        by_stage: dict[str, list[TokenRecord]] = {}
        for rec in self.records:
            by_model.setdefault(f"{rec.provider}/{rec.model}", []).append(rec)
            by_stage.setdefault(rec.stage or "unknown", []).append(rec)

        return {
            "total_calls": len(self.records),
            "total_tokens": sum(r.total_tokens for r in self.records),
            "total_cost_usd": round(sum(r.cost_usd for r in self.records), 4),
            "elapsed_seconds": round(time.time() - self._start_time, 1),
            "providers": {key: self._aggregate(recs) for key, recs in by_model.items()},
            "stages": {key: self._aggregate(recs) for key, recs in by_stage.items()},
        }

    def summary_text(self) -> str:
        """Human-readable cost report."""
        s = self.summary()
        lines = [
            "=" * 60,
            "  PROXY VOTE REVIEW — COST REPORT",
            "=" * 60,
            f"  Oracle calls:     {s['total_calls']}",
            f"  Total tokens:     {s['total_tokens']:,}",
            f"  Total cost:       ${s['total_cost_usd']:.4f}",
            f"  Elapsed:          {s['elapsed_seconds']}s",
            "-" * 60,
        ]
        for stage, st in s["stages"].items():
            lines.append(
                f"  {stage:<12} calls={st['calls']:<4} tokens={st['total_tokens']:>10,}"
                f"  cost=${st['cost_usd']:.4f}"
            )
        lines.append("=" * 60)
        return "\n".join(lines)
