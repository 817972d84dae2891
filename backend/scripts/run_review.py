#!/usr/bin/env python3
"""Proxy Vote Review Runner.

Runs the full review pipeline over PDFs on disk:
  1. Notice      -> agenda items
  2. Guideline   -> indicators per agenda item
  3. Notice + evidence filings -> one fact per indicator
  4. Everything  -> vote decision per agenda item

Usage:
    python -m scripts.run_review --notice notice.pdf --guideline guideline.pdf \
        --evidence yuho.pdf cg_report.pdf --output review.json

    # Smaller chunks for long filings
    python -m scripts.run_review ... --pages-per-chunk 30

    # Specific provider/models
    python -m scripts.run_review ... --provider anthropic --reasoning-model claude-sonnet-4-20250514
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

# Load .env before importing proxyvote modules (settings are read at import)
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import structlog  # noqa: E402

from proxyvote.core.config import settings  # noqa: E402
from proxyvote.core.logging import configure_logging  # noqa: E402
from proxyvote.modules.review.agents.orchestrator import (  # noqa: E402
    ReviewOrchestrator,
    ReviewRun,
    SourceDocument,
)
from proxyvote.modules.review.errors import StageFailed  # noqa: E402

logger = structlog.get_logger()

DEFAULT_OUTPUT_DIR = Path(__file__).resolve().parent.parent / "output"


def load_document(path: Path) -> SourceDocument:
    if not path.exists():
        raise SystemExit(f"File not found: {path}")
    if path.suffix.lower() != ".pdf":
        raise SystemExit(f"Only PDF files are accepted: {path}")
    return SourceDocument(name=path.name, data=path.read_bytes())


def print_progress(current: int, total: int, message: str | None) -> None:
    print(f"  [{current}/{total}] {message or ''}", flush=True)


def build_report(run: ReviewRun, args: argparse.Namespace) -> dict:
    return {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "inputs": {
            "notice": args.notice.name,
            "guideline": args.guideline.name,
            "evidence": [p.name for p in args.evidence],
        },
        "agenda_items": [a.model_dump() for a in run.agenda_items],
        "indicators": [i.model_dump() for i in run.indicators],
        "facts": [f.model_dump() for f in run.facts],
        "decisions": [d.model_dump() for d in run.decisions],
        "stage_timings_ms": run.stage_timings_ms,
        "cost_summary": run.cost_summary,
    }


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Proxy vote review pipeline")
    parser.add_argument("--notice", type=Path, required=True, help="Convocation notice PDF")
    parser.add_argument("--guideline", type=Path, required=True, help="Voting guideline PDF")
    parser.add_argument("--evidence", type=Path, nargs="*", default=[], help="Evidence PDFs")
    parser.add_argument("--output", type=Path, default=None, help="JSON report path")
    parser.add_argument("--provider", choices=["google", "anthropic"], default=None)
    parser.add_argument("--model", default=None, help="Model for agenda + indicator stages")
    parser.add_argument("--reasoning-model", default=None, help="Model for fact + decision stages")
    parser.add_argument("--pages-per-chunk", type=positive_int, default=None)
    parser.add_argument("--json-logs", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(settings.log_level, json_logs=args.json_logs or settings.log_json)

    notice = load_document(args.notice)
    guideline = load_document(args.guideline)
    evidence = [load_document(p) for p in args.evidence]

    orchestrator = ReviewOrchestrator(
        provider=args.provider,
        extraction_model=args.model,
        reasoning_model=args.reasoning_model,
        pages_per_chunk=args.pages_per_chunk,
    )

    try:
        run = orchestrator.run(notice, guideline, evidence, on_progress=print_progress)
    except StageFailed as e:
        logger.error("Review failed", stage=e.stage, error=str(e.cause))
        print(f"\n{e.message}", file=sys.stderr)
        print(orchestrator.cost_tracker.summary_text())
        return 1

    output = args.output or DEFAULT_OUTPUT_DIR / f"review_{datetime.now():%Y%m%d_%H%M%S}.json"
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(
        json.dumps(build_report(run, args), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )

    print(orchestrator.cost_tracker.summary_text())
    for decision in run.decisions:
        verdict = "FOR" if decision.is_approved else "AGAINST"
        print(f"  Agenda {decision.agenda_id}: {verdict} — {decision.reason}")
    print(f"\nReport written to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
