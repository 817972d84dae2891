"""Unit tests for FactMerger merge rules."""

from __future__ import annotations

from proxyvote.modules.review.agent_schemas import FactHit
from proxyvote.modules.review.agents.merger import FactMerger, format_fact_value
from proxyvote.modules.review.schemas import NOT_FOUND_VALUE, PLACEHOLDER, FactEvidence


def hit(indicator_id: str, value: str, page: str = "1") -> FactHit:
    return FactHit(indicator_id=indicator_id, factual_value=value, page_number=page)


def test_first_hit_creates_fact(indicators) -> None:
    merger = FactMerger(indicators)

    assert merger.merge_hit("yuho.pdf", hit("ind-1", "ROE 8.5%", "12"))

    fact = merger.get("ind-1")
    assert fact.id == "fact-ind-1"
    assert fact.agenda_id == "2"
    assert fact.factual_value == "yuho.pdf (p.12): ROE 8.5%"
    assert fact.evidence_source == "yuho.pdf"
    assert fact.page_number == "12"


def test_second_distinct_hit_is_appended(indicators) -> None:
    merger = FactMerger(indicators)
    merger.merge_hit("A", hit("ind-1", "X", "3"))
    merger.merge_hit("B", hit("ind-1", "Y", "7"))

    fact = merger.get("ind-1")
    assert fact.factual_value == "A (p.3): X\nB (p.7): Y"
    assert fact.evidence_source == "A, B"
    assert fact.page_number == "3, 7"
    assert merger.stats["appended"] == 1


def test_repeated_hit_is_idempotent(indicators) -> None:
    merger = FactMerger(indicators)
    merger.merge_hit("A", hit("ind-1", "ROE 8.5%", "3"))
    before = merger.get("ind-1").model_copy()

    assert not merger.merge_hit("A", hit("ind-1", "ROE 8.5%", "3"))
    assert not merger.merge_hit("B", hit("ind-1", "8.5%", "9"))

    assert merger.get("ind-1") == before
    assert merger.stats["duplicates"] == 2


def test_sentinel_is_replaced_wholesale(indicators) -> None:
    seed = FactEvidence(
        id="fact-ind-2",
        agenda_id="2",
        indicator_id="ind-2",
        factual_value=NOT_FOUND_VALUE,
        evidence_source=PLACEHOLDER,
        page_number=PLACEHOLDER,
    )
    merger = FactMerger(indicators, previous_facts=[seed])

    merger.merge_hit("cg-report.pdf", hit("ind-2", "女性取締役2名", "4"))

    fact = merger.get("ind-2")
    assert fact.factual_value == "cg-report.pdf (p.4): 女性取締役2名"
    assert fact.evidence_source == "cg-report.pdf"
    assert fact.page_number == "4"
    assert merger.stats["replaced"] == 1


def test_unknown_blank_and_sentinel_hits_are_discarded(indicators) -> None:
    merger = FactMerger(indicators)

    changed = merger.merge_hits("A", [
        hit("ind-99", "ROE 3%"),
        hit("ind-1", "   "),
        hit("ind-1", NOT_FOUND_VALUE),
    ])

    assert changed == 0
    assert "ind-1" not in merger
    assert merger.stats["discarded"] == 3


def test_blank_page_becomes_placeholder(indicators) -> None:
    merger = FactMerger(indicators)
    merger.merge_hit("A", hit("ind-3", "配当性向35%", ""))

    assert merger.get("ind-3").page_number == PLACEHOLDER
    assert merger.get("ind-3").factual_value == format_fact_value("A", PLACEHOLDER, "配当性向35%")


def test_finalize_yields_one_fact_per_indicator_in_order(indicators) -> None:
    merger = FactMerger(indicators)
    merger.merge_hit("A", hit("ind-3", "配当性向35%", "2"))

    facts = merger.finalize()

    assert [f.indicator_id for f in facts] == ["ind-1", "ind-2", "ind-3"]
    assert [f.id for f in facts] == ["fact-ind-1", "fact-ind-2", "fact-ind-3"]
    missing = facts[0]
    assert (missing.factual_value, missing.evidence_source, missing.page_number) == (
        NOT_FOUND_VALUE, PLACEHOLDER, PLACEHOLDER,
    )
    assert not missing.is_found
    assert facts[2].is_found


def test_seed_for_unknown_indicator_is_dropped(indicators) -> None:
    stale = FactEvidence(
        id="fact-old",
        agenda_id="9",
        indicator_id="removed",
        factual_value="A (p.1): x",
        evidence_source="A",
        page_number="1",
    )
    merger = FactMerger(indicators, previous_facts=[stale])

    assert "removed" not in merger
    assert len(merger.finalize()) == len(indicators)


def test_seed_agenda_id_follows_the_indicator(indicators) -> None:
    seed = FactEvidence(
        id="fact-ind-3",
        agenda_id="wrong",
        indicator_id="ind-3",
        factual_value="A (p.1): 配当性向35%",
        evidence_source="A",
        page_number="1",
    )
    merger = FactMerger(indicators, previous_facts=[seed])

    assert merger.get("ind-3").agenda_id == "1"
    assert seed.agenda_id == "wrong"
