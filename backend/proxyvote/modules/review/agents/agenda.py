"""Review Agent 1: Agenda Extractor.

Reads the convocation notice and returns its agenda items in document
order. Agenda ids are the join key for every later stage, so the oracle's
``id`` is normalized to the ordinal digits and checked for uniqueness; a
reply that cannot be normalized fails the whole stage.
"""

from __future__ import annotations

import structlog

from proxyvote.modules.review.agent_schemas import AgendaRow
from proxyvote.modules.review.agents.base import BaseAgent
from proxyvote.modules.review.agents.sanitizer import normalize_ordinal
from proxyvote.modules.review.errors import ExtractionParseError
from proxyvote.modules.review.schemas import AgendaItem

logger = structlog.get_logger()


class AgendaAgent(BaseAgent):
    """Agent 1: notice text -> ordered AgendaItems. Any failure propagates."""

    agent_name = "AgendaExtractor"
    stage = "agenda"
    model_tier = "extraction"
    prompt_file = "agenda.txt"
    text_fields = ("description",)

    def extract(self, notice_text: str, document_name: str = "notice") -> list[AgendaItem]:
        user_content = (
            "Extract every agenda item from the following convocation notice.\n\n"
            f"--- Notice: {document_name} ---\n{notice_text}"
        )
        rows: list[AgendaRow] = self.call_llm(
            user_content, list[AgendaRow], label=f"agenda:{document_name}"
        )
        items = self.build_items(rows)

        logger.info(
            f"{self.agent_name} extraction complete",
            document=document_name,
            agenda_items=len(items),
            ids=[item.id for item in items],
        )
        return items

    @staticmethod
    def build_items(rows: list[AgendaRow]) -> list[AgendaItem]:
        """Normalize ids to ordinal digits and reject inconsistent replies."""
        items: list[AgendaItem] = []
        seen: set[str] = set()

        for position, row in enumerate(rows, 1):
            ordinal = normalize_ordinal(row.id) or normalize_ordinal(row.number)
            if ordinal is None:
                raise ExtractionParseError(
                    f"agenda item #{position} has no ordinal (id={row.id!r}, number={row.number!r})",
                    label="agenda",
                )
            if ordinal in seen:
                raise ExtractionParseError(
                    f"agenda ordinal {ordinal} returned twice", label="agenda"
                )
            if ordinal != row.id:
                logger.debug("Agenda id normalized", raw_id=row.id, agenda_id=ordinal)
            seen.add(ordinal)

            items.append(AgendaItem(
                id=ordinal,
                number=row.number.strip() or ordinal,
                title=row.title.strip(),
                description=row.description.strip(),
            ))
        return items
