"""Turn a finished session into a DiscussionRecord with a parsed summary."""

import logging
import re
from collections.abc import Mapping
from datetime import datetime

from hexamind.discussion import DiscussionSession
from hexamind.models import CostEstimate, DiscussionRecord, DiscussionSummary

logger = logging.getLogger(__name__)

_HEADING = re.compile(r"^#{1,6}\s*(.+?)\s*#*$")
_BULLET = re.compile(r"^(?:[-*・]|\d+[.)])\s+")


def _split_sections(text: str, sections: Mapping[str, str]) -> dict[str, list[str]]:
    """Group lines under the configured section they follow."""
    grouped: dict[str, list[str]] = {key: [] for key in sections}
    current: str | None = None
    for line in text.splitlines():
        stripped = line.strip()
        heading = _HEADING.match(stripped)
        if heading:
            title = heading.group(1)
            current = next((key for key, header in sections.items() if header in title), None)
            continue
        if current is not None and stripped:
            grouped[current].append(stripped)
    return grouped


def _items(lines: list[str]) -> list[str]:
    return [_BULLET.sub("", line) for line in lines if _BULLET.sub("", line)]


def parse_summary(text: str, sections: Mapping[str, str]) -> DiscussionSummary:
    """Parse the synthesizer's markdown into a DiscussionSummary.

    Sections are matched by the configured header text; missing sections come
    back empty and unknown headings are ignored.
    """
    grouped = _split_sections(text, sections)
    missing = [key for key, lines in grouped.items() if not lines]
    if missing:
        logger.debug("Synthesis has no content for sections: %s", ", ".join(missing))
    return DiscussionSummary(
        overview="\n".join(_items(grouped.get("overview", []))),
        decisions=_items(grouped.get("decisions", [])),
        action_items=_items(grouped.get("action_items", [])),
        risks=_items(grouped.get("risks", [])),
        success_metrics=_items(grouped.get("success_metrics", [])),
    )


def build_record(
    session: DiscussionSession,
    sections: Mapping[str, str],
    cost_estimate: CostEstimate | None = None,
) -> DiscussionRecord:
    summary = parse_summary(session.synthesis, sections) if session.synthesis else None
    return DiscussionRecord(
        topic=session.topic,
        selected_agent_ids=session.selected_agent_ids,
        thinking_mode=session.thinking_mode,
        model=session.model.id,
        turns=list(session.turns),
        summary=summary,
        cost_estimate=cost_estimate,
        created_at=datetime.now(),
    )
