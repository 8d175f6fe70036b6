"""Rich console output and markdown transcript storage for discussions."""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from hexamind.models import Agent, CostEstimate, DiscussionRecord, DiscussionTurn, Phase

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_PHASE_LABELS = {
    Phase.INITIAL: "初期意見",
    Phase.INTERACTION: "相互議論",
    Phase.SYNTHESIS: "総括",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "discussion"


def print_agents(agents: list[Agent]) -> None:
    table = Table(title="Selectable agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Expertise", style="dim")
    for agent in agents:
        table.add_row(agent.id, agent.name, agent.role, ", ".join(agent.expertise))
    console.print(table)


def print_cost_estimate(estimate: CostEstimate, budget_local: float | None = None) -> None:
    """Print the advisory cost estimate, flagging it when over budget."""
    lines = [
        f"Model: {estimate.model}",
        f"Messages: {estimate.total_messages}",
        f"Tokens: ~{estimate.estimated_input_tokens:,} in / ~{estimate.estimated_output_tokens:,} out",
        f"Cost: ${estimate.estimated_cost_usd:.4f} (¥{estimate.estimated_cost_local_currency:,.1f})",
        f"Per message: ¥{estimate.cost_per_message_local_currency:,.2f}",
    ]
    style = "cyan"
    if budget_local is not None:
        lines.append(f"Budget: ¥{budget_local:,.0f}")
        if estimate.estimated_cost_local_currency > budget_local:
            style = "yellow"
            lines.append("Estimate exceeds budget")
    console.print(Panel("\n".join(lines), title="[bold]Cost estimate[/bold]", border_style=style))


def print_turn(turn: DiscussionTurn) -> None:
    """Print one live turn as soon as it arrives."""
    if turn.phase is Phase.SYNTHESIS:
        print_synthesis(turn)
        return
    label = _PHASE_LABELS[turn.phase]
    if turn.phase is Phase.INTERACTION:
        label += f" R{turn.round_number}"
    console.print(
        Panel(
            Markdown(turn.message),
            title=f"[bold]{turn.agent}[/bold]",
            subtitle=f"{label} | {turn.timestamp:%H:%M:%S}",
            border_style="dim" if turn.placeholder else "blue",
        )
    )


def print_synthesis(turn: DiscussionTurn) -> None:
    console.print(Rule(f"[bold green]{turn.agent}[/bold green]"))
    console.print(Text(f"Generated at {turn.timestamp:%Y-%m-%d %H:%M:%S}", style="dim"))
    console.print(Markdown(turn.message))


class TranscriptStore(ABC):
    """Destination for completed discussion records."""

    @abstractmethod
    def save(self, record: DiscussionRecord) -> Path:
        ...


class MarkdownTranscriptStore(TranscriptStore):
    """Writes one markdown file per discussion into ``output_dir``."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir

    def render(self, record: DiscussionRecord) -> str:
        lines: list[str] = [
            f"# HexaMind 役員会議: {record.topic.splitlines()[0][:80]}",
            "",
            f"**Date:** {record.created_at:%Y-%m-%d %H:%M:%S}",
            f"**Agents:** {', '.join(record.selected_agent_ids)}",
            f"**Mode:** {record.thinking_mode.value}",
            f"**Model:** {record.model}",
        ]
        if record.cost_estimate is not None:
            lines.append(
                f"**Estimated cost:** ¥{record.cost_estimate.estimated_cost_local_currency:,.1f}"
                f" ({record.cost_estimate.total_messages} messages)"
            )
        lines += ["", "---", "", "## Topic", "", record.topic, ""]

        current_round: int | None = None
        for turn in record.turns:
            if turn.phase is Phase.SYNTHESIS:
                continue
            if turn.round_number != current_round:
                current_round = turn.round_number
                heading = "初期意見" if turn.round_number == 0 else f"ラウンド {turn.round_number}"
                lines += [f"## {heading}", ""]
            lines += [f"### {turn.agent}", "", turn.message, ""]
            if turn.placeholder:
                lines += ["*(no response)*", ""]

        synthesis = next((t for t in record.turns if t.phase is Phase.SYNTHESIS), None)
        if synthesis is not None:
            lines += [f"## {synthesis.agent}", "", synthesis.message, ""]
        if record.summary is not None and record.summary.action_items:
            lines += ["## Action checklist", ""]
            lines += [f"- [ ] {item}" for item in record.summary.action_items]
            lines.append("")
        return "\n".join(lines)

    def save(self, record: DiscussionRecord) -> Path:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{record.created_at:%Y%m%d_%H%M%S}_{_slug(record.topic)}.md"
        filepath = self._output_dir / filename
        filepath.write_text(self.render(record), encoding="utf-8")
        logger.info("Discussion saved to: %s", filepath)
        return filepath
