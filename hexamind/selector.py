"""Pick which agents speak in each interaction round."""

import logging
import random
from collections.abc import Sequence

from config.config_loader import RoundsConfig, RoundTheme
from hexamind.models import Agent

logger = logging.getLogger(__name__)

_WRAP_UP_THEME = "全体の総括に向けた最終意見"


def round_theme(round_index: int, affinity: Sequence[RoundTheme]) -> str:
    """Theme of 1-indexed round ``round_index``; rounds past the table wrap up."""
    if 1 <= round_index <= len(affinity):
        return affinity[round_index - 1].theme
    return _WRAP_UP_THEME


def select_for_round(
    selected: Sequence[Agent],
    round_index: int,
    affinity: Sequence[RoundTheme],
) -> list[Agent]:
    """Agents that are both selected and listed for the round, in table order.

    Rounds beyond the table let everyone speak, in selection order.
    """
    if not 1 <= round_index <= len(affinity):
        return list(selected)
    by_id = {a.id: a for a in selected}
    return [by_id[agent_id] for agent_id in affinity[round_index - 1].agents if agent_id in by_id]


class RelevanceSelector:
    """Content-aware speaker choice.

    Scores each agent against the most recent message: +3 when the message
    hits one of the agent's keywords, +2 for the devil's advocate when the
    message raises no risk at all, and a recency bonus of up to 2 for agents
    who have not spoken lately. The last speaker never goes twice in a row.
    """

    def __init__(self, rounds: RoundsConfig, rng: random.Random | None = None) -> None:
        self._rounds = rounds
        self._rng = rng or random.Random()
        self._speaker_history: list[str] = []

    @property
    def speaker_history(self) -> list[str]:
        return list(self._speaker_history)

    def record(self, agent_id: str) -> None:
        self._speaker_history.append(agent_id)

    def score(self, agent: Agent, last_message: str) -> float:
        score = 0.0
        keywords = self._rounds.relevance_keywords.get(agent.id, [])
        if any(k in last_message for k in keywords):
            score += 3
        if agent.id == self._rounds.devil_id and not any(w in last_message for w in self._rounds.risk_words):
            score += 2
        if agent.id in self._speaker_history:
            last_index = len(self._speaker_history) - 1 - self._speaker_history[::-1].index(agent.id)
            score += min(2.0, (len(self._speaker_history) - last_index) / 3)
        else:
            score += 2
        return score

    def next_speaker(self, agents: Sequence[Agent], last_message: str) -> Agent:
        """Best-scoring candidate. Call record() once the agent has actually spoken."""
        last_speaker = self._speaker_history[-1] if self._speaker_history else None
        candidates = [a for a in agents if a.id != last_speaker] or list(agents)
        scores = {a.id: self.score(a, last_message) for a in candidates}
        best = max(scores.values())
        top = [a for a in candidates if scores[a.id] == best]
        chosen = self._rng.choice(top)
        logger.debug("Relevance scores %s -> %s", scores, chosen.id)
        return chosen
