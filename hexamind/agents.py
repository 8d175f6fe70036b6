"""Read-only registry of board-member personas."""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from config.config_loader import load_agents
from hexamind.errors import ConfigurationError
from hexamind.models import Agent

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Immutable catalog of personas, populated once and shared across sessions."""

    def __init__(self, agents: Iterable[Agent]) -> None:
        by_id: dict[str, Agent] = {}
        for agent in agents:
            if agent.id in by_id:
                raise ConfigurationError(f"Duplicate agent id: {agent.id}")
            by_id[agent.id] = agent
        self._agents: Mapping[str, Agent] = MappingProxyType(by_id)

    @classmethod
    def from_catalog(cls, catalog: Mapping[str, Mapping]) -> "AgentRegistry":
        """Build a registry from the raw mapping returned by load_agents()."""
        return cls(
            Agent(
                id=agent_id,
                name=str(body["name"]),
                role=str(body["role"]),
                expertise=tuple(str(e) for e in body.get("expertise", [])),
                system_prompt=str(body["system_prompt"]),
                personality=str(body.get("personality", "")),
                selectable=bool(body.get("selectable", False)),
            )
            for agent_id, body in catalog.items()
        )

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def get_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def all_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def list_selectable_agents(self) -> list[Agent]:
        """Curated subset offered for selection, in catalog order."""
        return [a for a in self._agents.values() if a.selectable]

    def resolve(self, agent_ids: Iterable[str], *, strict: bool = True) -> list[Agent]:
        """Map ids to agents, keeping the caller's order.

        Unknown ids raise ConfigurationError when strict; otherwise they are
        dropped with a warning. Repeated ids are collapsed to the first
        occurrence.
        """
        resolved: list[Agent] = []
        seen: set[str] = set()
        unknown: list[str] = []
        for agent_id in agent_ids:
            agent = self._agents.get(agent_id)
            if agent is None:
                unknown.append(agent_id)
                continue
            if agent_id in seen:
                continue
            seen.add(agent_id)
            resolved.append(agent)

        if unknown:
            if strict:
                raise ConfigurationError(f"Unknown agent id(s): {', '.join(unknown)}")
            logger.warning("Dropping unknown agent id(s): %s", ", ".join(unknown))
        return resolved


_default_registry: AgentRegistry | None = None


def default_registry() -> AgentRegistry:
    """Registry built from the shipped agents.yaml, loaded on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AgentRegistry.from_catalog(load_agents())
    return _default_registry
