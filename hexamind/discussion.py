"""Board-meeting orchestration: initial round, interaction rounds, synthesis.

A session is driven by an async generator that yields one DiscussionTurn per
speaker. Per-turn LLM failures never stop the stream: the speaker gets a
placeholder turn and the next agent goes on. Only configuration problems
raise, and they raise before the generator exists.
"""

import asyncio
import logging
import random
from collections.abc import AsyncIterator, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from config.config_loader import AppConfig, ModelSpec
from hexamind.agents import AgentRegistry
from hexamind.clarification import create_enhanced_question, discussion_context_block
from hexamind.errors import ConfigurationError
from hexamind.gateway import GatewayClient, SleepFn
from hexamind.models import (
    Agent,
    ClarificationContext,
    ConversationTurn,
    DiscussionState,
    DiscussionTurn,
    Phase,
    ThinkingMode,
)
from hexamind.pricing import calculate_max_messages_for_budget, estimate_tokens, max_tokens_for, select_model
from hexamind.prompts import (
    SYSTEM_AGENT_ID,
    build_session_message,
    compose_synthesis_messages,
    compose_turn_messages,
    temperature_for,
)
from hexamind.providers.base import LLMError, LLMErrorKind
from hexamind.selector import RelevanceSelector, round_theme, select_for_round

logger = logging.getLogger(__name__)

SUMMARY_AGENT_ID = "summary"
SYNTHESIS_TEMPERATURE = 0.3


@dataclass
class DiscussionSettings:
    rounds: int = 5
    delay_min_sec: float = 2.0
    delay_max_sec: float = 3.0
    history_window: int = 10
    strict_agent_ids: bool = True
    enforce_budget: bool = False
    speaker_strategy: str = "affinity"  # "affinity" or "relevance"
    synthesizer_label: str = "議論総括"

    @classmethod
    def from_config(cls, config: AppConfig) -> "DiscussionSettings":
        d = config.defaults
        return cls(
            rounds=d.rounds,
            delay_min_sec=d.delay_min_sec,
            delay_max_sec=d.delay_max_sec,
            history_window=d.history_window,
            strict_agent_ids=d.strict_agent_ids,
            enforce_budget=d.enforce_budget,
            synthesizer_label=d.synthesizer_label,
        )


@dataclass
class DiscussionSession:
    """Working state of one discussion. Owned by a single generator."""

    topic: str
    selected_agents: list[Agent]
    thinking_mode: ThinkingMode
    model: ModelSpec
    history: list[ConversationTurn] = field(default_factory=list)
    turns: list[DiscussionTurn] = field(default_factory=list)
    round: int = 0
    state: DiscussionState = DiscussionState.CREATED
    budget_local: float | None = None
    max_messages: int | None = None
    synthesis: str | None = None
    speaker_selector: RelevanceSelector | None = None

    def append(self, agent_id: str, role: str, content: str, placeholder: bool = False) -> ConversationTurn:
        turn = ConversationTurn(
            agent_id=agent_id,
            role=role,
            content=content,
            sequence=len(self.history),
            placeholder=placeholder,
        )
        self.history.append(turn)
        return turn

    @property
    def selected_agent_ids(self) -> list[str]:
        return [a.id for a in self.selected_agents]


class AIDiscussionEngine:
    """Runs board-meeting discussions through a GatewayClient.

    The engine holds no per-session state; any number of sessions may run
    concurrently against the same engine and registry.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        registry: AgentRegistry,
        config: AppConfig,
        settings: DiscussionSettings | None = None,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._config = config
        self._settings = settings or DiscussionSettings.from_config(config)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._names = {a.id: a.name for a in registry.all_agents()}
        self._names[SUMMARY_AGENT_ID] = self._settings.synthesizer_label

    @property
    def settings(self) -> DiscussionSettings:
        return self._settings

    def create_session(
        self,
        topic: str,
        agent_ids: Sequence[str],
        thinking_mode: ThinkingMode | str = ThinkingMode.NORMAL,
        model_id: str | None = None,
        is_premium: bool = False,
        clarification: ClarificationContext | None = None,
        budget_local: float | None = None,
    ) -> DiscussionSession:
        """Validate inputs and build a fresh session.

        Raises:
            ConfigurationError: Empty topic or selection, unknown agent id
                (strict mode), unknown thinking mode or model id.
        """
        if not topic or not topic.strip():
            raise ConfigurationError("Topic must not be empty")
        if not agent_ids:
            raise ConfigurationError("At least one agent must be selected")

        agents = self._registry.resolve(agent_ids, strict=self._settings.strict_agent_ids)
        if not agents:
            raise ConfigurationError("None of the selected agents exist")

        try:
            mode = ThinkingMode(thinking_mode)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown thinking mode: {thinking_mode}") from exc

        topic = topic.strip()
        if clarification is not None:
            topic = create_enhanced_question(clarification, self._config.prompts)

        if model_id is None:
            model_id = select_model(topic, mode, is_premium, self._config.models, self._config.selection)
        spec = self._config.models.get(model_id)
        if spec is None:
            raise ConfigurationError(f"Unknown model: {model_id}")

        session = DiscussionSession(
            topic=topic,
            selected_agents=agents,
            thinking_mode=mode,
            model=spec,
            budget_local=budget_local,
        )
        if budget_local is not None and self._settings.enforce_budget:
            session.max_messages = calculate_max_messages_for_budget(
                spec, budget_local, len(agents), self._config.cost
            )
            logger.info("Budget %.0f caps the discussion at %d messages", budget_local, session.max_messages)
        if self._settings.speaker_strategy == "relevance":
            session.speaker_selector = RelevanceSelector(self._config.rounds, rng=self._rng)

        framing = build_session_message(topic, agents, mode, self._config.prompts)
        assumptions = discussion_context_block(clarification, self._config.prompts)
        if assumptions:
            framing = f"{framing}\n\n{assumptions}"
        session.append(SYSTEM_AGENT_ID, "system", framing)
        return session

    def start_discussion(
        self,
        topic: str,
        agent_ids: Sequence[str],
        thinking_mode: ThinkingMode | str = ThinkingMode.NORMAL,
        model_id: str | None = None,
        is_premium: bool = False,
        clarification: ClarificationContext | None = None,
        budget_local: float | None = None,
    ) -> AsyncIterator[DiscussionTurn]:
        """Validate synchronously, then return the turn stream."""
        session = self.create_session(
            topic,
            agent_ids,
            thinking_mode=thinking_mode,
            model_id=model_id,
            is_premium=is_premium,
            clarification=clarification,
            budget_local=budget_local,
        )
        return self.run(session)

    async def run(self, session: DiscussionSession) -> AsyncIterator[DiscussionTurn]:
        """Drive ``session`` to completion, yielding each turn as it happens.

        Stopping iteration early cancels the discussion; nothing needs cleanup.
        """
        session.state = DiscussionState.INITIAL_ROUND
        logger.info(
            "Starting discussion with %d agents on %s (%s)",
            len(session.selected_agents),
            session.model.id,
            session.thinking_mode.value,
        )

        for agent in session.selected_agents:
            if not self._budget_allows(session):
                break
            turn = await self._speak(session, agent, Phase.INITIAL, 0)
            if session.speaker_selector is not None:
                session.speaker_selector.record(agent.id)
            if turn is not None:
                yield turn
                await self._pace()

        session.state = DiscussionState.INTERACTION_ROUNDS
        affinity = self._config.rounds.affinity
        for round_index in range(1, self._settings.rounds + 1):
            if not self._budget_allows(session):
                logger.info("Budget reached; skipping remaining rounds")
                break
            session.round = round_index
            theme = round_theme(round_index, affinity)
            if session.speaker_selector is not None:
                logger.info("Round %d (%s): speakers chosen by relevance", round_index, theme)
                speakers = self._relevance_speakers(session)
            else:
                participants = select_for_round(session.selected_agents, round_index, affinity)
                logger.info(
                    "Round %d (%s): %s",
                    round_index,
                    theme,
                    ", ".join(a.id for a in participants) or "no matching agents",
                )
                speakers = iter(participants)
            for agent in speakers:
                if not self._budget_allows(session):
                    break
                turn = await self._speak(session, agent, Phase.INTERACTION, round_index, theme)
                if session.speaker_selector is not None:
                    session.speaker_selector.record(agent.id)
                if turn is not None:
                    yield turn
                    await self._pace()

        session.state = DiscussionState.SYNTHESIS
        summary = await self._synthesize(session)
        if summary is not None:
            yield summary

        session.state = DiscussionState.COMPLETED
        logger.info("Discussion completed with %d turns", len(session.turns))

    def _relevance_speakers(self, session: DiscussionSession) -> Iterator[Agent]:
        """Pick each speaker just before they talk, against the latest message."""
        selector = session.speaker_selector
        remaining = list(session.selected_agents)
        for _ in range(self._config.rounds.speakers_per_round):
            if not remaining:
                return
            spoken = [t for t in session.history if t.role == "assistant"]
            last_message = spoken[-1].content if spoken else session.topic
            agent = selector.next_speaker(remaining, last_message)
            remaining = [a for a in remaining if a.id != agent.id]
            yield agent

    def _budget_allows(self, session: DiscussionSession) -> bool:
        if session.max_messages is None:
            return True
        # One message stays reserved for the synthesis.
        return len(session.turns) < session.max_messages - 1

    async def _pace(self) -> None:
        delay = self._rng.uniform(self._settings.delay_min_sec, self._settings.delay_max_sec)
        if delay > 0:
            await self._sleep(delay)

    async def _speak(
        self,
        session: DiscussionSession,
        agent: Agent,
        phase: Phase,
        round_index: int,
        theme: str = "",
    ) -> DiscussionTurn | None:
        messages = compose_turn_messages(
            agent,
            phase,
            session.topic,
            session.thinking_mode,
            session.history,
            self._names,
            self._config.prompts,
            history_window=self._settings.history_window,
            round_number=round_index,
            theme=theme,
        )
        logger.debug("%s prompt: %d messages", agent.id, len(messages))

        try:
            text = await self._gateway.complete(
                messages,
                session.model.model,
                max_tokens_for(session.model, phase.value),
                temperature_for(session.thinking_mode),
            )
        except LLMError as exc:
            if exc.kind is LLMErrorKind.MALFORMED:
                logger.warning("Malformed response for %s, treating as empty: %s", agent.name, exc)
                return None
            logger.warning("%s could not respond: %s", agent.name, exc)
            return self._emit(session, agent.id, agent.name, self._config.prompts.placeholder, phase, round_index, True)

        text = text.strip()
        if not text:
            logger.info("%s had nothing to add", agent.name)
            return None

        logger.debug("%s responded with ~%d tokens", agent.id, estimate_tokens(text))
        return self._emit(session, agent.id, agent.name, text, phase, round_index, False)

    async def _synthesize(self, session: DiscussionSession) -> DiscussionTurn | None:
        messages = compose_synthesis_messages(session.history, self._names, self._config.prompts)
        try:
            text = await self._gateway.complete(
                messages,
                session.model.model,
                max_tokens_for(session.model, Phase.SYNTHESIS.value),
                SYNTHESIS_TEMPERATURE,
            )
        except LLMError as exc:
            logger.warning("Synthesis failed, completing without a summary: %s", exc)
            return None

        text = text.strip()
        if not text:
            logger.warning("Synthesis returned no text, completing without a summary")
            return None

        session.synthesis = text
        return self._emit(
            session,
            SUMMARY_AGENT_ID,
            self._settings.synthesizer_label,
            text,
            Phase.SYNTHESIS,
            self._settings.rounds + 1,
            False,
        )

    def _emit(
        self,
        session: DiscussionSession,
        agent_id: str,
        label: str,
        text: str,
        phase: Phase,
        round_index: int,
        placeholder: bool,
    ) -> DiscussionTurn:
        session.append(agent_id, "assistant", text, placeholder=placeholder)
        turn = DiscussionTurn(
            agent_id=agent_id,
            agent=label,
            message=text,
            timestamp=datetime.now(),
            phase=phase,
            round_number=round_index,
            placeholder=placeholder,
        )
        session.turns.append(turn)
        return turn
