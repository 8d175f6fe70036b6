"""Prompt composition: persona, phase instruction and thinking-mode framing.

Everything here is a pure function of its inputs. Length and structure
requirements are requested in the prompt text only; responses are not checked.
"""

from collections.abc import Mapping, Sequence

from config.config_loader import PromptsConfig
from hexamind.models import Agent, ConversationTurn, Phase, ThinkingMode
from hexamind.providers.base import ChatMessage

SYSTEM_AGENT_ID = "system"


def thinking_mode_text(mode: ThinkingMode, prompts: PromptsConfig) -> str:
    return prompts.thinking_modes.get(mode.value, prompts.thinking_modes.get("normal", ""))


def temperature_for(mode: ThinkingMode) -> float:
    if mode is ThinkingMode.CREATIVE:
        return 0.9
    if mode is ThinkingMode.CRITICAL:
        return 0.7
    return 0.8


def speaker_label(agent_id: str, names: Mapping[str, str]) -> str:
    return names.get(agent_id, agent_id)


def build_session_message(
    topic: str,
    agents: Sequence[Agent],
    mode: ThinkingMode,
    prompts: PromptsConfig,
) -> str:
    """The board-meeting framing every call starts from."""
    participants = ", ".join(f"{a.name}（{a.role}）" for a in agents)
    return prompts.session.format(
        topic=topic,
        participants=participants,
        thinking_mode=thinking_mode_text(mode, prompts),
        protocol=prompts.protocol,
    ).strip()


def is_business_case(topic: str, prompts: PromptsConfig) -> bool:
    return any(keyword in topic for keyword in prompts.business_keywords)


def build_persona_prompt(
    agent: Agent,
    topic: str,
    mode: ThinkingMode,
    prompts: PromptsConfig,
) -> str:
    """Persona text, optionally extended with the agent's specialized template.

    The business-case block is only added for agents that have a specialized
    template, and only when the topic looks like a business case.
    """
    parts = [agent.system_prompt.strip()]
    specialized = prompts.specialized.get(agent.id)
    if specialized:
        parts.append(specialized.strip())
        if prompts.business_case and is_business_case(topic, prompts):
            parts.append(prompts.business_case.strip())
    parts.append(f"現在の議論トピック: {topic}")
    parts.append(f"検討アプローチ: {thinking_mode_text(mode, prompts)}")
    return "\n\n".join(parts)


def format_recent(
    history: Sequence[ConversationTurn],
    names: Mapping[str, str],
    window: int,
) -> str:
    """Last ``window`` speaker turns, verbatim, each tagged with its speaker."""
    spoken = [t for t in history if t.role == "assistant"]
    recent = spoken[-window:] if window > 0 else []
    return "\n\n".join(f"【{speaker_label(t.agent_id, names)}】\n{t.content}" for t in recent)


def history_messages(history: Sequence[ConversationTurn], names: Mapping[str, str]) -> list[ChatMessage]:
    """The full conversation so far, speaker-tagged, in sequence order."""
    messages: list[ChatMessage] = []
    for turn in history:
        if turn.role == "assistant":
            content = f"【{speaker_label(turn.agent_id, names)}】\n{turn.content}"
        else:
            content = turn.content
        messages.append({"role": turn.role, "content": content})
    return messages


def phase_instruction(
    phase: Phase,
    prompts: PromptsConfig,
    round_number: int = 0,
    theme: str = "",
    recent: str = "",
) -> str:
    if phase is Phase.INITIAL:
        return prompts.initial.strip()
    if phase is Phase.INTERACTION:
        return prompts.interaction.format(round=round_number, theme=theme, recent=recent).strip()
    return prompts.synthesis_request.strip()


def synthesis_prompt(prompts: PromptsConfig) -> str:
    sections = "\n".join(f"## {header}" for header in prompts.synthesis_sections.values())
    return prompts.synthesis.format(sections=sections).strip()


def compose_turn_messages(
    agent: Agent,
    phase: Phase,
    topic: str,
    mode: ThinkingMode,
    history: Sequence[ConversationTurn],
    names: Mapping[str, str],
    prompts: PromptsConfig,
    history_window: int = 10,
    round_number: int = 0,
    theme: str = "",
) -> list[ChatMessage]:
    """Messages for one persona turn: persona prompt, full history, instruction."""
    recent = format_recent(history, names, history_window) if phase is Phase.INTERACTION else ""
    return [
        {"role": "system", "content": build_persona_prompt(agent, topic, mode, prompts)},
        *history_messages(history, names),
        {
            "role": "user",
            "content": phase_instruction(phase, prompts, round_number=round_number, theme=theme, recent=recent),
        },
    ]


def compose_synthesis_messages(
    history: Sequence[ConversationTurn],
    names: Mapping[str, str],
    prompts: PromptsConfig,
) -> list[ChatMessage]:
    return [
        {"role": "system", "content": synthesis_prompt(prompts)},
        *history_messages(history, names),
        {"role": "user", "content": phase_instruction(Phase.SYNTHESIS, prompts)},
    ]
