"""Pure dataclasses for the board-meeting discussion engine. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ThinkingMode(str, Enum):
    NORMAL = "normal"
    DEEPTHINK = "deepthink"
    CREATIVE = "creative"
    CRITICAL = "critical"


class Phase(str, Enum):
    INITIAL = "initial"
    INTERACTION = "interaction"
    SYNTHESIS = "synthesis"


class DiscussionState(str, Enum):
    CREATED = "created"
    INITIAL_ROUND = "initial_round"
    INTERACTION_ROUNDS = "interaction_rounds"
    SYNTHESIS = "synthesis"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Agent:
    id: str                # stable slug, e.g. "ceo"
    name: str              # display name, e.g. "CEO AI"
    role: str
    expertise: tuple[str, ...]
    system_prompt: str
    personality: str = ""
    selectable: bool = False


@dataclass
class ConversationTurn:
    agent_id: str          # persona id, "system" or "summary"
    role: str              # "system", "user" or "assistant" at the LLM level
    content: str
    sequence: int
    placeholder: bool = False


@dataclass
class DiscussionTurn:
    """One emitted turn of the live stream."""

    agent_id: str
    agent: str             # display name, or the synthesizer label
    message: str
    timestamp: datetime
    phase: Phase
    round_number: int      # 0 = initial round, len(rounds) + 1 = synthesis
    placeholder: bool = False


@dataclass
class ClarificationContext:
    original_question: str
    clarification_question: str
    user_response: str


@dataclass
class ClarificationResult:
    needs_clarification: bool
    clarification_question: str | None = None
    suggested_aspects: list[str] = field(default_factory=list)


@dataclass
class CostEstimate:
    model: str
    total_messages: int
    estimated_input_tokens: int
    estimated_output_tokens: int
    estimated_cost_usd: float
    estimated_cost_local_currency: float

    @property
    def cost_per_message_local_currency(self) -> float:
        return self.estimated_cost_local_currency / self.total_messages


@dataclass
class DiscussionSummary:
    overview: str = ""
    decisions: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    success_metrics: list[str] = field(default_factory=list)


@dataclass
class DiscussionRecord:
    """Snapshot handed to a transcript store once a session has completed."""

    topic: str
    selected_agent_ids: list[str]
    thinking_mode: ThinkingMode
    model: str
    turns: list[DiscussionTurn]
    summary: DiscussionSummary | None
    cost_estimate: CostEstimate | None
    created_at: datetime
