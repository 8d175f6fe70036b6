"""Model selection and discussion cost estimation.

Prices in the catalog are USD per 1K tokens; estimates are converted to the
local currency (JPY) with the fixed rate from the cost settings. Estimates are
advisory and recomputed on every request.
"""

import logging
import math
import re
from collections.abc import Mapping

from config.config_loader import CostConfig, ModelSpec, SelectionConfig
from hexamind.errors import ConfigurationError
from hexamind.models import CostEstimate, ThinkingMode

logger = logging.getLogger(__name__)

QUALITY_TIERS = ("basic", "standard", "advanced", "premium")

_JAPANESE_CHARS = re.compile(r"[\u3000-\u303f\u3040-\u309f\u30a0-\u30ff\uff00-\uff9f\u4e00-\u9faf\u3400-\u4dbf]")
_LATIN_CHARS = re.compile(r"[a-zA-Z]")


def quality_rank(spec: ModelSpec) -> int:
    try:
        return QUALITY_TIERS.index(spec.quality)
    except ValueError:
        return -1


def _message_cost_usd(spec: ModelSpec, input_tokens: float, output_tokens: float) -> float:
    return (input_tokens / 1000) * spec.input_cost_per_1k + (output_tokens / 1000) * spec.output_cost_per_1k


def cheapest_model(catalog: Mapping[str, ModelSpec], quality: str = "advanced") -> str:
    """Cheapest model of the given tier, comparing one average-sized message."""
    candidates = [s for s in catalog.values() if s.quality == quality]
    if not candidates:
        raise ConfigurationError(f"No model rated '{quality}' in the catalog")
    # min() keeps the first of equal-cost models, so catalog order breaks ties.
    return min(candidates, key=lambda s: _message_cost_usd(s, 1000, 1000)).id


def best_quality_model(catalog: Mapping[str, ModelSpec]) -> str:
    if not catalog:
        raise ConfigurationError("Model catalog is empty")
    top = max(quality_rank(s) for s in catalog.values())
    return next(s.id for s in catalog.values() if quality_rank(s) == top)


def is_complex_topic(topic: str, keywords: list[str]) -> bool:
    return any(keyword in topic for keyword in keywords)


def select_model(
    topic: str,
    thinking_mode: ThinkingMode | str,
    is_premium: bool,
    catalog: Mapping[str, ModelSpec],
    selection: SelectionConfig,
    override: str | None = None,
) -> str:
    """Pick a model id. Pure function of its arguments.

    Precedence: explicit override (when it names a catalog model), premium
    flag, complex topic under a deep thinking mode, then the cheapest
    "advanced" model.
    """
    mode = ThinkingMode(thinking_mode)

    if override:
        if override in catalog:
            return override
        logger.warning("Ignoring model override %r: not in the catalog", override)

    if is_premium:
        if selection.premium_model in catalog:
            return selection.premium_model
        return best_quality_model(catalog)

    if (
        is_complex_topic(topic, selection.complexity_keywords)
        and mode.value in selection.complex_modes
        and selection.complex_model in catalog
    ):
        return selection.complex_model

    return cheapest_model(catalog, "advanced")


def messages_for(agent_count: int, thinking_mode: ThinkingMode | str, cost: CostConfig) -> int:
    """Expected number of LLM messages: every agent's turns plus the synthesis."""
    per_agent = (
        cost.deepthink_messages_per_agent
        if ThinkingMode(thinking_mode) is ThinkingMode.DEEPTHINK
        else cost.messages_per_agent
    )
    return agent_count * per_agent + 1


def estimate_cost(
    spec: ModelSpec,
    agent_count: int,
    thinking_mode: ThinkingMode | str,
    cost: CostConfig,
) -> CostEstimate:
    """Estimate tokens and cost of a whole discussion.

    Each message's input grows by a share of all output produced before it,
    since the history is resent on every call.
    """
    total_messages = messages_for(agent_count, thinking_mode, cost)

    input_tokens = 0.0
    output_tokens = 0.0
    for i in range(total_messages):
        input_tokens += cost.base_input_tokens + cost.history_carry * i * cost.avg_output_tokens
        output_tokens += cost.avg_output_tokens

    cost_usd = _message_cost_usd(spec, input_tokens, output_tokens)
    return CostEstimate(
        model=spec.id,
        total_messages=total_messages,
        estimated_input_tokens=round(input_tokens),
        estimated_output_tokens=round(output_tokens),
        estimated_cost_usd=cost_usd,
        estimated_cost_local_currency=cost_usd * cost.usd_to_local,
    )


def calculate_max_messages_for_budget(
    spec: ModelSpec,
    budget_local: float,
    agent_count: int,
    cost: CostConfig,
) -> int:
    """Translate a budget into a cap on emitted messages.

    Every agent keeps at least one turn plus the synthesis, and the cap never
    exceeds cost.max_budget_messages.
    """
    per_message_usd = _message_cost_usd(spec, cost.budget_input_tokens, cost.budget_output_tokens)
    if per_message_usd <= 0:
        return cost.max_budget_messages
    per_message_local = per_message_usd * cost.usd_to_local
    affordable = math.ceil(budget_local / per_message_local)
    return max(agent_count + 1, min(affordable, cost.max_budget_messages))


def recommend_model_for_budget(
    budget_local: float,
    quality: str,
    catalog: Mapping[str, ModelSpec],
    agent_count: int,
    cost: CostConfig,
) -> str:
    """Best-quality model whose normal-mode estimate fits the budget.

    quality is "low", "medium" or "high": low prefers the cheapest fitting
    model, high the best-rated one. Falls back to the cheapest model overall.
    """
    fitting = [
        s for s in catalog.values()
        if estimate_cost(s, agent_count, ThinkingMode.NORMAL, cost).estimated_cost_local_currency <= budget_local
    ]
    if not fitting:
        return min(catalog.values(), key=lambda s: _message_cost_usd(s, 1000, 1000)).id

    if quality == "low":
        return min(fitting, key=lambda s: _message_cost_usd(s, 1000, 1000)).id
    if quality == "medium":
        advanced = [s for s in fitting if quality_rank(s) >= QUALITY_TIERS.index("advanced")]
        pool = advanced or fitting
        return min(pool, key=lambda s: _message_cost_usd(s, 1000, 1000)).id
    return max(fitting, key=lambda s: (quality_rank(s), -_message_cost_usd(s, 1000, 1000))).id


def estimate_tokens(text: str) -> int:
    """Rough token count: Japanese chars x1.5, Latin letters x0.25, rest x0.5."""
    japanese = len(_JAPANESE_CHARS.findall(text))
    latin = len(_LATIN_CHARS.findall(text))
    other = len(text) - japanese - latin
    return math.ceil(japanese * 1.5 + latin * 0.25 + other * 0.5)


def max_tokens_for(spec: ModelSpec, use_case: str) -> int:
    """Completion budget per phase, capped by the model's context window."""
    limits = {"initial": 2500, "interaction": 2000, "synthesis": 1500}
    return min(limits.get(use_case, 1500), spec.context_window)
