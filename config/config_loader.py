"""Load settings.yaml and agents.yaml into typed dataclasses."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_AGENTS_PATH = Path(__file__).parent / "agents.yaml"


@dataclass
class ModelSpec:
    id: str
    sdk: str                   # "openai", "anthropic", "gemini" or "http"
    model: str                 # model string sent to the provider
    display_name: str
    quality: str               # "basic", "standard", "advanced", "premium"
    input_cost_per_1k: float   # USD
    output_cost_per_1k: float  # USD
    context_window: int
    api_key_env: str
    base_url: str | None = None


@dataclass
class DefaultsConfig:
    rounds: int
    output_dir: Path
    thinking_mode: str = "normal"
    delay_min_sec: float = 2.0
    delay_max_sec: float = 3.0
    history_window: int = 10
    default_panel: list[str] = field(default_factory=list)
    strict_agent_ids: bool = True
    enforce_budget: bool = False
    synthesizer_label: str = "議論総括"


@dataclass
class SelectionConfig:
    premium_model: str
    complex_model: str
    override_env: str = "HEXAMIND_MODEL"
    complex_modes: list[str] = field(default_factory=lambda: ["deepthink", "critical"])
    complexity_keywords: list[str] = field(default_factory=list)


@dataclass
class CostConfig:
    base_input_tokens: int = 3000
    avg_output_tokens: int = 800
    history_carry: float = 0.7
    messages_per_agent: int = 2
    deepthink_messages_per_agent: int = 3
    usd_to_local: float = 150.0
    budget_input_tokens: int = 3500
    budget_output_tokens: int = 800
    max_budget_messages: int = 20


@dataclass
class RetryConfig:
    max_attempts: int = 3
    timeout_sec: float = 60.0
    default_retry_after_sec: float = 60.0
    backoff_base_sec: float = 1.0
    requests_per_minute: int | None = None


@dataclass
class RoundTheme:
    theme: str
    agents: list[str]


@dataclass
class RoundsConfig:
    affinity: list[RoundTheme] = field(default_factory=list)
    relevance_keywords: dict[str, list[str]] = field(default_factory=dict)
    risk_words: list[str] = field(default_factory=list)
    devil_id: str = "devil"
    speakers_per_round: int = 3


@dataclass
class PromptsConfig:
    session: str
    initial: str
    interaction: str
    synthesis: str
    thinking_modes: dict[str, str]
    synthesis_sections: dict[str, str]
    placeholder: str
    protocol: str = ""
    synthesis_request: str = "議論全体の総括を作成してください。"
    unclarified_context: str = ""
    enhanced_question: str = ""
    clarification: str = ""
    business_case: str = ""
    business_keywords: list[str] = field(default_factory=list)
    specialized: dict[str, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelSpec]
    selection: SelectionConfig
    cost: CostConfig
    retry: RetryConfig
    prompts: PromptsConfig
    rounds: RoundsConfig
    available_providers: set[str] = field(default_factory=set)


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers whose API key is missing but does not raise; callers check
    available_providers before building a gateway.
    """
    raw = _load_yaml(settings_path)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        thinking_mode=str(defaults_raw.get("thinking_mode", "normal")),
        delay_min_sec=float(defaults_raw.get("delay_min_sec", 2.0)),
        delay_max_sec=float(defaults_raw.get("delay_max_sec", 3.0)),
        history_window=int(defaults_raw.get("history_window", 10)),
        default_panel=list(defaults_raw.get("default_panel", [])),
        strict_agent_ids=bool(defaults_raw.get("strict_agent_ids", True)),
        enforce_budget=bool(defaults_raw.get("enforce_budget", False)),
        synthesizer_label=str(defaults_raw.get("synthesizer_label", "議論総括")),
    )

    models: dict[str, ModelSpec] = {}
    available_providers: set[str] = set()

    for model_id, model_raw in raw["models"].items():
        spec = ModelSpec(
            id=model_id,
            sdk=model_raw["sdk"],
            model=model_raw.get("model", model_id),
            display_name=model_raw.get("display_name", model_id),
            quality=model_raw["quality"],
            input_cost_per_1k=float(model_raw["input_cost_per_1k"]),
            output_cost_per_1k=float(model_raw["output_cost_per_1k"]),
            context_window=int(model_raw["context_window"]),
            api_key_env=model_raw["api_key_env"],
            base_url=model_raw.get("base_url"),
        )
        models[model_id] = spec

        api_key = os.environ.get(spec.api_key_env, "").strip()
        if api_key:
            available_providers.add(spec.sdk)
        else:
            logger.debug("Model %s unavailable (no API key): set %s in .env", model_id, spec.api_key_env)

    for sdk in sorted(available_providers):
        logger.info("Provider available: %s", sdk)

    selection_raw = raw["selection"]
    selection = SelectionConfig(
        premium_model=str(selection_raw["premium_model"]),
        complex_model=str(selection_raw["complex_model"]),
        override_env=str(selection_raw.get("override_env", "HEXAMIND_MODEL")),
        complex_modes=list(selection_raw.get("complex_modes", ["deepthink", "critical"])),
        complexity_keywords=[str(k) for k in selection_raw.get("complexity_keywords", [])],
    )

    cost = CostConfig(**raw.get("cost", {}))

    retry_raw = dict(raw.get("retry", {}))
    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", 3)),
        timeout_sec=float(retry_raw.get("timeout_sec", 60)),
        default_retry_after_sec=float(retry_raw.get("default_retry_after_sec", 60)),
        backoff_base_sec=float(retry_raw.get("backoff_base_sec", 1.0)),
        requests_per_minute=retry_raw.get("requests_per_minute"),
    )

    rounds_raw = raw.get("rounds", {})
    rounds = RoundsConfig(
        affinity=[
            RoundTheme(theme=str(r["theme"]), agents=list(r["agents"]))
            for r in rounds_raw.get("affinity", [])
        ],
        relevance_keywords={k: [str(w) for w in v] for k, v in rounds_raw.get("relevance_keywords", {}).items()},
        risk_words=[str(w) for w in rounds_raw.get("risk_words", [])],
        devil_id=str(rounds_raw.get("devil_id", "devil")),
        speakers_per_round=int(rounds_raw.get("speakers_per_round", 3)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        session=prompts_raw["session"],
        initial=prompts_raw["initial"],
        interaction=prompts_raw["interaction"],
        synthesis=prompts_raw["synthesis"],
        thinking_modes={k: str(v) for k, v in prompts_raw["thinking_modes"].items()},
        synthesis_sections={k: str(v) for k, v in prompts_raw["synthesis_sections"].items()},
        placeholder=prompts_raw["placeholder"],
        protocol=prompts_raw.get("protocol", ""),
        synthesis_request=prompts_raw.get("synthesis_request", "議論全体の総括を作成してください。"),
        unclarified_context=prompts_raw.get("unclarified_context", ""),
        enhanced_question=prompts_raw.get("enhanced_question", ""),
        clarification=prompts_raw.get("clarification", ""),
        business_case=prompts_raw.get("business_case", ""),
        business_keywords=[str(k) for k in prompts_raw.get("business_keywords", [])],
        specialized={k: str(v) for k, v in prompts_raw.get("specialized", {}).items()},
    )

    return AppConfig(
        defaults=defaults,
        models=models,
        selection=selection,
        cost=cost,
        retry=retry,
        prompts=prompts,
        rounds=rounds,
        available_providers=available_providers,
    )


def load_agents(agents_path: Path = _AGENTS_PATH) -> dict[str, dict]:
    """Return the raw persona catalog keyed by agent id, in file order."""
    raw = _load_yaml(agents_path)
    return {str(agent_id): dict(body) for agent_id, body in raw.items()}
