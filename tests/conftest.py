"""Shared pytest fixtures."""

import random
from collections.abc import Callable
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    CostConfig,
    DefaultsConfig,
    ModelSpec,
    PromptsConfig,
    RetryConfig,
    RoundsConfig,
    RoundTheme,
    SelectionConfig,
)
from hexamind.agents import AgentRegistry
from hexamind.discussion import AIDiscussionEngine, DiscussionSettings
from hexamind.gateway import GatewayClient, RetryPolicy
from hexamind.models import Agent
from hexamind.providers.base import ChatMessage, LLMProvider

SYNTHESIS_TEXT = """## 議論の概要
新SaaS事業への投資を段階的に進める方針で一致した。

## 合意された決定事項
- 初年度は1億円に限定して投資する
- 半年後にGO/NO-GOを判断する

## アクションアイテム
1. CFO: 3月末までに詳細な財務モデルを作成
2. CEO: 4月に取締役会へ報告

## リスクと対策
- 顧客獲得コストの上振れ: 広告費に上限を設定

## 成功指標
- ARR 2億円
"""


def _model(model_id: str, quality: str, input_cost: float, output_cost: float, context: int = 128000) -> ModelSpec:
    return ModelSpec(
        id=model_id,
        sdk="openai",
        model=model_id,
        display_name=model_id,
        quality=quality,
        input_cost_per_1k=input_cost,
        output_cost_per_1k=output_cost,
        context_window=context,
        api_key_env="TEST_OPENAI_KEY",
    )


@pytest.fixture
def sample_models() -> dict[str, ModelSpec]:
    return {
        "gpt-4o-mini": _model("gpt-4o-mini", "advanced", 0.00015, 0.0006),
        "gpt-3.5-turbo": _model("gpt-3.5-turbo", "standard", 0.0005, 0.0015, context=4096),
        "gpt-4-turbo": _model("gpt-4-turbo", "advanced", 0.01, 0.03),
        "gpt-4o": _model("gpt-4o", "premium", 0.0025, 0.01),
    }


@pytest.fixture
def sample_selection_config() -> SelectionConfig:
    return SelectionConfig(
        premium_model="gpt-4o",
        complex_model="gpt-4-turbo",
        complexity_keywords=["戦略", "M&A", "投資", "億", "million"],
    )


@pytest.fixture
def sample_rounds_config() -> RoundsConfig:
    return RoundsConfig(
        affinity=[
            RoundTheme("財務インパクトとリスク", ["cfo", "devil", "cio", "cro", "cso"]),
            RoundTheme("戦略と市場機会", ["ceo", "cmo", "cso", "cbo", "cxo"]),
            RoundTheme("技術と実行可能性", ["cto", "coo", "cdo", "caio"]),
            RoundTheme("前提条件の検証と反論", ["devil", "cfo", "coo", "clo"]),
            RoundTheme("統合と合意形成", ["ceo", "cfo", "cmo", "cto", "coo", "devil", "cso", "cio"]),
        ],
        relevance_keywords={
            "cfo": ["投資", "ROI", "予算"],
            "cto": ["AI", "技術", "システム"],
            "cmo": ["顧客", "市場"],
            "ceo": ["戦略", "ビジョン"],
        },
        risk_words=["リスク", "懸念"],
        devil_id="devil",
        speakers_per_round=3,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        session="議題: {topic}\n参加者: {participants}\n検討アプローチ: {thinking_mode}\n{protocol}",
        initial="初期意見を述べてください。",
        interaction="ラウンド{round}（テーマ: {theme}）\n【直近の議論】\n{recent}\n反応してください。",
        synthesis="議事進行役として総括してください。\n{sections}",
        thinking_modes={
            "normal": "標準的に議論してください。",
            "deepthink": "深く分析してください。",
            "creative": "革新的に考えてください。",
            "critical": "リスクを徹底的に検証してください。",
        },
        synthesis_sections={
            "overview": "議論の概要",
            "decisions": "合意された決定事項",
            "action_items": "アクションアイテム",
            "risks": "リスクと対策",
            "success_metrics": "成功指標",
        },
        placeholder="申し訳ございませんが、一時的に発言できません。",
        protocol="【議論プロトコル】",
        synthesis_request="議論全体の総括を作成してください。",
        unclarified_context="【議論の前提条件】",
        enhanced_question="【質問】{original_question}\nCEOからの確認: {clarification_question}\n回答: {user_response}",
        clarification="質問の明確性を分析し、JSONのみで返答してください。",
        business_case="【ビジネスケース分析】",
        business_keywords=["販売", "市場"],
        specialized={"ceo": "【CEO分析テンプレート】", "cfo": "【CFO分析テンプレート】"},
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        rounds=5,
        output_dir=tmp_path / "output",
        delay_min_sec=0.0,
        delay_max_sec=0.0,
        default_panel=["ceo", "cfo", "devil"],
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_models: dict[str, ModelSpec],
    sample_selection_config: SelectionConfig,
    sample_prompts_config: PromptsConfig,
    sample_rounds_config: RoundsConfig,
) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        models=sample_models,
        selection=sample_selection_config,
        cost=CostConfig(),
        retry=RetryConfig(),
        prompts=sample_prompts_config,
        rounds=sample_rounds_config,
        available_providers={"openai"},
    )


def make_agent(agent_id: str, name: str, selectable: bool = True) -> Agent:
    return Agent(
        id=agent_id,
        name=name,
        role=f"{name}の役割",
        expertise=("経営",),
        system_prompt=f"あなたは{name}です。",
        selectable=selectable,
    )


@pytest.fixture
def sample_registry() -> AgentRegistry:
    return AgentRegistry(
        [
            make_agent("ceo", "CEO AI"),
            make_agent("cfo", "CFO AI"),
            make_agent("cmo", "CMO AI"),
            make_agent("cto", "CTO AI"),
            make_agent("coo", "COO AI"),
            make_agent("devil", "悪魔の代弁者"),
            make_agent("cso", "CSO AI"),
            make_agent("cio", "CIO AI"),
            make_agent("cro", "CRO AI", selectable=False),
        ]
    )


def persona_of(messages: list[ChatMessage], registry: AgentRegistry) -> str | None:
    """Which agent a composed request speaks for; None for the synthesis call."""
    system = messages[0]["content"]
    for agent in registry.all_agents():
        if system.startswith(agent.system_prompt):
            return agent.id
    return None


class ScriptedProvider(LLMProvider):
    """Test double LLMProvider.

    ``responder`` receives the composed messages and returns the reply text;
    raising from it simulates a failed call. Every call is recorded.
    """

    def __init__(
        self,
        responder: Callable[[list[ChatMessage]], str] | None = None,
        provider_name: str = "scripted",
    ) -> None:
        self._responder = responder or (lambda messages: "具体的な数値を示して賛成します。")
        self._name = provider_name
        self.calls: list[dict] = []

    def name(self) -> str:
        return self._name

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        self.calls.append(
            {"messages": messages, "model": model, "max_tokens": max_tokens, "temperature": temperature}
        )
        return self._responder(messages)


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays, never waits."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def board_responder(registry: AgentRegistry, synthesis: str = SYNTHESIS_TEXT) -> Callable[[list[ChatMessage]], str]:
    """Replies in character per persona and with a full summary for synthesis."""

    def _respond(messages: list[ChatMessage]) -> str:
        agent_id = persona_of(messages, registry)
        if agent_id is None:
            return synthesis
        return f"{agent_id}の意見: 投資額は段階的に判断すべきです。"

    return _respond


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_engine(sample_app_config: AppConfig, sample_registry: AgentRegistry, sleep_recorder: SleepRecorder):
    """Factory: engine over a provider with no real waiting anywhere."""

    def _make(provider: LLMProvider, **overrides) -> AIDiscussionEngine:
        gateway = GatewayClient(provider, RetryPolicy(), sleep=sleep_recorder)
        settings = DiscussionSettings.from_config(sample_app_config)
        for key, value in overrides.items():
            setattr(settings, key, value)
        return AIDiscussionEngine(
            gateway,
            sample_registry,
            sample_app_config,
            settings=settings,
            sleep=sleep_recorder,
            rng=random.Random(7),
        )

    return _make
