"""Click CLI: loads config, resolves model and panel, streams the discussion."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import click
import frontmatter
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, ModelSpec, load_config
from hexamind.agents import default_registry
from hexamind.clarification import analyze_question_clarity
from hexamind.discussion import AIDiscussionEngine, DiscussionSettings
from hexamind.errors import ConfigurationError
from hexamind.gateway import GatewayClient, RequestRateLimiter, RetryPolicy
from hexamind.models import ClarificationContext, ThinkingMode
from hexamind.output import MarkdownTranscriptStore, print_agents, print_cost_estimate, print_turn
from hexamind.pricing import estimate_cost, recommend_model_for_budget, select_model
from hexamind.providers.anthropic import AnthropicProvider
from hexamind.providers.base import LLMProvider
from hexamind.providers.gemini import GeminiProvider
from hexamind.providers.http_gateway import HttpGatewayProvider
from hexamind.providers.openai_provider import OpenAIProvider
from hexamind.summary import build_record

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "http": HttpGatewayProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _parse_agent_ids(value: str | list | None) -> list[str] | None:
    """Accept "ceo,cfo" from the command line or a list from frontmatter."""
    if value is None:
        return None
    if isinstance(value, str):
        ids = [v.strip() for v in value.split(",")]
    else:
        ids = [str(v).strip() for v in value]
    return [v for v in ids if v] or None


def _read_question_file(path: Path) -> tuple[str, dict]:
    """Return (question text, frontmatter metadata)."""
    post = frontmatter.load(str(path))
    return post.content.strip(), dict(post.metadata)


def _resolve_model(
    config: AppConfig,
    model_arg: str | None,
    topic: str,
    mode: ThinkingMode,
    premium: bool,
    budget: float | None = None,
    agent_count: int = 0,
    quality: str = "medium",
) -> ModelSpec:
    """--model wins over the env override; both are ignored if unknown.

    Without an override or --premium, a budget picks the best model it affords
    among providers that have an API key.
    """
    override = model_arg or os.environ.get(config.selection.override_env) or None
    if override is None and not premium and budget is not None:
        usable = {
            k: s for k, s in config.models.items()
            if s.sdk == "http" or s.sdk in config.available_providers
        }
        model_id = recommend_model_for_budget(budget, quality, usable or config.models, agent_count, config.cost)
        logger.info("Budget ¥%.0f (%s quality) selects %s", budget, quality, model_id)
        return config.models[model_id]
    model_id = select_model(topic, mode, premium, config.models, config.selection, override=override)
    return config.models[model_id]


def _build_gateway(spec: ModelSpec, config: AppConfig) -> GatewayClient:
    provider_cls = PROVIDER_CLASSES.get(spec.sdk)
    if provider_cls is None:
        raise ConfigurationError(f"Model {spec.id} uses unknown sdk '{spec.sdk}'")
    provider = provider_cls(spec, timeout_sec=config.retry.timeout_sec)
    limiter = None
    if config.retry.requests_per_minute:
        limiter = RequestRateLimiter(int(config.retry.requests_per_minute))
    return GatewayClient(provider, RetryPolicy.from_config(config.retry), limiter=limiter)


async def _clarify(gateway: GatewayClient, spec: ModelSpec, question: str, config: AppConfig) -> ClarificationContext | None:
    result = await analyze_question_clarity(gateway, question, spec.model, config.prompts)
    if not result.needs_clarification or not result.clarification_question:
        return None
    console.print(f"\n[bold cyan]確認:[/bold cyan] {result.clarification_question}")
    if result.suggested_aspects:
        console.print(f"[dim]観点: {', '.join(result.suggested_aspects)}[/dim]")
    answer = click.prompt("回答 (空欄でスキップ)", default="", show_default=False).strip()
    if not answer:
        return None
    return ClarificationContext(
        original_question=question,
        clarification_question=result.clarification_question,
        user_response=answer,
    )


async def _run_discussion(
    engine: AIDiscussionEngine,
    gateway: GatewayClient,
    config: AppConfig,
    question: str,
    agent_ids: list[str],
    mode: ThinkingMode,
    spec: ModelSpec,
    budget: float | None,
    clarify: bool,
    output_dir: Path,
) -> Path:
    clarification = await _clarify(gateway, spec, question, config) if clarify else None

    session = engine.create_session(
        question,
        agent_ids,
        thinking_mode=mode,
        model_id=spec.id,
        clarification=clarification,
        budget_local=budget,
    )
    estimate = estimate_cost(spec, len(session.selected_agents), mode, config.cost)

    async for turn in engine.run(session):
        print_turn(turn)

    if session.synthesis is None:
        console.print("[yellow]No synthesis was produced for this discussion.[/yellow]")

    record = build_record(session, config.prompts.synthesis_sections, cost_estimate=estimate)
    return MarkdownTranscriptStore(output_dir).save(record)


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--agents", "agents_arg", default=None, help="Comma-separated agent ids (default: from config)")
@click.option("--mode", "mode_arg", default=None,
              type=click.Choice([m.value for m in ThinkingMode]), help="Thinking mode")
@click.option("--premium", is_flag=True, help="Use the premium model")
@click.option("--model", "model_arg", default=None, help="Model id from settings.yaml, overrides selection")
@click.option("--budget", default=None, type=float, help="Budget in JPY")
@click.option("--quality", default="medium", type=click.Choice(["low", "medium", "high"]),
              help="Quality preference when --budget chooses the model")
@click.option("--rounds", default=None, type=int, help="Number of interaction rounds (default: from config)")
@click.option("--strategy", default="affinity", type=click.Choice(["affinity", "relevance"]),
              help="How interaction-round speakers are chosen")
@click.option("--clarify", is_flag=True, help="Ask a clarifying question before the discussion")
@click.option("--no-delay", is_flag=True, help="Skip the pause between turns")
@click.option("--estimate-only", is_flag=True, help="Print the cost estimate and exit")
@click.option("--list-agents", is_flag=True, help="List selectable agents and exit")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    question: str | None,
    question_file: str | None,
    agents_arg: str | None,
    mode_arg: str | None,
    premium: bool,
    model_arg: str | None,
    budget: float | None,
    quality: str,
    rounds: int | None,
    strategy: str,
    clarify: bool,
    no_delay: bool,
    estimate_only: bool,
    list_agents: bool,
    output_path: str | None,
    verbose: bool,
) -> None:
    """HexaMind -- AI board-meeting discussion.

    \b
    Examples:
      hexamind "新製品を東南アジアで販売すべきか？"
      hexamind "M&Aの是非" --agents ceo,cfo,devil --mode deepthink
      hexamind --file question.md --budget 50 --no-delay
      hexamind "価格改定" --estimate-only
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
        registry = default_registry()
    except (FileNotFoundError, ConfigurationError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if list_agents:
        print_agents(registry.list_selectable_agents())
        return

    meta: dict = {}
    if question_file:
        question_text, meta = _read_question_file(Path(question_file))
    elif question:
        question_text = question.strip()
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    # CLI flags win; frontmatter only fills in when a flag is not set.
    agent_ids = (
        _parse_agent_ids(agents_arg)
        or _parse_agent_ids(meta.get("agents"))
        or list(config.defaults.default_panel)
    )
    try:
        mode = ThinkingMode(mode_arg or meta.get("mode") or config.defaults.thinking_mode)
    except ValueError:
        console.print(f"[bold red]Error:[/bold red] Unknown thinking mode: {meta.get('mode')}")
        sys.exit(1)
    try:
        effective_rounds = (
            rounds if rounds is not None
            else int(meta["rounds"]) if "rounds" in meta
            else config.defaults.rounds
        )
        effective_budget = (
            budget if budget is not None
            else float(meta["budget"]) if "budget" in meta
            else None
        )
    except (TypeError, ValueError):
        console.print(
            f"[bold red]Error:[/bold red] rounds and budget must be numbers "
            f"(got rounds={meta.get('rounds')!r}, budget={meta.get('budget')!r})"
        )
        sys.exit(1)
    output_dir = Path(output_path) if output_path else config.defaults.output_dir

    try:
        agents = registry.resolve(agent_ids, strict=config.defaults.strict_agent_ids)
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    if not agents:
        console.print("[bold red]Error:[/bold red] No known agents selected.")
        sys.exit(1)
    agent_ids = [a.id for a in agents]

    spec = _resolve_model(config, model_arg, question_text, mode, premium, effective_budget, len(agents), quality)
    estimate = estimate_cost(spec, len(agents), mode, config.cost)
    print_cost_estimate(estimate, effective_budget)
    if estimate_only:
        return

    if spec.sdk != "http" and spec.sdk not in config.available_providers:
        console.print(f"[bold red]Error:[/bold red] No API key for {spec.display_name}. Set {spec.api_key_env} in .env.")
        sys.exit(1)

    settings = DiscussionSettings.from_config(config)
    settings.rounds = effective_rounds
    settings.speaker_strategy = strategy
    settings.enforce_budget = settings.enforce_budget or effective_budget is not None
    if no_delay:
        settings.delay_min_sec = settings.delay_max_sec = 0.0

    try:
        gateway = _build_gateway(spec, config)
        engine = AIDiscussionEngine(gateway, registry, config, settings=settings)
        saved = asyncio.run(
            _run_discussion(
                engine,
                gateway,
                config,
                question_text,
                agent_ids,
                mode,
                spec,
                effective_budget,
                clarify,
                output_dir,
            )
        )
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    console.print(f"\n[dim]Saved to: {saved}[/dim]")


if __name__ == "__main__":
    main()
