"""Question clarification before a discussion starts.

The analysis call is best-effort: any failure means the discussion goes ahead
with the question as asked.
"""

import json
import logging
import re

from config.config_loader import PromptsConfig
from hexamind.gateway import GatewayClient
from hexamind.models import ClarificationContext, ClarificationResult
from hexamind.providers.base import LLMError

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def create_enhanced_question(context: ClarificationContext, prompts: PromptsConfig) -> str:
    """Fold the clarification exchange into the topic string."""
    return prompts.enhanced_question.format(
        original_question=context.original_question,
        clarification_question=context.clarification_question,
        user_response=context.user_response,
    ).strip()


def discussion_context_block(context: ClarificationContext | None, prompts: PromptsConfig) -> str:
    """Assumption guidance for sessions whose question was never clarified."""
    if context is not None:
        return ""
    return prompts.unclarified_context.strip()


def _parse_result(text: str) -> ClarificationResult:
    data = json.loads(_FENCE.sub("", text.strip()))
    if not isinstance(data, dict):
        raise ValueError("Clarification response is not a JSON object")
    question = data.get("clarificationQuestion")
    aspects = data.get("suggestedAspects") or []
    if not isinstance(aspects, list):
        raise ValueError(f"suggestedAspects must be a list, got {type(aspects).__name__}")
    return ClarificationResult(
        needs_clarification=bool(data.get("needsClarification", False)),
        clarification_question=str(question) if question else None,
        suggested_aspects=[str(a) for a in aspects],
    )


async def analyze_question_clarity(
    gateway: GatewayClient,
    question: str,
    model: str,
    prompts: PromptsConfig,
) -> ClarificationResult:
    messages = [
        {"role": "system", "content": prompts.clarification.strip()},
        {"role": "user", "content": f"次の質問を分析してください：「{question}」"},
    ]
    try:
        text = await gateway.complete(messages, model, 500, 0.7)
        return _parse_result(text)
    except (LLMError, ValueError) as exc:
        # json.JSONDecodeError is a ValueError.
        logger.warning("Question analysis failed, proceeding without clarification: %s", exc)
        return ClarificationResult(needs_clarification=False)
