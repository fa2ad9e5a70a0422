"""
Natural-language strategy generator for form-mode graphs.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

from ai_providers import AIProvider
from form_graph_schema import assert_valid_form_graph
from graph_errors import GraphValidationError, InvalidJson, ValidationFailed
from strategy_prompts import STRATEGY_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 1000

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")


def validate_description(description: str) -> str:
    description = (description or "").strip()
    if not MIN_DESCRIPTION_LENGTH <= len(description) <= MAX_DESCRIPTION_LENGTH:
        raise ValueError(
            f"description must be between {MIN_DESCRIPTION_LENGTH} and "
            f"{MAX_DESCRIPTION_LENGTH} characters"
        )
    return description


def strip_code_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = _OPENING_FENCE.sub("", raw, count=1)
        raw = _CLOSING_FENCE.sub("", raw, count=1)
    return raw.strip()


def parse_and_validate(raw: str) -> Dict[str, Any]:
    """Parse model output into a validated, id-normalized form graph."""
    text = strip_code_fences(raw)

    try:
        graph = json.loads(text)
    except ValueError:
        raise InvalidJson(text) from None
    if not isinstance(graph, dict):
        raise InvalidJson(text)

    try:
        return assert_valid_form_graph(graph)
    except GraphValidationError as exc:
        raise ValidationFailed(str(exc), path=exc.path) from exc


class StrategyGenerator:
    """Turns a strategy description into a validated form graph using the configured AI provider."""

    def __init__(self, ai_provider: AIProvider, system_prompt: str = STRATEGY_SYSTEM_PROMPT):
        self.ai_provider = ai_provider
        self.system_prompt = system_prompt

    async def generate(self, description: str) -> Dict[str, Any]:
        raw = await self.ai_provider.generate(
            system_prompt=self.system_prompt,
            user_prompt=description,
        )
        logger.debug("Provider returned %d characters", len(raw))

        graph = parse_and_validate(raw)
        logger.info(
            "Generated form graph with %d condition groups",
            len(graph["conditions"]),
        )
        return {"graph": graph}
