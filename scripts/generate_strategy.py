#!/usr/bin/env python3
"""
Command-line access to strategy generation and validation.

  generate_strategy.py generate "Buy UP when the spread is tight late in the slot"
  generate_strategy.py validate graph.json
  generate_strategy.py parse model_output.txt

`parse` re-runs the generation post-processing (fence stripping, JSON parse,
validation) on recorded model output without calling a provider.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from ai_providers import get_provider
from graph_errors import GenerationError, GraphValidationError, SecurityValidationError
from strategy_generator import StrategyGenerator, parse_and_validate, validate_description
from strategy_validation import validate_strategy_graph


def emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


async def run_generate(description: str) -> int:
    provider_name = os.getenv("AI_PROVIDER", "anthropic").lower()
    key_var = "ANTHROPIC_API_KEY" if provider_name == "anthropic" else "OPENAI_API_KEY"
    api_key = os.getenv(key_var)
    if not api_key:
        print(f"Missing {key_var} environment variable", file=sys.stderr)
        return 2

    provider = get_provider(
        api_key=api_key,
        model=os.getenv("AI_MODEL"),
        provider=provider_name,
        timeout=float(os.getenv("GENERATION_TIMEOUT_SECS", "30")),
    )
    try:
        result = await StrategyGenerator(provider).generate(validate_description(description))
    except (GenerationError, ValueError) as exc:
        emit({"success": False, "error": str(exc)})
        return 1
    emit({"success": True, "graph": result["graph"]})
    return 0


def run_validate(path: Path) -> int:
    graph = json.loads(path.read_text())
    try:
        normalized = validate_strategy_graph(graph)
    except SecurityValidationError as exc:
        emit({"valid": False, "errors": exc.errors})
        return 1
    except GraphValidationError as exc:
        emit({"valid": False, "errors": [exc.to_dict()]})
        return 1
    emit({"valid": True, "graph": normalized})
    return 0


def run_parse(path: Path) -> int:
    try:
        graph = parse_and_validate(path.read_text())
    except GenerationError as exc:
        emit({"success": False, "error": str(exc)})
        return 1
    emit({"success": True, "graph": graph})
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate or validate strategy graphs")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Generate a form graph from a description")
    generate.add_argument("description")

    validate = sub.add_parser("validate", help="Validate and normalize a graph JSON file")
    validate.add_argument("path", type=Path)

    parse = sub.add_parser("parse", help="Validate recorded model output")
    parse.add_argument("path", type=Path)

    return parser.parse_args()


def main() -> None:
    load_dotenv()
    args = parse_args()
    if args.command == "generate":
        code = asyncio.run(run_generate(args.description))
    elif args.command == "validate":
        code = run_validate(args.path)
    else:
        code = run_parse(args.path)
    sys.exit(code)


if __name__ == "__main__":
    main()
