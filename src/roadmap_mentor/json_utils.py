"""Pull a JSON object out of LLM output that may carry fences or chatter."""

from __future__ import annotations

import ast
import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)


def parse_json_robust(text: str) -> dict[str, Any]:
    """Try to extract a JSON object from LLM output even if there's conversational fluff.

    Raises ValueError when nothing parseable is found.
    """
    text = text.strip()

    # 1. Direct parse
    try:
        return _as_object(json.loads(text))
    except (json.JSONDecodeError, TypeError):
        pass

    # 2. Markdown ```json block
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if match:
        try:
            return _as_object(json.loads(match.group(1).strip()))
        except (json.JSONDecodeError, TypeError):
            pass

    # 3. Widest {...} span, with the usual LLM mistakes cleaned up
    start_index = text.find("{")
    end_index = text.rfind("}")
    if start_index != -1 and end_index > start_index:
        cleaned = text[start_index : end_index + 1]
        cleaned = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", cleaned)
        cleaned = re.sub(r",\s*([\]}])", r"\1", cleaned)
        try:
            return _as_object(json.loads(cleaned))
        except (json.JSONDecodeError, TypeError) as e:
            logger.debug("JSON parse error after cleanup: %s", e)

        # 4. Python literal (single quotes, True/False)
        try:
            return _as_object(ast.literal_eval(cleaned))
        except (ValueError, SyntaxError, TypeError):
            pass

    raise ValueError(f"Could not parse JSON from LLM response. Length: {len(text)}. Text started with: {text[:100]}...")


def _as_object(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"expected a JSON object, got {type(value).__name__}")
    return value
