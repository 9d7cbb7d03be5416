# =============================================================================
# Structured-Output Parser — Lenient JSON Recovery from LLM Text
# =============================================================================
#
# LLMs asked for JSON still wrap it in markdown fences, prepend prose,
# leave trailing commas, or forget to quote keys. This parser recovers a
# JSON object from such text or returns None. It never raises.
#
# PIPELINE:
#   1. Strip ```json / ``` fences, trim
#   2. Window from the first "{" to the last "}" (no braces → None)
#   3. Strict json.loads
#   4. On failure, repair once:
#        a. drop // line comments
#        b. drop trailing commas before } or ]
#        c. quote bare identifier keys
#      then json.loads again
#   5. Still failing → None
#
# The repairs are textual and may corrupt string values that happen to
# contain "//" or "word:". They only run after the strict parse failed.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_JSON = re.compile(r"```json", re.IGNORECASE)
_FENCE = re.compile(r"```")
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BARE_KEY = re.compile(r"([{,]\s*)([a-zA-Z0-9_]+?)\s*:")


def parse_llm_json(raw: Any) -> dict | None:
    """
    Recover a JSON object from raw LLM output.

    Args:
        raw: Model output. Non-string values are stringified; None and
            empty strings yield None.

    Returns:
        The parsed object, or None when nothing parseable was found.
    """
    if raw is None:
        return None
    text = str(raw)
    if not text:
        return None

    clean = _FENCE.sub("", _FENCE_JSON.sub("", text)).strip()

    first = clean.find("{")
    last = clean.rfind("}")
    if first == -1 or last == -1:
        return None
    clean = clean[first:last + 1]

    parsed = _loads(clean)
    if parsed is not None:
        return parsed

    repaired = _LINE_COMMENT.sub("", clean)
    repaired = _TRAILING_COMMA.sub(r"\1", repaired)
    repaired = _BARE_KEY.sub(r'\1"\2":', repaired)

    parsed = _loads(repaired)
    if parsed is None:
        logger.warning(
            "Unrecoverable JSON in model output (%d chars): %.120s",
            len(text), text,
        )
    return parsed


def _loads(candidate: str) -> dict | None:
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    # A "{...}" window can only decode to an object
    return value if isinstance(value, dict) else None
