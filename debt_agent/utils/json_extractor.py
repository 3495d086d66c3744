"""
JSON extraction from model output.

Classifier replies should be a bare JSON object but often arrive wrapped in
markdown fences, preceded by prose, or with trailing commas.
"""
import json
import re
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```\s*$", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


class JSONExtractionError(ValueError):
    """Raised when no JSON object can be recovered from the content."""

    def __init__(self, message: str, raw_content: str, attempts: List[str]):
        super().__init__(message)
        self.raw_content = raw_content
        self.attempts = attempts


def extract_json(content: str) -> Dict[str, Any]:
    """
    Recover a JSON object from model output.

    Candidates are tried in order: the raw text, the text with code fences
    removed, the first balanced ``{...}`` block, and each of those with
    trailing commas stripped.

    Args:
        content: Raw model output

    Returns:
        The parsed object

    Raises:
        JSONExtractionError: If no candidate parses to a dict
    """
    if not content or not content.strip():
        raise JSONExtractionError("Empty content", content, ["content was empty"])

    text = content.lstrip("\ufeff").strip()
    candidates = [text, _strip_fences(text)]
    block = _find_object(text)
    if block:
        candidates.append(block)
    candidates.extend([_TRAILING_COMMA.sub(r"\1", c) for c in list(candidates)])

    attempts: List[str] = []
    seen = set()
    for candidate in candidates:
        if candidate in seen:
            continue
        seen.add(candidate)
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError as e:
            attempts.append(str(e))
            continue
        if isinstance(result, dict):
            return result
        attempts.append(f"parsed to {type(result).__name__}, not dict")

    logger.warning("JSON extraction failed", attempts=len(attempts), preview=text[:200])
    raise JSONExtractionError("No JSON object found in content", content, attempts)


def _strip_fences(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text


def _find_object(text: str) -> Optional[str]:
    """Return the first brace-balanced object, ignoring braces inside strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None
