"""
Pull a JSON object out of free-form model output.

Models asked for JSON still wrap it in prose or markdown fences now and
then. Each stage below is tried in order and the first that yields a JSON
object or array wins:

    1. the whole text parsed directly
    2. the body of a ```json (or bare ```) fenced block
    3. the first balanced {...} span, scanned with string awareness
    4. the greedy span from the first { to the last } as a last resort
"""
import json
import logging
import re
from typing import Any, Iterator, Optional

logger = logging.getLogger("polyllm.structured")

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)

MAX_SPAN_ATTEMPTS = 64

_FAILED = object()


def _load(text: str) -> Any:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return _FAILED
    if not isinstance(value, (dict, list)):
        return _FAILED
    return value



def balanced_spans(
    text: str,
    open_char: str = "{",
    close_char: str = "}",
    max_attempts: int = MAX_SPAN_ATTEMPTS,
) -> Iterator[str]:
    """
    Yield each balanced span starting at successive `open_char` positions.

    Every start rescans towards the end of the text, so only the first
    `max_attempts` starts are tried; a reply full of stray braces would
    otherwise cost quadratic time.
    """
    start = text.find(open_char)
    attempts = 0
    while start != -1 and attempts < max_attempts:
        attempts += 1
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    yield text[start:i + 1]
                    break
        start = text.find(open_char, start + 1)


def extract_json(raw: Optional[str]) -> Optional[Any]:
    """
    Best-effort JSON object (or array) from model output.
    Returns None when nothing usable is found; bare scalars do not count.
    """
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None

    value = _load(text)
    if value is not _FAILED:
        return value

    for match in _FENCE_RE.finditer(text):
        value = _load(match.group(1).strip())
        if value is not _FAILED:
            logger.debug("Extracted JSON from fenced block")
            return value

    for span in balanced_spans(text):
        value = _load(span)
        if value is not _FAILED:
            logger.debug("Extracted JSON from balanced object span")
            return value

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        value = _load(text[first:last + 1])
        if value is not _FAILED:
            logger.debug("Extracted JSON from greedy object match")
            return value

    logger.debug(f"No JSON object found in model output ({len(text)} chars)")
    return None
