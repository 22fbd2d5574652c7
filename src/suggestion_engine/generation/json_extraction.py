"""Extract a JSON value from free-text model output, repairing truncation when needed."""

from __future__ import annotations

import json
import re
from typing import Any

from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.observability.logger import get_logger

logger = get_logger("json_extraction")

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)(?:```|\Z)", re.DOTALL)
_CLOSERS = {"[": "]", "{": "}"}
_MAX_REPAIR_ATTEMPTS = 200
_MAX_REPAIR_STARTS = 20
_PARTIAL_UNICODE_RE = re.compile(r"\\u[0-9a-fA-F]{0,3}\Z")
_MISMATCHED = -2


def extract_json(text: str) -> Any:
    """Return the first JSON array/object recoverable from ``text``.

    Stages run in order and the first success wins: direct parse, fenced code block,
    bracket-matching scan, then truncation repair. Raises ``PARSE_ERROR`` otherwise.
    """
    stripped = text.strip()
    if not stripped:
        raise AIError(ErrorCode.PARSE_ERROR, "Empty response from model")

    value = _parse_direct(stripped)
    if value is not None:
        return value

    fenced = _fenced_block(stripped)
    if fenced is not None:
        value = _parse_direct(fenced)
        if value is not None:
            logger.debug("json_extracted", stage="fenced")
            return value

    value = _scan_balanced(stripped)
    if value is not None:
        logger.debug("json_extracted", stage="bracket_scan")
        return value

    value = repair_truncated_json(fenced if fenced is not None else stripped)
    if value is not None:
        logger.info("json_repaired", length=len(stripped))
        return value

    logger.warning("json_extraction_failed", preview=stripped[:200])
    raise AIError(ErrorCode.PARSE_ERROR, "Could not extract JSON from model response")


def _parse_direct(text: str) -> Any:
    text = text.strip()
    if not text or text[0] not in "[{":
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, (list, dict)) else None


def _fenced_block(text: str) -> str | None:
    match = _FENCE_RE.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def _scan_balanced(text: str) -> Any:
    """Find the first complete and parseable ``[...]`` or ``{...}`` span."""
    start = _next_open(text, 0)
    while start != -1:
        end = _matching_close(text, start)
        if end == _MISMATCHED:
            start = _next_open(text, start + 1)
            continue
        if end == -1:
            # A truncated document is left to repair; a stray opener in prose is skipped.
            if _repair_from(text, start) is not None:
                return None
            start = _next_open(text, start + 1)
            continue
        value = _parse_direct(text[start : end + 1])
        if value is not None:
            return value
        start = _next_open(text, start + 1)
    return None


def _next_open(text: str, pos: int) -> int:
    for i in range(pos, len(text)):
        if text[i] in _CLOSERS:
            return i
    return -1


def _matching_close(text: str, start: int) -> int:
    stack: list[str] = []
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
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "]}":
            if not stack or stack[-1] != ch:
                return _MISMATCHED
            stack.pop()
            if not stack:
                return i
    return -1


def repair_truncated_json(text: str) -> Any:
    """Close a truncated JSON document at its last safe boundary.

    The whole tail is tried first, with an open string closed and any dangling
    escape dropped. After that come the safe boundaries: the end of a closed
    container, the end of a string and the position before a comma. They are
    tried from the latest backwards, which strips trailing partial elements one
    at a time. An opener that yields nothing is treated as prose and the next
    one is tried.
    """
    start = _next_open(text, 0)
    for _ in range(_MAX_REPAIR_STARTS):
        if start == -1:
            break
        value = _repair_from(text, start)
        if value is not None:
            return value
        start = _next_open(text, start + 1)
    return None


def _repair_from(text: str, start: int) -> Any:
    stack: list[str] = []
    in_string = False
    escaped = False
    safe_points: list[tuple[int, str]] = []

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                safe_points.append((i + 1, "".join(reversed(stack))))
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "]}":
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return _parse_direct(text[start : i + 1])
            safe_points.append((i + 1, "".join(reversed(stack))))
        elif ch == ",":
            safe_points.append((i, "".join(reversed(stack))))

    closers = "".join(reversed(stack))
    if in_string:
        body = text[start:-1] if escaped else text[start:]
        tail = _PARTIAL_UNICODE_RE.sub("", body) + '"'
    else:
        tail = text[start:].rstrip().rstrip(",")
    candidates = [tail + closers]
    for cut, point_closers in reversed(safe_points[-_MAX_REPAIR_ATTEMPTS:]):
        candidates.append(text[start:cut].rstrip().rstrip(",") + point_closers)

    for candidate in candidates:
        value = _parse_direct(candidate)
        if value is not None and value != [] and value != {}:
            return value
    return None
