"""
Extract a structured ``{message, actions?, thinking?}`` envelope from a
free-text agent reply.

The agent is asked for JSON only, but replies routinely arrive wrapped in
markdown fences, preceded by prose, or as a single bare action.  The
strategies below are tried in order and the first one that yields an
object with a string ``message`` wins:

  1. a ```json fenced block
  2. any fenced block whose contents start with ``{``
  3. a top-level query action (``"type": "calc"`` …) wrapped into an
     envelope whose message is the prose before it
  4. a top-level object carrying ``message`` (and usually ``actions``)
  5. a top-level object carrying ``type`` (bare single action)
  6. the whole trimmed reply, if it is a single object

``parse_response`` never raises; when nothing matches the raw text becomes
the message and ``actions`` is ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from dto.actions import QUERY_KINDS
from dto.response import StructuredResponse

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[A-Za-z]*\s*([\s\S]*?)\s*```")

DEFAULT_QUERY_MESSAGE = "Processing calculation..."
DEFAULT_ACTION_MESSAGE = "Processing..."


# -------------------------------------------------------------------
# Brace scanning
# -------------------------------------------------------------------

def iter_balanced_objects(text: str) -> Iterator[Tuple[int, int]]:
    """
    Yield ``(start, end)`` spans of top-level ``{ … }`` objects in *text*.

    Tracks JSON string state (with backslash escapes) so that braces inside
    string values do not affect the depth count.  A stray ``{`` that never
    closes is skipped and scanning resumes right after it.
    """
    pos = text.find("{")
    while pos != -1:
        end = _match_brace(text, pos)
        if end is None:
            pos = text.find("{", pos + 1)
            continue
        yield pos, end
        pos = text.find("{", end)


def _match_brace(text: str, start: int) -> Optional[int]:
    """Index just past the brace closing the one at *start*, if any."""
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
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _load_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _top_level_objects(text: str) -> Iterator[Tuple[int, Dict[str, Any]]]:
    for start, end in iter_balanced_objects(text):
        obj = _load_object(text[start:end])
        if obj is not None:
            yield start, obj


# -------------------------------------------------------------------
# Envelope validation
# -------------------------------------------------------------------

def _to_response(obj: Dict[str, Any]) -> Optional[StructuredResponse]:
    """Accept *obj* as an envelope only when ``message`` is a string."""
    message = obj.get("message")
    if not isinstance(message, str):
        return None
    actions = obj.get("actions")
    thinking = obj.get("thinking")
    return StructuredResponse(
        message=message,
        actions=actions if isinstance(actions, list) else None,
        thinking=thinking if isinstance(thinking, str) else None,
    )


def try_parse_envelope(candidate: str, source: str) -> Optional[StructuredResponse]:
    obj = _load_object(candidate.strip())
    if obj is None:
        logger.debug("  [Parser] %s is not a JSON object", source)
        return None
    response = _to_response(obj)
    if response is None:
        logger.debug("  [Parser] %s has no string 'message'", source)
    return response


def _wrap_action(text: str, start: int, action: Dict[str, Any], default: str) -> StructuredResponse:
    before = text[:start].strip()
    return StructuredResponse(message=before or default, actions=[action])


# -------------------------------------------------------------------
# Strategies
# -------------------------------------------------------------------

def _from_json_fence(text: str) -> Optional[StructuredResponse]:
    for m in _JSON_FENCE.finditer(text):
        response = try_parse_envelope(m.group(1), "json block")
        if response:
            return response
    return None


def _from_any_fence(text: str) -> Optional[StructuredResponse]:
    for m in _ANY_FENCE.finditer(text):
        body = m.group(1).strip()
        if body.startswith("{"):
            response = try_parse_envelope(body, "code block")
            if response:
                return response
    return None


def _from_query_action(text: str) -> Optional[StructuredResponse]:
    for start, obj in _top_level_objects(text):
        if "message" not in obj and obj.get("type") in QUERY_KINDS:
            return _wrap_action(text, start, obj, DEFAULT_QUERY_MESSAGE)
    return None


def _from_inline_envelope(text: str) -> Optional[StructuredResponse]:
    for _, obj in _top_level_objects(text):
        if "message" in obj:
            response = _to_response(obj)
            if response:
                return response
    return None


def _from_bare_action(text: str) -> Optional[StructuredResponse]:
    for start, obj in _top_level_objects(text):
        if isinstance(obj.get("type"), str) and "message" not in obj:
            return _wrap_action(text, start, obj, DEFAULT_ACTION_MESSAGE)
    return None


def _from_whole_text(text: str) -> Optional[StructuredResponse]:
    trimmed = text.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        return try_parse_envelope(trimmed, "whole response")
    return None


_STRATEGIES: List[Tuple[str, Callable[[str], Optional[StructuredResponse]]]] = [
    ("json block", _from_json_fence),
    ("code block", _from_any_fence),
    ("query action", _from_query_action),
    ("inline envelope", _from_inline_envelope),
    ("bare action", _from_bare_action),
    ("whole response", _from_whole_text),
]


def parse_response(raw: Optional[str]) -> StructuredResponse:
    """Turn a raw agent reply into a ``StructuredResponse``.  Never raises."""
    text = raw or ""
    for name, strategy in _STRATEGIES:
        try:
            response = strategy(text)
        except Exception:
            logger.warning("  [Parser] Strategy %r crashed", name, exc_info=True)
            continue
        if response is not None:
            logger.debug(
                "  [Parser] Parsed via %s (%d action(s))",
                name, len(response.actions or []),
            )
            return response
    logger.info("  [Parser] No structured payload found — treating reply as plain text")
    return StructuredResponse(message=text)
