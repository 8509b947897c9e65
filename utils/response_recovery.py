"""Recover JSON payloads from free-form inference output.

Model responses are expected to contain a JSON array (or object) but may be
wrapped in a fenced code block, preceded by prose, or cut off when the
response hits its token ceiling.  Arrays may also arrive wrapped in an
object such as ``{"records": [...]}``.  Recovery runs a fixed, small number of
repair attempts and either returns the parsed payload or raises
:class:`MalformedInferenceOutput`.  Partial recovery is preferred: a
truncated array yields every complete leading element.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_OPEN_FENCE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_ARRAY_OPEN = re.compile(r"\[")
_DECODER = json.JSONDecoder()
_UNDECODABLE = object()

MAX_ATTEMPTS = 3


class MalformedInferenceOutput(ValueError):
    """Raised when no repair attempt produced a usable JSON payload."""

    def __init__(self, message: str, *, attempts: int = 0, raw: str = "") -> None:
        super().__init__(message)
        self.attempts = attempts
        self.raw = raw


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced block, or ``text`` unchanged.

    An opening fence without a closing one (a truncated response) is
    dropped so the partial body can still be repaired.
    """

    if not text:
        return ""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1)
    opening = _OPEN_FENCE.search(text)
    if opening:
        return text[opening.end():]
    return text


def _top_level_commas(text: str) -> List[int]:
    """Indices of commas separating complete top-level members of ``text``.

    ``text`` must start with ``[`` or ``{``.  String literals and escapes
    are honoured so braces or commas inside values are ignored.
    """

    positions: List[int] = []
    depth = 0
    in_string = False
    escaped = False
    for index, ch in enumerate(text):
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
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                break
        elif ch == "," and depth == 1:
            positions.append(index)
    return positions


def _isolate(text: str) -> str:
    body = strip_code_fence(text).strip()
    starts = [i for i in (body.find("["), body.find("{")) if i != -1]
    if starts:
        body = body[min(starts):]
    return body


def _is_truncated(body: str, close_char: str) -> bool:
    return not body.rstrip().endswith(close_char)


def _attempts_for(body: str, open_char: str, close_char: str) -> List[Callable[[], str]]:
    def as_is() -> str:
        return body

    def close_at_last_object() -> str:
        cut = body.rfind("}")
        if cut == -1:
            raise ValueError("no complete object boundary")
        candidate = body[: cut + 1]
        if open_char == "[":
            return candidate.rstrip().rstrip(",") + "]"
        return candidate

    def close_at_last_element() -> str:
        commas = _top_level_commas(body)
        if not commas:
            raise ValueError("no complete element to keep")
        return body[: commas[-1]].rstrip() + close_char

    if body.startswith(open_char) and _is_truncated(body, close_char):
        return [close_at_last_object, close_at_last_element]
    return [as_is, close_at_last_object, close_at_last_element]


def _repair(body: str, open_char: str, close_char: str, kind: str, raw: str) -> Tuple[Any, int, bool]:
    """Run the bounded repair attempts over ``body``; return ``(parsed, attempts, repaired)``."""

    last_error: Optional[Exception] = None
    attempts = 0
    for attempt in _attempts_for(body, open_char, close_char)[:MAX_ATTEMPTS]:
        attempts += 1
        try:
            candidate = attempt()
            parsed = json.loads(candidate)
        except (ValueError, TypeError) as exc:
            last_error = exc
            logger.warning(
                "JSON %s recovery attempt %d/%d failed: %s", kind, attempts, MAX_ATTEMPTS, exc
            )
            continue
        repaired = attempt.__name__ != "as_is"
        if repaired:
            logger.warning(
                "Recovered truncated JSON %s on attempt %d (%d chars)", kind, attempts, len(body)
            )
        return parsed, attempts, repaired

    raise MalformedInferenceOutput(
        f"could not recover a JSON {kind} after {attempts} attempts: {last_error}",
        attempts=attempts,
        raw=raw[:200],
    )


def _recover(text: str, open_char: str, close_char: str, kind: str) -> Tuple[Any, int, bool]:
    raw = text or ""
    body = _isolate(raw)
    if not body:
        raise MalformedInferenceOutput(f"empty inference output; expected a JSON {kind}", raw=raw[:200])
    return _repair(body, open_char, close_char, kind, raw)


def _decode_at(body: str, index: int) -> Any:
    """The complete JSON value starting at ``index``, or ``_UNDECODABLE``."""

    try:
        value, _ = _DECODER.raw_decode(body, index)
    except ValueError:
        return _UNDECODABLE
    return value


def _decode_whole(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return _UNDECODABLE


def _is_record_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, dict) for item in value)


def _opens_records(body: str, index: int) -> bool:
    """True when the ``[`` at ``index`` is followed by an object."""

    return body[index + 1 :].lstrip().startswith("{")


def _record_container(payload: Dict[str, Any]) -> Optional[List[Any]]:
    """The list wrapped by an object such as ``{"records": [...]}``, if any."""

    lists = [value for value in payload.values() if isinstance(value, list)]
    if len(lists) != 1:
        return None
    if len(payload) == 1 and not lists[0]:
        return lists[0]
    return lists[0] if _is_record_list(lists[0]) else None


def _as_array(parsed: Any) -> Optional[List[Any]]:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        wrapped = _record_container(parsed)
        if wrapped is not None:
            logger.info("Unwrapped JSON array from an enclosing object")
            return wrapped
        return [parsed]
    return None


def recover_json_array(text: str) -> List[Any]:
    """Parse ``text`` into a list, repairing fences, prose and truncation.

    The array is the first ``[`` that opens a list of objects, so prose with
    brackets ahead of the payload is skipped.  An object wrapping a single
    list of objects, such as ``{"records": [...]}``, yields that list; any
    other lone object becomes a one-element list.
    """

    raw = text or ""
    body = strip_code_fence(raw).strip()
    if not body:
        raise MalformedInferenceOutput("empty inference output; expected a JSON array", raw=raw[:200])

    whole = _decode_whole(body)
    if whole is not _UNDECODABLE:
        array = _as_array(whole)
        if array is None:
            raise MalformedInferenceOutput(
                f"expected a JSON array, got {type(whole).__name__}", attempts=1, raw=raw[:200]
            )
        return array

    first_list: Optional[List[Any]] = None
    for match in _ARRAY_OPEN.finditer(body):
        start = match.start()
        value = _decode_at(body, start)
        if value is _UNDECODABLE:
            if not _opens_records(body, start):
                continue
            parsed, attempts, repaired = _repair(body[start:], "[", "]", "array", raw)
            if not isinstance(parsed, list) or (not parsed and repaired):
                raise MalformedInferenceOutput(
                    "truncated JSON array contained no complete element", attempts=attempts, raw=raw[:200]
                )
            return parsed
        if _is_record_list(value):
            return value
        if first_list is None and isinstance(value, list):
            first_list = value

    if first_list is not None:
        return first_list

    object_start = body.find("{")
    if object_start == -1:
        raise MalformedInferenceOutput("no JSON array or object in inference output", raw=raw[:200])
    parsed, attempts, _ = _repair(body[object_start:], "{", "}", "array", raw)
    array = _as_array(parsed)
    if array is None:
        raise MalformedInferenceOutput(
            f"expected a JSON array, got {type(parsed).__name__}", attempts=attempts, raw=raw[:200]
        )
    return array


def recover_json_object(text: str) -> Dict[str, Any]:
    """Parse ``text`` into a single JSON object."""

    parsed, attempts, _ = _recover(text, "{", "}", "object")
    if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict):
        parsed = parsed[0]
    if not isinstance(parsed, dict):
        raise MalformedInferenceOutput(
            f"expected a JSON object, got {type(parsed).__name__}", attempts=attempts, raw=(text or "")[:200]
        )
    return parsed


__all__ = [
    "MAX_ATTEMPTS",
    "MalformedInferenceOutput",
    "recover_json_array",
    "recover_json_object",
    "strip_code_fence",
]
