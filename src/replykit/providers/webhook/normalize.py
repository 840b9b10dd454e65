"""Inbound callback body normalisation.

Automation providers do not reliably emit valid JSON: string values often
carry literal newlines or tabs, and bodies are sometimes cut short. The
helpers here recover the few fields reconciliation needs from whatever
arrived.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from replykit.core.errors import MissingReplyTextError, UnparseableCallbackError
from replykit.models.delivery import CallbackPayload

logger = logging.getLogger("replykit.callback")

SESSION_ID_FIELDS: tuple[str, ...] = ("sessionId", "session_id")
USER_ID_FIELDS: tuple[str, ...] = ("userId", "user_id")
REPLY_FIELDS: tuple[str, ...] = ("reply", "response", "message", "text")
SECRET_FIELDS: tuple[str, ...] = ("secret",)

SESSION_HEADER = "x-portal-session-id"

_PATTERNS: dict[str, re.Pattern[str]] = {}


def _field_pattern(field: str) -> re.Pattern[str]:
    pattern = _PATTERNS.get(field)
    if pattern is None:
        # A string value ends at a quote followed by `,` or `}` (bare inner
        # quotes stay in the value) or runs to the end of a truncated body.
        # Otherwise a bare integer.
        pattern = re.compile(
            rf'"{re.escape(field)}"\s*:\s*'
            r'(?:"((?:[^\\]|\\.)*?)(?:"(?=\s*(?:[,}]|\Z))|\Z)|(-?\d+)\b)',
            re.DOTALL,
        )
        _PATTERNS[field] = pattern
    return pattern


_BARE_QUOTE = re.compile(r'(\\.)|"', re.DOTALL)


def _unescape(value: str) -> str:
    escaped = _BARE_QUOTE.sub(lambda m: m.group(1) or '\\"', value)
    try:
        decoded = json.loads(f'"{escaped}"', strict=False)
    except ValueError:
        return value
    return decoded if isinstance(decoded, str) else value


def extract_from_raw_body(raw_body: str, field: str) -> str | None:
    """Regex-extract one field's value from a JSON-like string.

    Tolerates literal control characters inside the value and a body
    truncated mid-value.
    """
    match = _field_pattern(field).search(raw_body)
    if match is None:
        return None
    if match.group(1) is not None:
        return _unescape(match.group(1))
    return match.group(2)


def parse_callback_body(body: Mapping[str, Any] | str | bytes | None) -> dict[str, Any]:
    """Turn a callback body into a dict of fields.

    Structured bodies are used directly. Strings are parsed as strict JSON
    first; on failure each known field is extracted by regex and the raw
    body is kept under ``_raw_body``.

    Raises:
        UnparseableCallbackError: Empty body, or JSON that is not an object.
    """
    if isinstance(body, Mapping):
        return dict(body)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not isinstance(body, str) or not body.strip():
        raise UnparseableCallbackError("Empty callback body")

    try:
        parsed = json.loads(body)
    except ValueError:
        logger.debug("Callback body is not strict JSON, extracting fields by pattern")
        recovered: dict[str, Any] = {"_raw_body": body}
        for field in (*SESSION_ID_FIELDS, *USER_ID_FIELDS, *REPLY_FIELDS, *SECRET_FIELDS):
            value = extract_from_raw_body(body, field)
            if value is not None and field not in recovered:
                recovered[field] = value
        return recovered

    if not isinstance(parsed, dict):
        raise UnparseableCallbackError(
            f"Callback body must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def first_string(*values: Any) -> str | None:
    """First non-blank string (or integer, as a string) among *values*."""
    for value in values:
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _pick(fields: tuple[str, ...], *sources: Mapping[str, Any]) -> str | None:
    return first_string(*(source.get(f) for source in sources for f in fields))


def extract_payload(
    data: Mapping[str, Any], headers: Mapping[str, str] | None = None
) -> CallbackPayload:
    """Pick the reconciliation fields out of a parsed body.

    Session id sources, in order: top-level field, the session header, a
    nested ``body`` object. User id and reply text come from the top level,
    then the nested ``body`` object.
    """
    nested = data.get("body")
    if not isinstance(nested, Mapping):
        nested = {}
    header_session = _header(headers or {}, SESSION_HEADER)

    session_id = first_string(
        _pick(SESSION_ID_FIELDS, data), header_session, _pick(SESSION_ID_FIELDS, nested)
    )
    return CallbackPayload(
        session_id=session_id,
        external_user_id=_pick(USER_ID_FIELDS, data, nested),
        reply_text=_pick(REPLY_FIELDS, data, nested),
        secret=_pick(SECRET_FIELDS, data),
        raw_body=data.get("_raw_body"),
    )


def normalize_callback_payload(
    body: Mapping[str, Any] | str | bytes | None,
    headers: Mapping[str, str] | None = None,
) -> CallbackPayload:
    """Normalise a callback body into a `CallbackPayload`.

    Raises:
        UnparseableCallbackError: The body could not be read at all.
        MissingReplyTextError: No reply text anywhere in the body.
    """
    payload = extract_payload(parse_callback_body(body), headers)
    if payload.reply_text is None:
        raise MissingReplyTextError("Missing reply text in callback payload")
    return payload


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None
