"""Turn an inbound callback request into a flat field -> value mapping.

hutko posts JSON, but form-encoded and query-string deliveries are accepted
too. The same field can arrive as a JSON number or a form string, so numeric
identifiers are rendered as strings before the signature is checked.
"""
import json
import re
from typing import Any, Mapping, Optional

from hutko_gateway.errors import MalformedRequest

NUMERIC_FIELDS = ("merchant_id", "payment_id", "card_bin", "amount", "actual_amount", "reversal_amount")

TEXT_FIELDS = (
    "order_id",
    "order_status",
    "tran_type",
    "currency",
    "sender_email",
    "card_type",
    "payment_system",
    "response_status",
    "masked_card",
    "approval_code",
    "rrn",
    "eci",
    "response_code",
    "response_description",
)

# signature and additional_info must stay out of both lists.

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"[\r\n\t ]+")
_OCTET_RE = re.compile(r"%[a-f0-9]{2}", re.IGNORECASE)


def canonical_number(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return value


def sanitize_text(value: Any) -> str:
    """Strip markup and control whitespace from a plain-text field."""
    if isinstance(value, (dict, list, tuple)) or value is None:
        return ""
    text = canonical_number(value)
    if isinstance(text, bool):
        text = "1" if text else ""
    text = str(text)

    if "<" in text:
        text = _SCRIPT_STYLE_RE.sub("", text)
        text = _TAG_RE.sub("", text)
        text = text.replace("<", "&lt;")
    text = _WHITESPACE_RE.sub(" ", text)

    # Removing one octet can expose another ("%%4141"), so repeat until stable.
    while True:
        stripped = _OCTET_RE.sub("", text)
        if stripped == text:
            break
        text = stripped
    return text.strip()


def _decode_json(raw_body: bytes) -> Any:
    if not raw_body:
        return None
    try:
        return json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        return None


def normalize_request(
    raw_body: bytes,
    form: Optional[Mapping[str, Any]] = None,
    query: Optional[Mapping[str, Any]] = None,
) -> dict:
    body = _decode_json(raw_body)

    if not body:
        for fallback in (form, query):
            if fallback:
                body = fallback
                break

    if not body:
        raise MalformedRequest("Callback carried no data in body, form or query")
    if not isinstance(body, Mapping):
        raise MalformedRequest(f"Callback data is a {type(body).__name__}, not a mapping")

    payload = dict(body)
    for field in NUMERIC_FIELDS:
        if field in payload:
            payload[field] = canonical_number(payload[field])
    for field in TEXT_FIELDS:
        if field in payload:
            payload[field] = sanitize_text(payload[field])
    return payload
