"""Helper functions module for awsprov.

Small utilities shared by resource handlers: JSON policy normalization and
comparison, and conversion of API timestamps into state-friendly strings.
"""

import json
from contextlib import suppress
from datetime import datetime
from typing import Any, Optional
from urllib.parse import unquote


def decode_policy_document(document: Any) -> str:
    """Return an IAM policy document as a JSON string.

    boto3 already decodes policy documents into dicts for IAM responses; raw
    API payloads are URL-encoded JSON strings. Both shapes are accepted.

    Args:
        document: Policy document as dict or (possibly URL-encoded) string

    Returns:
        JSON string
    """
    if document is None:
        return ""
    if isinstance(document, (dict, list)):
        return json.dumps(document)
    text = str(document)
    if text.startswith("%7B") or text.startswith("%7b"):
        text = unquote(text)
    return text


def normalize_json(text: str) -> str:
    """Return a canonical JSON rendering, or the input if it is not JSON."""
    if not text:
        return ""
    with suppress(TypeError, ValueError):
        return json.dumps(json.loads(text), sort_keys=True, separators=(",", ":"))
    return text


def policies_equivalent(a: Optional[str], b: Optional[str]) -> bool:
    """Check whether two policy documents mean the same thing.

    Whitespace and key order are ignored. A single-element list and its bare
    value are treated as equal for Action/Resource/Principal service entries,
    which IAM freely rewrites.
    """
    if not a or not b:
        return (a or "") == (b or "")
    try:
        left = _canonical_policy(json.loads(a))
        right = _canonical_policy(json.loads(b))
    except (TypeError, ValueError):
        return a == b
    return left == right


def _canonical_policy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _canonical_policy(v) for k, v in value.items()}
    if isinstance(value, list):
        if len(value) == 1:
            return _canonical_policy(value[0])
        items = [_canonical_policy(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    return value


def policy_to_set(configured: str, remote: str) -> str:
    """Keep the configured policy text when it is equivalent to the remote one.

    Avoids perpetual diffs caused by IAM reformatting submitted documents.
    """
    if configured and policies_equivalent(configured, remote):
        return configured
    return normalize_json(remote) if remote else ""


def format_timestamp(value: Any) -> str:
    """Render an API timestamp (datetime or string) as an ISO-8601 string."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
