"""Type-directed parsing of query values and coercion of upstream values.

The read path parses request strings with :func:`parse_query_value`, which
raises ``ValueError`` for input that cannot be read as the field's type. The
write path uses :func:`coerce_field_value`, which never raises and degrades
anything unusable to ``None``.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as dtparse

from .schema import SemanticType

TRUE_LITERALS = frozenset({"true", "1"})
# Leading numeric literal; trailing text such as the "k" in "10k" is ignored.
NUMBER_PREFIX = re.compile(
    r"\s*[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp permissively; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = dtparse.parse(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # The UTC instant falls outside datetime's year range.
        return None


def to_document(value: Any) -> Any:
    """Deep-copy ``value`` into plain JSON types, or None if it is not JSON-able."""
    if value is None:
        return None
    try:
        return json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError):
        return None


def parse_query_value(semantic_type: SemanticType, raw: str) -> Any:
    if semantic_type is SemanticType.NUMBER:
        match = NUMBER_PREFIX.match(raw)
        if match is None:
            raise ValueError(f"Not a number: {raw!r}")
        return float(match.group(0))

    if semantic_type is SemanticType.BOOLEAN:
        return raw in TRUE_LITERALS

    if semantic_type is SemanticType.DATE:
        parsed = parse_timestamp(raw)
        if parsed is None:
            raise ValueError(f"Not a timestamp: {raw!r}")
        return parsed

    if semantic_type is SemanticType.JSON:
        return json.loads(raw)

    return raw


def coerce_field_value(semantic_type: SemanticType, value: Any) -> Any:
    """Convert an upstream JSON value into the column's Python type."""
    if value is None:
        return None

    if semantic_type is SemanticType.DATE:
        return parse_timestamp(value)

    if semantic_type is SemanticType.JSON:
        return to_document(value)

    if semantic_type is SemanticType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes"}:
                return True
            if lowered in {"false", "0", "no"}:
                return False
        return None

    if semantic_type is SemanticType.NUMBER:
        if isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return None
    return str(value)
