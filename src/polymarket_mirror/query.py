"""Translate flat request parameters into typed filter, sort and page specs."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .coercion import parse_query_value
from .schema import EntitySchema, SemanticType, SortDirection

LOGGER = logging.getLogger("polymarket_mirror.query")

RESERVED_KEYS = frozenset({"limit", "offset", "order", "ascending"})
RANGE_SUFFIXES = {"_min": "gte", "_max": "lte"}

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Gte:
    field: str
    value: Any


@dataclass(frozen=True)
class Lte:
    field: str
    value: Any


FilterPredicate = Union[Equals, In, Gte, Lte]


class FilterSpec:
    """Ordered conjunction of predicates.

    Equals and In share one slot per field, so a later match predicate
    replaces an earlier one; Gte and Lte each have their own slot.
    """

    def __init__(self, predicates: Iterable[FilterPredicate] = ()) -> None:
        self._slots: Dict[Tuple[str, str], FilterPredicate] = {}
        for predicate in predicates:
            self.add(predicate)

    @staticmethod
    def _slot(predicate: FilterPredicate) -> Tuple[str, str]:
        if isinstance(predicate, (Equals, In)):
            return (predicate.field, "match")
        if isinstance(predicate, Gte):
            return (predicate.field, "gte")
        return (predicate.field, "lte")

    def add(self, predicate: FilterPredicate) -> None:
        if isinstance(predicate, In) and not predicate.values:
            raise ValueError(f"In predicate for {predicate.field!r} needs values")
        slot = self._slot(predicate)
        self._slots.pop(slot, None)
        self._slots[slot] = predicate

    @property
    def predicates(self) -> Tuple[FilterPredicate, ...]:
        return tuple(self._slots.values())

    def __iter__(self):
        return iter(self._slots.values())

    def __len__(self) -> int:
        return len(self._slots)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterSpec):
            return NotImplemented
        return self._slots == other._slots

    def __repr__(self) -> str:
        return f"FilterSpec({list(self._slots.values())!r})"


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: SortDirection


SortSpec = Tuple[SortKey, ...]


@dataclass(frozen=True)
class PageRequest:
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    def has_more(self, total: int) -> bool:
        return self.offset + self.limit < total


@dataclass(frozen=True)
class TranslatedQuery:
    filters: FilterSpec
    sort: Optional[SortSpec]
    page: PageRequest


def _multi_items(params: Any) -> List[Tuple[str, str]]:
    """Normalise query parameters into an ordered list of ``(key, value)`` pairs."""
    if hasattr(params, "multi_items"):
        return [(str(k), str(v)) for k, v in params.multi_items()]
    if isinstance(params, Mapping):
        items: List[Tuple[str, str]] = []
        for key, value in params.items():
            if isinstance(value, (list, tuple)):
                items.extend((str(key), str(v)) for v in value)
            else:
                items.append((str(key), str(value)))
        return items
    return [(str(k), str(v)) for k, v in params]


def _parse_integer(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _try_parse(semantic_type: SemanticType, raw: str) -> Tuple[bool, Any]:
    try:
        return True, parse_query_value(semantic_type, raw)
    except (ValueError, OverflowError):
        return False, None


def _append_unique(values: List[Any], value: Any) -> None:
    if value not in values:
        values.append(value)


def build_filters(items: List[Tuple[str, str]], schema: EntitySchema) -> FilterSpec:
    filters = FilterSpec()
    values_by_key: Dict[str, List[str]] = {}
    for key, value in items:
        values_by_key.setdefault(key, []).append(value)

    consumed: set[str] = set()
    for key, value in items:
        if key in RESERVED_KEYS or key in consumed:
            continue
        consumed.add(key)

        suffix = key[-4:]
        if suffix in RANGE_SUFFIXES:
            base_field = key[:-4]
            base_type = schema.type_of(base_field)
            if base_type is None:
                continue
            ok, parsed = _try_parse(base_type, value)
            if not ok:
                LOGGER.debug("Ignoring unparseable %s=%r", key, value)
                continue
            if RANGE_SUFFIXES[suffix] == "gte":
                filters.add(Gte(base_field, parsed))
            else:
                filters.add(Lte(base_field, parsed))
            continue

        field_type = schema.type_of(key)
        if field_type is None:
            continue

        all_values = values_by_key[key]
        if len(all_values) > 1 or "," in value:
            parsed_values: List[Any] = []
            for occurrence in all_values:
                for component in occurrence.split(","):
                    ok, parsed = _try_parse(field_type, component.strip())
                    if ok:
                        _append_unique(parsed_values, parsed)
            if parsed_values:
                filters.add(In(key, tuple(parsed_values)))
            continue

        ok, parsed = _try_parse(field_type, value)
        if ok:
            filters.add(Equals(key, parsed))
        else:
            LOGGER.debug("Ignoring unparseable %s=%r", key, value)

    return filters


def build_sort(items: List[Tuple[str, str]], schema: EntitySchema) -> Optional[SortSpec]:
    first: Dict[str, str] = {}
    for key, value in items:
        first.setdefault(key, value)

    order = first.get("order")
    if not order:
        return None

    direction = (
        SortDirection.DESC if first.get("ascending") == "false" else SortDirection.ASC
    )
    keys = []
    for name in order.split(","):
        name = name.strip()
        if schema.type_of(name) is None:
            continue
        keys.append(SortKey(name, direction))
    return tuple(keys)


def build_page(items: List[Tuple[str, str]]) -> PageRequest:
    first: Dict[str, str] = {}
    for key, value in items:
        first.setdefault(key, value)

    limit = _parse_integer(first.get("limit"))
    if limit is None or limit < 0:
        limit = DEFAULT_LIMIT
    offset = _parse_integer(first.get("offset"))
    if offset is None or offset < 0:
        offset = 0
    return PageRequest(limit=min(limit, MAX_LIMIT), offset=offset)


def translate_query(params: Any, schema: EntitySchema) -> TranslatedQuery:
    """Translate request parameters for one entity kind.

    Unknown keys and values that do not parse as the field's type are
    dropped silently; this function does not raise on any string input.
    """
    items = _multi_items(params)
    return TranslatedQuery(
        filters=build_filters(items, schema),
        sort=build_sort(items, schema),
        page=build_page(items),
    )
