"""
Release filter registry.

Every entry of `FILTERS` turns one raw query-string value into a
`FilterFragment`: a predicate tree plus the entity it applies to
(`None` = the release itself, or one of the joined entities).

Fragments are plain data. `releases/query.py` compiles them to SQL, and
`Predicate.matches()` evaluates them against an in-memory row.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Mapping, Union

from core.errors import ValidationError

TARGET_STYLE = "style"
TARGET_CATEGORY = "category"
TARGET_OFFER = "offer"

UNISEX = "u"

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda left, right: left == right,
    "ne": lambda left, right: left != right,
    "lt": lambda left, right: left < right,
    "lte": lambda left, right: left <= right,
    "gt": lambda left, right: left > right,
    "gte": lambda left, right: left >= right,
}

OPERATORS = frozenset(_COMPARISONS) | {"is_null", "not_null", "contains"}


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unknown operator: {self.op}")

    def matches(self, row: Mapping[str, Any]) -> bool:
        actual = row.get(self.field)
        if self.op == "is_null":
            return actual is None
        if self.op == "not_null":
            return actual is not None
        # SQL semantics: comparing against NULL is never true.
        if actual is None:
            return False
        if self.op == "contains":
            return str(self.value).casefold() in str(actual).casefold()
        return _COMPARISONS[self.op](actual, self.value)


@dataclass(frozen=True)
class AllOf:
    items: tuple["Predicate", ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return all(item.matches(row) for item in self.items)


@dataclass(frozen=True)
class AnyOf:
    items: tuple["Predicate", ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return any(item.matches(row) for item in self.items)


Predicate = Union[Condition, AllOf, AnyOf]


@dataclass(frozen=True)
class FilterFragment:
    predicate: Predicate
    target: str | None = None


FilterBuilder = Callable[[Any], FilterFragment]


def like_escape(text: str) -> str:
    """
    Escape LIKE wildcards so user text is matched literally (ESCAPE '\\').
    """
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def utc_today() -> datetime:
    """
    Midnight of the current UTC date, as an aware datetime.
    """
    today = datetime.now(timezone.utc).date()
    return datetime.combine(today, time.min, tzinfo=timezone.utc)


# -- value parsing --------------------------------------------------------


def _values(key: str, value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValidationError(key, value, "expected at least one value")
        return list(value)
    return [value]


def _float(key: str, value: Any) -> float:
    try:
        number = float(str(value).strip())
    except ValueError as exc:
        raise ValidationError(key, value, "expected a number") from exc
    if not math.isfinite(number):
        raise ValidationError(key, value, "expected a finite number")
    return number


def _int(key: str, value: Any) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValidationError(key, value, "expected an integer") from exc


def _utc_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        raw = str(value).strip()
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValidationError(key, value, "expected an ISO 8601 date") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _equals(key: str, field: str, value: Any, convert: Callable[[str, Any], Any]) -> Predicate:
    values = [convert(key, v) for v in _values(key, value)]
    if len(values) == 1:
        return Condition(field, "eq", values[0])
    return AnyOf(tuple(Condition(field, "eq", v) for v in values))


def _text(key: str, value: Any) -> str:
    return str(value)


# -- filters --------------------------------------------------------------


def brand_id(value: Any) -> FilterFragment:
    return FilterFragment(_equals("brandId", "brand", value, _int), TARGET_STYLE)


def category_id(value: Any) -> FilterFragment:
    return FilterFragment(_equals("categoryId", "id", value, _int), TARGET_CATEGORY)


def status(value: Any) -> FilterFragment:
    return FilterFragment(_equals("status", "status", value, _text), TARGET_OFFER)


def shipping(value: Any) -> FilterFragment:
    return FilterFragment(_equals("shipping", "shipping", value, _text), TARGET_OFFER)


def outdated(value: Any) -> FilterFragment:
    # Released before today (UTC); unscheduled releases never count.
    return FilterFragment(
        AllOf((
            Condition("release_date", "lt", utc_today()),
            Condition("release_date", "not_null"),
        ))
    )


def coming(value: Any) -> FilterFragment:
    return FilterFragment(
        AllOf((
            Condition("release_date", "gte", utc_today()),
            Condition("release_date", "not_null"),
        ))
    )


def upcoming(value: Any) -> FilterFragment:
    try:
        scheduled_only = int(str(value).strip()) == 0
    except ValueError:
        scheduled_only = False
    if scheduled_only:
        return FilterFragment(Condition("release_date", "not_null"))
    return FilterFragment(Condition("release_date", "is_null"))


def _price_bound(key: str, field: str, op: str) -> FilterBuilder:
    def build(value: Any) -> FilterFragment:
        return FilterFragment(Condition(field, op, _float(key, value)))

    build.__name__ = key
    return build


def from_date(value: Any) -> FilterFragment:
    return FilterFragment(Condition("release_date", "gte", _utc_datetime("fromDate", value)))


def to_date(value: Any) -> FilterFragment:
    return FilterFragment(Condition("release_date", "lte", _utc_datetime("toDate", value)))


def gender(value: Any) -> FilterFragment:
    genders = [str(v) for v in _values("gender", value)] + [UNISEX]
    return FilterFragment(AnyOf(tuple(Condition("gender", "eq", g) for g in genders)))


def color(value: Any) -> FilterFragment:
    colors = [str(v) for v in _values("color", value)]
    return FilterFragment(AnyOf(tuple(Condition("color", "contains", c) for c in colors)))


def _tokens(value: Any) -> list[str]:
    words = str(value if value is not None else "").split()
    if not words:
        raise ValidationError("query", value, "search text is empty")
    return words


def query(value: Any) -> FilterFragment:
    """
    Free-text search: every word must appear in the name, or every word
    must appear in the sku.
    """
    words = _tokens(value)
    return FilterFragment(
        AnyOf((
            AllOf(tuple(Condition("name", "contains", w) for w in words)),
            AllOf(tuple(Condition("sku", "contains", w) for w in words)),
        ))
    )


FILTERS: dict[str, FilterBuilder] = {
    "brandId": brand_id,
    "categoryId": category_id,
    "status": status,
    "shipping": shipping,
    "outdated": outdated,
    "coming": coming,
    "upcoming": upcoming,
    "minPriceEUR": _price_bound("minPriceEUR", "price_eur", "gte"),
    "maxPriceEUR": _price_bound("maxPriceEUR", "price_eur", "lte"),
    "minPriceGBP": _price_bound("minPriceGBP", "price_gbp", "gte"),
    "maxPriceGBP": _price_bound("maxPriceGBP", "price_gbp", "lte"),
    "minPriceUSD": _price_bound("minPriceUSD", "price_usd", "gte"),
    "maxPriceUSD": _price_bound("maxPriceUSD", "price_usd", "lte"),
    "fromDate": from_date,
    "toDate": to_date,
    "gender": gender,
    "color": color,
    "query": query,
}


def active_keys(params: Mapping[str, Any], registry: Mapping[str, FilterBuilder] = FILTERS) -> list[str]:
    """
    Registry keys present in `params`, in registry order.
    """
    return [key for key in registry if key in params]


def build_fragments(
    params: Mapping[str, Any],
    registry: Mapping[str, FilterBuilder] = FILTERS,
) -> list[FilterFragment]:
    return [registry[key](params[key]) for key in active_keys(params, registry)]
