"""
Release query composition.

`compose()` turns a flat mapping of query-string filters into a
`ReleaseQuery` (filter fragments grouped by entity + eager-load list).
`compile_select()` / `compile_count()` translate that value into one
parameterised Postgres statement for asyncpg.

Joins:
- style and category are many-to-one, so they are plain LEFT JOINs,
- offers and images are one-to-many and are only ever reached through
  sub-selects (json_agg / EXISTS), so a release is never returned twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from .filters import (
    TARGET_CATEGORY,
    TARGET_OFFER,
    TARGET_STYLE,
    AllOf,
    AnyOf,
    Condition,
    FilterBuilder,
    FILTERS,
    FilterFragment,
    Predicate,
    active_keys,
    build_fragments,
    like_escape,
)

logger = logging.getLogger(__name__)

RELEASE_ALIAS = "r"

# target entity -> table alias used in the compiled statement
TARGET_ALIASES: dict[str | None, str] = {
    None: RELEASE_ALIAS,
    TARGET_STYLE: "s",
    TARGET_CATEGORY: "c",
    TARGET_OFFER: "o",
}

_SQL_OPERATORS = {
    "eq": "=",
    "ne": "<>",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


@dataclass(frozen=True)
class EagerLoad:
    """
    One association fetched together with the release.

    `attributes=None` means every column of the table.
    """

    name: str
    table: str
    alias: str
    join_on: str
    many: bool = False
    attributes: tuple[str, ...] | None = None
    includes: tuple["EagerLoad", ...] = ()


CATEGORY_LOAD = EagerLoad(
    name="category_detail",
    table="categories",
    alias="c",
    join_on="c.id = s.category",
)

STYLE_LOAD = EagerLoad(
    name="style",
    table="styles",
    alias="s",
    join_on="s.id = r.style_id",
    attributes=("id", "brand", "category"),
    includes=(CATEGORY_LOAD,),
)

RELEASE_INCLUDES: tuple[EagerLoad, ...] = (
    EagerLoad(
        name="images",
        table="release_images",
        alias="i",
        join_on="i.release_id = r.id",
        many=True,
    ),
    STYLE_LOAD,
    EagerLoad(
        name="offers",
        table="offers",
        alias="o",
        join_on="o.release_id = r.id",
        many=True,
        attributes=("status", "raffle", "shipping"),
    ),
)

# Always joined so style/category filters work with or without eager loading.
_BASE_JOINS = tuple(
    f"LEFT JOIN {load.table} {load.alias} ON {load.join_on}" for load in (STYLE_LOAD, CATEGORY_LOAD)
)


@dataclass(frozen=True)
class ReleaseQuery:
    fragments: tuple[FilterFragment, ...] = ()
    includes: tuple[EagerLoad, ...] = RELEASE_INCLUDES
    distinct: bool = True

    def for_target(self, target: str | None) -> list[Predicate]:
        return [f.predicate for f in self.fragments if f.target == target]

    def narrow(self, *fragments: FilterFragment) -> "ReleaseQuery":
        return replace(self, fragments=self.fragments + tuple(fragments))

    def matches(self, release: Mapping[str, Any]) -> bool:
        """
        Evaluate the filters against an in-memory release row.

        Joined entities are read from the row's nested values:
        `style`, `style["category_detail"]` and the `offers` list.
        """
        style = release.get("style") or {}
        category = style.get("category_detail") or {}
        if not all(p.matches(release) for p in self.for_target(None)):
            return False
        if not all(p.matches(style) for p in self.for_target(TARGET_STYLE)):
            return False
        if not all(p.matches(category) for p in self.for_target(TARGET_CATEGORY)):
            return False
        offer_predicates = self.for_target(TARGET_OFFER)
        if offer_predicates:
            return any(
                all(p.matches(offer) for p in offer_predicates)
                for offer in release.get("offers") or []
            )
        return True


def compose(
    params: Mapping[str, Any],
    registry: Mapping[str, FilterBuilder] = FILTERS,
) -> ReleaseQuery:
    """
    Build the query for every registry key present in `params`.

    Unknown keys are ignored. A malformed value raises
    `core.errors.ValidationError` before anything reaches the database.
    """
    fragments = build_fragments(params, registry)
    logger.debug(
        "release_query_composed filters=%s",
        ",".join(active_keys(params, registry)) or "-",
    )
    return ReleaseQuery(fragments=tuple(fragments))


@dataclass
class _Params:
    """
    Collects positional arguments and hands out $n placeholders.
    """

    args: list[Any] = field(default_factory=list)

    def add(self, value: Any) -> str:
        self.args.append(value)
        return f"${len(self.args)}"


def _compile_predicate(predicate: Predicate, alias: str, params: _Params) -> str:
    if isinstance(predicate, AllOf):
        return "(" + " AND ".join(_compile_predicate(p, alias, params) for p in predicate.items) + ")"
    if isinstance(predicate, AnyOf):
        return "(" + " OR ".join(_compile_predicate(p, alias, params) for p in predicate.items) + ")"
    if not isinstance(predicate, Condition):
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    column = f"{alias}.{predicate.field}"
    if predicate.op == "is_null":
        return f"{column} IS NULL"
    if predicate.op == "not_null":
        return f"{column} IS NOT NULL"
    if predicate.op == "contains":
        pattern = params.add("%" + like_escape(str(predicate.value)) + "%")
        return f"{column} ILIKE {pattern} ESCAPE '\\'"
    return f"{column} {_SQL_OPERATORS[predicate.op]} {params.add(predicate.value)}"


def _conjunction(predicates: list[Predicate], alias: str, params: _Params) -> str | None:
    if not predicates:
        return None
    return " AND ".join(_compile_predicate(p, alias, params) for p in predicates)


def _json_object(load: EagerLoad) -> str:
    if load.attributes is None and not load.includes:
        return f"row_to_json({load.alias})"
    if load.attributes is None:
        raise ValueError(f"Nested includes need explicit attributes: {load.name}")
    pairs = [f"'{a}', {load.alias}.{a}" for a in load.attributes]
    for nested in load.includes:
        pairs.append(f"'{nested.name}', {_one_to_one(nested)}")
    return "json_build_object(" + ", ".join(pairs) + ")"


def _one_to_one(load: EagerLoad) -> str:
    return f"CASE WHEN {load.alias}.id IS NULL THEN NULL ELSE {_json_object(load)} END"


def _select_include(load: EagerLoad, extra_where: str | None) -> str:
    if not load.many:
        return f"{_one_to_one(load)} AS {load.name}"
    where = load.join_on
    if extra_where:
        where = f"{where} AND {extra_where}"
    return (
        f"COALESCE((SELECT json_agg({_json_object(load)} ORDER BY {load.alias}.id) "
        f"FROM {load.table} {load.alias} WHERE {where}), '[]'::json) AS {load.name}"
    )


def _where_clause(query: ReleaseQuery, params: _Params) -> tuple[list[str], str | None]:
    clauses: list[str] = []
    for target in (None, TARGET_STYLE, TARGET_CATEGORY):
        sql = _conjunction(query.for_target(target), TARGET_ALIASES[target], params)
        if sql:
            clauses.append(sql)

    # All offer filters must hold on the same offer row.
    offer_sql = _conjunction(query.for_target(TARGET_OFFER), TARGET_ALIASES[TARGET_OFFER], params)
    if offer_sql:
        clauses.append(f"EXISTS (SELECT 1 FROM offers o WHERE o.release_id = r.id AND {offer_sql})")
    return clauses, offer_sql


def compile_select(
    query: ReleaseQuery,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[str, list[Any]]:
    """
    Return `(sql, args)` selecting every matching release with its
    eager-loaded associations. Offers are narrowed by the offer filters.
    """
    params = _Params()
    clauses, offer_sql = _where_clause(query, params)

    columns = [f"{RELEASE_ALIAS}.*"]
    for load in query.includes:
        narrowing = offer_sql if load.alias == TARGET_ALIASES[TARGET_OFFER] else None
        columns.append(_select_include(load, narrowing))

    sql = "SELECT " + ",\n       ".join(columns)
    sql += f"\nFROM releases {RELEASE_ALIAS}\n" + "\n".join(_BASE_JOINS)
    if clauses:
        sql += "\nWHERE " + "\n  AND ".join(clauses)
    sql += f"\nORDER BY {RELEASE_ALIAS}.id"
    if limit is not None:
        sql += f"\nLIMIT {params.add(int(limit))}"
    if offset:
        sql += f"\nOFFSET {params.add(int(offset))}"
    return sql, params.args


def compile_count(query: ReleaseQuery) -> tuple[str, list[Any]]:
    """
    Return `(sql, args)` counting distinct matching releases.
    """
    params = _Params()
    clauses, _ = _where_clause(query, params)
    counted = f"DISTINCT {RELEASE_ALIAS}.id" if query.distinct else "*"
    sql = f"SELECT count({counted}) AS n\nFROM releases {RELEASE_ALIAS}\n"
    sql += "\n".join(_BASE_JOINS)
    if clauses:
        sql += "\nWHERE " + "\n  AND ".join(clauses)
    return sql, params.args
