"""
Yanuka - Query Spec and Compiler.

Callers describe reads with the document-store vocabulary:

    QuerySpec(
        where=[("isActive", "==", True), ("orderIndex", ">=", 3)],
        order_by=OrderBy(field="orderIndex", direction="asc"),
        limit=10,
        offset=20,
    )

compile_query() turns that into a store-neutral NativeQuery (physical column
or JSON path, native comparison primitive, sort, range), branching on the
collection's encoding:

- FLAT_COLUMNS: field names go through the NameTranslator.
- JSON_COLUMN: fields keep their logical name verbatim (the blob keeps
  logical naming) and are addressed two ways:
    * ``data->>field`` (text) for strings, booleans and None. ``->>``
      extracts text, so booleans are compared against "true"/"false";
      without that conversion the predicate silently matches zero rows.
    * ``data->field`` (jsonb) for numbers and for ordering, so 10 sorts
      after 9 instead of comparing as the text "10" < "9".

With no order_by, results are sorted by created_at descending so offset
pagination is deterministic. Offset pagination is NOT stable under
concurrent inserts: rows inserted between two page reads shift later pages.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from yanuka.db.collections import (
    CREATED_AT_COLUMN,
    DATA_COLUMN,
    CollectionDescriptor,
)
from yanuka.db.errors import UnsupportedOperator
from yanuka.db.names import NameTranslator, default_translator

logger = logging.getLogger(__name__)

# Page size used when an offset is given without a limit
DEFAULT_PAGE_SIZE = 20


# =============================================================================
# Query Spec Models
# =============================================================================


class Operator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


# Document-store spellings accepted on input
OPERATOR_ALIASES = {
    "==": Operator.EQ,
    "!=": Operator.NEQ,
    ">": Operator.GT,
    ">=": Operator.GTE,
    "<": Operator.LT,
    "<=": Operator.LTE,
}


def parse_operator(op: Any) -> Operator:
    """Resolve an operator spelling, failing loudly on anything unknown."""
    if isinstance(op, Operator):
        return op
    if isinstance(op, str):
        if op in OPERATOR_ALIASES:
            return OPERATOR_ALIASES[op]
        try:
            return Operator(op)
        except ValueError:
            pass
    raise UnsupportedOperator(op)


class WhereClause(BaseModel):
    """A single predicate: field <op> value."""

    model_config = ConfigDict(frozen=True)

    field: str
    op: Operator
    value: Any

    @field_validator("op", mode="before")
    @classmethod
    def _parse_op(cls, value: Any) -> Operator:
        return parse_operator(value)


class OrderBy(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: Literal["asc", "desc"] = "desc"


class QuerySpec(BaseModel):
    """
    Abstract read: predicates (AND-ed), sort, limit, offset.

    An empty where list means no filtering. where accepts (field, op, value)
    tuples; order_by accepts a bare field name (descending).
    """

    model_config = ConfigDict(frozen=True)

    where: list[WhereClause] = Field(default_factory=list)
    order_by: OrderBy | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)

    @field_validator("where", mode="before")
    @classmethod
    def _coerce_where(cls, value: Any) -> Any:
        if value is None:
            return []
        return [coerce_where(item) for item in value]

    @field_validator("order_by", mode="before")
    @classmethod
    def _coerce_order_by(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"field": value}
        if isinstance(value, (tuple, list)):
            return {"field": value[0], "direction": value[1]}
        return value

    @classmethod
    def coerce(cls, spec: "QuerySpec | dict | None") -> "QuerySpec":
        if spec is None:
            return cls()
        if isinstance(spec, QuerySpec):
            return spec
        return cls.model_validate(spec)


def coerce_where(item: Any) -> Any:
    if isinstance(item, (tuple, list)):
        field_name, op, value = item
        return WhereClause(field=field_name, op=op, value=value)
    return item


# =============================================================================
# Native Query (store-neutral compiled form)
# =============================================================================


@dataclass(frozen=True)
class NativeFilter:
    """column is a physical column or a JSON path (``data->>title``, ``data->orderIndex``)."""

    column: str
    op: Operator
    value: Any


@dataclass(frozen=True)
class NativeOrder:
    column: str
    descending: bool = True


@dataclass(frozen=True)
class NativeQuery:
    filters: list[NativeFilter] = field(default_factory=list)
    order: NativeOrder | None = None
    limit: int | None = None
    offset: int | None = None


# =============================================================================
# Compiler
# =============================================================================


def physical_path(
    descriptor: CollectionDescriptor,
    field_name: str,
    translator: NameTranslator = default_translator,
    as_json: bool = False,
) -> str:
    """
    Physical column (flat) or JSON path (blob) addressing a logical field.

    Blob fields use the text path unless as_json asks for the jsonb path.
    """
    if descriptor.is_json:
        outside = descriptor.outside_columns(translator)
        if field_name in outside:
            return outside[field_name]
        return jsonb_path(field_name) if as_json else json_path(field_name)
    return translator.to_physical(field_name)


def json_path(field_name: str) -> str:
    return f"{DATA_COLUMN}->>{field_name}"


def jsonb_path(field_name: str) -> str:
    return f"{DATA_COLUMN}->{field_name}"


def is_json_path(column: str) -> bool:
    """True for both the text (->>) and the jsonb (->) path."""
    return column.startswith(f"{DATA_COLUMN}->")


def is_text_path(column: str) -> bool:
    return column.startswith(f"{DATA_COLUMN}->>")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def json_text(value: Any) -> Any:
    """Booleans as ``->>`` renders them; everything else unchanged."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def compile_filters(
    descriptor: CollectionDescriptor,
    where: list[WhereClause | tuple],
    translator: NameTranslator = default_translator,
) -> list[NativeFilter]:
    filters = []
    for clause in where:
        clause = coerce_where(clause)
        op = parse_operator(clause.op)
        column = physical_path(descriptor, clause.field, translator, as_json=_is_number(clause.value))
        value = json_text(clause.value) if is_text_path(column) else clause.value
        filters.append(NativeFilter(column=column, op=op, value=value))
    return filters


def compile_query(
    descriptor: CollectionDescriptor,
    spec: QuerySpec | dict | None = None,
    translator: NameTranslator = default_translator,
) -> NativeQuery:
    spec = QuerySpec.coerce(spec)
    filters = compile_filters(descriptor, spec.where, translator)

    if spec.order_by:
        order = NativeOrder(
            column=physical_path(descriptor, spec.order_by.field, translator, as_json=True),
            descending=spec.order_by.direction == "desc",
        )
    else:
        order = NativeOrder(column=CREATED_AT_COLUMN, descending=True)

    limit = spec.limit
    if spec.offset is not None and limit is None:
        limit = DEFAULT_PAGE_SIZE

    query = NativeQuery(filters=filters, order=order, limit=limit, offset=spec.offset)
    logger.debug(f"Compiled {descriptor.logical_name} ({descriptor.encoding.value}): {query}")
    return query
