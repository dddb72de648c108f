"""JSON-compatible encoding of AST nodes."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import MISSING, fields

from timesheet.query_language.ast import (
    AggregationFunction,
    BinaryExpression,
    CalculatedField,
    ChartClause,
    DateRange,
    EnhancedField,
    ExtensionClause,
    GroupByClause,
    HavingClause,
    Identifier,
    InExpression,
    IsNullExpression,
    LikeExpression,
    LimitClause,
    ListExpression,
    Literal,
    Node,
    NotInExpression,
    OrderByClause,
    OrderField,
    PeriodClause,
    Query,
    ShowClause,
    SizeClause,
    ViewClause,
    WhereClause,
)
from timesheet.query_language.errors import QueryDecodeError


NODE_CLASSES: dict[str, type[Node]] = {
    cls.type: cls
    for cls in (
        Literal,
        Identifier,
        ListExpression,
        DateRange,
        BinaryExpression,
        CalculatedField,
        AggregationFunction,
        InExpression,
        NotInExpression,
        LikeExpression,
        IsNullExpression,
        EnhancedField,
        OrderField,
        WhereClause,
        ShowClause,
        ViewClause,
        ChartClause,
        PeriodClause,
        SizeClause,
        OrderByClause,
        GroupByClause,
        HavingClause,
        LimitClause,
        Query,
    )
}


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _encode_value(value: object) -> object:
    if isinstance(value, Node):
        return node_to_dict(value)
    if isinstance(value, tuple):
        return [_encode_value(item) for item in value]
    return value


def node_to_dict(node: Node) -> dict[str, object]:
    """Encode node as a dict with a `type` discriminator and camelCase keys."""
    payload: dict[str, object] = {"type": node.type}
    for item in fields(node):
        payload[_camel_case(item.name)] = _encode_value(getattr(node, item.name))
    return payload


def _decode_value(value: object) -> object:
    if isinstance(value, Mapping):
        return node_from_dict(value)
    if isinstance(value, list | tuple):
        return tuple(_decode_value(item) for item in value)
    return value


def node_from_dict(payload: Mapping[str, object]) -> Node:
    """Decode a dict produced by `node_to_dict`.

    Unknown `*Clause` types carrying a `keyword` decode to ExtensionClause.

    Raises:
        QueryDecodeError: If the payload has no type or misses a field
    """
    node_type = payload.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise QueryDecodeError("Node is missing type")

    cls = NODE_CLASSES.get(node_type)
    if cls is None:
        if node_type.endswith("Clause") and isinstance(payload.get("keyword"), str):
            arguments = _decode_value(payload.get("arguments", []))
            return ExtensionClause(
                kind=node_type,
                keyword=str(payload["keyword"]),
                arguments=arguments if isinstance(arguments, tuple) else (),
            )
        raise QueryDecodeError(f"Unknown node type '{node_type}'")

    values: dict[str, object] = {}
    for item in fields(cls):
        key = _camel_case(item.name)
        if key in payload:
            values[item.name] = _decode_value(payload[key])
        elif item.name in payload:
            values[item.name] = _decode_value(payload[item.name])
        elif item.default is MISSING:
            raise QueryDecodeError(f"{node_type} node missing '{key}'")
    return cls(**values)
