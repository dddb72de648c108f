"""Statistics, complexity analysis and clause extraction for query ASTs."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, fields
from enum import StrEnum

from timesheet.query_language.ast import (
    BinaryExpression,
    Clause,
    EnhancedField,
    ExtensionClause,
    Identifier,
    InExpression,
    IsNullExpression,
    LikeExpression,
    Node,
    NotInExpression,
    Query,
    ShowClause,
    WhereClause,
)
from timesheet.query_language.visitors import child_nodes, iter_nodes


CONDITION_TYPES = frozenset(
    {"BinaryExpression", "InExpression", "NotInExpression", "LikeExpression", "IsNullExpression"}
)
COMPLEX_NODE_THRESHOLD = 20


class Complexity(StrEnum):
    """Query complexity classification."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


@dataclass(frozen=True, slots=True)
class ASTStatistics:
    """Node counts and derived counts for one tree."""

    total_nodes: int
    nodes_by_type: dict[str, int]
    depth: int
    clause_count: int
    condition_count: int
    field_count: int


@dataclass(frozen=True, slots=True)
class QueryAnalysis:
    """Feature flags and complexity of a query."""

    has_filtering: bool
    has_aggregation: bool
    has_grouping: bool
    has_ordering: bool
    has_formatting: bool
    has_extensions: bool
    fields: tuple[str, ...]
    filters: tuple[str, ...]
    complexity: Complexity
    statistics: ASTStatistics


def _max_depth(node: Node) -> int:
    children = child_nodes(node)
    if not children:
        return 0
    return 1 + max(_max_depth(child) for child in children)


def get_ast_statistics(node: Node) -> ASTStatistics:
    """Count nodes by type and compute tree depth."""
    counts = Counter(current.type for current in iter_nodes(node))
    clause_count = sum(
        count for current_type, count in counts.items() if current_type.endswith("Clause")
    )
    condition_count = sum(counts.get(current_type, 0) for current_type in CONDITION_TYPES)
    return ASTStatistics(
        total_nodes=sum(counts.values()),
        nodes_by_type=dict(counts),
        depth=_max_depth(node),
        clause_count=clause_count,
        condition_count=condition_count,
        field_count=counts.get("Identifier", 0),
    )


def _unique(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def analyze_query(query: Query) -> QueryAnalysis:
    """Classify a query by the features it uses."""
    statistics = get_ast_statistics(query)
    counts = statistics.nodes_by_type
    has_filtering = has_clause(query, "WhereClause")
    has_aggregation = counts.get("AggregationFunction", 0) > 0
    has_grouping = has_clause(query, "GroupByClause")
    has_ordering = has_clause(query, "OrderByClause")
    has_formatting = any(
        isinstance(current, EnhancedField) and current.format is not None
        for current in iter_nodes(query)
    )
    has_extensions = any(isinstance(clause, ExtensionClause) for clause in query.clauses)

    if has_aggregation or has_grouping or has_extensions:
        complexity = Complexity.COMPLEX
    elif has_filtering and (has_ordering or has_formatting):
        complexity = Complexity.MODERATE
    elif statistics.total_nodes > COMPLEX_NODE_THRESHOLD:
        complexity = Complexity.MODERATE
    else:
        complexity = Complexity.SIMPLE

    return QueryAnalysis(
        has_filtering=has_filtering,
        has_aggregation=has_aggregation,
        has_grouping=has_grouping,
        has_ordering=has_ordering,
        has_formatting=has_formatting,
        has_extensions=has_extensions,
        fields=get_referenced_fields(query),
        filters=get_filtered_fields(query),
        complexity=complexity,
        statistics=statistics,
    )


def extract_clause(query: Query, clause_type: str) -> Clause | None:
    """Return the first clause of the given type."""
    for clause in query.clauses:
        if clause.type == clause_type:
            return clause
    return None


def extract_clauses(query: Query, clause_type: str) -> list[Clause]:
    """Return every clause of the given type in source order."""
    return [clause for clause in query.clauses if clause.type == clause_type]


def has_clause(query: Query, clause_type: str) -> bool:
    """Return whether the query contains a clause of the given type."""
    return extract_clause(query, clause_type) is not None


def get_referenced_fields(node: Node) -> tuple[str, ...]:
    """Return unique field names referenced anywhere under node."""
    return _unique(
        [current.name for current in iter_nodes(node) if isinstance(current, Identifier)]
    )


def _condition_field(condition: Node) -> str | None:
    match condition:
        case BinaryExpression(left=Identifier(name=name)):
            return name
        case InExpression(field=field) | NotInExpression(field=field):
            return field.name
        case LikeExpression(field=field) | IsNullExpression(field=field):
            return field.name
    return None


def get_filtered_fields(query: Query) -> tuple[str, ...]:
    """Return field names filtered by WHERE clauses."""
    names: list[str] = []
    for clause in extract_clauses(query, "WhereClause"):
        if not isinstance(clause, WhereClause):
            continue
        for condition in clause.conditions:
            name = _condition_field(condition)
            if name is not None:
                names.append(name)
    return _unique(names)


def get_displayed_fields(query: Query) -> tuple[str, ...]:
    """Return field names referenced by the first SHOW clause."""
    clause = extract_clause(query, "ShowClause")
    if not isinstance(clause, ShowClause):
        return ()
    return get_referenced_fields(clause)


def nodes_equal(left: object, right: object) -> bool:
    """Compare two trees structurally.

    Known node kinds are compared field by field. Objects that are not AST
    nodes fall back to a shallow comparison of their type discriminator.
    """
    if isinstance(left, Node) and isinstance(right, Node):
        if type(left) is not type(right) or left.type != right.type:
            return False
        return all(
            _values_equal(getattr(left, item.name), getattr(right, item.name))
            for item in fields(left)
        )
    if isinstance(left, Node) or isinstance(right, Node):
        return False
    return getattr(left, "type", None) == getattr(right, "type", None)


def _values_equal(left: object, right: object) -> bool:
    if isinstance(left, tuple) and isinstance(right, tuple):
        return len(left) == len(right) and all(
            _values_equal(left_item, right_item)
            for left_item, right_item in zip(left, right, strict=True)
        )
    if isinstance(left, Node) or isinstance(right, Node):
        return nodes_equal(left, right)
    return left == right
