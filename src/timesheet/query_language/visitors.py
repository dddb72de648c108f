"""Visitor dispatch, traversal and transformation over AST nodes."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import fields, replace

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


class NodeVisitor[T]:
    """Dispatch nodes to per-kind `visit_*` methods.

    Every `visit_*` method falls back to `generic_visit`, which returns
    `neutral`. Unknown node kinds go straight to `generic_visit`, so
    subclasses only override the kinds they care about.
    """

    neutral: T

    def visit(self, node: object) -> T:  # noqa: C901, PLR0911, PLR0912
        """Visit one node."""
        match node:
            case Query():
                return self.visit_query(node)
            case Literal():
                return self.visit_literal(node)
            case Identifier():
                return self.visit_identifier(node)
            case BinaryExpression():
                return self.visit_binary_expression(node)
            case CalculatedField():
                return self.visit_calculated_field(node)
            case AggregationFunction():
                return self.visit_aggregation_function(node)
            case InExpression():
                return self.visit_in_expression(node)
            case NotInExpression():
                return self.visit_not_in_expression(node)
            case LikeExpression():
                return self.visit_like_expression(node)
            case IsNullExpression():
                return self.visit_is_null_expression(node)
            case ListExpression():
                return self.visit_list(node)
            case DateRange():
                return self.visit_date_range(node)
            case EnhancedField():
                return self.visit_enhanced_field(node)
            case OrderField():
                return self.visit_order_field(node)
            case WhereClause():
                return self.visit_where_clause(node)
            case ShowClause():
                return self.visit_show_clause(node)
            case ViewClause():
                return self.visit_view_clause(node)
            case ChartClause():
                return self.visit_chart_clause(node)
            case PeriodClause():
                return self.visit_period_clause(node)
            case SizeClause():
                return self.visit_size_clause(node)
            case OrderByClause():
                return self.visit_order_by_clause(node)
            case GroupByClause():
                return self.visit_group_by_clause(node)
            case HavingClause():
                return self.visit_having_clause(node)
            case LimitClause():
                return self.visit_limit_clause(node)
            case ExtensionClause():
                return self.visit_extension_clause(node)
            case _:
                return self.generic_visit(node)

    def generic_visit(self, node: object) -> T:
        """Return the neutral result for nodes without a dedicated method."""
        del node
        return self.neutral

    def visit_query(self, node: Query) -> T:
        return self.generic_visit(node)

    def visit_literal(self, node: Literal) -> T:
        return self.generic_visit(node)

    def visit_identifier(self, node: Identifier) -> T:
        return self.generic_visit(node)

    def visit_binary_expression(self, node: BinaryExpression) -> T:
        return self.generic_visit(node)

    def visit_calculated_field(self, node: CalculatedField) -> T:
        return self.generic_visit(node)

    def visit_aggregation_function(self, node: AggregationFunction) -> T:
        return self.generic_visit(node)

    def visit_in_expression(self, node: InExpression) -> T:
        return self.generic_visit(node)

    def visit_not_in_expression(self, node: NotInExpression) -> T:
        return self.generic_visit(node)

    def visit_like_expression(self, node: LikeExpression) -> T:
        return self.generic_visit(node)

    def visit_is_null_expression(self, node: IsNullExpression) -> T:
        return self.generic_visit(node)

    def visit_list(self, node: ListExpression) -> T:
        return self.generic_visit(node)

    def visit_date_range(self, node: DateRange) -> T:
        return self.generic_visit(node)

    def visit_enhanced_field(self, node: EnhancedField) -> T:
        return self.generic_visit(node)

    def visit_order_field(self, node: OrderField) -> T:
        return self.generic_visit(node)

    def visit_where_clause(self, node: WhereClause) -> T:
        return self.generic_visit(node)

    def visit_show_clause(self, node: ShowClause) -> T:
        return self.generic_visit(node)

    def visit_view_clause(self, node: ViewClause) -> T:
        return self.generic_visit(node)

    def visit_chart_clause(self, node: ChartClause) -> T:
        return self.generic_visit(node)

    def visit_period_clause(self, node: PeriodClause) -> T:
        return self.generic_visit(node)

    def visit_size_clause(self, node: SizeClause) -> T:
        return self.generic_visit(node)

    def visit_order_by_clause(self, node: OrderByClause) -> T:
        return self.generic_visit(node)

    def visit_group_by_clause(self, node: GroupByClause) -> T:
        return self.generic_visit(node)

    def visit_having_clause(self, node: HavingClause) -> T:
        return self.generic_visit(node)

    def visit_limit_clause(self, node: LimitClause) -> T:
        return self.generic_visit(node)

    def visit_extension_clause(self, node: ExtensionClause) -> T:
        return self.generic_visit(node)


def child_nodes(node: object) -> tuple[Node, ...]:
    """Return direct child nodes in field order."""
    if not isinstance(node, Node):
        return ()
    children: list[Node] = []
    for item in fields(node):
        value = getattr(node, item.name)
        if isinstance(value, Node):
            children.append(value)
        elif isinstance(value, tuple):
            children.extend(child for child in value if isinstance(child, Node))
    return tuple(children)


def iter_nodes(node: Node) -> Iterator[Node]:
    """Yield the node and all descendants depth-first, pre-order."""
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(child_nodes(current)))


def walk_ast(node: Node, callback: Callable[[Node], None]) -> None:
    """Invoke callback on every node depth-first, pre-order."""
    for current in iter_nodes(node):
        callback(current)


def find_nodes_by_type(node: Node, node_type: str) -> list[Node]:
    """Return every node whose type discriminator equals node_type."""
    return [current for current in iter_nodes(node) if current.type == node_type]


def find_node(node: Node, predicate: Callable[[Node], bool]) -> Node | None:
    """Return the first node in pre-order matching predicate."""
    for current in iter_nodes(node):
        if predicate(current):
            return current
    return None


def has_node_type(node: Node, node_type: str) -> bool:
    """Return whether any node in the tree has the given type."""
    return find_node(node, lambda current: current.type == node_type) is not None


def transform_ast(node: Node, transform: Callable[[Node], Node]) -> Node:
    """Rebuild the tree bottom-up, applying transform to each rebuilt node."""
    changes: dict[str, object] = {}
    for item in fields(node):
        value = getattr(node, item.name)
        if isinstance(value, Node):
            changes[item.name] = transform_ast(value, transform)
        elif isinstance(value, tuple) and any(isinstance(child, Node) for child in value):
            changes[item.name] = tuple(
                transform_ast(child, transform) if isinstance(child, Node) else child
                for child in value
            )
    rebuilt = replace(node, **changes) if changes else node
    return transform(rebuilt)
