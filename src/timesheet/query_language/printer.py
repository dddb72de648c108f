"""Render query ASTs as diagnostic trees and as query text."""

from __future__ import annotations

import re

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
from timesheet.query_language.tokens import KEYWORDS
from timesheet.query_language.visitors import NodeVisitor, child_nodes


_BARE_WORD = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _node_label(node: Node) -> str:
    match node:
        case Literal(value=value, data_type=data_type):
            return f"Literal: {value} ({data_type})"
        case Identifier(name=name):
            return f"Identifier: {name}"
        case BinaryExpression(operator=operator) | CalculatedField(operator=operator):
            return f"{node.type} [{operator}]"
        case AggregationFunction(function=function):
            return f"AggregationFunction: {function}"
        case ViewClause(view=value) | ChartClause(chart=value):
            return f"{node.type}: {value}"
        case PeriodClause(period=value) | SizeClause(size=value):
            return f"{node.type}: {value}"
        case OrderField(direction=direction):
            return f"OrderField [{direction}]"
        case LimitClause(limit=limit, offset=offset):
            return f"LimitClause: {limit}" + (f" offset {offset}" if offset is not None else "")
        case ExtensionClause(keyword=keyword):
            return f"{node.type} ({keyword})"
    return node.type


def print_ast(node: Node, indent: int = 0) -> str:
    """Return an indented, human-readable tree of node and its children."""
    lines = [f"{'  ' * indent}{_node_label(node)}"]
    for child in child_nodes(node):
        lines.append(print_ast(child, indent + 1).rstrip("\n"))
    return "\n".join(lines) + "\n"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _word(value: str) -> str:
    """Render a clause value bare when it re-tokenizes as a plain word."""
    upper = value.upper()
    if _BARE_WORD.match(value) and (upper not in KEYWORDS or upper == "CHART"):
        return value
    return _quote(value)


class QueryFormatter(NodeVisitor[str]):
    """Format nodes back into query language text."""

    neutral = ""

    def visit_query(self, node: Query) -> str:
        return "\n".join(self.visit(clause) for clause in node.clauses)

    def visit_literal(self, node: Literal) -> str:
        match node.data_type:
            case "number":
                return str(node.value)
            case "percentage":
                return f"{node.value}%"
            case "relative_date":
                return str(node.value)
        return _quote(str(node.value))

    def visit_identifier(self, node: Identifier) -> str:
        return node.name

    def visit_binary_expression(self, node: BinaryExpression) -> str:
        left = self.visit(node.left)
        if isinstance(node.right, DateRange):
            return f"{left} BETWEEN {self.visit(node.right)}"
        if isinstance(node.right, tuple):
            items = ", ".join(self.visit(item) for item in node.right)
            return f"{left} IN ({items})"
        return f"{left} {node.operator} {self.visit(node.right)}"

    def _operand(self, node: Node) -> str:
        text = self.visit(node)
        return f"({text})" if isinstance(node, CalculatedField) else text

    def visit_calculated_field(self, node: CalculatedField) -> str:
        return f"{self._operand(node.left)} {node.operator} {self._operand(node.right)}"

    def visit_aggregation_function(self, node: AggregationFunction) -> str:
        return f"{node.function}({self.visit(node.field)})"

    def visit_in_expression(self, node: InExpression) -> str:
        return f"{self.visit(node.field)} IN {self.visit(node.values)}"

    def visit_not_in_expression(self, node: NotInExpression) -> str:
        return f"{self.visit(node.field)} NOT IN {self.visit(node.values)}"

    def visit_like_expression(self, node: LikeExpression) -> str:
        keyword = "NOT LIKE" if node.negated else "LIKE"
        return f"{self.visit(node.field)} {keyword} {self.visit(node.pattern)}"

    def visit_is_null_expression(self, node: IsNullExpression) -> str:
        keyword = "IS NULL" if node.is_null else "IS NOT NULL"
        return f"{self.visit(node.field)} {keyword}"

    def visit_list(self, node: ListExpression) -> str:
        return "(" + ", ".join(self.visit(item) for item in node.items) + ")"

    def visit_date_range(self, node: DateRange) -> str:
        return f"{self.visit(node.start)} AND {self.visit(node.end)}"

    def visit_enhanced_field(self, node: EnhancedField) -> str:
        text = self.visit(node.expression)
        if node.alias is not None:
            text += f" AS {_quote(node.alias)}"
        if node.format is not None:
            text += f" FORMAT {_word(node.format)}"
        return text

    def visit_order_field(self, node: OrderField) -> str:
        return f"{self.visit(node.field)} {node.direction}"

    def _conditions(self, conditions: tuple[Node, ...], connectors: tuple[str, ...]) -> str:
        parts: list[str] = []
        for index, condition in enumerate(conditions):
            if index > 0:
                connector = connectors[index - 1] if index - 1 < len(connectors) else "AND"
                parts.append(connector)
            parts.append(self.visit(condition))
        return " ".join(parts)

    def visit_where_clause(self, node: WhereClause) -> str:
        return f"WHERE {self._conditions(node.conditions, node.connectors)}"

    def visit_show_clause(self, node: ShowClause) -> str:
        return "SHOW " + ", ".join(self.visit(field) for field in node.fields)

    def visit_view_clause(self, node: ViewClause) -> str:
        return f"VIEW {_word(node.view)}"

    def visit_chart_clause(self, node: ChartClause) -> str:
        return f"CHART {_word(node.chart)}"

    def visit_period_clause(self, node: PeriodClause) -> str:
        return f"PERIOD {_word(node.period)}"

    def visit_size_clause(self, node: SizeClause) -> str:
        return f"SIZE {_word(node.size)}"

    def visit_order_by_clause(self, node: OrderByClause) -> str:
        return "ORDER BY " + ", ".join(self.visit(field) for field in node.fields)

    def visit_group_by_clause(self, node: GroupByClause) -> str:
        return "GROUP BY " + ", ".join(self.visit(field) for field in node.fields)

    def visit_having_clause(self, node: HavingClause) -> str:
        return f"HAVING {self._conditions(node.conditions, node.connectors)}"

    def visit_limit_clause(self, node: LimitClause) -> str:
        text = f"LIMIT {node.limit}"
        if node.offset is not None:
            text += f" OFFSET {node.offset}"
        return text

    def visit_extension_clause(self, node: ExtensionClause) -> str:
        parts = [node.keyword.upper(), *(self.visit(argument) for argument in node.arguments)]
        return " ".join(parts)


def format_query(node: Node) -> str:
    """Render a node as query language text that parses back to an equal tree."""
    return QueryFormatter().visit(node)
