"""AST nodes for the timesheet query language."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


DATA_TYPES = frozenset({"string", "number", "date", "percentage", "relative_date"})
COMPARISON_OPERATORS = ("=", "!=", ">", "<", ">=", "<=")
TEXT_OPERATORS = ("contains", "startsWith", "endsWith")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/")
AGGREGATION_FUNCTIONS = ("sum", "avg", "count", "min", "max")
RELATIVE_DATES = ("today", "yesterday", "last_month")


@dataclass(frozen=True, slots=True)
class Node:
    """Base AST node type."""

    type: ClassVar[str] = "Node"


@dataclass(frozen=True, slots=True)
class Expression(Node):
    """Base expression node type."""


@dataclass(frozen=True, slots=True)
class Clause(Node):
    """Base clause node type."""


@dataclass(frozen=True, slots=True)
class Literal(Expression):
    """Literal value with its declared data type."""

    type: ClassVar[str] = "Literal"

    value: str | int | float | None
    data_type: str = "string"


@dataclass(frozen=True, slots=True)
class Identifier(Expression):
    """Reference to a named field."""

    type: ClassVar[str] = "Identifier"

    name: str


@dataclass(frozen=True, slots=True)
class ListExpression(Expression):
    """Parenthesized list of values."""

    type: ClassVar[str] = "List"

    items: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class DateRange(Expression):
    """Inclusive range between two literals."""

    type: ClassVar[str] = "DateRange"

    start: Literal
    end: Literal


@dataclass(frozen=True, slots=True)
class BinaryExpression(Expression):
    """Comparison of a field against a value."""

    type: ClassVar[str] = "BinaryExpression"

    left: Expression
    operator: str
    right: Expression | tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class CalculatedField(Expression):
    """Arithmetic over fields and numbers."""

    type: ClassVar[str] = "CalculatedField"

    left: Expression
    operator: str
    right: Expression


@dataclass(frozen=True, slots=True)
class AggregationFunction(Expression):
    """Aggregation call such as `sum(hours)`."""

    type: ClassVar[str] = "AggregationFunction"

    function: str
    field: Identifier


@dataclass(frozen=True, slots=True)
class InExpression(Expression):
    """Membership test `field IN (a, b)`."""

    type: ClassVar[str] = "InExpression"

    field: Identifier
    values: ListExpression


@dataclass(frozen=True, slots=True)
class NotInExpression(Expression):
    """Negated membership test `field NOT IN (a, b)`."""

    type: ClassVar[str] = "NotInExpression"

    field: Identifier
    values: ListExpression


@dataclass(frozen=True, slots=True)
class LikeExpression(Expression):
    """Pattern match `field LIKE "Acme%"`."""

    type: ClassVar[str] = "LikeExpression"

    field: Identifier
    pattern: Literal
    negated: bool = False


@dataclass(frozen=True, slots=True)
class IsNullExpression(Expression):
    """Presence test `field IS [NOT] NULL`."""

    type: ClassVar[str] = "IsNullExpression"

    field: Identifier
    is_null: bool = True


@dataclass(frozen=True, slots=True)
class EnhancedField(Node):
    """SHOW field carrying an expression with optional alias and format."""

    type: ClassVar[str] = "EnhancedField"

    expression: Expression
    alias: str | None = None
    format: str | None = None


@dataclass(frozen=True, slots=True)
class OrderField(Node):
    """One ORDER BY item."""

    type: ClassVar[str] = "OrderField"

    field: Identifier
    direction: str = "ASC"


@dataclass(frozen=True, slots=True)
class WhereClause(Clause):
    """Filter conditions.

    `connectors` records the keyword written between consecutive conditions.
    Every connector is combined as AND.
    """

    type: ClassVar[str] = "WhereClause"

    conditions: tuple[Expression, ...]
    connectors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ShowClause(Clause):
    """Fields to display."""

    type: ClassVar[str] = "ShowClause"

    fields: tuple[Identifier | EnhancedField, ...]


@dataclass(frozen=True, slots=True)
class ViewClause(Clause):
    """Report view selection."""

    type: ClassVar[str] = "ViewClause"

    view: str


@dataclass(frozen=True, slots=True)
class ChartClause(Clause):
    """Chart kind selection."""

    type: ClassVar[str] = "ChartClause"

    chart: str


@dataclass(frozen=True, slots=True)
class PeriodClause(Clause):
    """Reporting period selection."""

    type: ClassVar[str] = "PeriodClause"

    period: str


@dataclass(frozen=True, slots=True)
class SizeClause(Clause):
    """Output size selection."""

    type: ClassVar[str] = "SizeClause"

    size: str


@dataclass(frozen=True, slots=True)
class OrderByClause(Clause):
    """Ordering of report rows."""

    type: ClassVar[str] = "OrderByClause"

    fields: tuple[OrderField, ...]


@dataclass(frozen=True, slots=True)
class GroupByClause(Clause):
    """Grouping of entries into report groups."""

    type: ClassVar[str] = "GroupByClause"

    fields: tuple[Identifier, ...]


@dataclass(frozen=True, slots=True)
class HavingClause(Clause):
    """Conditions over group aggregates."""

    type: ClassVar[str] = "HavingClause"

    conditions: tuple[Expression, ...]
    connectors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LimitClause(Clause):
    """Row limit with optional offset."""

    type: ClassVar[str] = "LimitClause"

    limit: int
    offset: int | None = None


@dataclass(frozen=True, slots=True)
class ExtensionClause(Clause):
    """Clause resolved through the clause handler registry.

    `kind` is the clause kind (for example `ServiceClause`) and doubles as
    the node type.
    """

    kind: str
    keyword: str
    arguments: tuple[Expression, ...] = ()

    @property
    def type(self) -> str:  # type: ignore[override]
        return self.kind


@dataclass(frozen=True, slots=True)
class Query(Node):
    """Root node holding clauses in source order."""

    type: ClassVar[str] = "Query"

    clauses: tuple[Clause, ...]


type Condition = (
    BinaryExpression | InExpression | NotInExpression | LikeExpression | IsNullExpression
)
type ShowField = Identifier | EnhancedField


def node_type(node: object) -> str | None:
    """Return the type discriminator of a node, or None if it has none."""
    value = getattr(node, "type", None)
    if isinstance(value, str) and value:
        return value
    return None
