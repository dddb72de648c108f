"""Parser turning query tokens into an AST."""

from __future__ import annotations

from collections.abc import Generator, Mapping, Sequence
from typing import cast

from parsy import ParseError, Parser, Result, forward_declaration, generate, seq, test_item

from timesheet.query_language.ast import (
    AGGREGATION_FUNCTIONS,
    RELATIVE_DATES,
    TEXT_OPERATORS,
    AggregationFunction,
    BinaryExpression,
    CalculatedField,
    ChartClause,
    DateRange,
    EnhancedField,
    Expression,
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
from timesheet.query_language.clauses import ClauseHandlerRegistry, create_default_registry
from timesheet.query_language.errors import QueryParseError
from timesheet.query_language.tokens import COMPARISON_KINDS, Token, TokenKind, tokenize
from timesheet.query_language.validation import (
    ValidationResult,
    merge_validation_results,
    validate_ast,
)


type ConditionList = tuple[tuple[Expression, ...], tuple[str, ...]]

_KIND_DESCRIPTIONS = {
    TokenKind.NUMBER: "number",
    TokenKind.PERCENT: "percentage",
    TokenKind.STRING: "string",
    TokenKind.DATE: "date",
    TokenKind.IDENTIFIER: "identifier",
    TokenKind.NEWLINE: "end of line",
    TokenKind.EOF: "end of query",
}
_OPERAND_KINDS = frozenset(
    {TokenKind.STRING, TokenKind.DATE, TokenKind.NUMBER, TokenKind.PERCENT, TokenKind.IDENTIFIER}
)
# Keywords that read as plain words inside extension clause arguments.
_ARGUMENT_KEYWORDS = frozenset({TokenKind.AND, TokenKind.BETWEEN})
_TEXT_OPERATOR_NAMES = {operator.lower(): operator for operator in TEXT_OPERATORS}


@Parser
def _skip_newlines(stream: Sequence[Token], index: int) -> Result:
    """Skip newline tokens without recording an expectation."""
    while index < len(stream) and stream[index].kind == TokenKind.NEWLINE:
        index += 1
    return Result.success(index, None)


def _describe_kind(kind: TokenKind) -> str:
    if kind in _KIND_DESCRIPTIONS:
        return _KIND_DESCRIPTIONS[kind]
    if kind.value.isalpha():
        return kind.value
    return f"'{kind.value}'"


def _token(*kinds: TokenKind, description: str | None = None) -> Parser:
    """Match one token of the given kinds, skipping newlines before it."""
    wanted = frozenset(kinds)
    label = description or " or ".join(_describe_kind(kind) for kind in kinds)
    return _skip_newlines >> test_item(lambda token: token.kind in wanted, label)


def _named(names: Sequence[str], description: str) -> Parser:
    """Match an identifier whose lower-case text is one of names."""
    wanted = frozenset(name.lower() for name in names)
    return _skip_newlines >> test_item(
        lambda token: token.kind == TokenKind.IDENTIFIER and token.text.lower() in wanted,
        description,
    )


def _number_value(text: str) -> int | float:
    return float(text) if "." in text else int(text)


def _integer(token: Token) -> int:
    if "." in token.text:
        raise QueryParseError(
            f"Expected a whole number at line {token.line}, column {token.column}, "
            f"got {token.describe()}",
            token,
            ("number",),
        )
    return int(token.text)


def operand_from_token(token: Token) -> Expression:
    """Build the literal or identifier node for a single operand token."""
    match token.kind:
        case TokenKind.STRING:
            return Literal(token.text, "string")
        case TokenKind.DATE:
            return Literal(token.text, "date")
        case TokenKind.NUMBER:
            return Literal(_number_value(token.text), "number")
        case TokenKind.PERCENT:
            return Literal(_number_value(token.text.removesuffix("%")), "percentage")
        case TokenKind.IDENTIFIER if token.text.lower() in RELATIVE_DATES:
            return Literal(token.text.lower(), "relative_date")
    return Identifier(token.text)


def _negative(token: Token) -> Literal:
    return Literal(-_number_value(token.text), "number")


def _build_operand_parser() -> Parser:
    """Build parser for a literal or field operand."""
    negative = _token(TokenKind.MINUS) >> _token(TokenKind.NUMBER).map(_negative)
    return negative | _token(*_OPERAND_KINDS, description="value").map(operand_from_token)


def _build_aggregation_parser(identifier: Parser) -> Parser:
    """Build parser for `fn(field)` aggregation calls."""
    return seq(
        _named(AGGREGATION_FUNCTIONS, "aggregation function"),
        _token(TokenKind.LPAREN) >> identifier << _token(TokenKind.RPAREN),
    ).combine(lambda token, field: AggregationFunction(token.text.lower(), field))


def _chain_left(operand: Parser, operator: Parser) -> Parser:
    """Build left-associative arithmetic chain parser."""

    @generate
    def parser() -> Generator[Parser, object, Expression]:
        current = yield operand
        if not isinstance(current, Expression):
            raise QueryParseError("Invalid arithmetic operand")
        pairs = yield seq(operator, operand).many()
        for token, right in cast(list[tuple[Token, Expression]], pairs):
            current = CalculatedField(current, token.kind.value, right)
        return current

    return parser


def _build_field_expression_parser(identifier: Parser, aggregation: Parser) -> Parser:
    """Build parser for SHOW field arithmetic."""
    expression = forward_declaration()
    number = _token(TokenKind.NUMBER).map(operand_from_token)
    grouped = _token(TokenKind.LPAREN) >> expression << _token(TokenKind.RPAREN)
    factor = aggregation | number | identifier | grouped
    term = _chain_left(factor, _token(TokenKind.STAR, TokenKind.SLASH))
    expression.become(_chain_left(term, _token(TokenKind.PLUS, TokenKind.MINUS)))
    return expression


def _field(left: Expression, operator: Token) -> Identifier:
    if isinstance(left, Identifier):
        return left
    raise QueryParseError(
        f"Expected a field name before {operator.describe()} "
        f"at line {operator.line}, column {operator.column}",
        operator,
        ("identifier",),
    )


def _build_condition_parser(left_operand: Parser, operand: Parser) -> Parser:  # noqa: C901
    """Build parser for one WHERE or HAVING condition."""
    comparison = _token(*COMPARISON_KINDS, description="comparison operator")
    text_operator = _named(TEXT_OPERATORS, "contains, startsWith or endsWith")
    in_keyword = _token(TokenKind.IN)
    like_keyword = _token(TokenKind.LIKE)
    not_keyword = _token(TokenKind.NOT)
    operand_list = (
        _token(TokenKind.LPAREN)
        >> operand.sep_by(_token(TokenKind.COMMA), min=1)
        << _token(TokenKind.RPAREN)
    )

    @generate
    def condition() -> Generator[Parser, object, Expression]:
        left = yield left_operand
        if not isinstance(left, Expression):
            raise QueryParseError("Invalid condition operand")
        result = yield (
            comparison
            | _token(TokenKind.BETWEEN)
            | not_keyword
            | in_keyword
            | like_keyword
            | _token(TokenKind.IS)
            | text_operator
        )
        operator = cast(Token, result)

        negated = operator.kind == TokenKind.NOT
        if negated:
            operator = cast(Token, (yield in_keyword | like_keyword))

        match operator.kind:
            case TokenKind.BETWEEN:
                start = yield operand
                yield _token(TokenKind.AND)
                end = yield operand
                if not isinstance(start, Literal) or not isinstance(end, Literal):
                    raise QueryParseError(
                        f"BETWEEN bounds must be literal values at line {operator.line}, "
                        f"column {operator.column}",
                        operator,
                        ("value",),
                    )
                return BinaryExpression(left, "BETWEEN", DateRange(start, end))
            case TokenKind.IN:
                items = cast(list[Expression], (yield operand_list))
                values = ListExpression(tuple(items))
                field = _field(left, operator)
                return NotInExpression(field, values) if negated else InExpression(field, values)
            case TokenKind.LIKE:
                pattern = cast(Token, (yield _token(TokenKind.STRING)))
                return LikeExpression(
                    _field(left, operator), Literal(pattern.text, "string"), negated
                )
            case TokenKind.IS:
                not_null = yield not_keyword.optional()
                yield _token(TokenKind.NULL)
                return IsNullExpression(_field(left, operator), is_null=not_null is None)
            case TokenKind.IDENTIFIER:
                right = yield operand
                return BinaryExpression(
                    left, _TEXT_OPERATOR_NAMES[operator.text.lower()], cast(Expression, right)
                )
        right = yield operand
        return BinaryExpression(left, operator.kind.value, cast(Expression, right))

    return condition


def _build_condition_list_parser(condition: Parser) -> Parser:
    """Build parser for conditions joined by AND or OR."""
    connector = _token(TokenKind.AND, TokenKind.OR)

    @generate
    def conditions() -> Generator[Parser, object, ConditionList]:
        first = yield condition
        rest = cast(list[tuple[Token, Expression]], (yield seq(connector, condition).many()))
        return (
            (cast(Expression, first), *(item for _connector, item in rest)),
            tuple(token.kind.value for token, _item in rest),
        )

    return conditions


def _build_show_field_parser(field_expression: Parser, word: Parser) -> Parser:
    """Build parser for one SHOW field with optional alias and format."""
    alias_parser = _token(TokenKind.AS) >> _token(
        TokenKind.STRING, TokenKind.IDENTIFIER, description="alias"
    )
    format_parser = _token(TokenKind.FORMAT) >> word

    @generate
    def show_field() -> Generator[Parser, object, Identifier | EnhancedField]:
        expression = yield field_expression
        if not isinstance(expression, Expression):
            raise QueryParseError("Invalid SHOW field")
        alias = cast(Token | None, (yield alias_parser.optional()))
        format_token = cast(Token | None, (yield format_parser.optional()))
        if alias is None and format_token is None and isinstance(expression, Identifier):
            return expression
        return EnhancedField(
            expression,
            alias.text if alias is not None else None,
            format_token.text if format_token is not None else None,
        )

    return show_field


def _build_limit_parser() -> Parser:
    """Build parser for LIMIT n [OFFSET m]."""
    number = _token(TokenKind.NUMBER)

    @generate
    def limit_clause() -> Generator[Parser, object, LimitClause]:
        yield _token(TokenKind.LIMIT)
        limit = _integer(cast(Token, (yield number)))
        offset_token = yield (_token(TokenKind.OFFSET) >> number).optional()
        offset = _integer(cast(Token, offset_token)) if offset_token is not None else None
        return LimitClause(limit, offset)

    return limit_clause


def _argument_from_token(token: Token) -> Expression | None:
    if token.kind in _ARGUMENT_KEYWORDS:
        return Identifier(token.text.lower())
    if token.kind == TokenKind.COMMA:
        return None
    return operand_from_token(token)


def _build_extension_parser(keywords: Mapping[str, str]) -> Parser | None:
    """Build parser for registered extension clauses.

    Arguments run until the end of the line, the end of the query or a
    built-in clause keyword.
    """
    if not keywords:
        return None
    keyword_parser: Parser | None = None
    for name in sorted(keywords):
        current = _skip_newlines >> test_item(
            lambda token, name=name: (
                token.kind == TokenKind.IDENTIFIER and token.text.upper() == name
            ),
            name,
        )
        keyword_parser = current if keyword_parser is None else keyword_parser | current

    argument_kinds = _OPERAND_KINDS | _ARGUMENT_KEYWORDS | {TokenKind.COMMA}
    negative = test_item(lambda token: token.kind == TokenKind.MINUS, "'-'") >> test_item(
        lambda token: token.kind == TokenKind.NUMBER, "number"
    ).map(_negative)
    argument = negative | test_item(
        lambda token: token.kind in argument_kinds, "clause argument"
    ).map(lambda token: _argument_from_token(token) or token)

    @generate
    def extension_clause() -> Generator[Parser, object, ExtensionClause]:
        keyword = cast(Token, (yield keyword_parser))
        arguments: list[Expression] = []
        while True:
            item = yield argument.optional()
            if item is None:
                break
            if isinstance(item, Expression):
                arguments.append(item)
        name = keyword.text.upper()
        return ExtensionClause(keywords[name], name, tuple(arguments))

    return extension_clause


def _make_parser(keywords: Mapping[str, str]) -> Parser:  # noqa: PLR0914
    """Build the query parser for the given extension keywords."""
    identifier = _token(TokenKind.IDENTIFIER).map(lambda token: Identifier(token.text))
    word = _token(TokenKind.IDENTIFIER, TokenKind.STRING, TokenKind.CHART, description="word")
    comma = _token(TokenKind.COMMA)
    operand = _build_operand_parser()
    aggregation = _build_aggregation_parser(identifier)

    where_conditions = _build_condition_list_parser(_build_condition_parser(operand, operand))
    having_conditions = _build_condition_list_parser(
        _build_condition_parser(aggregation | operand, operand)
    )
    show_field = _build_show_field_parser(
        _build_field_expression_parser(identifier, aggregation), word
    )
    order_field = seq(identifier, _token(TokenKind.ASC, TokenKind.DESC).optional()).combine(
        lambda field, direction: OrderField(
            field, direction.kind.value if direction is not None else "ASC"
        )
    )

    where_clause = (_token(TokenKind.WHERE) >> where_conditions).combine(WhereClause)
    show_clause = (_token(TokenKind.SHOW) >> show_field.sep_by(comma, min=1)).map(
        lambda fields: ShowClause(tuple(fields))
    )
    view_clause = (_token(TokenKind.VIEW) >> word).map(lambda token: ViewClause(token.text))
    chart_clause = (_token(TokenKind.CHART) >> word).map(lambda token: ChartClause(token.text))
    period_clause = (_token(TokenKind.PERIOD) >> word).map(
        lambda token: PeriodClause(token.text)
    )
    size_clause = (_token(TokenKind.SIZE) >> word).map(lambda token: SizeClause(token.text))
    order_by_clause = (
        _token(TokenKind.ORDER) >> _token(TokenKind.BY) >> order_field.sep_by(comma, min=1)
    ).map(lambda fields: OrderByClause(tuple(fields)))
    group_by_clause = (
        _token(TokenKind.GROUP) >> _token(TokenKind.BY) >> identifier.sep_by(comma, min=1)
    ).map(lambda fields: GroupByClause(tuple(fields)))
    having_clause = (_token(TokenKind.HAVING) >> having_conditions).combine(HavingClause)

    clause = (
        where_clause
        | show_clause
        | view_clause
        | chart_clause
        | period_clause
        | size_clause
        | order_by_clause
        | group_by_clause
        | having_clause
        | _build_limit_parser()
    )
    extension_clause = _build_extension_parser(keywords)
    if extension_clause is not None:
        clause |= extension_clause

    return (clause.many() << _token(TokenKind.EOF)).map(lambda clauses: Query(tuple(clauses)))


def _lexical_error(tokens: Sequence[Token]) -> QueryParseError | None:
    """Return an error for the first ERROR token, if any."""
    for token in tokens:
        if token.kind != TokenKind.ERROR:
            continue
        position = f"at line {token.line}, column {token.column}"
        if token.text[:1] in ("'", '"'):
            return QueryParseError(f"Unterminated string literal {position}", token)
        return QueryParseError(f"Unexpected character {token.describe()} {position}", token)
    return None


def _syntax_error(tokens: Sequence[Token], exc: ParseError) -> QueryParseError:
    """Build a parse error naming the offending token and what was expected."""
    token = tokens[min(exc.index, len(tokens) - 1)]
    expected = tuple(sorted(exc.expected))
    message = (
        f"Unexpected {token.describe()} at line {token.line}, column {token.column}. "
        f"Expected one of: {', '.join(expected)}"
    )
    return QueryParseError(message, token, expected)


def _with_eof(tokens: Sequence[Token]) -> tuple[Token, ...]:
    if tokens and tokens[-1].kind == TokenKind.EOF:
        return tuple(tokens)
    last = tokens[-1] if tokens else None
    line = last.line if last is not None else 1
    column = last.column + len(last.text) if last is not None else 1
    return (*tokens, Token(TokenKind.EOF, "", line, column))


class QueryParser:
    """Parser for query text or token streams.

    Extension clause keywords come from the registry. Parsers keep no
    cursor state, so one instance can parse any number of queries.
    """

    def __init__(self, registry: ClauseHandlerRegistry | None = None) -> None:
        self.registry = registry if registry is not None else create_default_registry()
        self._parser = _make_parser(self.registry.keywords())

    def parse(self, source: str | Sequence[Token]) -> Query:
        """Parse query text or tokens into a Query.

        Raises:
            QueryParseError: On lexical or grammar errors
        """
        tokens = tokenize(source) if isinstance(source, str) else _with_eof(source)
        lexical_error = _lexical_error(tokens)
        if lexical_error is not None:
            raise lexical_error
        try:
            result = self._parser.parse(tokens)
        except ParseError as exc:
            raise _syntax_error(tokens, exc) from exc
        if isinstance(result, Query):
            return result
        raise QueryParseError("Parser did not produce a query")


def parse_query(
    source: str | Sequence[Token], registry: ClauseHandlerRegistry | None = None
) -> Query:
    """Parse query text or tokens into a Query."""
    return QueryParser(registry).parse(source)


def validate_query(query: Query, registry: ClauseHandlerRegistry) -> ValidationResult:
    """Validate tree structure and every extension clause with its handler."""
    results = [validate_ast(query)]
    results.extend(
        registry.validate(clause) for clause in query.clauses if isinstance(clause, ExtensionClause)
    )
    return merge_validation_results(results)


def get_query_errors(text: str, registry: ClauseHandlerRegistry | None = None) -> list[str]:
    """Return parse or validation errors for query text."""
    parser = QueryParser(registry)
    try:
        query = parser.parse(text)
    except QueryParseError as exc:
        return [exc.message]
    return list(validate_query(query, parser.registry).errors)


def is_valid_query(text: str, registry: ClauseHandlerRegistry | None = None) -> bool:
    """Return whether query text parses and validates without errors."""
    return not get_query_errors(text, registry)
