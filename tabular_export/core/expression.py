"""
Parser for textual query expressions.

The accepted grammar is a small subset of SQL, keywords being case-insensitive:

    SELECT <columns | *> FROM <table>
        [WHERE <condition>]
        [ORDER BY <column> [ASC | DESC], ...]

Columns may be renamed with `AS`. Conditions combine comparisons
(=, !=, <>, <, <=, >, >=), [NOT] IN (...), IS [NOT] NULL and [NOT] (I)LIKE
with AND, OR and parentheses. The text is only ever tokenized and parsed into
a QueryRequest, it is never evaluated.
"""

import re
from decimal import Decimal
from typing import Any, NamedTuple

from .models import AllOf, AnyOf, Condition, Field, Filter, Order, QueryRequest

TOKEN_PATTERN = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
    |(?P<string>'(?:[^']|'')*')
    |(?P<quoted>"(?:[^"]|"")+")
    |(?P<op><=|>=|<>|!=|=|<|>)
    |(?P<punct>[(),*])
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)
    """,
    re.VERBOSE,
)

COMPARISONS = {
    "=": "exact",
    "!=": "differs",
    "<>": "differs",
    "<": "strictly_less",
    "<=": "less",
    ">": "strictly_greater",
    ">=": "greater",
}

KEYWORDS = [
    "select", "from", "where", "order", "by", "as", "and", "or", "not",
    "in", "is", "null", "like", "ilike", "asc", "desc", "true", "false",
]  # fmt: skip


class Token(NamedTuple):
    kind: str
    text: str
    position: int


def tokenize(expression: str) -> list[Token]:
    tokens = []
    position = 0
    while position < len(expression):
        match = TOKEN_PATTERN.match(expression, position)
        if not match:
            raise ValueError(
                f"unexpected character {expression[position]!r} at position {position}"
            )
        if match.lastgroup != "space":
            tokens.append(Token(match.lastgroup, match.group(), position))
        position = match.end()
    return tokens


class ExpressionParser:
    """Recursive descent parser turning an expression into a QueryRequest."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    def parse(self) -> QueryRequest:
        self.expect_keyword("select")
        fields = self.parse_columns()
        self.expect_keyword("from")
        entity = self.next("name")
        if entity.text.lower() in KEYWORDS:
            raise self.error("a table name", entity)
        request = QueryRequest(entity=entity.text, fields=fields)
        if self.accept_keyword("where"):
            condition = self.parse_condition()
            request.filters = condition.conditions if isinstance(condition, AllOf) else [condition]
        if self.accept_keyword("order"):
            self.expect_keyword("by")
            request.order = self.parse_order()
        if self.peek() is not None:
            raise self.error("the end of the expression", self.peek())
        return request

    def parse_columns(self) -> list[Field]:
        if self.accept("punct", "*"):
            return []
        fields = []
        while True:
            column = self.parse_column()
            alias = self.parse_column() if self.accept_keyword("as") else None
            fields.append(Field(column, alias))
            if not self.accept("punct", ","):
                return fields

    def parse_order(self) -> list[Order]:
        order = []
        while True:
            column = self.parse_column()
            descending = False
            if self.accept_keyword("desc"):
                descending = True
            else:
                self.accept_keyword("asc")
            order.append(Order(column, descending))
            if not self.accept("punct", ","):
                return order

    def parse_condition(self) -> Condition:
        conditions = [self.parse_conjunction()]
        while self.accept_keyword("or"):
            conditions.append(self.parse_conjunction())
        return conditions[0] if len(conditions) == 1 else AnyOf(conditions)

    def parse_conjunction(self) -> Condition:
        conditions = [self.parse_predicate()]
        while self.accept_keyword("and"):
            conditions.append(self.parse_predicate())
        return conditions[0] if len(conditions) == 1 else AllOf(conditions)

    def parse_predicate(self) -> Condition:
        if self.accept("punct", "("):
            condition = self.parse_condition()
            self.expect("punct", ")")
            return condition
        column = self.parse_column()
        if self.accept_keyword("is"):
            negated = self.accept_keyword("not")
            self.expect_keyword("null")
            return Filter(column, "isnotnull" if negated else "isnull")
        negated = self.accept_keyword("not")
        if self.accept_keyword("in"):
            self.expect("punct", "(")
            values = [self.parse_literal()]
            while self.accept("punct", ","):
                values.append(self.parse_literal())
            self.expect("punct", ")")
            return Filter(column, "notin" if negated else "in", values)
        for operator in ["like", "ilike"]:
            if self.accept_keyword(operator):
                pattern = self.next("string")
                operator = f"not{operator}" if negated else operator
                return Filter(column, operator, self.unquote(pattern))
        if negated:
            raise self.error("IN, LIKE or ILIKE", self.peek())
        token = self.next("op")
        if self.peek_keyword("null"):
            raise self.error("a value (use IS NULL to compare with NULL)", self.peek())
        return Filter(column, COMPARISONS[token.text], self.parse_literal())

    def parse_column(self) -> str:
        token = self.peek()
        if token is not None and token.kind == "quoted":
            self.index += 1
            return token.text[1:-1].replace('""', '"')
        token = self.next("name")
        if "." in token.text or token.text.lower() in KEYWORDS:
            raise self.error("a column name", token)
        return token.text

    def parse_literal(self) -> Any:
        token = self.peek()
        if token is None:
            raise self.error("a value", token)
        self.index += 1
        if token.kind == "number":
            if any(c in token.text for c in ".eE"):
                return Decimal(token.text)
            return int(token.text)
        if token.kind == "string":
            return self.unquote(token)
        if token.kind == "name" and token.text.lower() in ["true", "false"]:
            return token.text.lower() == "true"
        raise self.error("a value", token)

    @staticmethod
    def unquote(token: Token) -> str:
        return token.text[1:-1].replace("''", "'")

    def peek(self) -> Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def peek_keyword(self, keyword: str) -> bool:
        token = self.peek()
        return token is not None and token.kind == "name" and token.text.lower() == keyword

    def accept(self, kind: str, text: str) -> bool:
        token = self.peek()
        if token is not None and token.kind == kind and token.text == text:
            self.index += 1
            return True
        return False

    def accept_keyword(self, keyword: str) -> bool:
        if self.peek_keyword(keyword):
            self.index += 1
            return True
        return False

    def expect(self, kind: str, text: str) -> None:
        if not self.accept(kind, text):
            raise self.error(f"'{text}'", self.peek())

    def expect_keyword(self, keyword: str) -> None:
        if not self.accept_keyword(keyword):
            raise self.error(keyword.upper(), self.peek())

    def next(self, kind: str) -> Token:
        token = self.peek()
        if token is None or token.kind != kind:
            raise self.error(f"a {kind}", token)
        self.index += 1
        return token

    def error(self, expected: str, token: Token | None) -> ValueError:
        if token is None:
            return ValueError(f"expected {expected} but the expression ended")
        return ValueError(f"expected {expected} at position {token.position}, got {token.text!r}")


def parse_expression(expression: str) -> QueryRequest:
    return ExpressionParser(expression).parse()
