"""
Query building logic for the core module.

Compiles a QueryRequest into PostgREST query parameters, and parses back the
serialized form of an already built query (`<entity>?<query string>`),
validating every parameter so that the result can be sent as is.
"""

import re
from decimal import Decimal
from typing import Any
from urllib.parse import unquote_plus

from .models import FILTER_OPERATORS, AllOf, AnyOf, Condition, Filter, QueryRequest, ResolvedQuery

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ENTITY = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
SERIALIZED = re.compile(r"^/?(?P<entity>[^?\s/]+)\?(?P<query>[^\s]*)$")
QUOTED_COLUMN = re.compile(r'^(?P<column>"(?:[^"\\]|\\.)*")(?:\.(?P<rest>.*))?$')
# alias:column::cast, the alias separator is a single colon outside quotes
SELECT_ALIAS = re.compile(r'^(?P<alias>"(?:[^"\\]|\\.)*"|[^:"]+):(?!:)')

# operators PostgREST understands in `column=<op>.<operand>`
PGREST_OPERATORS = [
    "eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "in", "is", "isdistinct",
]  # fmt: skip
# paging is owned by the reader
RESERVED_PARAMS = ["limit", "offset"]
# characters that must be enclosed in double quotes within `in.(...)` and `or=(...)`
NESTED_RESERVED = re.compile(r'[,.:()"\\\s]')


def quote_column(column: str) -> str:
    # handling headers with special characters
    # we're escaping the " because they are the encapsulators of the label
    return '"{}"'.format(column.replace('"', '\\"'))


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def format_operand(value: Any, nested: bool = False) -> str:
    rendered = format_value(value)
    if nested and (rendered == "" or NESTED_RESERVED.search(rendered)):
        rendered = '"{}"'.format(rendered.replace("\\", "\\\\").replace('"', '\\"'))
    return rendered


def filter_operation(_filter: Filter, *, nested: bool = False) -> str:
    """Render the `<op>.<operand>` part of a filter."""
    operator = _filter.operator
    if operator not in FILTER_OPERATORS:
        raise ValueError(f"operator '{operator}' is not supported")
    if operator in ["isnull", "isnotnull"]:
        return f"{'not.' if operator == 'isnotnull' else ''}is.null"
    if _filter.value is None:
        raise ValueError(f"operator '{operator}' on '{_filter.column}' requires a value")
    if operator in ["in", "notin"]:
        values = _filter.value
        if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
            raise ValueError(f"operator '{operator}' on '{_filter.column}' requires a list")
        values = ",".join(format_operand(v, nested=True) for v in values)
        return f"{'not.' if operator == 'notin' else ''}in.({values})"
    value = format_operand(_filter.value, nested=nested)
    if operator == "exact":
        return f"eq.{value}"
    elif operator == "differs":
        return f"neq.{value}"
    elif operator == "less":
        return f"lte.{value}"
    elif operator == "greater":
        return f"gte.{value}"
    elif operator == "strictly_less":
        return f"lt.{value}"
    elif operator == "strictly_greater":
        return f"gt.{value}"
    # pattern operators: `*` is PostgREST's alias for `%`, which would need url-encoding
    pattern = format_value(_filter.value).replace("%", "*")
    if operator in ["contains", "notcontains"]:
        pattern = f"*{pattern}*"
    pattern = format_operand(pattern, nested=nested)
    if operator == "contains":
        return f"ilike.{pattern}"
    elif operator == "notcontains":
        return f"not.ilike.{pattern}"
    elif operator == "like":
        return f"like.{pattern}"
    elif operator == "notlike":
        return f"not.like.{pattern}"
    elif operator == "notilike":
        return f"not.ilike.{pattern}"
    return f"ilike.{pattern}"


def add_filter(_filter: Filter, *, in_operator: bool = False) -> str:
    """Render one filter, as `col=op.val` or, within a logical group, as `col.op.val`."""
    # when encapsulated in an OR statement, the syntax is `col.eq.val` instead of `col=eq.val`
    op = "." if in_operator else "="
    return f"{quote_column(_filter.column)}{op}{filter_operation(_filter, nested=in_operator)}"


def select_column(column: str) -> str:
    return column if IDENTIFIER.match(column) else quote_column(column)


def select_item(column: str, alias: str | None = None) -> str:
    rendered = select_column(column)
    if alias and alias != column:
        alias = alias if IDENTIFIER.match(alias) else quote_column(alias)
        return f"{alias}:{rendered}"
    return rendered


def render_condition(condition: Condition) -> str:
    """Render a condition as it appears within a logical group."""
    if isinstance(condition, Filter):
        return add_filter(condition, in_operator=True)
    if not isinstance(condition, (AnyOf, AllOf)):
        raise ValueError(f"unsupported condition: {condition!r}")
    if not condition.conditions:
        raise ValueError("a logical group can't be empty")
    inner = ",".join(render_condition(c) for c in condition.conditions)
    return f"{'or' if isinstance(condition, AnyOf) else 'and'}({inner})"


def flatten_conditions(conditions: list[Condition]) -> list[Condition]:
    # top level conditions are AND-ed anyway
    flat = []
    for condition in conditions:
        if isinstance(condition, AllOf):
            if not condition.conditions:
                raise ValueError("a logical group can't be empty")
            flat.extend(flatten_conditions(condition.conditions))
        else:
            flat.append(condition)
    return flat


def build_params(request: QueryRequest) -> list[tuple[str, str]]:
    """Build the PostgREST parameters for a structured request."""
    if not ENTITY.match(request.entity or ""):
        raise ValueError(f"'{request.entity}' is not a valid table name")
    params = []
    if request.fields:
        names = [_field.name for _field in request.fields]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"columns selected more than once: {', '.join(duplicates)}")
        select = ",".join(select_item(_field.column, _field.alias) for _field in request.fields)
        params.append(("select", select))
    groups = []
    for condition in flatten_conditions(request.filters):
        if isinstance(condition, Filter):
            params.append((quote_column(condition.column), filter_operation(condition)))
        else:
            groups.append(condition)
    if len(groups) == 1:
        # `or(...)` becomes `or=(...)` at the top level
        params.append(("or", render_condition(groups[0])[2:]))
    elif groups:
        params.append(("and", f"({','.join(render_condition(group) for group in groups)})"))
    if request.order:
        params.append(
            (
                "order",
                ",".join(
                    f"{quote_column(o.column)}.{'desc' if o.descending else 'asc'}"
                    for o in request.order
                ),
            )
        )
    return params


def build_query(request: QueryRequest) -> ResolvedQuery:
    params = build_params(request)
    fields = tuple(_field.name for _field in request.fields) or None
    sources = tuple(select_column(_field.column) for _field in request.fields) or None
    return ResolvedQuery(
        entity=request.entity, params=tuple(params), fields=fields, sources=sources
    )


def split_top_level(s: str) -> list[str]:
    # we can't .split(",") as there may be commas within the params (if nested)
    # so we need a custom "split by ',' if ',' not within parentheses or quotes"
    parts = []
    current = ""
    depth = 0
    quoted = False
    escaped = False
    for char in s:
        if escaped:
            escaped = False
        elif char == "\\" and quoted:
            escaped = True
        elif char == '"':
            quoted = not quoted
        elif char == "(" and not quoted:
            depth += 1
        elif char == ")" and not quoted:
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced parentheses in '{s}'")
        elif char == "," and depth == 0 and not quoted:
            parts.append(current)
            current = ""
            continue
        current += char
    if depth or quoted:
        raise ValueError(f"unbalanced parentheses or quotes in '{s}'")
    if current:
        parts.append(current)
    return parts


def check_column(column: str) -> str:
    if column.startswith('"') and column.endswith('"') and len(column) > 1:
        column = column[1:-1]
    if not column or any(c in column for c in "&=?"):
        raise ValueError(f"'{column}' is not a valid column name")
    return column


def split_column(param: str) -> tuple[str, str | None]:
    """Split `column.rest` where the column may be double-quoted."""
    match = QUOTED_COLUMN.match(param)
    if match:
        return match.group("column"), match.group("rest")
    column, sep, rest = param.partition(".")
    return column, rest if sep else None


def check_operation(operation: str | None, argument: str) -> None:
    """Validate `[not.]<op>.<operand>`."""
    op, sep, operand = (operation or "").partition(".")
    if op == "not":
        op, sep, operand = operand.partition(".")
    if op not in PGREST_OPERATORS or not sep:
        raise ValueError(f"argument '{argument}' could not be parsed")
    if op == "in" and not (operand.startswith("(") and operand.endswith(")")):
        raise ValueError(f"argument '{argument}' could not be parsed")
    if op == "is" and operand.lower() not in ["null", "true", "false", "unknown"]:
        raise ValueError(f"argument '{argument}' could not be parsed")


def parse_operator(query: str, operator: str = "or") -> None:
    """Validate a (possibly nested) logical group such as `(a.eq.1,and(b.gt.2,c.lt.3))`."""
    if not (query.startswith("(") and query.endswith(")")):
        raise ValueError(f"argument '{operator}={query}' could not be parsed")
    params = split_top_level(query[1:-1])
    if not params:
        raise ValueError(f"argument '{operator}={query}' has no condition")
    for param in params:
        nested = re.match(r"^(not\.)?(and|or)(\(.*\))$", param)
        if nested:
            # recursively checking the nested conditions
            parse_operator(nested.group(3), nested.group(2))
            continue
        column, operation = split_column(param)
        check_column(column)
        check_operation(operation, param)


def check_order(value: str) -> None:
    items = split_top_level(value)
    if not items:
        raise ValueError("argument `order` can't be empty")
    for item in items:
        column, modifiers = split_column(item)
        check_column(column)
        if modifiers and any(
            m not in ["asc", "desc", "nullsfirst", "nullslast"] for m in modifiers.split(".")
        ):
            raise ValueError(f"argument 'order={value}' could not be parsed")


def select_source(item: str) -> str:
    """The selected expression of a `select` item, without its alias nor cast."""
    match = SELECT_ALIAS.match(item)
    source = item[match.end() :] if match else item
    return source.split("::")[0].strip()


def select_output_name(item: str) -> str:
    """Name of the key a `select` item produces in the result rows."""
    match = SELECT_ALIAS.match(item)
    name = match.group("alias") if match else select_source(item)
    # json paths (`data->>key`) are named after their last key
    name = re.split(r"->>?", name)[-1]
    return check_column(name.strip())


def parse_serialized(text: str) -> ResolvedQuery:
    """Parse `<entity>?<query string>`, the output of ResolvedQuery.serialize()."""
    match = SERIALIZED.match(text.strip())
    if not match:
        raise ValueError("not a serialized query")
    entity = match.group("entity")
    if not ENTITY.match(entity):
        raise ValueError(f"'{entity}' is not a valid table name")
    params = []
    fields = sources = None
    query = match.group("query")
    for arg in query.split("&") if query else []:
        name, sep, value = arg.partition("=")
        name, value = unquote_plus(name), unquote_plus(value)
        if not sep or not name:
            raise ValueError(f"argument '{arg}' could not be parsed")
        if name in RESERVED_PARAMS:
            raise ValueError(
                f"argument `{name}` is set by the export and can't be part of the query"
            )
        if name == "select":
            if fields is not None or any(n == "select" for n, _ in params):
                raise ValueError("argument `select` can only be set once")
            items = split_top_level(value)
            if not items:
                raise ValueError("argument `select` can't be empty")
            names = [select_output_name(item) for item in items]
            if "*" not in names:
                fields = tuple(names)
                # embedded resources can't be sorted on
                if not any("(" in item for item in items):
                    sources = tuple(select_source(item) for item in items)
        elif name == "order":
            check_order(value)
        elif name in ["or", "and", "not.or", "not.and"]:
            parse_operator(value, name.split(".")[-1])
        else:
            check_column(name)
            check_operation(value, arg)
        params.append((name, value))
    return ResolvedQuery(entity=entity, params=tuple(params), fields=fields, sources=sources)
