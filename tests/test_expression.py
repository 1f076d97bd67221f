from decimal import Decimal

import pytest

from tabular_export.core.expression import parse_expression, tokenize
from tabular_export.core.models import AllOf, AnyOf, Field, Filter, Order, QueryRequest


def test_tokenize():
    tokens = tokenize("select name from products where price >= 20.5")
    assert [(t.kind, t.text) for t in tokens] == [
        ("name", "select"),
        ("name", "name"),
        ("name", "from"),
        ("name", "products"),
        ("name", "where"),
        ("name", "price"),
        ("op", ">="),
        ("number", "20.5"),
    ]


def test_tokenize_rejects_unknown_characters():
    with pytest.raises(ValueError, match="position 25"):
        tokenize("select name from products; drop table products")


def test_parse_select():
    assert parse_expression("select name, price, stock_quantity from products") == QueryRequest(
        entity="products",
        fields=[Field("name"), Field("price"), Field("stock_quantity")],
    )


def test_parse_keywords_are_case_insensitive():
    assert parse_expression("SELECT * FROM products") == QueryRequest(entity="products")


def test_parse_schema_qualified_table():
    assert parse_expression("select * from shop.products").entity == "shop.products"


def test_parse_alias_and_quoted_column():
    request = parse_expression('select "Stock Quantity" as stock, name from products')
    assert request.fields == [Field("Stock Quantity", "stock"), Field("name")]


def test_parse_where():
    request = parse_expression(
        "select name, price, stock_quantity from products where price > 20.00"
    )
    assert request.filters == [Filter("price", "strictly_greater", Decimal("20.00"))]


@pytest.mark.parametrize(
    "condition,expected",
    [
        ("price = 10", Filter("price", "exact", 10)),
        ("price != 10", Filter("price", "differs", 10)),
        ("price <> 10", Filter("price", "differs", 10)),
        ("price < -1.5", Filter("price", "strictly_less", Decimal("-1.5"))),
        ("price <= 10", Filter("price", "less", 10)),
        ("price >= 1e3", Filter("price", "greater", Decimal("1e3"))),
        ("name = 'it''s'", Filter("name", "exact", "it's")),
        ("available = TRUE", Filter("available", "exact", True)),
        ("name is null", Filter("name", "isnull")),
        ("name IS NOT NULL", Filter("name", "isnotnull")),
        ("name in ('a', 'b')", Filter("name", "in", ["a", "b"])),
        ("stock_quantity not in (1, 2)", Filter("stock_quantity", "notin", [1, 2])),
        ("name like 'Test%'", Filter("name", "like", "Test%")),
        ("name not ilike '%test%'", Filter("name", "notilike", "%test%")),
    ],
)
def test_parse_predicates(condition, expected):
    assert parse_expression(f"select * from products where {condition}").filters == [expected]


def test_parse_and_or_precedence():
    request = parse_expression("select * from products where a = 1 or b = 2 and c = 3")
    assert request.filters == [
        AnyOf([Filter("a", "exact", 1), AllOf([Filter("b", "exact", 2), Filter("c", "exact", 3)])])
    ]


def test_parse_parentheses():
    request = parse_expression(
        "select * from products where price >= 10 and (stock_quantity = 0 or name is null)"
    )
    assert request.filters == [
        Filter("price", "greater", 10),
        AnyOf([Filter("stock_quantity", "exact", 0), Filter("name", "isnull")]),
    ]


def test_parse_order_by():
    request = parse_expression("select * from products order by price desc, name asc, id")
    assert request.order == [Order("price", True), Order("name"), Order("id")]


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "products",
        "delete from products",
        "select from products",
        "select name from",
        "select name from products where",
        "select name from products where price = null",
        "select name from products where name not = 'a'",
        "select name from products where (price > 1",
        "select name from products where name in ()",
        "select name from products where name like 1",
        "select name from products extra",
        "select name from products order price",
        "select select from products",
        "select products.name from products",
    ],
)
def test_parse_invalid(expression):
    with pytest.raises(ValueError):
        parse_expression(expression)
