import unittest.mock as mock

import pytest

from tabular_export import get_query, resolve
from tabular_export.core.exceptions import InvalidQueryError
from tabular_export.core.models import Field, QueryRequest, ResolvedQuery


def test_get_query_from_expression():
    query = get_query("select name, price, stock_quantity from products where price > 20.00")
    assert query.entity == "products"
    assert query.fields == ("name", "price", "stock_quantity")
    assert query.serialize() == 'products?select=name,price,stock_quantity&"price"=gt.20.00'


def test_get_query_from_serialized():
    query = get_query("products?select=name,price&order=name.asc")
    assert query.entity == "products"
    assert query.fields == ("name", "price")
    assert query.is_ordered


def test_get_query_from_structured_request():
    query = get_query(QueryRequest(entity="products", fields=[Field("name")]))
    assert query == ResolvedQuery(
        entity="products", params=(("select", "name"),), fields=("name",), sources=("name",)
    )


def test_get_query_resolved_is_unchanged():
    query = ResolvedQuery(entity="products")
    assert get_query(query) is query


def test_get_query_both_shapes_agree():
    expression = get_query("select name from products where name like 'Test%' order by name")
    assert get_query(expression.serialize()) == expression


@pytest.mark.parametrize("query_spec", [None, 42, "", "   ", ["products"]])
def test_get_query_not_a_string(query_spec):
    with pytest.raises(InvalidQueryError, match="not a recognized query representation"):
        get_query(query_spec)


def test_get_query_invalid_serialized_reports_its_error():
    with pytest.raises(InvalidQueryError) as exc_info:
        get_query("products?limit=10")
    assert exc_info.value.title == "Invalid query string"
    assert "limit" in exc_info.value.detail


def test_get_query_invalid_expression_reports_its_error():
    with pytest.raises(InvalidQueryError) as exc_info:
        get_query("select name from products where price = null")
    assert "IS NULL" in exc_info.value.detail


def test_get_query_invalid_structured_request():
    with pytest.raises(InvalidQueryError, match="Invalid query"):
        get_query(QueryRequest(entity="products", fields=[Field("name"), Field("name")]))


def test_invalid_query_is_reported_to_sentry():
    with mock.patch("tabular_export.core.exceptions.sentry_sdk") as sentry:
        sentry.get_client.return_value.is_active.return_value = True
        sentry.capture_exception.return_value = "event-id"
        with pytest.raises(InvalidQueryError) as exc_info:
            get_query("invalid query string")
    assert exc_info.value.event_id == "event-id"
    sentry.capture_exception.assert_called_once_with(exc_info.value)


def test_resolve_is_get_query():
    assert resolve is get_query
    assert resolve("products?select=name").fields == ("name",)
