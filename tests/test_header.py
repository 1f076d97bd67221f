from decimal import Decimal

import pytest

from tabular_export.core.exceptions import InvalidHeaderError, MissingFieldError
from tabular_export.core.header import HeaderMapper, render_value
from tabular_export.core.models import HeaderSpec

HEADER = HeaderSpec.from_pairs([("name", "Name"), ("price", "Price")])


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, ""),
        ("", ""),
        ("Test Product 1", "Test Product 1"),
        (100, "100"),
        (0, "0"),
        (Decimal("19.99"), "19.99"),
        (Decimal("20.00"), "20.00"),
        (Decimal("1E+2"), "100"),
        (Decimal("0.1234567890123456789"), "0.1234567890123456789"),
        (True, "true"),
        (False, "false"),
        ({"color": "red"}, '{"color":"red"}'),
        (["a", "é"], '["a","é"]'),
    ],
)
def test_render_value(value, expected):
    assert render_value(value) == expected


def test_label_row():
    assert HeaderMapper(HEADER).label_row() == ["Name", "Price"]


def test_project_follows_header_order():
    mapper = HeaderMapper(HeaderSpec.from_pairs([("price", "Price"), ("name", "Name")]))
    chunk = [
        {"name": "Test Product 1", "description": "ignored", "price": Decimal("19.99")},
        {"name": "Test Product 2", "description": None, "price": None},
    ]
    assert mapper.project(chunk) == [["19.99", "Test Product 1"], ["", "Test Product 2"]]


def test_project_empty_chunk():
    assert HeaderMapper(HEADER).project([]) == []


def test_project_missing_field():
    chunk = [{"name": "a", "price": 1}, {"name": "b"}]
    with pytest.raises(MissingFieldError) as exc_info:
        HeaderMapper(HEADER).project(chunk, offset=1000)
    assert exc_info.value.key == "price"
    assert exc_info.value.row_offset == 1001
    assert "offset 1001" in str(exc_info.value)


def test_header_spec():
    assert HEADER.keys == ["name", "price"]
    assert HEADER.labels == ["Name", "Price"]


def test_header_spec_labels_may_repeat():
    header = HeaderSpec.from_pairs([("name", "Value"), ("price", "Value")])
    assert header.labels == ["Value", "Value"]


def test_header_spec_from_parallel():
    assert HeaderSpec.from_parallel(["name", "price"], ["Name", "Price"]) == HEADER


def test_header_spec_coerce():
    assert HeaderSpec.coerce(HEADER) is HEADER
    assert HeaderSpec.coerce({"name": "Name", "price": "Price"}) == HEADER
    assert HeaderSpec.coerce([["name", "Name"], ["price", "Price"]]) == HEADER


@pytest.mark.parametrize(
    "build",
    [
        lambda: HeaderSpec.from_pairs([]),
        lambda: HeaderSpec.coerce({}),
        lambda: HeaderSpec.from_pairs([("name", "Name"), ("name", "Other")]),
        lambda: HeaderSpec.from_pairs([("name", "Name", "extra")]),
        lambda: HeaderSpec.from_pairs(["name"]),
        lambda: HeaderSpec.from_parallel(["name", "price"], ["Name"]),
    ],
)
def test_header_spec_invalid(build):
    with pytest.raises(InvalidHeaderError):
        build()


def test_invalid_header_is_a_value_error():
    with pytest.raises(ValueError):
        HeaderSpec.from_pairs([])
