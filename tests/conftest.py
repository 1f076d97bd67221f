import json
import re

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import CallbackResult, aioresponses

from tabular_export import config

PGREST_ENDPOINT = "https://example.com"

PRODUCTS = [
    {
        "name": "Test Product 1",
        "description": "Description 1",
        "price": 19.99,
        "stock_quantity": 100,
    },
    {
        "name": "Test Product 2",
        "description": "Description 2",
        "price": 29.99,
        "stock_quantity": 200,
    },
]


def table_pattern(entity: str) -> re.Pattern:
    return re.compile(rf"^https://example\.com/{re.escape(entity)}(\?.*)?$")


def make_products(count: int) -> list[dict]:
    return [
        {"name": f"Product {i}", "price": float(f"{i}.99"), "stock_quantity": i}
        for i in range(1, count + 1)
    ]


class FakeTable:
    """Serves rows like PostgREST does, honouring `limit` and `offset`."""

    def __init__(self, rmock, entity: str, rows: list[dict], fail_at_offset: int | None = None):
        self.rows = rows
        self.fail_at_offset = fail_at_offset
        self.pages = []
        self.queries = []
        total = len(rows)
        content_range = f"0-0/{total}" if total else "*/0"
        rmock.head(table_pattern(entity), headers={"Content-Range": content_range}, repeat=True)
        rmock.get(table_pattern(entity), callback=self.get, repeat=True)

    def get(self, url, **kwargs):
        limit = int(url.query["limit"])
        offset = int(url.query.get("offset", 0))
        self.pages.append((limit, offset))
        self.queries.append(url.query.copy())
        if offset == self.fail_at_offset:
            return CallbackResult(status=500, body=json.dumps({"message": "canceling statement"}))
        return CallbackResult(status=200, body=json.dumps(self.rows[offset : offset + limit]))


@pytest.fixture(autouse=True)
def setup(tmp_path):
    previous = dict(config.configuration)
    config.override(PGREST_ENDPOINT=PGREST_ENDPOINT, EXPORT_DIR=str(tmp_path))
    yield
    config.configuration.clear()
    config.configuration.update(previous)


@pytest.fixture
def rmock():
    with aioresponses() as m:
        yield m


@pytest_asyncio.fixture
async def client():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def products_table(rmock):
    return FakeTable(rmock, "products", PRODUCTS)


@pytest.fixture
def fake_table(rmock):
    def _fake_table(rows: list[dict], entity: str = "products", **kwargs) -> FakeTable:
        return FakeTable(rmock, entity, rows, **kwargs)

    return _fake_table


@pytest.fixture
def exported_files(tmp_path):
    def _exported_files() -> list:
        return sorted(tmp_path.glob("export-*.csv"))

    return _exported_files
