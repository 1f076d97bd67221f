"""
Data access layer for the core module.

Runs a resolved query against PostgREST and reads its results page by page,
so that only one page of rows is held in memory at a time.
"""

import asyncio
import inspect
import json
import logging
from decimal import Decimal
from functools import partial
from typing import AsyncGenerator, Awaitable, Callable

from aiohttp import ClientError, ClientResponse, ClientSession

from .. import config
from .exceptions import DataSourceError, ExportCancelled, handle_exception
from .models import ResolvedQuery, ResultChunk

logger = logging.getLogger(__name__)

# numbers with a fraction part are read as Decimal so that no digit is lost
loads = partial(json.loads, parse_float=Decimal)


def process_total(res: ClientResponse) -> int:
    # the Content-Range looks like this: '0-49/21777', or '*/0' for an empty result
    # see https://docs.postgrest.org/en/stable/references/api/pagination_count.html
    raw_total = res.headers.get("Content-Range")
    if raw_total is None:
        raise ValueError("Missing Content-Range header")
    _, str_total = raw_total.split("/")
    return int(str_total)


def check_cancelled(cancel_event: asyncio.Event | None, offset: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ExportCancelled("Export cancelled", f"stopped at row offset {offset}")


def check_page_size(page_size: int) -> int:
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ValueError(f"Page size must be a positive integer, got {page_size!r}")
    if page_size > config.PAGE_SIZE_MAX:
        raise ValueError(f"Page size exceeds allowed maximum: {config.PAGE_SIZE_MAX}")
    return page_size


class DataAccessor:
    """Reads the rows of resolved queries from PostgREST.

    Use it as an async context manager when no session is given, the session
    it opens is closed on exit.
    """

    def __init__(self, session: ClientSession | None = None, endpoint: str | None = None):
        self.session = session
        self.endpoint = endpoint or config.PGREST_ENDPOINT
        self._owns_session = session is None

    async def __aenter__(self) -> "DataAccessor":
        if self.session is None:
            self.session = ClientSession()
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    def _get_session(self) -> ClientSession:
        if self.session is None:
            raise RuntimeError("DataAccessor has no session, use it with `async with`")
        return self.session

    def paging_order(self, query: ResolvedQuery) -> str | None:
        """
        The order added to an unordered query so that its pages don't overlap.

        DEFAULT_ORDER when it is set, else every selected column, which gives
        the same order on each request up to identical rows.
        """
        if query.is_ordered:
            return None
        if config.DEFAULT_ORDER:
            return config.DEFAULT_ORDER
        if query.sources:
            return ",".join(f"{source}.asc" for source in query.sources)
        return None

    def build_params(self, query: ResolvedQuery) -> list[tuple[str, str]]:
        params = list(query.params)
        # offset paging is only stable on a sorted result
        order = self.paging_order(query)
        if order:
            params.append(("order", order))
        return params

    async def count(self, query: ResolvedQuery) -> int:
        """
        Get the number of rows a query returns.

        Raises:
            DataSourceError: if the count can't be retrieved
        """
        url = query.url(self.endpoint)
        params = self.build_params(query) + [("limit", "1")]
        try:
            async with self._get_session().head(
                url, params=params, headers={"Prefer": "count=exact"}
            ) as res:
                if not res.ok:
                    handle_exception(
                        DataSourceError("Database error", res.reason, offset=0, status=res.status),
                        entity=query.entity,
                    )
                return process_total(res)
        except ClientError as e:
            handle_exception(
                DataSourceError("Database unreachable", str(e), offset=0), entity=query.entity
            )
        except ValueError as e:
            handle_exception(
                DataSourceError("Invalid count", str(e), offset=0), entity=query.entity
            )

    async def get_page(self, query: ResolvedQuery, limit: int, offset: int) -> ResultChunk:
        """
        Get one page of rows.

        Args:
            query: the query to run
            limit: maximum number of rows
            offset: number of rows to skip

        Returns:
            The rows, as dicts of field name to value

        Raises:
            DataSourceError: if the page can't be read, with the offset of the page
        """
        url = query.url(self.endpoint)
        params = self.build_params(query) + [("limit", str(limit)), ("offset", str(offset))]
        try:
            async with self._get_session().get(
                url, params=params, headers={"Accept": "application/json"}
            ) as res:
                if not res.ok:
                    handle_exception(
                        DataSourceError(
                            "Database error", await res.text(), offset=offset, status=res.status
                        ),
                        entity=query.entity,
                    )
                rows = await res.json(loads=loads)
        except ClientError as e:
            handle_exception(
                DataSourceError("Database unreachable", str(e), offset=offset),
                entity=query.entity,
            )
        except ValueError as e:
            handle_exception(
                DataSourceError("Invalid response", str(e), offset=offset), entity=query.entity
            )
        if not isinstance(rows, list) or len(rows) > limit:
            handle_exception(
                DataSourceError(
                    "Invalid response", f"expected a list of at most {limit} rows", offset=offset
                ),
                entity=query.entity,
            )
        return rows

    async def iter_chunks(
        self,
        query: ResolvedQuery,
        page_size: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[ResultChunk, None]:
        """
        Yield the rows of a query in chunks of `page_size` rows.

        A result of n rows gives ceil(n / page_size) chunks: all of them hold
        exactly `page_size` rows but the last one, and no empty chunk is ever
        yielded (an empty result gives no chunk at all).

        When `cancel_event` is set, ExportCancelled is raised instead of
        requesting the next page.
        """
        page_size = check_page_size(config.BATCH_SIZE if page_size is None else page_size)
        check_cancelled(cancel_event, 0)
        total = await self.count(query)
        logger.debug(f"{query.entity}: {total} rows to read by pages of {page_size}")
        if total > page_size and not query.is_ordered and not self.paging_order(query):
            logger.warning(
                f"{query.entity}: paging an unordered query, set DEFAULT_ORDER or an order"
                " to read consistent pages"
            )
        for offset in range(0, total, page_size):
            check_cancelled(cancel_event, offset)
            chunk = await self.get_page(query, page_size, offset)
            if not chunk:
                # rows were deleted since the count
                logger.warning(
                    f"{query.entity}: no rows at offset {offset} while {total} were counted"
                )
                return
            yield chunk

    async def for_each_chunk(
        self,
        query: ResolvedQuery,
        page_size: int | None,
        on_chunk: Callable[[ResultChunk], Awaitable[None] | None],
    ) -> int:
        """Call `on_chunk` on every chunk (see iter_chunks), return the number of rows read."""
        total = 0
        async for chunk in self.iter_chunks(query, page_size):
            result = on_chunk(chunk)
            if inspect.isawaitable(result):
                await result
            total += len(chunk)
        return total
