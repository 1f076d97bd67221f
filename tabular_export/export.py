import asyncio
import inspect
import logging
from contextlib import aclosing
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable, Sequence

from aiohttp import ClientSession

from tabular_export import config
from tabular_export.core.data_access import DataAccessor, check_page_size
from tabular_export.core.exceptions import (
    ExportCancelled,
    ExportError,
    MissingFieldError,
    handle_exception,
)
from tabular_export.core.models import ChunkInfo, HeaderSpec, QueryRequest, ResultChunk
from tabular_export.core.resolver import get_query
from tabular_export.core.writer import CsvStreamWriter

logger = logging.getLogger(__name__)

ChunkObserver = Callable[[ChunkInfo], Awaitable[None] | None]


async def generate_csv(
    query_spec: QueryRequest | str,
    header_spec: HeaderSpec | dict | Sequence,
    *,
    page_size: int | None = None,
    session: ClientSession | None = None,
    on_chunk: ChunkObserver | None = None,
    cancel_event: asyncio.Event | None = None,
    directory: str | Path | None = None,
) -> Path:
    """
    Export the result of a query to a new CSV file.

    Args:
        query_spec: the query, see get_query for the accepted shapes
        header_spec: the output columns, as (key, label) pairs
        page_size: number of rows read at once, defaults to config.BATCH_SIZE
        session: the aiohttp session to use, a new one is opened otherwise
        on_chunk: called with a ChunkInfo once each chunk is written
        cancel_event: when set, the export stops before the next page is read
        directory: where to create the file, defaults to config.EXPORT_DIR or the temp dir

    Returns:
        The path of the file, which now belongs to the caller

    Raises:
        InvalidQueryError: before anything is written, when the query is invalid
        InvalidHeaderError: before anything is written, when the header spec is invalid
        MissingFieldError: before anything is written when a header key isn't
            selected by the query, else at the first row lacking it
        MissingFieldError, DataSourceError, ExportIOError, ExportCancelled:
            the export is aborted and a partial file may be left behind
    """
    query = get_query(query_spec)
    header_spec = HeaderSpec.coerce(header_spec)
    page_size = check_page_size(config.BATCH_SIZE if page_size is None else page_size)
    if query.fields is not None:
        for key in header_spec.keys:
            if key not in query.fields:
                handle_exception(MissingFieldError(key), entity=query.entity)

    writer = CsvStreamWriter(directory)
    logger.info(f"Exporting {query.serialize()} by chunks of {page_size} rows")
    try:
        async with DataAccessor(session) as accessor:
            chunks = observe_chunks(accessor.iter_chunks(query, page_size, cancel_event), on_chunk)
            async with aclosing(chunks):
                path = await writer.export(header_spec, chunks)
    except ExportError as e:
        if e.event_id is None and not isinstance(e, ExportCancelled):
            handle_exception(e, entity=query.entity, path=str(writer.path) if writer.path else None)
        raise
    logger.info(f"Exported {writer.rows_written} rows of {query.entity} to {path}")
    return path


async def observe_chunks(
    chunks: AsyncGenerator[ResultChunk, None],
    on_chunk: ChunkObserver | None = None,
) -> AsyncGenerator[ResultChunk, None]:
    """Pass the chunks through, notifying `on_chunk` once each one is written."""
    index = offset = 0
    async with aclosing(chunks):
        async for chunk in chunks:
            yield chunk
            # resumed once the chunk is written
            logger.debug(f"Chunk {index}: {len(chunk)} rows from offset {offset}")
            if on_chunk is not None:
                result = on_chunk(ChunkInfo(index=index, offset=offset, size=len(chunk)))
                if inspect.isawaitable(result):
                    await result
            index += 1
            offset += len(chunk)
