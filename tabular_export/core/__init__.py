"""
Core module for tabular_export.

This module contains the export building blocks: query resolution, paged
reads from the data source, header mapping and CSV writing.
"""

from .data_access import DataAccessor
from .exceptions import (
    DataSourceError,
    ExportCancelled,
    ExportError,
    ExportIOError,
    InvalidHeaderError,
    InvalidQueryError,
    MissingFieldError,
    handle_exception,
)
from .header import HeaderMapper
from .models import (
    AllOf,
    AnyOf,
    ChunkInfo,
    Field,
    Filter,
    HeaderSpec,
    Order,
    QueryRequest,
    ResolvedQuery,
)
from .resolver import get_query, resolve
from .writer import CsvStreamWriter, WriterState

__all__ = [
    "AllOf",
    "AnyOf",
    "ChunkInfo",
    "CsvStreamWriter",
    "DataAccessor",
    "DataSourceError",
    "ExportCancelled",
    "ExportError",
    "ExportIOError",
    "Field",
    "Filter",
    "HeaderMapper",
    "HeaderSpec",
    "InvalidHeaderError",
    "InvalidQueryError",
    "MissingFieldError",
    "Order",
    "QueryRequest",
    "ResolvedQuery",
    "WriterState",
    "get_query",
    "handle_exception",
    "resolve",
]
