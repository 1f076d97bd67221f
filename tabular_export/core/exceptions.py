"""
Exception handling for the core module.

Every failure of an export is an ExportError subclass, so callers can catch
the whole family at once. handle_exception reports an error to Sentry when a
client is configured before raising it.
"""

from pathlib import Path
from typing import NoReturn

import sentry_sdk


class ExportError(Exception):
    """Base class for all export failures"""

    def __init__(self, title: str, detail: str | dict | None = None) -> None:
        self.title = title
        self.detail = detail
        self.event_id: str | None = None
        super().__init__(f"{title}: {detail}" if detail else title)


class InvalidQueryError(ExportError):
    """The query is neither a serialized query nor a valid textual expression"""


class InvalidHeaderError(ExportError, ValueError):
    """The header spec is malformed (mismatched lengths, duplicates, empty)"""


class MissingFieldError(ExportError):
    """A header key is absent from the query projection or from a result row"""

    def __init__(self, key: str, row_offset: int | None = None) -> None:
        self.key = key
        # None when the key is known to be missing before any row is read
        self.row_offset = row_offset
        if row_offset is None:
            detail = f"field '{key}' is not selected by the query"
        else:
            detail = f"field '{key}' is not in the result row at offset {row_offset}"
        super().__init__(
            "Missing field", f"{detail}, check that the header keys match the query projection"
        )


class DataSourceError(ExportError):
    """The data source failed while a page was being read"""

    def __init__(
        self, title: str, detail: str | dict | None, offset: int, status: int | None = None
    ) -> None:
        self.offset = offset
        self.status = status
        super().__init__(title, detail)

    def __str__(self) -> str:
        status = f" (status {self.status})" if self.status else ""
        return f"{self.title} at row offset {self.offset}{status}: {self.detail}"


class ExportIOError(ExportError):
    """The output file could not be created, written or closed"""

    def __init__(self, detail: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__("Output file error", detail)


class ExportCancelled(ExportError):
    """The export was asked to stop between two chunks"""


def handle_exception(error: ExportError, **tags) -> NoReturn:
    """Report an export error to Sentry (when enabled) and raise it."""
    if sentry_sdk.get_client().is_active():
        with sentry_sdk.new_scope() as scope:
            sentry_tags: dict = {
                "title": error.title,
                "detail": str(error.detail),
            }
            sentry_tags.update({k: v for k, v in tags.items() if v is not None})
            scope.set_tags(sentry_tags)
            error.event_id = sentry_sdk.capture_exception(error)
    raise error
