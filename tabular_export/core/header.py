import json
from decimal import Decimal
from typing import Any

from .exceptions import MissingFieldError
from .models import HeaderSpec, ResultChunk


def render_value(value: Any) -> str:
    """Text of a value in the CSV file, without rounding nor locale formatting."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        # no exponent: Decimal("1E+2") is written 100
        return format(value, "f")
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


class HeaderMapper:
    """Projects result rows into the columns of a header spec, in its order."""

    def __init__(self, header_spec: HeaderSpec):
        self.header_spec = header_spec
        self.keys = header_spec.keys

    def label_row(self) -> list[str]:
        return self.header_spec.labels

    def project_row(self, row: dict[str, Any], row_offset: int) -> list[str]:
        values = []
        for key in self.keys:
            try:
                values.append(render_value(row[key]))
            except KeyError:
                raise MissingFieldError(key, row_offset) from None
        return values

    def project(self, chunk: ResultChunk, offset: int = 0) -> list[list[str]]:
        """
        Project the rows of a chunk.

        Args:
            chunk: the rows, as dicts of field name to value
            offset: row offset of the first row of the chunk, for error reporting

        Raises:
            MissingFieldError: if a header key is absent from a row
        """
        return [self.project_row(row, offset + i) for i, row in enumerate(chunk)]
