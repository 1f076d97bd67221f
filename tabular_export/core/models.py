"""
Data models for the core module.

This module contains data classes and models used throughout the application.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from .exceptions import InvalidHeaderError

FILTER_OPERATORS = [
    "exact",
    "differs",
    "less",
    "greater",
    "strictly_less",
    "strictly_greater",
    "contains",
    "notcontains",
    "like",
    "ilike",
    "notlike",
    "notilike",
    "in",
    "notin",
    "isnull",
    "isnotnull",
]

ResultChunk = list[dict[str, Any]]


@dataclass
class Field:
    """A projected column, optionally renamed in the result rows."""

    column: str
    alias: str | None = None

    @property
    def name(self) -> str:
        return self.alias or self.column


@dataclass
class Filter:
    """A single predicate on a column, `value` is unused for is(not)null."""

    column: str
    operator: str
    value: Any = None


@dataclass
class AnyOf:
    """Matches when at least one of its conditions matches."""

    conditions: list["Condition"]


@dataclass
class AllOf:
    """Matches when all of its conditions match."""

    conditions: list["Condition"]


Condition = Filter | AnyOf | AllOf


@dataclass
class Order:
    column: str
    descending: bool = False


@dataclass
class QueryRequest:
    """Structured description of what to export, built directly by callers.

    The conditions in `filters` are AND-ed together, use AnyOf for disjunctions.
    """

    entity: str
    fields: list[Field] = field(default_factory=list)
    filters: list[Condition] = field(default_factory=list)
    order: list[Order] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedQuery:
    """A validated PostgREST query on one table, without paging parameters.

    `fields` are the keys of the result rows and `sources` the selected columns
    they come from, both None when every column is selected.
    """

    entity: str
    params: tuple[tuple[str, str], ...] = ()
    fields: tuple[str, ...] | None = None
    sources: tuple[str, ...] | None = None

    @property
    def query_string(self) -> str:
        return urlencode(self.params, safe="*,.:()\"!")

    @property
    def is_ordered(self) -> bool:
        return any(name == "order" for name, _ in self.params)

    def url(self, endpoint: str) -> str:
        return f"{endpoint}/{self.entity}"

    def serialize(self) -> str:
        return f"{self.entity}?{self.query_string}"


@dataclass(frozen=True)
class HeaderSpec:
    """Ordered (key, label) pairs: `key` is read from each row, `label` is written in the header."""

    columns: tuple[tuple[str, str], ...]

    def __post_init__(self):
        if not self.columns:
            raise InvalidHeaderError("Invalid header", "at least one column is required")
        keys = [key for key, _ in self.columns]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise InvalidHeaderError("Invalid header", f"duplicated keys: {', '.join(duplicates)}")

    @property
    def keys(self) -> list[str]:
        return [key for key, _ in self.columns]

    @property
    def labels(self) -> list[str]:
        return [label for _, label in self.columns]

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[str]]) -> "HeaderSpec":
        columns = []
        for pair in pairs:
            if isinstance(pair, str) or not isinstance(pair, Sequence) or len(pair) != 2:
                raise InvalidHeaderError(
                    "Invalid header", f"expected a (key, label) pair, got {pair!r}"
                )
            columns.append((str(pair[0]), str(pair[1])))
        return cls(tuple(columns))

    @classmethod
    def from_parallel(cls, keys: Sequence[str], labels: Sequence[str]) -> "HeaderSpec":
        if len(keys) != len(labels):
            raise InvalidHeaderError(
                "Invalid header",
                f"{len(keys)} keys for {len(labels)} labels, both lists must have the same length",
            )
        return cls(tuple((str(key), str(label)) for key, label in zip(keys, labels)))

    @classmethod
    def coerce(cls, value: "HeaderSpec | Sequence") -> "HeaderSpec":
        """Accept a HeaderSpec, a {key: label} mapping or a list of (key, label) pairs.

        Two parallel lists must go through `from_parallel` explicitly: with two
        columns, [keys, labels] can't be told apart from a list of pairs.
        """
        if isinstance(value, HeaderSpec):
            return value
        if isinstance(value, dict):
            return cls.from_pairs(list(value.items()))
        return cls.from_pairs(value)


@dataclass(frozen=True)
class ChunkInfo:
    """What an export observer learns about each written chunk."""

    index: int
    offset: int
    size: int
