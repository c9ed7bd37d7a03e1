"""Record collection model.

A record collection is an ordered list of rows sharing one ordered column list,
the shape produced by the search step and written back out as JSONL. The
pipeline never edits rows in place: each stage derives a ``RecordPlan`` per
record and the results are merged into a new collection at the end.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from spatial_collector.exceptions import RecordValidationError

if TYPE_CHECKING:
    from spatial_collector.providers.base import ProductVariant
    from spatial_collector.session import Credential

MISSING = None

PRODUCT = "product"
PRODUCT_GROUP = "product_group"
ENTITY_ID = "entity_id"
RECORD_ID = "record_id"
LEVEL = "level"
SUMMARY = "summary"
DOWNLOAD_AVAILABLE = "download_available"
MD5_CHECKSUM = "md5_checksum"
MD5_URL = "md5_url"
IS_GNSS = "is_gnss"
ORDER_ID = "order_id"
DATASET_FILE = "dataset_file"

REQUIRED_COLUMNS = (PRODUCT, PRODUCT_GROUP, ENTITY_ID, LEVEL, RECORD_ID, SUMMARY)


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    # NaN from tabular sources
    return isinstance(value, float) and value != value


def truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "t", "1", "yes"}
    if is_missing(value):
        return False
    return bool(value)


class RecordCollection:
    """Ordered rows with a stable, ordered column set."""

    def __init__(self, rows: Iterable[Mapping[str, Any]], columns: Sequence[str] | None = None) -> None:
        materialized = [dict(row) for row in rows]
        if columns is None:
            seen: dict[str, None] = {}
            for row in materialized:
                for key in row:
                    seen.setdefault(key, None)
            columns = list(seen)
        self._columns = list(columns)
        self._rows = [{col: row.get(col) for col in self._columns} for row in materialized]

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        for row in self._rows:
            yield MappingProxyType(row)

    def __getitem__(self, index: int) -> Mapping[str, Any]:
        return MappingProxyType(self._rows[index])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordCollection):
            return NotImplemented
        return self._columns == other._columns and self._rows == other._rows

    def __repr__(self) -> str:
        return f"RecordCollection(rows={len(self)}, columns={self._columns!r})"

    def has_column(self, name: str) -> bool:
        return name in self._columns

    def column(self, name: str) -> list[Any]:
        if name not in self._columns:
            raise KeyError(name)
        return [row[name] for row in self._rows]

    def with_column(self, name: str, values: Sequence[Any]) -> RecordCollection:
        """Return a copy with ``name`` set to ``values``; new columns are appended."""
        if len(values) != len(self._rows):
            raise RecordValidationError(
                f"Column '{name}' has {len(values)} values for {len(self._rows)} records.",
                context={"column": name},
            )
        columns = self._columns if name in self._columns else [*self._columns, name]
        rows = [{**row, name: value} for row, value in zip(self._rows, values)]
        return RecordCollection(rows, columns)

    def select(self, columns: Sequence[str]) -> RecordCollection:
        unknown = [c for c in columns if c not in self._columns]
        if unknown:
            raise KeyError(", ".join(unknown))
        return RecordCollection(self._rows, columns)

    def to_rows(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self._rows]


def check_records(
    records: RecordCollection | Iterable[Mapping[str, Any]],
    required: Sequence[str] = REQUIRED_COLUMNS,
) -> RecordCollection:
    """Validate that all ``required`` columns are present.

    ``level`` is optional for callers and is added as missing when absent.
    """
    if not isinstance(records, RecordCollection):
        records = RecordCollection(records)
    if LEVEL in required and not records.has_column(LEVEL):
        records = records.with_column(LEVEL, [MISSING] * len(records))
    missing = [col for col in required if not records.has_column(col)]
    if missing:
        raise RecordValidationError(
            f"Records are missing required columns: {', '.join(missing)}",
            context={"missing_columns": missing},
        )
    return records


@dataclasses.dataclass(frozen=True)
class DatasetTargets:
    """Source URLs and destination paths of one record, paired by position."""

    urls: tuple[str, ...]
    files: tuple[Path, ...]

    def __post_init__(self) -> None:
        if len(self.urls) != len(self.files):
            raise RecordValidationError(
                f"{len(self.urls)} dataset URLs but {len(self.files)} dataset files.",
                context={"urls": list(self.urls)},
            )
        if not self.urls:
            raise RecordValidationError("A record needs at least one dataset URL.")

    @classmethod
    def single(cls, url: str, file: Path) -> DatasetTargets:
        return cls((url,), (file,))

    def pairs(self) -> list[tuple[str, Path]]:
        return list(zip(self.urls, self.files))

    def __len__(self) -> int:
        return len(self.urls)


@dataclasses.dataclass(frozen=True)
class RecordPlan:
    """Everything the pipeline has derived for one record.

    Each stage returns an updated copy (``dataclasses.replace``); the source
    row is exposed read-only.
    """

    index: int
    record: Mapping[str, Any]
    variant: ProductVariant
    available: bool
    directory: Path | None = None
    label: str = ""
    credential: Credential | None = None
    checksum: str | None = None
    targets: DatasetTargets | None = None

    @property
    def record_id(self) -> str:
        return str(self.record.get(RECORD_ID))

    @property
    def product_group(self) -> str:
        return str(self.record.get(PRODUCT_GROUP))

    @property
    def name(self) -> str:
        """Display name: the record id, with the processing level when set."""
        level = self.record.get(LEVEL)
        if is_missing(level):
            return self.record_id
        return f"{self.record_id} ({level})"
