from __future__ import annotations

import gzip
import io
import json
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import zstandard as zstd

from spatial_collector.utils.paths import ensure_dir


def _open_text(path: Path, mode: str) -> io.TextIOBase:
    if path.suffix == ".gz":
        return gzip.open(path, mode, encoding="utf-8")
    if path.suffix == ".zst":
        try:
            if "r" in mode:
                stream = zstd.ZstdDecompressor().stream_reader(path.open("rb"))
                return io.TextIOWrapper(stream, encoding="utf-8")
            stream = zstd.ZstdCompressor().stream_writer(path.open("wb"))
            return io.TextIOWrapper(stream, encoding="utf-8")
        except zstd.ZstdError as e:
            raise OSError(f"Failed to open zstd file {path}: {e}") from e
    return open(path, mode, encoding="utf-8")


def read_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    """Read a JSONL record file (supports .gz/.zst) and yield rows."""
    with _open_text(path, "rt") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON record: {e}") from e


def read_jsonl_list(path: Path) -> list[dict[str, Any]]:
    """Read JSONL file and return as list."""
    return list(read_jsonl(path))


def write_jsonl(path: Path, rows: Iterable[dict[str, Any]]) -> None:
    """Write rows to a JSONL file (supports .gz/.zst) atomically."""
    ensure_dir(path.parent)
    tmp_path = path.with_name(path.name + ".tmp" + (path.suffix if path.suffix in (".gz", ".zst") else ""))
    with _open_text(tmp_path, "wt") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
    tmp_path.replace(path)


def dump_jsonl(rows: Iterable[dict[str, Any]], stream: io.TextIOBase | None = None) -> None:
    """Write rows as JSONL to ``stream`` (stdout by default)."""
    out = stream or sys.stdout
    for row in rows:
        out.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
