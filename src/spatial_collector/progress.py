from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from spatial_collector.utils.paths import ensure_dir, safe_filename

logger = logging.getLogger(__name__)


def dataset_label(index: int, total: int) -> str:
    """``[Dataset i/n]`` for the 1-based ``index`` of ``total`` records."""
    return f"[Dataset {index}/{total}]"


def file_label(label: str, file_index: int, file_count: int) -> str:
    """Extend a dataset label with the file position: ``[Dataset i/n | File j/m]``."""
    if not label.endswith("]"):
        raise ValueError(f"Not a dataset label: {label!r}")
    return f"{label[:-1]} | File {file_index}/{file_count}]"


def product_directory(dir_out: Path, product: str) -> Path:
    return dir_out / safe_filename(str(product))


def ensure_directories(directories: Iterable[Path]) -> list[Path]:
    """Create each distinct directory once. Safe to call from concurrent workers."""
    created: list[Path] = []
    for directory in dict.fromkeys(directories):
        ensure_dir(directory)
        created.append(directory)
    logger.debug("Ensured %d output directories", len(created))
    return created
