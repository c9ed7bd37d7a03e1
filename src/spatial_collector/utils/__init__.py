"""Shared utility functions for the spatial data collector."""

from spatial_collector.utils.io import dump_jsonl, read_jsonl, read_jsonl_list, write_jsonl
from spatial_collector.utils.paths import ensure_dir, safe_filename

__all__ = [
    "ensure_dir",
    "safe_filename",
    "read_jsonl",
    "read_jsonl_list",
    "write_jsonl",
    "dump_jsonl",
]
