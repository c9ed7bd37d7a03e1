from __future__ import annotations

import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents); pre-existing directories are not an error."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str, default: str = "unnamed") -> str:
    """Reduce a product or file name to a single safe path component."""
    cleaned = _UNSAFE_CHARS.sub("_", (name or "").strip()).strip("._")
    return cleaned or default
