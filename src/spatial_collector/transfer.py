"""Single-attempt HTTP transfer and digest verification.

Classes:
    DownloadResult: Outcome of one completed transfer

Functions:
    http_download: Stream a URL to disk via a ``.part`` file
    compute_file_hash: Hex digest of a file
    digest_algorithm_for: Infer the hash algorithm from a reference digest
    verify_digest: Compare a file against a reference digest
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from spatial_collector.exceptions import ChecksumMismatchError, TransferError
from spatial_collector.utils.paths import ensure_dir

CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for hashing and streaming

# hex digest length -> algorithm
_DIGEST_ALGORITHMS = {32: "md5", 40: "sha1", 64: "sha256"}


@dataclass
class DownloadResult:
    """Result of a completed transfer.

    Attributes:
        path: Destination file
        bytes_downloaded: Size of the written file
        status_code: HTTP status of the final response
        content_type: Content-Type header value
        digest: Computed digest when a reference digest was checked
    """

    path: Path
    bytes_downloaded: int
    status_code: int | None = None
    content_type: str | None = None
    digest: str | None = None


def compute_file_hash(path: Path, algorithm: str = "md5") -> str:
    """Compute the lowercase hex digest of a file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If algorithm is not supported
    """
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    h = hashlib.new(algorithm)
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def digest_algorithm_for(reference: str) -> str:
    """Pick the hash algorithm matching a hex reference digest by its length."""
    algorithm = _DIGEST_ALGORITHMS.get(len(reference.strip()))
    if algorithm is None:
        raise ValueError(f"Cannot infer digest algorithm from a {len(reference.strip())}-char digest")
    return algorithm


def verify_digest(path: Path, reference: str) -> str:
    """Check ``path`` against ``reference`` (hex, case-insensitive).

    Returns:
        The computed digest

    Raises:
        ChecksumMismatchError: If the digests differ
    """
    expected = reference.strip().lower()
    actual = compute_file_hash(path, digest_algorithm_for(expected))
    if actual != expected:
        raise ChecksumMismatchError(
            f"Checksum mismatch for {path.name}",
            expected=expected,
            actual=actual,
        )
    return actual


def http_download(
    session: requests.Session,
    url: str,
    out_path: Path,
    *,
    auth: tuple[str, str] | None = None,
    timeout: Any = (15, 300),
) -> DownloadResult:
    """Download ``url`` to ``out_path`` in one attempt.

    The body is streamed to ``<out_path>.part`` and moved into place only after
    the response completed, so a failed attempt never leaves a truncated file
    under the destination name.

    Raises:
        TransferError: On any HTTP or IO failure
    """
    ensure_dir(out_path.parent)
    temp_path = out_path.with_name(f"{out_path.name}.part")
    try:
        with session.get(url, stream=True, auth=auth, timeout=timeout) as response:
            response.raise_for_status()
            with temp_path.open("wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
            status_code = response.status_code
            content_type = response.headers.get("Content-Type")
    except (requests.exceptions.RequestException, OSError) as exc:
        temp_path.unlink(missing_ok=True)
        status = getattr(getattr(exc, "response", None), "status_code", None)
        raise TransferError(
            f"Transfer of {url} failed: {exc}",
            context={"url": url, "status_code": status},
        ) from exc
    temp_path.replace(out_path)
    return DownloadResult(
        path=out_path,
        bytes_downloaded=out_path.stat().st_size,
        status_code=status_code,
        content_type=content_type,
    )
