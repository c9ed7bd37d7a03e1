"""Tests for spatial_collector.transfer module."""

from __future__ import annotations

import hashlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from spatial_collector.exceptions import ChecksumMismatchError, TransferError
from spatial_collector.transfer import (
    compute_file_hash,
    digest_algorithm_for,
    http_download,
    verify_digest,
)


def _response(chunks: list[bytes], status: int = 200) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.status_code = status
    response.headers = {"Content-Type": "application/zip"}
    response.iter_content.return_value = iter(chunks)
    if status >= 400:
        err_response = MagicMock(status_code=status)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status} Error", response=err_response
        )
    return response


class TestDigests:
    def test_algorithm_by_length(self) -> None:
        assert digest_algorithm_for("a" * 32) == "md5"
        assert digest_algorithm_for("a" * 40) == "sha1"
        assert digest_algorithm_for("a" * 64 + "\n") == "sha256"
        with pytest.raises(ValueError):
            digest_algorithm_for("abc")

    def test_verify_digest_case_insensitive(self, tmp_path: Path) -> None:
        path = tmp_path / "f.bin"
        path.write_bytes(b"hello")
        expected = hashlib.sha256(b"hello").hexdigest()
        assert verify_digest(path, expected.upper()) == expected
        assert compute_file_hash(path, "sha256") == expected

    def test_verify_digest_mismatch(self, tmp_path: Path) -> None:
        path = tmp_path / "f.bin"
        path.write_bytes(b"hello")
        with pytest.raises(ChecksumMismatchError) as excinfo:
            verify_digest(path, "0" * 32)
        assert excinfo.value.expected == "0" * 32
        assert excinfo.value.actual == hashlib.md5(b"hello").hexdigest()
        assert excinfo.value.code == "checksum_mismatch"


class TestHttpDownload:
    def test_streams_to_destination(self, tmp_path: Path) -> None:
        session = MagicMock()
        session.get.return_value = _response([b"abc", b"", b"def"])
        out = tmp_path / "nested" / "file.zip"

        result = http_download(session, "https://example.com/file.zip", out, auth=("u", "p"))

        assert out.read_bytes() == b"abcdef"
        assert result.bytes_downloaded == 6
        assert result.content_type == "application/zip"
        assert not out.with_name("file.zip.part").exists()
        _, kwargs = session.get.call_args
        assert kwargs["auth"] == ("u", "p")
        assert kwargs["stream"] is True

    def test_http_error_leaves_no_file(self, tmp_path: Path) -> None:
        session = MagicMock()
        session.get.return_value = _response([], status=503)
        out = tmp_path / "file.zip"

        with pytest.raises(TransferError) as excinfo:
            http_download(session, "https://example.com/file.zip", out)

        assert excinfo.value.context["status_code"] == 503
        assert not out.exists()
        assert not out.with_name("file.zip.part").exists()

    def test_connection_error_wrapped(self, tmp_path: Path) -> None:
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(TransferError):
            http_download(session, "https://example.com/file.zip", tmp_path / "file.zip")
