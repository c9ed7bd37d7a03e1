"""Tests for spatial_collector.retry module."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

import pytest

from spatial_collector.exceptions import TransferError
from spatial_collector.retry import (
    DownloadObserver,
    LoggingObserver,
    PairId,
    PairState,
    RetryingDownloader,
)

PAYLOAD = b"dataset-bytes"
PAYLOAD_MD5 = hashlib.md5(PAYLOAD).hexdigest()


class ScriptedTransport:
    """Fails the first ``failures`` calls, then writes the payload."""

    def __init__(self, failures: int = 0, payload: bytes = PAYLOAD) -> None:
        self.failures = failures
        self.payload = payload
        self.calls = 0

    def __call__(self, url: str, out_path: Path, auth: tuple[str, str] | None) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise TransferError(f"attempt {self.calls} failed")
        out_path.write_bytes(self.payload)


class RecordingObserver(DownloadObserver):
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_attempt(self, pair: PairId, attempt: int, max_attempts: int) -> None:
        self.events.append(("attempt", attempt))

    def on_retry(self, pair: PairId, attempt: int, remaining: int, reason: str) -> None:
        self.events.append(("retry", attempt, remaining))

    def on_success(self, pair: PairId, path: Path) -> None:
        self.events.append(("success", path))

    def on_failure(self, pair: PairId, reason: str) -> None:
        self.events.append(("failure", reason))


@pytest.fixture
def pair() -> PairId:
    return PairId(0, 1, 1, "R1", "R1", "[Dataset 1/1]")


class TestRetryingDownloader:
    """Test the per-pair state machine."""

    @pytest.mark.parametrize("failures", [0, 1, 2])
    def test_succeeds_on_attempt_k(self, tmp_path: Path, pair: PairId, failures: int) -> None:
        transport = ScriptedTransport(failures=failures)
        outcome = RetryingDownloader(transport).run(pair, "https://x/y", tmp_path / "y")
        assert outcome.state is PairState.SUCCEEDED
        assert outcome.path == tmp_path / "y"
        assert outcome.attempts == failures + 1
        assert transport.calls == failures + 1

    def test_fails_after_three_attempts(self, tmp_path: Path, pair: PairId) -> None:
        transport = ScriptedTransport(failures=5)
        observer = RecordingObserver()
        outcome = RetryingDownloader(transport, observer=observer).run(pair, "https://x/y", tmp_path / "y")
        assert outcome.state is PairState.FAILED
        assert outcome.path is None
        assert transport.calls == 3
        assert outcome.error == "attempt 3 failed"
        assert observer.events == [
            ("attempt", 1),
            ("retry", 2, 2),
            ("attempt", 2),
            ("retry", 3, 1),
            ("attempt", 3),
            ("failure", "attempt 3 failed"),
        ]

    def test_transitions(self, tmp_path: Path, pair: PairId) -> None:
        outcome = RetryingDownloader(ScriptedTransport(failures=1)).run(pair, "https://x/y", tmp_path / "y")
        assert outcome.transitions == (
            PairState.PENDING,
            PairState.ATTEMPTING,
            PairState.RETRYING,
            PairState.ATTEMPTING,
            PairState.SUCCEEDED,
        )

    def test_unresolved_pair_fails_without_transfer(self, tmp_path: Path, pair: PairId) -> None:
        transport = ScriptedTransport()
        downloader = RetryingDownloader(transport)
        assert downloader.run(pair, None, tmp_path / "y").state is PairState.FAILED
        outcome = downloader.run(pair, "https://x/y", None)
        assert outcome.state is PairState.FAILED
        assert outcome.attempts == 0
        assert transport.calls == 0

    def test_checksum_match(self, tmp_path: Path, pair: PairId) -> None:
        outcome = RetryingDownloader(ScriptedTransport()).run(
            pair, "https://x/y", tmp_path / "y", reference_digest=PAYLOAD_MD5.upper()
        )
        assert outcome.succeeded

    def test_checksum_mismatch_is_retried_and_file_removed(self, tmp_path: Path, pair: PairId) -> None:
        transport = ScriptedTransport(payload=b"corrupted")
        outcome = RetryingDownloader(transport).run(
            pair, "https://x/y", tmp_path / "y", reference_digest=PAYLOAD_MD5
        )
        assert outcome.state is PairState.FAILED
        assert transport.calls == 3
        assert "Checksum mismatch" in (outcome.error or "")
        assert not (tmp_path / "y").exists()

    def test_delay_is_injected(self, tmp_path: Path, pair: PairId) -> None:
        sleeps: list[float] = []
        downloader = RetryingDownloader(ScriptedTransport(failures=2), delay=1.5, sleep=sleeps.append)
        downloader.run(pair, "https://x/y", tmp_path / "y")
        assert sleeps == [1.5, 1.5]

    def test_no_sleep_without_delay(self, tmp_path: Path, pair: PairId) -> None:
        sleeps: list[float] = []
        RetryingDownloader(ScriptedTransport(failures=2), sleep=sleeps.append).run(
            pair, "https://x/y", tmp_path / "y"
        )
        assert sleeps == []


def test_logging_observer_retry_notice(caplog: pytest.LogCaptureFixture, tmp_path: Path, pair: PairId) -> None:
    caplog.set_level(logging.INFO, logger="spatial_collector.retry")
    RetryingDownloader(ScriptedTransport(failures=1), observer=LoggingObserver()).run(
        pair, "https://x/y", tmp_path / "y"
    )
    messages = [record.getMessage() for record in caplog.records]
    assert any("[Attempt 2/3] Reattempting download of 'R1' (2 attempt(s) left)" in m for m in messages)
    assert any(m.startswith("[Dataset 1/1] Saved 'R1'") for m in messages)


def test_logging_observer_quiet(caplog: pytest.LogCaptureFixture, tmp_path: Path, pair: PairId) -> None:
    caplog.set_level(logging.INFO, logger="spatial_collector.retry")
    RetryingDownloader(ScriptedTransport(), observer=LoggingObserver(verbose=False)).run(
        pair, "https://x/y", tmp_path / "y"
    )
    assert caplog.records == []
