"""Per-file retry state machine.

Every (record, file) pair moves through::

    PENDING -> ATTEMPTING -> SUCCEEDED
                         \\-> RETRYING -> ATTEMPTING ...
                         \\-> FAILED

A failed transfer and a checksum mismatch are handled the same way. Once the
attempt cap is reached the pair is FAILED; nothing is raised, so sibling pairs
and records keep going.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from spatial_collector.exceptions import ChecksumMismatchError
from spatial_collector.logging_config import LogContext
from spatial_collector.transfer import verify_digest

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

# (url, destination, auth) -> anything; raises on failure
Transport = Callable[[str, Path, "tuple[str, str] | None"], Any]


class PairState(str, enum.Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class PairId:
    """Identifies one file of one record, with the labels used in progress output."""

    record_index: int
    file_index: int
    file_count: int
    record_id: str
    name: str = ""
    label: str = ""

    def __str__(self) -> str:
        return f"{self.record_id}[{self.file_index}/{self.file_count}]"


@dataclasses.dataclass(frozen=True)
class PairOutcome:
    pair: PairId
    state: PairState
    path: Path | None
    attempts: int
    error: str | None = None
    transitions: tuple[PairState, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state is PairState.SUCCEEDED


class DownloadObserver:
    """Receives state machine events. The base class ignores them all."""

    def on_attempt(self, pair: PairId, attempt: int, max_attempts: int) -> None:
        pass

    def on_retry(self, pair: PairId, attempt: int, remaining: int, reason: str) -> None:
        pass

    def on_success(self, pair: PairId, path: Path) -> None:
        pass

    def on_failure(self, pair: PairId, reason: str) -> None:
        pass


class LoggingObserver(DownloadObserver):
    """Writes progress lines to the package logger.

    ``verbose`` routes routine progress to INFO instead of DEBUG; retries and
    failures are always logged at WARNING.
    """

    def __init__(self, verbose: bool = True) -> None:
        self.progress_level = logging.INFO if verbose else logging.DEBUG

    def on_attempt(self, pair: PairId, attempt: int, max_attempts: int) -> None:
        if attempt == 1:
            logger.log(self.progress_level, "%s Downloading '%s'...", pair.label, pair.name)

    def on_retry(self, pair: PairId, attempt: int, remaining: int, reason: str) -> None:
        logger.warning(
            "%s [Attempt %d/%d] Reattempting download of '%s' (%d attempt(s) left): %s",
            pair.label,
            attempt,
            attempt + remaining - 1,
            pair.name,
            remaining,
            reason,
        )

    def on_success(self, pair: PairId, path: Path) -> None:
        logger.log(self.progress_level, "%s Saved '%s' to %s", pair.label, pair.name, path)

    def on_failure(self, pair: PairId, reason: str) -> None:
        logger.warning("%s Attempts to download '%s' failed: %s", pair.label, pair.name, reason)


class RetryingDownloader:
    def __init__(
        self,
        transport: Transport,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay: float = 0.0,
        observer: DownloadObserver | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.max_attempts = max(1, max_attempts)
        self.delay = delay
        self.observer = observer or DownloadObserver()
        self._sleep = sleep

    def run(
        self,
        pair: PairId,
        url: str | None,
        file: Path | None,
        *,
        auth: tuple[str, str] | None = None,
        reference_digest: str | None = None,
    ) -> PairOutcome:
        """Drive one pair to SUCCEEDED or FAILED; never raises for transfer errors."""
        transitions = [PairState.PENDING]
        if not url or file is None:
            reason = "dataset URL or file name could not be resolved"
            self.observer.on_failure(pair, reason)
            transitions.append(PairState.FAILED)
            return PairOutcome(pair, PairState.FAILED, None, 0, reason, tuple(transitions))

        reason = ""
        with LogContext(record_id=pair.record_id, pair=str(pair)):
            for attempt in range(1, self.max_attempts + 1):
                transitions.append(PairState.ATTEMPTING)
                self.observer.on_attempt(pair, attempt, self.max_attempts)
                try:
                    self.transport(url, file, auth)
                    if reference_digest:
                        verify_digest(file, reference_digest)
                except ChecksumMismatchError as exc:
                    file.unlink(missing_ok=True)
                    reason = f"{exc.message} (expected {exc.expected}, got {exc.actual})"
                except Exception as exc:
                    logger.debug("Transfer attempt %d for %s failed", attempt, pair, exc_info=True)
                    reason = str(exc) or type(exc).__name__
                else:
                    transitions.append(PairState.SUCCEEDED)
                    self.observer.on_success(pair, file)
                    return PairOutcome(
                        pair, PairState.SUCCEEDED, file, attempt, None, tuple(transitions)
                    )

                if attempt < self.max_attempts:
                    transitions.append(PairState.RETRYING)
                    self.observer.on_retry(pair, attempt + 1, self.max_attempts - attempt, reason)
                    if self.delay > 0:
                        self._sleep(self.delay)

        transitions.append(PairState.FAILED)
        self.observer.on_failure(pair, reason)
        return PairOutcome(
            pair, PairState.FAILED, None, self.max_attempts, reason, tuple(transitions)
        )
