"""Batch download of a record collection.

``get_data`` is the single entry point. It checks the batch preconditions
(required columns, logins), derives one ``RecordPlan`` per record through the
provider handlers, downloads every resolved file through the retrying
downloader and merges the written paths back into the collection as
``dataset_file``.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import warnings
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

import requests

from spatial_collector.config import Settings, resolve_dir_out
from spatial_collector.exceptions import (
    AvailabilityWarning,
    ConfigValidationError,
    RecordValidationError,
    SpatialCollectorError,
)
from spatial_collector.logging_config import LogContext
from spatial_collector.network_utils import HttpClient
from spatial_collector.progress import dataset_label, ensure_directories, file_label, product_directory
from spatial_collector.providers.base import MetadataClient, ProviderContext, ProviderHandler
from spatial_collector.providers.registry import get_handler, required_logins
from spatial_collector.providers.sentinel import HUBS
from spatial_collector.records import (
    DATASET_FILE,
    DOWNLOAD_AVAILABLE,
    MD5_CHECKSUM,
    PRODUCT,
    RecordCollection,
    RecordPlan,
    check_records,
    truthy,
)
from spatial_collector.retry import (
    DownloadObserver,
    LoggingObserver,
    PairId,
    PairOutcome,
    RetryingDownloader,
)
from spatial_collector.session import SessionStore
from spatial_collector.transfer import digest_algorithm_for

logger = logging.getLogger(__name__)

# Failures of a single resolution step; contained to the record they belong to
RESOLUTION_ERRORS = (
    requests.exceptions.RequestException,
    SpatialCollectorError,
    ValueError,
    OSError,
)

AvailabilityCheck = Callable[[RecordCollection], Iterable[Any]]
TableConverter = Callable[[RecordCollection], Any]


@dataclasses.dataclass(frozen=True)
class RecordResult:
    plan: RecordPlan
    outcomes: tuple[PairOutcome, ...] = ()

    @property
    def written(self) -> list[Path]:
        return [outcome.path for outcome in self.outcomes if outcome.succeeded and outcome.path]


def _availability(
    records: RecordCollection, check_availability: AvailabilityCheck | None
) -> list[bool]:
    if records.has_column(DOWNLOAD_AVAILABLE):
        return [truthy(value) for value in records.column(DOWNLOAD_AVAILABLE)]
    if check_availability is None:
        raise RecordValidationError(
            f"Records have no '{DOWNLOAD_AVAILABLE}' column and no availability check was given.",
            context={"missing_columns": [DOWNLOAD_AVAILABLE]},
        )
    logger.info("Checking availability of %d record(s)...", len(records))
    flags = [truthy(value) for value in check_availability(records)]
    if len(flags) != len(records):
        raise RecordValidationError(
            f"Availability check returned {len(flags)} flags for {len(records)} records."
        )
    return flags


def _report_unavailable(availability: Sequence[bool]) -> None:
    unavailable = availability.count(False)
    if not availability or not unavailable:
        return
    if unavailable == len(availability):
        message = "None of the records are available for download. Nothing will be downloaded."
        logger.warning(message)
        warnings.warn(message, AvailabilityWarning, stacklevel=3)
        return
    logger.warning(
        "%d of %d record(s) are not available for download and will be skipped.",
        unavailable,
        len(availability),
    )


def _contained(plan: RecordPlan, step: str, fn: Callable[[], Any]) -> Any:
    """Run one resolution step for a record; failures are logged and give None."""
    try:
        return fn()
    except RESOLUTION_ERRORS as exc:
        logger.warning("%s Could not resolve %s for '%s': %s", plan.label, step, plan.name, exc)
        return None


def _usable_digest(plan: RecordPlan, digest: str | None) -> str | None:
    if digest is None:
        return None
    try:
        digest_algorithm_for(digest)
    except ValueError:
        logger.warning(
            "%s Ignoring reference checksum of '%s' in an unknown format: %r",
            plan.label,
            plan.name,
            digest,
        )
        return None
    return digest


def build_plans(
    records: RecordCollection, availability: Sequence[bool], dir_out: Path, hub: str
) -> list[RecordPlan]:
    total = len(records)
    plans: list[RecordPlan] = []
    for index, record in enumerate(records):
        handler = get_handler(str(record.get("product_group")))
        available = availability[index]
        plans.append(
            RecordPlan(
                index=index,
                record=record,
                variant=handler.variant(record, hub),
                available=available,
                directory=product_directory(dir_out, record.get(PRODUCT)),
                label=dataset_label(index + 1, total),
            )
        )
    return plans


def resolve_plans(
    plans: Sequence[RecordPlan], ctx: ProviderContext, md5_check: bool
) -> list[RecordPlan]:
    """Credential, checksum and target resolution for the available plans."""
    resolved = list(plans)
    by_group: dict[str, list[RecordPlan]] = {}
    for plan in plans:
        if plan.available:
            by_group.setdefault(plan.product_group, []).append(plan)

    for group, group_plans in by_group.items():
        handler = get_handler(group)
        for plan in handler.prepare(group_plans, ctx):
            resolved[plan.index] = plan

    for plan in list(resolved):
        if not plan.available:
            continue
        handler = get_handler(plan.product_group)
        with LogContext(record_id=plan.record_id, product_group=plan.product_group):
            plan = dataclasses.replace(
                plan,
                credential=_contained(plan, "credential", lambda: handler.resolve_credential(plan, ctx)),
            )
            if md5_check:
                checksum = _contained(plan, "checksum", lambda: handler.resolve_checksum(plan, ctx))
                plan = dataclasses.replace(plan, checksum=_usable_digest(plan, checksum))
            plan = dataclasses.replace(
                plan,
                targets=_contained(plan, "dataset URL", lambda: handler.assemble(plan, ctx)),
            )
        resolved[plan.index] = plan
    return resolved


def download_record(
    plan: RecordPlan,
    handler: ProviderHandler,
    downloader: RetryingDownloader,
    verbose: bool = True,
) -> RecordResult:
    """Download every file of one plan, one pair at a time."""
    if not plan.available:
        logger.log(
            logging.INFO if verbose else logging.DEBUG,
            "%s Skipping download of dataset '%s', since it is not available for download...",
            plan.label,
            plan.name,
        )
        return RecordResult(plan)

    with LogContext(record_id=plan.record_id, product_group=plan.product_group):
        targets = plan.targets
        if targets is None:
            pair = PairId(plan.index, 1, 1, plan.record_id, plan.name, plan.label)
            return RecordResult(plan, (downloader.run(pair, None, None),))

        auth = handler.transfer_auth(plan)
        count = len(targets)
        # A reference digest describes the record's single dataset file
        digest = plan.checksum if count == 1 else None
        outcomes: list[PairOutcome] = []
        for position, (url, file) in enumerate(targets.pairs(), start=1):
            label = file_label(plan.label, position, count) if count > 1 else plan.label
            name = file.name if count > 1 else plan.name
            pair = PairId(plan.index, position, count, plan.record_id, name, label)
            outcomes.append(downloader.run(pair, url, file, auth=auth, reference_digest=digest))
    return RecordResult(plan, tuple(outcomes))


class _ThreadClients:
    """One HttpClient per worker thread, all closed together."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._local = threading.local()
        self._lock = threading.Lock()
        self._clients: list[HttpClient] = []

    def get(self) -> HttpClient:
        client = getattr(self._local, "client", None)
        if client is None:
            client = HttpClient(timeouts=self.settings.timeouts, retry=self.settings.retry)
            self._local.client = client
            with self._lock:
                self._clients.append(client)
        return client

    def close(self) -> None:
        for client in self._clients:
            client.close()
        self._clients.clear()


def download_all(
    plans: Sequence[RecordPlan],
    settings: Settings,
    *,
    client: MetadataClient | None,
    observer: DownloadObserver,
    workers: int,
    verbose: bool = True,
) -> list[RecordResult]:
    """Download all plans, sequentially or on a thread pool.

    A caller-supplied ``client`` is shared by all workers; otherwise each worker
    thread gets its own ``HttpClient``.
    """
    thread_clients = _ThreadClients(settings)

    def run(plan: RecordPlan) -> RecordResult:
        transport = (client or thread_clients.get()).download
        downloader = RetryingDownloader(
            transport,
            max_attempts=settings.retry.max_attempts,
            delay=settings.retry.delay,
            observer=observer,
        )
        return download_record(plan, get_handler(plan.product_group), downloader, verbose)

    def run_contained(plan: RecordPlan) -> RecordResult:
        try:
            return run(plan)
        except Exception:
            logger.exception("%s Download of '%s' failed", plan.label, plan.name)
            return RecordResult(plan)

    try:
        if workers <= 1 or len(plans) <= 1:
            return [run_contained(plan) for plan in plans]

        results: list[RecordResult | None] = [None] * len(plans)
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = {ex.submit(run_contained, plan): plan for plan in plans}
            for fut in as_completed(futures):
                results[futures[fut].index] = fut.result()
        return [result for result in results if result is not None]
    finally:
        thread_clients.close()


def merge_results(
    records: RecordCollection,
    original_columns: Sequence[str],
    results: Sequence[RecordResult],
) -> RecordCollection:
    """Write ``dataset_file`` (and a caller-held ``md5_checksum``) back into the records."""
    dataset_files: list[list[str] | None] = []
    checksums: list[Any] = []
    for result in results:
        written = result.written
        dataset_files.append([str(path) for path in written] if written else None)
        checksum = result.plan.checksum
        checksums.append(checksum if checksum is not None else result.plan.record.get(MD5_CHECKSUM))

    merged = records.select(original_columns)
    if MD5_CHECKSUM in original_columns:
        merged = merged.with_column(MD5_CHECKSUM, checksums)
    return merged.with_column(DATASET_FILE, dataset_files)


def get_data(
    records: RecordCollection | Iterable[Mapping[str, Any]],
    dir_out: Path | str | None = None,
    md5_check: bool | None = None,
    force: bool = False,
    as_table: bool = False,
    hub: str | None = None,
    verbose: bool = True,
    *,
    session: SessionStore,
    settings: Settings | None = None,
    client: MetadataClient | None = None,
    check_availability: AvailabilityCheck | None = None,
    table_converter: TableConverter | None = None,
    observer: DownloadObserver | None = None,
    workers: int | None = None,
) -> Any:
    """Download the datasets of a record collection.

    Args:
        records: Records from the search step.
        dir_out: Existing base directory. Files go to ``<dir_out>/<product>/``.
            Defaults to ``<archive_dir>/datasets`` from the settings.
        md5_check: Verify downloads against the provider's reference digest.
            Defaults to ``settings.md5_check``.
        force: Accepted for compatibility; currently only logged.
        as_table: Pass the result through ``table_converter``.
        hub: Copernicus hub for Sentinel records, or ``auto``. Defaults to
            ``settings.hub``.
        verbose: Log progress at INFO instead of DEBUG.
        session: Logins per service. Missing required logins are fatal.
        settings: Endpoints, retry and timeout settings.
        client: HTTP client; by default an ``HttpClient`` built from ``settings``.
        check_availability: Called with the records when they have no
            ``download_available`` column; returns one flag per record.
        table_converter: Converts the result collection when ``as_table`` is set.
        observer: Receives download events; defaults to logging them.
        workers: Records downloaded concurrently; defaults to ``settings.workers``.

    Returns:
        The records with their original columns plus ``dataset_file``: the
        paths written per record, or None when nothing was written.

    Raises:
        LoginRequiredError: A product group needs a service not logged in.
        RecordValidationError: Required columns are missing.
        ConfigValidationError: Unknown hub or unusable output directory.
    """
    settings = settings or Settings()
    if not isinstance(records, RecordCollection):
        records = RecordCollection(records)
    original_columns = records.columns
    records = check_records(records)
    hub = hub or settings.hub
    md5_check = settings.md5_check if md5_check is None else md5_check

    if hub != "auto" and hub not in HUBS:
        raise ConfigValidationError(
            f"Unknown hub '{hub}'. Use 'auto' or one of: {', '.join(HUBS)}",
            context={"hub": hub},
        )

    groups = list(dict.fromkeys(str(value) for value in records.column("product_group")))
    session.require(required_logins(groups))
    out_dir = resolve_dir_out(dir_out, settings)
    if force:
        logger.debug("force=True has no effect on which datasets are downloaded.")

    availability = _availability(records, check_availability)
    _report_unavailable(availability)

    observer = observer or LoggingObserver(verbose)
    worker_count = workers if workers is not None else settings.workers
    owned_client = client is None
    metadata_client = client or HttpClient(timeouts=settings.timeouts, retry=settings.retry)
    try:
        ctx = ProviderContext(settings=settings, session=session, client=metadata_client, hub=hub)
        plans = build_plans(records, availability, out_dir, hub)
        plans = resolve_plans(plans, ctx, md5_check)
        ensure_directories(plan.directory for plan in plans if plan.directory)
        results = download_all(
            plans,
            settings,
            client=metadata_client if owned_client and worker_count <= 1 else client,
            observer=observer,
            workers=worker_count,
            verbose=verbose,
        )
    finally:
        if owned_client:
            metadata_client.close()

    files_written = sum(len(result.written) for result in results)
    records_done = sum(1 for result in results if result.written)
    logger.info(
        "Downloaded %d file(s) for %d of %d record(s) to %s",
        files_written,
        records_done,
        len(results),
        out_dir,
    )

    merged = merge_results(records, original_columns, results)
    if as_table:
        if table_converter is None:
            logger.debug("as_table=True without a table converter; returning records.")
            return merged
        return table_converter(merged)
    return merged


def get_sentinel_data(records: Any, *args: Any, **kwargs: Any) -> Any:
    return get_data(records, *args, **kwargs)


def get_landsat_data(records: Any, *args: Any, **kwargs: Any) -> Any:
    return get_data(records, *args, **kwargs)


def get_modis_data(records: Any, *args: Any, **kwargs: Any) -> Any:
    return get_data(records, *args, **kwargs)
