"""Download orchestration for satellite dataset records."""

from spatial_collector.__version__ import __version__
from spatial_collector.config import Settings, load_settings
from spatial_collector.exceptions import (
    AvailabilityWarning,
    ChecksumMismatchError,
    ConfigValidationError,
    LoginRequiredError,
    RecordValidationError,
    SpatialCollectorError,
    TransferError,
)
from spatial_collector.pipeline import (
    get_data,
    get_landsat_data,
    get_modis_data,
    get_sentinel_data,
)
from spatial_collector.records import DatasetTargets, RecordCollection, RecordPlan
from spatial_collector.retry import DownloadObserver, LoggingObserver, PairState
from spatial_collector.session import Credential, SessionStore

__all__ = [
    "__version__",
    "AvailabilityWarning",
    "ChecksumMismatchError",
    "ConfigValidationError",
    "Credential",
    "DatasetTargets",
    "DownloadObserver",
    "LoggingObserver",
    "LoginRequiredError",
    "PairState",
    "RecordCollection",
    "RecordPlan",
    "RecordValidationError",
    "Settings",
    "SessionStore",
    "SpatialCollectorError",
    "TransferError",
    "get_data",
    "get_landsat_data",
    "get_modis_data",
    "get_sentinel_data",
    "load_settings",
]
