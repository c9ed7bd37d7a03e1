from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class SpatialCollectorError(Exception):
    message: str
    code: str = "spatial_collector_error"
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, message: str, *, code: str | None = None, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.context = dict(context or {})

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "error_code": self.code,
            "error_message": self.message,
            "error_context": self.context,
        }


class LoginRequiredError(SpatialCollectorError):
    """Raised before any record is processed when a provider login is missing."""

    code = "login_required"

    def __init__(self, message: str, *, services: list[str]) -> None:
        super().__init__(message, context={"services": list(services)})
        self.services = list(services)


class RecordValidationError(SpatialCollectorError):
    code = "record_validation_error"


class ConfigValidationError(SpatialCollectorError):
    code = "config_validation_error"


class YamlParseError(SpatialCollectorError):
    code = "yaml_parse_error"


class TransferError(SpatialCollectorError):
    code = "transfer_error"


class ChecksumMismatchError(TransferError):
    code = "checksum_mismatch"

    def __init__(self, message: str, *, expected: str, actual: str) -> None:
        super().__init__(message, context={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class AvailabilityWarning(UserWarning):
    """Emitted when none of the supplied records can be downloaded."""
