"""Settings for the download pipeline.

Settings come from an optional YAML file validated against
``schemas/settings.schema.json``; every key has a default so an empty or
missing file yields a working configuration against the public endpoints.
"""

from __future__ import annotations

import dataclasses
import json
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from spatial_collector.exceptions import ConfigValidationError, YamlParseError
from spatial_collector.utils.paths import ensure_dir

SETTINGS_SCHEMA = "settings"

DEFAULT_API = {
    "espa": "https://espa.cr.usgs.gov/api/v1/",
    "landsat_aws": "https://landsat-pds.s3.amazonaws.com/c1/L8/",
    "laads": "https://ladsweb.modaps.eosdis.nasa.gov/archive/allData/",
    "srtm": "https://e4ftl01.cr.usgs.gov/MEASURES/",
}

DEFAULT_HUBS = {
    "dhus": "https://scihub.copernicus.eu/dhus/",
    "apihub": "https://scihub.copernicus.eu/apihub/",
    "s5p": "https://s5phub.copernicus.eu/dhus/",
    "gnss": "https://scihub.copernicus.eu/gnss/",
}


@dataclasses.dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    delay: float = 0.0


@dataclasses.dataclass(frozen=True)
class Timeouts:
    connect: float = 15.0
    read: float = 300.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.connect, self.read)


@dataclasses.dataclass(frozen=True)
class Settings:
    archive_dir: Path | None = None
    hub: str = "auto"
    md5_check: bool = True
    workers: int = 1
    retry: RetryConfig = dataclasses.field(default_factory=RetryConfig)
    timeouts: Timeouts = dataclasses.field(default_factory=Timeouts)
    api: dict[str, str] = dataclasses.field(default_factory=lambda: dict(DEFAULT_API))
    hubs: dict[str, str] = dataclasses.field(default_factory=lambda: dict(DEFAULT_HUBS))
    logins: dict[str, dict[str, Any]] = dataclasses.field(default_factory=dict)


@cache
def load_schema(schema_name: str) -> dict[str, Any]:
    schema_path = resources.files("spatial_collector").joinpath(
        "schemas", f"{schema_name}.schema.json"
    )
    return json.loads(schema_path.read_text(encoding="utf-8"))


def validate_config(config: Any, schema_name: str, *, config_path: Path | None = None) -> None:
    schema = load_schema(schema_name)
    validator = Draft7Validator(schema, format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(config), key=lambda exc: list(exc.path))
    if not errors:
        return
    location = str(config_path) if config_path else "<config>"
    lines = [f"Schema validation failed for {location} ({schema_name})."]
    error_details: list[dict[str, str]] = []
    for error in errors[:10]:
        path = ".".join(str(p) for p in error.path) if error.path else "<root>"
        lines.append(f"- {path}: {error.message}")
        error_details.append({"path": path, "message": error.message})
    if len(errors) > 10:
        lines.append(f"... and {len(errors) - 10} more errors.")
    raise ConfigValidationError(
        "\n".join(lines),
        context={
            "path": location,
            "schema": schema_name,
            "errors": error_details,
            "truncated": len(errors) > 10,
        },
    )


def read_yaml(path: Path, schema_name: str | None = None) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise YamlParseError(
            f"YAML parse error in {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    if data is None:
        data = {}
    if schema_name:
        validate_config(data, schema_name, config_path=path)
    return data


def _with_trailing_slash(urls: dict[str, str]) -> dict[str, str]:
    return {key: value if value.endswith("/") else value + "/" for key, value in urls.items()}


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """Build ``Settings`` from an already validated mapping."""
    retry = data.get("retry") or {}
    timeouts = data.get("timeouts") or {}
    archive_dir = data.get("archive_dir")
    return Settings(
        archive_dir=Path(archive_dir).expanduser() if archive_dir else None,
        hub=data.get("hub", "auto"),
        md5_check=bool(data.get("md5_check", True)),
        workers=int(data.get("workers", 1)),
        retry=RetryConfig(
            max_attempts=int(retry.get("max_attempts", RetryConfig.max_attempts)),
            delay=float(retry.get("delay", RetryConfig.delay)),
        ),
        timeouts=Timeouts(
            connect=float(timeouts.get("connect", Timeouts.connect)),
            read=float(timeouts.get("read", Timeouts.read)),
        ),
        api=_with_trailing_slash({**DEFAULT_API, **(data.get("api") or {})}),
        hubs=_with_trailing_slash({**DEFAULT_HUBS, **(data.get("hubs") or {})}),
        logins=dict(data.get("logins") or {}),
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from ``path``; ``None`` or a missing file gives the defaults."""
    if path is None or not path.exists():
        return Settings()
    return settings_from_dict(read_yaml(path, schema_name=SETTINGS_SCHEMA))


def resolve_dir_out(dir_out: Path | str | None, settings: Settings) -> Path:
    """Resolve the dataset output directory.

    An explicit ``dir_out`` must already exist. Without one, ``datasets/`` under
    the configured archive directory is used and created on demand.
    """
    if dir_out is not None:
        path = Path(dir_out).expanduser()
        if not path.is_dir():
            raise ConfigValidationError(
                f"Output directory does not exist: {path}",
                context={"dir_out": str(path)},
            )
        return path
    if settings.archive_dir is None:
        raise ConfigValidationError(
            "No output directory given and no archive_dir configured.",
        )
    return ensure_dir(settings.archive_dir / "datasets")
