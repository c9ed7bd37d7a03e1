"""
Shared pytest fixtures for spatial collector tests.

Provides:
- A recording fake HTTP client standing in for ``HttpClient``
- Sample records per product group
- Settings and login stores
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
import requests

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

from spatial_collector.config import DEFAULT_API, DEFAULT_HUBS, RetryConfig, Settings  # noqa: E402
from spatial_collector.exceptions import TransferError  # noqa: E402
from spatial_collector.session import SessionStore  # noqa: E402
from spatial_collector.transfer import DownloadResult  # noqa: E402

SENTINEL_ENTITY_ID = "8d8a2d46-5a2b-4b5e-9a8e-3f9f1c1e2a10"
SENTINEL_RECORD_ID = "S2A_MSIL1C_20200101T103431_N0208_R108_T32UNA_20200101T123659"
LANDSAT_L1_ID = "LC08_L1TP_193026_20200101_20200113_01_T1"
MODIS_ID = "MOD09GA.A2020001.h18v04.006.2020003034414"


# =============================================================================
# Fake HTTP client
# =============================================================================


class FakeClient:
    """Records every call and serves canned responses by URL.

    ``failures`` maps a URL to the number of download attempts that fail
    before it starts serving its payload.
    """

    def __init__(
        self,
        *,
        texts: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        payloads: dict[str, bytes] | None = None,
        failures: dict[str, int] | None = None,
    ) -> None:
        self.texts = dict(texts or {})
        self.json = dict(json or {})
        self.payloads = dict(payloads or {})
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, str, tuple[str, str] | None]] = []

    def get_text(self, url: str, auth: tuple[str, str] | None = None) -> str:
        self.calls.append(("get_text", url, auth))
        if url not in self.texts:
            raise requests.exceptions.HTTPError(f"404 Not Found: {url}")
        return self.texts[url]

    def get_json(self, url: str, auth: tuple[str, str] | None = None) -> Any:
        self.calls.append(("get_json", url, auth))
        if url not in self.json:
            raise requests.exceptions.HTTPError(f"404 Not Found: {url}")
        return self.json[url]

    def download(self, url: str, out_path: Path, auth: tuple[str, str] | None = None) -> DownloadResult:
        self.calls.append(("download", url, auth))
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise TransferError(f"Transfer of {url} failed: 503 Service Unavailable")
        if url not in self.payloads:
            raise TransferError(f"Transfer of {url} failed: 404 Not Found")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(self.payloads[url])
        return DownloadResult(path=out_path, bytes_downloaded=len(self.payloads[url]), status_code=200)

    def urls(self, kind: str | None = None) -> list[str]:
        return [url for call, url, _ in self.calls if kind is None or call == kind]


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


# =============================================================================
# Settings and logins
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Default endpoints, no retry delay, archive under tmp_path."""
    return Settings(archive_dir=tmp_path / "archive", retry=RetryConfig(max_attempts=3, delay=0.0))


@pytest.fixture
def session() -> SessionStore:
    """A store logged in at every service."""
    return (
        SessionStore()
        .login("Copernicus", "copernicus-user", "copernicus-pass")
        .login("USGS", "usgs-user", "usgs-pass")
        .login("earthdata", "earthdata-user", "earthdata-pass")
    )


@pytest.fixture
def dir_out(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


# =============================================================================
# Records
# =============================================================================


def sentinel_download_url(hub: str = "dhus", entity_id: str = SENTINEL_ENTITY_ID) -> str:
    return f"{DEFAULT_HUBS[hub]}odata/v1/Products('{entity_id}')/$value"


def sentinel_md5_url(entity_id: str = SENTINEL_ENTITY_ID) -> str:
    return f"{DEFAULT_HUBS['dhus']}odata/v1/Products('{entity_id}')/Checksum/Value/$value"


@pytest.fixture
def sentinel_record() -> dict[str, Any]:
    return {
        "product": "Sentinel-2",
        "product_group": "Sentinel",
        "entity_id": SENTINEL_ENTITY_ID,
        "record_id": SENTINEL_RECORD_ID,
        "level": None,
        "summary": "Sentinel-2 L1C tile T32UNA",
        "download_available": True,
        "md5_url": sentinel_md5_url(),
    }


@pytest.fixture
def landsat_l1_record() -> dict[str, Any]:
    return {
        "product": "LANDSAT_8_C1",
        "product_group": "Landsat",
        "entity_id": "LC81930262020001LGN00",
        "record_id": LANDSAT_L1_ID,
        "level": "l1",
        "summary": "Landsat 8 scene 193/026",
        "download_available": True,
    }


@pytest.fixture
def landsat_espa_record() -> dict[str, Any]:
    return {
        "product": "LANDSAT_8_C1",
        "product_group": "Landsat",
        "entity_id": "LC81930262020001LGN00",
        "record_id": LANDSAT_L1_ID,
        "level": "sr",
        "summary": "Landsat 8 surface reflectance",
        "download_available": True,
        "order_id": "espa-user@example.com-01012020-000001",
    }


@pytest.fixture
def modis_record() -> dict[str, Any]:
    return {
        "product": "MODIS_MOD09GA_V6",
        "product_group": "MODIS",
        "entity_id": "MOD09GA.A2020001.h18v04.006",
        "record_id": MODIS_ID,
        "level": None,
        "summary": "MOD09GA h18v04",
        "download_available": True,
    }


@pytest.fixture
def srtm_record() -> dict[str, Any]:
    return {
        "product": "SRTM 1Arc-Second Global",
        "product_group": "SRTM",
        "entity_id": "SRTM1N47E011V3",
        "record_id": "N47E011",
        "level": None,
        "summary": "SRTM tile N47E011",
        "download_available": True,
    }


def landsat_aws_folder() -> str:
    return f"{DEFAULT_API['landsat_aws']}193/026/{LANDSAT_L1_ID}/"
