"""SRTM tiles from the NASA Earthdata LP DAAC archive."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from spatial_collector.providers.base import (
    ProductVariant,
    ProviderContext,
    ProviderHandler,
    SrtmVariant,
    target_path,
)
from spatial_collector.records import PRODUCT, DatasetTargets, RecordPlan
from spatial_collector.session import Credential

_TILE_ID = re.compile(r"^[NS]\d{2}[EW]\d{3}$")

SRTM_RELEASE = "003/2000.02.11"


def srtm_collection(product: str) -> str | None:
    product = product.lower()
    if "1arc" in product:
        return "SRTMGL1"
    if "3arc" in product:
        return "SRTMGL3"
    return None


class SrtmHandler(ProviderHandler):
    group = "SRTM"
    required_logins = ("earthdata",)
    authenticated_transfer = True

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        return SrtmVariant()

    def resolve_credential(self, plan: RecordPlan, ctx: ProviderContext) -> Credential | None:
        return ctx.session.get("earthdata")

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        collection = srtm_collection(str(plan.record.get(PRODUCT) or ""))
        tile = plan.record_id
        if collection is None or not _TILE_ID.match(tile):
            return None
        filename = f"{tile}.{collection}.hgt.zip"
        url = f"{ctx.settings.api['srtm']}{collection}.{SRTM_RELEASE}/{filename}"
        return DatasetTargets.single(url, target_path(plan, filename))
