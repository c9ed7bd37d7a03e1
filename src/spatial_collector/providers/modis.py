"""MODIS products from the LAADS DAAC archive."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from spatial_collector.providers.base import (
    ModisVariant,
    ProductVariant,
    ProviderContext,
    ProviderHandler,
    target_path,
)
from spatial_collector.records import DatasetTargets, RecordPlan

# MOD09GA.A2020001.h18v04.006.2020003034414
_GRANULE_ID = re.compile(
    r"^(?P<product>[A-Z0-9_]+)\.A(?P<year>\d{4})(?P<doy>\d{3})\.[^.]+\.(?P<collection>\d{3})\.\d+$"
)


def laads_url(base_url: str, record_id: str) -> str | None:
    match = _GRANULE_ID.match(record_id)
    if not match:
        return None
    return (
        f"{base_url}{int(match.group('collection'))}/{match.group('product')}/"
        f"{match.group('year')}/{match.group('doy')}/{record_id}.hdf"
    )


class ModisHandler(ProviderHandler):
    group = "MODIS"
    required_logins = ("USGS", "earthdata")

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        return ModisVariant()

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        url = laads_url(ctx.settings.api["laads"], plan.record_id)
        if url is None:
            return None
        return DatasetTargets.single(url, target_path(plan, f"{plan.record_id}.hdf"))
