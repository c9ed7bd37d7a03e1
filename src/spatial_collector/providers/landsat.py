"""Landsat products.

Level-1 scenes come from the public AWS bucket, one file per band plus
metadata. Higher-level products are produced on demand by USGS-EROS ESPA: an
item-status request resolves the per-item handle that carries both the
product download URL and the checksum URL.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import urlparse

import requests

from spatial_collector.exceptions import SpatialCollectorError
from spatial_collector.providers.base import (
    LandsatVariant,
    ProductVariant,
    ProviderContext,
    ProviderHandler,
    target_path,
)
from spatial_collector.records import (
    LEVEL,
    ORDER_ID,
    DatasetTargets,
    RecordPlan,
    is_missing,
)
from spatial_collector.utils.paths import safe_filename

logger = logging.getLogger(__name__)

# LC08_L1TP_193026_20200101_20200113_01_T1
_L8_SCENE_ID = re.compile(r"^LC08_[A-Z0-9]{4}_(?P<path>\d{3})(?P<row>\d{3})_\d{8}_\d{8}_\d{2}_[A-Z0-9]{2}$")

L1_FILE_SUFFIXES = tuple(f"B{band}.TIF" for band in range(1, 12)) + ("BQA.TIF", "MTL.txt", "ANG.txt")


def espa_item_url(espa_api: str, order_id: str, record_id: str) -> str:
    return f"{espa_api}item-status/{order_id}/{record_id}"


def first_espa_item(payload: Any) -> Mapping[str, Any] | None:
    """Return the first item of the first order in an item-status response."""
    if not isinstance(payload, Mapping) or not payload:
        return None
    items = next(iter(payload.values()))
    if not isinstance(items, list) or not items or not isinstance(items[0], Mapping):
        return None
    return items[0]


def fetch_espa_item(plan: RecordPlan, ctx: ProviderContext) -> Mapping[str, Any] | None:
    """Query ESPA item status for one record. Failures are logged and give None."""
    order_id = plan.record.get(ORDER_ID)
    if is_missing(order_id) or not order_id:
        logger.warning("%s Record '%s' has no ESPA order_id.", plan.label, plan.name)
        return None
    login = ctx.session.get("USGS")
    url = espa_item_url(ctx.settings.api["espa"], str(order_id), plan.record_id)
    try:
        payload = ctx.client.get_json(url, auth=login.as_auth() if login else None)
    except (requests.exceptions.RequestException, SpatialCollectorError, ValueError) as exc:
        logger.warning("%s Could not get ESPA item status for '%s': %s", plan.label, plan.name, exc)
        return None
    item = first_espa_item(payload)
    if item is None:
        logger.warning("%s ESPA returned no item for '%s'.", plan.label, plan.name)
    return item


def resolve_espa_items(plans: Sequence[RecordPlan], ctx: ProviderContext) -> list[RecordPlan]:
    """Attach ESPA item handles to the plans that need on-demand processing."""
    prepared: list[RecordPlan] = []
    for plan in plans:
        variant = plan.variant
        if isinstance(variant, LandsatVariant) and variant.needs_processing:
            item = fetch_espa_item(plan, ctx)
            plan = dataclasses.replace(plan, variant=dataclasses.replace(variant, espa_item=item))
        prepared.append(plan)
    return prepared


def l1_scene_urls(base_url: str, record_id: str) -> list[tuple[str, str]] | None:
    """(url, filename) pairs for a Landsat 8 Level-1 scene on AWS, or None if unsupported."""
    match = _L8_SCENE_ID.match(record_id)
    if not match:
        return None
    folder = f"{base_url}{match.group('path')}/{match.group('row')}/{record_id}/"
    return [
        (f"{folder}{record_id}_{suffix}", f"{record_id}_{suffix}") for suffix in L1_FILE_SUFFIXES
    ]


class LandsatHandler(ProviderHandler):
    group = "Landsat"
    required_logins = ("USGS",)

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        level = record.get(LEVEL)
        return LandsatVariant(level=None if is_missing(level) else str(level))

    def prepare(self, plans: Sequence[RecordPlan], ctx: ProviderContext) -> list[RecordPlan]:
        return resolve_espa_items(plans, ctx)

    def resolve_checksum(self, plan: RecordPlan, ctx: ProviderContext) -> str | None:
        variant = plan.variant
        if not isinstance(variant, LandsatVariant) or not variant.needs_processing:
            return None
        cksum_url = (variant.espa_item or {}).get("cksum_download_url")
        if not cksum_url:
            return None
        tokens = ctx.client.get_text(str(cksum_url)).split()
        return tokens[0] if tokens else None

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        variant = plan.variant
        if not isinstance(variant, LandsatVariant):
            return None
        if variant.needs_processing:
            url = (variant.espa_item or {}).get("product_dload_url")
            if not url:
                return None
            filename = safe_filename(urlparse(str(url)).path.rsplit("/", 1)[-1], default="")
            if not filename:
                return None
            return DatasetTargets.single(str(url), target_path(plan, filename))
        pairs = l1_scene_urls(ctx.settings.api["landsat_aws"], plan.record_id)
        if pairs is None:
            logger.warning(
                "%s Level-1 download is only available for Landsat 8 scenes, not '%s'.",
                plan.label,
                plan.name,
            )
            return None
        return DatasetTargets(
            tuple(url for url, _ in pairs),
            tuple(target_path(plan, filename) for _, filename in pairs),
        )
