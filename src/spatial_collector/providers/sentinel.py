"""Sentinel products from the Copernicus Open Access Hubs."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from spatial_collector.providers.base import (
    ProductVariant,
    ProviderContext,
    ProviderHandler,
    SentinelVariant,
    target_path,
)
from spatial_collector.records import (
    ENTITY_ID,
    IS_GNSS,
    MD5_URL,
    PRODUCT,
    DatasetTargets,
    RecordPlan,
    is_missing,
    truthy,
)
from spatial_collector.secrets import SecretStr
from spatial_collector.session import Credential
from spatial_collector.utils.paths import safe_filename

logger = logging.getLogger(__name__)

HUBS = ("dhus", "apihub", "s5p", "gnss")

# Public guest accounts of the special-purpose hubs
GUEST_LOGINS = {
    "s5p": ("s5pguest", "s5pguest"),
    "gnss": ("gnssguest", "gnssguest"),
}


def select_hub(hub: str, product: str, gnss: bool = False) -> str:
    """Choose the hub for a product.

    An explicit hub name is used as given. ``auto`` picks the GNSS hub for GNSS
    products, the S5P hub for Sentinel-5P and the main hub otherwise.
    """
    if hub != "auto":
        if hub not in HUBS:
            raise ValueError(f"Unknown Copernicus hub '{hub}'. Use 'auto' or one of: {', '.join(HUBS)}")
        return hub
    if gnss:
        return "gnss"
    if str(product).startswith("Sentinel-5P"):
        return "s5p"
    return "dhus"


class SentinelHandler(ProviderHandler):
    group = "Sentinel"
    required_logins = ("Copernicus",)
    authenticated_transfer = True

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        gnss = truthy(record.get(IS_GNSS))
        return SentinelVariant(hub=select_hub(hub, record.get(PRODUCT) or "", gnss), gnss=gnss)

    def resolve_credential(self, plan: RecordPlan, ctx: ProviderContext) -> Credential | None:
        variant = plan.variant
        if not isinstance(variant, SentinelVariant):
            return None
        hub = variant.hub
        hub_url = ctx.settings.hubs[hub]
        if hub in GUEST_LOGINS:
            user, password = GUEST_LOGINS[hub]
            return Credential(user=user, password=SecretStr(password), service_url=hub_url)
        login = ctx.session.get("Copernicus")
        if login is None:
            return None
        return dataclasses.replace(login, service_url=hub_url)

    def resolve_checksum(self, plan: RecordPlan, ctx: ProviderContext) -> str | None:
        md5_url = plan.record.get(MD5_URL)
        if is_missing(md5_url) or not md5_url:
            return None
        auth = plan.credential.as_auth() if plan.credential else None
        digest = ctx.client.get_text(str(md5_url), auth=auth).strip()
        return digest or None

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        entity_id = plan.record.get(ENTITY_ID)
        if plan.credential is None or not plan.credential.service_url or is_missing(entity_id):
            return None
        url = f"{plan.credential.service_url}odata/v1/Products('{entity_id}')/$value"
        product = str(plan.record.get(PRODUCT) or "")
        extension = ".nc" if product.startswith("Sentinel-5P") else ".zip"
        filename = safe_filename(plan.record_id) + extension
        return DatasetTargets.single(url, target_path(plan, filename))
