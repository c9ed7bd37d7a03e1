"""Per-provider download rules."""

from __future__ import annotations

from spatial_collector.providers.base import (
    LandsatVariant,
    MetadataClient,
    ModisVariant,
    ProductVariant,
    ProviderContext,
    ProviderHandler,
    SentinelVariant,
    SrtmVariant,
    UnknownProviderHandler,
    UnknownVariant,
)
from spatial_collector.providers.registry import (
    get_handler,
    list_providers,
    register_provider,
    required_logins,
    unregister_provider,
)

__all__ = [
    "LandsatVariant",
    "MetadataClient",
    "ModisVariant",
    "ProductVariant",
    "ProviderContext",
    "ProviderHandler",
    "SentinelVariant",
    "SrtmVariant",
    "UnknownProviderHandler",
    "UnknownVariant",
    "get_handler",
    "list_providers",
    "register_provider",
    "required_logins",
    "unregister_provider",
]
