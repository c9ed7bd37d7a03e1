"""Registry of provider handlers with lazy loading.

Provider modules are only imported when a record of their product group is
actually processed.

Usage:
    from spatial_collector.providers.registry import get_handler, required_logins

    handler = get_handler("Landsat")
    services = required_logins(["Sentinel", "MODIS"])
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable
from typing import Any

from spatial_collector.providers.base import ProviderHandler, UnknownProviderHandler

logger = logging.getLogger(__name__)

# Module cache for lazy loading
_module_cache: dict[str, Any] = {}

# Product group -> (module name, handler class name)
_PROVIDER_LOADERS: dict[str, tuple[str, str]] = {
    "Sentinel": ("sentinel", "SentinelHandler"),
    "Landsat": ("landsat", "LandsatHandler"),
    "MODIS": ("modis", "ModisHandler"),
    "SRTM": ("srtm", "SrtmHandler"),
}

# Handlers registered at runtime take precedence over the built-in loaders
_registered: dict[str, ProviderHandler] = {}


def _lazy_import(module_name: str) -> Any:
    if module_name not in _module_cache:
        full_name = f"spatial_collector.providers.{module_name}"
        _module_cache[module_name] = importlib.import_module(full_name)
    return _module_cache[module_name]


def get_handler(product_group: str) -> ProviderHandler:
    """Get the handler for a product group.

    Unknown groups get an ``UnknownProviderHandler``, which resolves nothing,
    so their records end up without a dataset file instead of failing the run.
    """
    if product_group in _registered:
        return _registered[product_group]
    if product_group not in _PROVIDER_LOADERS:
        return UnknownProviderHandler()
    module_name, class_name = _PROVIDER_LOADERS[product_group]
    module = _lazy_import(module_name)
    return getattr(module, class_name)()


def register_provider(handler: ProviderHandler) -> None:
    """Register a handler for its ``group``, replacing any existing one."""
    if not handler.group:
        raise ValueError("Provider handlers must define a product group.")
    logger.debug("Registering provider handler for '%s'", handler.group)
    _registered[handler.group] = handler


def unregister_provider(product_group: str) -> None:
    _registered.pop(product_group, None)


def list_providers() -> list[str]:
    """List all product groups with a handler."""
    return sorted(set(_PROVIDER_LOADERS) | set(_registered))


def required_logins(product_groups: Iterable[str]) -> list[str]:
    """Services that must be logged in for the given product groups, in first-seen order."""
    services: list[str] = []
    for group in product_groups:
        for service in get_handler(group).required_logins:
            if service not in services:
                services.append(service)
    return services
