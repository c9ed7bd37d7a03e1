"""Login state for the provider services.

``SessionStore`` replaces ambient login globals: it is built once (from
settings, the environment or explicit ``login`` calls made by the caller) and
passed into the pipeline, which only reads from it.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

from spatial_collector.exceptions import LoginRequiredError
from spatial_collector.secrets import SecretStr

logger = logging.getLogger(__name__)

SERVICES = ("Copernicus", "USGS", "earthdata")
ENV_PREFIX = "SPATIAL_COLLECTOR"


@dataclasses.dataclass(frozen=True)
class Credential:
    """A (user, password) pair, optionally bound to the service URL it is valid for."""

    user: str
    password: SecretStr
    service_url: str | None = None

    def as_auth(self) -> tuple[str, str]:
        return (self.user, self.password.reveal())


class SessionStore:
    def __init__(self, logins: Mapping[str, Credential] | None = None) -> None:
        self._logins: dict[str, Credential] = dict(logins or {})

    def login(self, service: str, user: str, password: str | SecretStr) -> SessionStore:
        """Return a new store with ``service`` logged in; the receiver is unchanged."""
        if service not in SERVICES:
            raise ValueError(f"Unknown service '{service}'. Known: {', '.join(SERVICES)}")
        secret = password if isinstance(password, SecretStr) else SecretStr(password)
        logins = dict(self._logins)
        logins[service] = Credential(user=user, password=secret)
        return SessionStore(logins)

    def get(self, service: str) -> Credential | None:
        return self._logins.get(service)

    def is_logged_in(self, service: str) -> bool:
        return service in self._logins

    def require(self, services: Iterable[str]) -> None:
        missing = [s for s in services if not self.is_logged_in(s)]
        if missing:
            raise LoginRequiredError(
                f"Not logged in at: {', '.join(missing)}. "
                "Provide credentials in the settings file or environment first.",
                services=missing,
            )

    @property
    def services(self) -> list[str]:
        return sorted(self._logins)

    @classmethod
    def from_settings(
        cls,
        logins: Mapping[str, Mapping[str, Any]],
        environ: Mapping[str, str] | None = None,
    ) -> SessionStore:
        """Build a store from the ``logins`` settings block plus environment overrides.

        ``SPATIAL_COLLECTOR_<SERVICE>_USER`` / ``_PASSWORD`` take precedence over the
        file. ``password_env`` names a variable holding the password.
        """
        env = os.environ if environ is None else environ
        store = cls()
        for service in SERVICES:
            entry = logins.get(service) or {}
            key = f"{ENV_PREFIX}_{service.upper()}"
            user = env.get(f"{key}_USER") or entry.get("user")
            password = env.get(f"{key}_PASSWORD")
            if password is None and entry.get("password_env"):
                password = env.get(entry["password_env"])
            if password is None:
                password = entry.get("password")
            if not user:
                continue
            if password is None:
                logger.warning("Login for %s has a user but no password; skipping.", service)
                continue
            store = store.login(service, user, password)
        return store
