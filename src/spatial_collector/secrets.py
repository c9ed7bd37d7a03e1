from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "<REDACTED>"

_SENSITIVE_KEY_NORMALIZED = {
    "authorization",
    "password",
    "passwd",
    "pass",
    "pw",
    "secret",
    "apikey",
    "token",
    "accesstoken",
}

_KEY_VALUE_RE = re.compile(
    r"(?i)(authorization|password|passwd|secret|api[-_]?key|access[-_]?token|token)(\s*[:=]\s*)"
    r"(\"[^\"]*\"|'[^']*'|(?:Basic|Bearer)\s+[^,\s]+|[^,\s]+)"
)
_AUTH_SCHEME_RE = re.compile(r"(?i)\b(Basic|Bearer)\s+[A-Za-z0-9+/=._-]{6,}")
# user:password@host in URLs
_URL_USERINFO_RE = re.compile(r"(?i)(https?://)([^/\s:@]+):([^/\s@]+)@")


def _normalize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", key.lower())


def is_sensitive_key(key: str) -> bool:
    return _normalize_key(key) in _SENSITIVE_KEY_NORMALIZED


class SecretStr:
    """
    String-like wrapper for provider passwords and other login secrets.

    ``str()`` and ``repr()`` both return ``<REDACTED>`` so a credential pair can
    travel through records, log context and exception context without leaking.
    Call ``reveal()`` only at the point where the value is handed to the HTTP
    transport.

        secret = SecretStr("hunter2")
        print(secret)           # <REDACTED>
        print(secret.reveal())  # hunter2

    ``None`` is normalized to the empty string.
    """

    def __init__(self, value: Any) -> None:
        self._value = "" if value is None else str(value)

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return REDACTED

    def __str__(self) -> str:
        return REDACTED

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretStr):
            return self._value == other._value
        return False

    def __hash__(self) -> int:
        return hash(self._value)


def redact_string(text: str) -> str:
    def replace_match(match: re.Match[str]) -> str:
        value = match.group(3)
        if value.startswith(("'", '"')) and value.endswith(value[0]):
            quote = value[0]
            return f"{match.group(1)}{match.group(2)}{quote}{REDACTED}{quote}"
        return f"{match.group(1)}{match.group(2)}{REDACTED}"

    redacted = _KEY_VALUE_RE.sub(replace_match, text)
    redacted = _AUTH_SCHEME_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", redacted)
    redacted = _URL_USERINFO_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}:{REDACTED}@", redacted)
    return redacted


def redact_structure(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return value
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return {
            key: SecretStr(val) if is_sensitive_key(str(key)) else redact_structure(val)
            for key, val in value.items()
        }
    if isinstance(value, tuple):
        return tuple(redact_structure(item) for item in value)
    if isinstance(value, list):
        return [redact_structure(item) for item in value]
    return value
