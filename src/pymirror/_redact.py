"""Redaction of credentials and sensitive record attributes in request traces.

Traces carry two kinds of secrets: credential headers (``Authorization``
plus every header the application configured on :class:`MirrorConfig`)
and record attributes such as passwords. A :class:`TraceRedactor` is built
from the client configuration and masks both.

Names are compared case-insensitively with separators ignored, so
``apiKey``, ``api_key`` and ``Api-Key`` are the same name.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pymirror.config import MirrorConfig

MASK = "<redacted>"


def normalize_name(name: Any) -> str:
    return "".join(ch for ch in str(name).lower() if ch.isalnum())


CREDENTIAL_NAMES: frozenset[str] = frozenset(
    normalize_name(name)
    for name in (
        "password",
        "token",
        "access_token",
        "refresh_token",
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "api_key",
        "x-api-key",
        "secret",
        "client_secret",
    )
)


@dataclasses.dataclass(frozen=True)
class TraceRedactor:
    """Masks sensitive names in headers and JSON record bodies."""

    sensitive: frozenset[str] = CREDENTIAL_NAMES
    max_chars: int = 256

    @classmethod
    def from_config(cls, config: MirrorConfig) -> TraceRedactor:
        """Credentials plus configured header names and ``sensitive_fields``."""
        extra = {normalize_name(name) for name in (*config.headers, *config.sensitive_fields)}
        return cls(sensitive=CREDENTIAL_NAMES | extra)

    def is_sensitive(self, name: Any) -> bool:
        return normalize_name(name) in self.sensitive

    def record(self, value: Any) -> Any:
        """Copy of a JSON body with sensitive attributes masked.

        Only JSON-shaped values reach this method (bodies are traced after
        they were encoded or decoded), so the walk always terminates.
        """
        if isinstance(value, Mapping):
            return {str(key): MASK if self.is_sensitive(key) else self.record(item) for key, item in value.items()}
        if isinstance(value, list | tuple):
            return [self.record(item) for item in value]
        if isinstance(value, str) and len(value) > self.max_chars:
            return f"{value[: self.max_chars]}...<{len(value)} chars>"
        return value

    def headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        """Mask sensitive headers, keeping an auth scheme (``Bearer <redacted>``)."""
        masked: dict[str, str] = {}
        for name, value in headers.items():
            if not self.is_sensitive(name):
                masked[name] = value
                continue
            scheme, sep, _ = value.partition(" ")
            masked[name] = f"{scheme} {MASK}" if sep else MASK
        return masked
