"""Custom exception hierarchy for pymirror."""

from __future__ import annotations

from collections.abc import Iterable


class MirrorError(Exception):
    """Base exception for all pymirror errors."""


class MirrorConfigError(MirrorError):
    """Invalid or missing configuration."""


class UnknownTypeError(MirrorError):
    """Type name not present in the schema registry."""

    def __init__(self, type_name: str, valid_types: Iterable[str]) -> None:
        self.type_name = type_name
        self.valid_types = tuple(valid_types)
        super().__init__(f"Invalid type {type_name!r}. Acceptable types are: {', '.join(self.valid_types)}")


class InvalidQueryError(MirrorError):
    """Malformed argument passed to ``find`` / ``find_all``."""


class MalformedResponseError(MirrorError):
    """Response or cached payload could not be decoded as JSON."""


class TransportError(MirrorError):
    """Request-level failure (network, non-2xx status)."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        url: str = "",
    ) -> None:
        self.status = status
        self.url = url
        super().__init__(message)


class RemoteError(TransportError):
    """Server answered with a 2xx status but reported an application error.

    Detected by the presence of an ``errorMessage`` field in the decoded
    response body.
    """


class MissingIdentityError(MirrorError):
    """Record has neither a ``url`` nor an identity value to address it."""


class SaveFailedError(MirrorError):
    """A persisted create returned no usable response body."""


class ReservedNamespaceError(MirrorError):
    """The reserved base namespace id was used as a switch target."""
