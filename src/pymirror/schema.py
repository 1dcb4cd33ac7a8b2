"""Schema registry: static description of every entity type.

Schema entries accept either camelCase keys (``identityField``,
``oneToMany``, ``foreignKey``, ``localOnly``, ``orderBy``) or their
snake_case field names, so a schema written for a JavaScript front-end can
be passed in unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pymirror._constants import DEFAULT_IDENTITY_FIELD
from pymirror.exceptions import UnknownTypeError

_ORDER_BY_RE = re.compile(r"^-?[\w-]+$")


class ValidationRule(BaseModel):
    """A field rule, optionally carrying an async post-update hook.

    ``after_update`` is awaited as ``after_update(client, identity_field,
    record)`` whenever the value at ``path`` differs from the record's
    pre-mutation snapshot.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    path: str
    after_update: Callable[..., Any] | None = None


class SchemaEntry(BaseModel):
    """Description of one entity type."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    url: str | None = None
    identity_field: str | None = None
    one_to_many: dict[str, str] = Field(default_factory=dict)
    foreign_key: dict[str, str] = Field(default_factory=dict)
    scope: str | None = None
    segment: bool = False
    local_only: bool = False
    order_by: str | None = None
    parse: Callable[[Any], Any] | None = None
    validation: list[ValidationRule] = Field(default_factory=list)

    @field_validator("order_by")
    @classmethod
    def _check_order_by(cls, value: str | None) -> str | None:
        if value is not None and not _ORDER_BY_RE.match(value):
            raise ValueError(f"orderBy must be an attribute name with an optional leading '-', got {value!r}")
        return value

    @property
    def is_local(self) -> bool:
        """True when the type never reaches the transport."""
        return self.local_only or not self.url

    @property
    def order(self) -> tuple[str, bool] | None:
        """``(attribute, descending)`` derived from ``order_by``."""
        if not self.order_by:
            return None
        if self.order_by.startswith("-"):
            return self.order_by[1:], True
        return self.order_by, False

    @property
    def relations(self) -> dict[str, str]:
        """All relation attributes mapped to their related type."""
        return {**self.one_to_many, **self.foreign_key}


class SchemaRegistry:
    """Read-only lookup of schema entries by type name."""

    def __init__(
        self,
        schema: Mapping[str, SchemaEntry | Mapping[str, Any]],
        *,
        default_identity_field: str = DEFAULT_IDENTITY_FIELD,
    ) -> None:
        self._default_identity_field = default_identity_field
        self._entries: dict[str, SchemaEntry] = {
            name: entry if isinstance(entry, SchemaEntry) else SchemaEntry.model_validate(entry)
            for name, entry in schema.items()
        }

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def types(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def items(self) -> Iterator[tuple[str, SchemaEntry]]:
        return iter(self._entries.items())

    def require(self, type_name: str) -> SchemaEntry:
        """Return the entry for *type_name* or raise :class:`UnknownTypeError`."""
        entry = self._entries.get(type_name)
        if entry is None:
            raise UnknownTypeError(type_name, self._entries)
        return entry

    def identity_field(self, type_name: str) -> str:
        return self.require(type_name).identity_field or self._default_identity_field
