"""Base model for lampfleet wire types.

Every wire model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase JSON keys map
  automatically to snake_case fields.
* ``frozen=True``: snapshots handed to subscribers can never be mutated
  behind the store's back.  The store swaps in new records built by
  re-validating the merged fields, so model validators run on every
  change (``model_copy(update=...)`` would skip them).
* :meth:`FleetBaseModel.to_wire`, the single place that decides the JSON
  shape (aliases, JSON-safe values).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _ensure_tz_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_tz_aware)]
"""Datetime that is always timezone-aware (naive values are taken as UTC)."""


class FleetBaseModel(BaseModel):
    """Base for lampfleet wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump into the camelCase, JSON-safe form sent over the websocket."""
        return self.model_dump(mode="json", by_alias=True)
