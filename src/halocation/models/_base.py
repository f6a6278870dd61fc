"""Base model for Home Assistant API payloads.

Every payload model inherits from :class:`HaBaseModel` which provides:

* frozen instances, so records can be shared between stores and
  subscribers without copying;
* ``extra="ignore"`` so fields Home Assistant adds later (``context``,
  ``last_reported``, ...) do not break parsing;
* ``populate_by_name`` so models can be built from either the wire
  names or the Python field names.

Timestamps use :data:`HaTimestamp`, which always yields a UTC-aware
``datetime``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


HaTimestamp = Annotated[datetime, AfterValidator(ensure_utc)]
"""Annotated type for ISO 8601 Home Assistant timestamps, normalised to UTC."""


class HaBaseModel(BaseModel):
    """Base for Home Assistant payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
