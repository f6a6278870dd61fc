"""Entity state model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from halocation.models._base import HaBaseModel, HaTimestamp


class StateRecord(HaBaseModel):
    """One observed snapshot of an entity.

    Mirrors the Home Assistant state object.  ``status`` is carried as
    ``state`` on the wire; :meth:`to_wire` restores that shape for
    subscribers.
    """

    entity_id: str
    status: str = Field(alias="state")
    attributes: dict[str, Any] = Field(default_factory=dict)
    last_changed: HaTimestamp
    last_updated: HaTimestamp

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        working = dict(values)
        if working.get("attributes") is None:
            working["attributes"] = {}
        # Home Assistant omits last_updated when it equals last_changed.
        if working.get("last_updated") is None and working.get("last_changed") is not None:
            working["last_updated"] = working["last_changed"]
        return working

    def number(self, key: str) -> float | None:
        """Return a numeric attribute, or ``None`` when absent or not a number."""
        value = self.attributes.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def flag(self, key: str) -> bool | None:
        """Return a boolean attribute, or ``None`` when absent or not a boolean."""
        value = self.attributes.get(key)
        return value if isinstance(value, bool) else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize using Home Assistant field names."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
