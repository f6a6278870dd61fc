"""Typed models for Home Assistant payloads."""

from halocation.models.state import StateRecord

__all__ = [
    "StateRecord",
]
