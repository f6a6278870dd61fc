"""History endpoint.

Endpoint:
  - /api/history/period/<start>

Home Assistant answers with one list of state changes per matched
entity.  Entries after the first may omit ``entity_id`` and
``last_updated``; both are filled in before validation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from halocation._constants import HISTORY_ENDPOINT
from halocation._transport import Transport
from halocation.exceptions import HomeAssistantApiError
from halocation.models.state import StateRecord

_logger = logging.getLogger(__name__)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_series(entries: list[Any], entity_id: str, endpoint: str) -> list[StateRecord]:
    series: list[StateRecord] = []
    current_id = entity_id
    for entry in entries:
        if not isinstance(entry, dict):
            raise HomeAssistantApiError(f"{endpoint} returned a non-object history entry", endpoint=endpoint)
        item = dict(entry)
        current_id = item.setdefault("entity_id", current_id)
        try:
            series.append(StateRecord.model_validate(item))
        except ValidationError as exc:
            raise HomeAssistantApiError(f"{endpoint} returned an invalid history entry: {exc}", endpoint=endpoint) from exc
    return series


async def fetch_history(
    transport: Transport,
    entity_id: str,
    start: datetime,
    end: datetime,
    *,
    significant_changes_only: bool = True,
) -> list[list[StateRecord]]:
    """Fetch state changes of *entity_id* between *start* and *end*.

    Returns
    -------
    list of list of StateRecord
        One chronologically ordered series per entity returned by the
        server.  A filtered query normally yields exactly one series.

    Raises
    ------
    HomeAssistantApiError
        If the response does not have the history shape.
    """
    endpoint = HISTORY_ENDPOINT.format(start=_format_time(start))
    params = {
        "filter_entity_id": entity_id,
        "end_time": _format_time(end),
        "significant_changes_only": "1" if significant_changes_only else "0",
    }
    payload = await transport.get_json(endpoint, params)

    if not isinstance(payload, list):
        raise HomeAssistantApiError(f"{endpoint} returned {type(payload).__name__}, expected list", endpoint=endpoint)

    result: list[list[StateRecord]] = []
    for entries in payload:
        if not isinstance(entries, list):
            raise HomeAssistantApiError(f"{endpoint} returned a non-list history series", endpoint=endpoint)
        result.append(_parse_series(entries, entity_id, endpoint))

    _logger.debug("History for %s: %d series", entity_id, len(result))
    return result
