"""State and API-root endpoints.

Endpoints:
  - /api/ (liveness)
  - /api/states/<entity_id>
"""

from __future__ import annotations

from urllib.parse import quote

from pydantic import ValidationError

from halocation._constants import API_ROOT, STATES_ENDPOINT
from halocation._transport import Transport
from halocation.exceptions import EntityNotFoundError, HomeAssistantApiError, HomeAssistantTransportError
from halocation.models.state import StateRecord


async def ping(transport: Transport) -> None:
    """Check that the API answers and accepts our token.

    Raises
    ------
    HomeAssistantTransportError
        If the API is unreachable or rejects the request.
    """
    await transport.get_json(API_ROOT)


async def fetch_state(transport: Transport, entity_id: str) -> StateRecord:
    """Fetch the current state of one entity.

    Raises
    ------
    EntityNotFoundError
        If Home Assistant does not know *entity_id*.
    HomeAssistantApiError
        If the response is not a state object.
    """
    endpoint = STATES_ENDPOINT.format(entity_id=quote(entity_id, safe=""))
    try:
        payload = await transport.get_json(endpoint)
    except HomeAssistantTransportError as exc:
        if exc.status_code == 404:
            raise EntityNotFoundError(
                f"Entity {entity_id} not found",
                status_code=404,
                endpoint=endpoint,
            ) from exc
        raise

    if not isinstance(payload, dict):
        raise HomeAssistantApiError(f"{endpoint} returned {type(payload).__name__}, expected object", endpoint=endpoint)

    try:
        return StateRecord.model_validate(payload)
    except ValidationError as exc:
        raise HomeAssistantApiError(f"{endpoint} returned an invalid state: {exc}", endpoint=endpoint) from exc
