"""Read-only event listing served through the persistence gateway."""

from typing import Any

from fastapi import APIRouter, Depends

from levelup_api.api.dependencies.gateway import get_gateway
from levelup_api.storage import PersistenceGateway
from levelup_api.storage.collections import EVENTS


router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
async def list_active_events(gateway: PersistenceGateway = Depends(get_gateway)) -> list[dict[str, Any]]:
    events = await gateway.read(EVENTS)
    return [event for event in events if event.get("activo", True)]
