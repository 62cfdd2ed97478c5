from typing import Any

from fastapi import APIRouter, Depends

from levelup_api.api.dependencies.gateway import get_gateway
from levelup_api.storage import PersistenceGateway


router = APIRouter(prefix="/health")


@router.get("/readyz")
async def readiness(gateway: PersistenceGateway = Depends(get_gateway)) -> dict[str, Any]:
    """Report which persistence backends are usable right now."""

    components = await gateway.status()
    if components["local_cache"] != "available":
        overall = "error"
    elif components["remote"] == "unavailable":
        overall = "degraded"
    else:
        overall = "ready"
    return {"status": overall, "components": components}
