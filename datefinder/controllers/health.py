from fastapi import APIRouter
from typing import Dict

from datefinder import state

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    redis_status = "disconnected"
    if state.redis_client:
        try:
            await state.redis_client.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

    store_status = "disconnected"
    if state.event_store is not None:
        store_status = "healthy" if await state.event_store.ping() else "unhealthy"

    return {
        "status": "ok",
        "redis": redis_status,
        "store": store_status,
        "backend": type(state.event_store).__name__ if state.event_store else "none",
    }
