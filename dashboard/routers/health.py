from fastapi import APIRouter, Depends, Request

from dashboard.dependencies import Envelope, get_clock, get_store
from dashboard.schemas import HealthStatus
from storage.repositories.signal_store import SignalStore

router = APIRouter(tags=["System Health"])


@router.get("/health")
async def get_health(
    request: Request,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Liveness plus storage reachability.
    """
    database_ok = await store.health_check()
    clock = get_clock(request)
    uptime = (clock.now() - request.app.state.started_at).total_seconds()
    status = HealthStatus(
        status="healthy" if database_ok else "degraded",
        version=request.app.version,
        database="up" if database_ok else "down",
        uptime_seconds=max(uptime, 0.0),
    )
    return respond(status.model_dump())
