import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from app.core.config import MAX_WINDOW_SECONDS
from app.core.dependencies import client_ip, get_deadline, get_query_service, get_store
from app.core.errors import DeadlineExceeded, StorageError, ValidationError
from app.core.security import require_admin_key
from app.schemas.heartbeat import (
    DeviceState,
    HeartbeatAck,
    HeartbeatHistoryResponse,
    HeartbeatMonitorResponse,
    HeartbeatRequest,
    StatusResponse
)
from app.services.ingestion import ingest
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Heartbeat"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@contextmanager
def presence_errors():
    """Map core failures onto HTTP status codes (400 / 500 / 504)."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DeadlineExceeded as e:
        logger.error("Request timed out: %s", e)
        raise HTTPException(status_code=504, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")


def _window(seconds: Optional[int]) -> Optional[timedelta]:
    if seconds is None:
        return None
    if not 0 < seconds <= MAX_WINDOW_SECONDS:
        raise ValidationError(f"window must be between 1 and {MAX_WINDOW_SECONDS} seconds")
    return timedelta(seconds=seconds)


# ==================== INGESTION ====================

@router.post("/heartbeat", response_model=HeartbeatAck)
def receive_heartbeat(
    data: HeartbeatRequest,
    request: Request,
    store=Depends(get_store),
    deadline=Depends(get_deadline)
):
    """
    POST endpoint for devices to report that they are alive.
    Omitted fields are filled in; the stored record is echoed back.
    """
    if not data.ip and request.app.state.settings.TRUST_CLIENT_IP:
        data = data.model_copy(update={"ip": client_ip(request)})

    with presence_errors():
        record = ingest(store, data, deadline=deadline)

    return HeartbeatAck(
        success=True,
        message="Heartbeat received",
        heartbeat=record
    )


# ==================== ADMIN QUERIES ====================

@router.get(
    "/device-heartbeats",
    response_model=HeartbeatHistoryResponse,
    dependencies=[Depends(require_admin_key)]
)
def get_device_heartbeats(
    machine_id: Optional[str] = Query(None, alias="machineId"),
    limit: Optional[int] = Query(None),
    queries=Depends(get_query_service),
    deadline=Depends(get_deadline)
):
    """Heartbeat history for one device, newest first."""
    with presence_errors():
        heartbeats = queries.get_device_history(machine_id, limit, deadline=deadline)

    return HeartbeatHistoryResponse(count=len(heartbeats), heartbeats=heartbeats)


@router.get(
    "/status",
    response_model=StatusResponse,
    dependencies=[Depends(require_admin_key)]
)
def get_status(
    response: Response,
    window: Optional[int] = Query(None, description="Active window in seconds"),
    queries=Depends(get_query_service),
    deadline=Depends(get_deadline)
):
    """Devices that sent a heartbeat within the active window."""
    now = utcnow()
    with presence_errors():
        snapshot = queries.get_active_snapshot(now=now, window=_window(window), deadline=deadline)

    response.headers.update(NO_CACHE_HEADERS)
    return StatusResponse(
        active_client_count=snapshot.active_count,
        clients=snapshot.active_devices,
        total_devices=snapshot.total_devices_ever_seen,
        timestamp=now
    )


@router.get(
    "/device-status/{machine_id}",
    response_model=DeviceState,
    dependencies=[Depends(require_admin_key)]
)
def get_device_status(
    machine_id: str,
    window: Optional[int] = Query(None, description="Active window in seconds"),
    queries=Depends(get_query_service),
    deadline=Depends(get_deadline)
):
    with presence_errors():
        state = queries.get_device_state(machine_id, window=_window(window), deadline=deadline)

    if state is None:
        raise HTTPException(status_code=404, detail="Device not found")

    return state


@router.get(
    "/heartbeat-monitor",
    response_model=HeartbeatMonitorResponse,
    dependencies=[Depends(require_admin_key)]
)
def get_heartbeat_monitor(
    response: Response,
    window: Optional[int] = Query(None, description="Active window in seconds"),
    queries=Depends(get_query_service),
    deadline=Depends(get_deadline)
):
    """Every known device with its presence, plus fleet-wide counts."""
    now = utcnow()
    with presence_errors():
        overview = queries.get_fleet_overview(now=now, window=_window(window), deadline=deadline)

    response.headers.update(NO_CACHE_HEADERS)
    return HeartbeatMonitorResponse(
        success=True,
        timestamp=now,
        overview=overview.overview,
        devices=overview.devices,
        online_devices=overview.online_devices,
        offline_devices=overview.offline_devices
    )
