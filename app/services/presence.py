from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from app.schemas.heartbeat import DeviceState, HeartbeatRecord
from app.utils.deadline import Deadline
from app.utils.device_status import describe_device

DEFAULT_WINDOW = timedelta(minutes=5)


def describe_all(latest: Iterable[HeartbeatRecord], now: datetime, window: timedelta) -> List[DeviceState]:
    states = [describe_device(record, now, window) for record in latest]
    states.sort(key=lambda s: s.last_seen, reverse=True)
    return states


def select_active(latest: Iterable[HeartbeatRecord], now: datetime, window: timedelta) -> List[DeviceState]:
    return [s for s in describe_all(latest, now, window) if s.is_active]


def compute_active_devices(
    store,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
    deadline: Optional[Deadline] = None
) -> List[DeviceState]:
    """
    Devices whose latest heartbeat falls within ``window`` of ``now``,
    most recently seen first.

    Devices that never sent a heartbeat do not appear at all. The result
    depends only on the stored records and ``now``.
    """
    return select_active(store.all_latest_per_device(deadline=deadline), now, window)
