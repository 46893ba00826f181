from datetime import datetime, timedelta

from app.schemas.heartbeat import DeviceState, HeartbeatRecord
from app.utils.timeutils import as_utc


def describe_device(record: HeartbeatRecord, now: datetime, window: timedelta) -> DeviceState:
    """
    Presence of the device whose latest heartbeat is ``record``.

    A device is active while ``now - lastSeen <= window``; the boundary itself
    still counts as active.
    """
    last_seen = as_utc(record.timestamp)
    diff = as_utc(now) - last_seen

    return DeviceState(
        machine_id=record.machine_id,
        last_seen=last_seen,
        last_seen_seconds_ago=max(0, int(diff.total_seconds())),
        is_active=diff <= window,
        ip=record.ip,
        version=record.version,
        platform=record.platform,
        hostname=record.hostname,
    )
