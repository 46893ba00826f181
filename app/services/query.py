from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import List, Optional

from app.core.config import MAX_WINDOW_SECONDS
from app.core.errors import ValidationError
from app.schemas.heartbeat import (
    ActiveSnapshot,
    DeviceReport,
    DeviceState,
    FleetOverview,
    FleetSummary,
    HeartbeatRecord,
    HeartbeatStats
)
from app.services.presence import DEFAULT_WINDOW, describe_all, select_active
from app.utils.deadline import Deadline
from app.utils.device_status import describe_device
from app.utils.timeutils import utcnow


def heartbeat_stats(records: List[HeartbeatRecord]) -> HeartbeatStats:
    """Count, newest timestamp and mean spacing of newest-first ``records``."""
    if not records:
        return HeartbeatStats(total_heartbeats=0, last_heartbeat=None, average_interval_seconds=0)

    interval = 0
    if len(records) > 1:
        span = records[0].timestamp - records[-1].timestamp
        interval = round(span.total_seconds() / (len(records) - 1))

    return HeartbeatStats(
        total_heartbeats=len(records),
        last_heartbeat=records[0].timestamp,
        average_interval_seconds=interval,
    )


class QueryService:
    """Read-only views over the heartbeat store."""

    def __init__(
        self,
        store,
        window: timedelta = DEFAULT_WINDOW,
        default_limit: int = 100,
        max_limit: int = 1000,
        stats_window: timedelta = timedelta(hours=1),
        recent_limit: int = 10000
    ):
        self.store = store
        self.window = window
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.stats_window = stats_window
        self.recent_limit = recent_limit

    def _window(self, window: Optional[timedelta]) -> timedelta:
        if window is None:
            return self.window
        if window.total_seconds() <= 0:
            raise ValidationError("window must be positive")
        if window.total_seconds() > MAX_WINDOW_SECONDS:
            raise ValidationError(f"window must be at most {MAX_WINDOW_SECONDS} seconds")
        return window

    def get_device_history(
        self,
        machine_id: Optional[str],
        limit: Optional[int] = None,
        deadline: Optional[Deadline] = None
    ) -> List[HeartbeatRecord]:
        if not machine_id or not machine_id.strip():
            raise ValidationError("machineId required")
        if limit is None:
            limit = self.default_limit
        if limit <= 0:
            raise ValidationError("limit must be greater than 0")
        if limit > self.max_limit:
            raise ValidationError(f"limit must be at most {self.max_limit}")

        return self.store.query_by_device(machine_id.strip(), limit, deadline=deadline)

    def get_active_snapshot(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
        deadline: Optional[Deadline] = None
    ) -> ActiveSnapshot:
        window = self._window(window)
        now = now or utcnow()

        # One read so the active set and the total come from the same snapshot
        latest = self.store.all_latest_per_device(deadline=deadline)
        active = select_active(latest, now, window)

        return ActiveSnapshot(
            active_count=len(active),
            active_devices=active,
            total_devices_ever_seen=len(latest),
        )

    def get_device_state(
        self,
        machine_id: Optional[str],
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
        deadline: Optional[Deadline] = None
    ) -> Optional[DeviceState]:
        if not machine_id or not machine_id.strip():
            raise ValidationError("machineId required")
        window = self._window(window)

        latest = self.store.latest_for_device(machine_id.strip(), deadline=deadline)
        if latest is None:
            return None
        return describe_device(latest, now or utcnow(), window)

    def get_fleet_overview(
        self,
        now: Optional[datetime] = None,
        window: Optional[timedelta] = None,
        deadline: Optional[Deadline] = None
    ) -> FleetOverview:
        """
        Every known device, active ones first, then by most recently seen.

        Each device carries statistics over the heartbeats of the last
        ``stats_window``; at most ``recent_limit`` of those are read, newest
        first, so a very busy fleet gets counts over the newest slice only.
        """
        window = self._window(window)
        now = now or utcnow()

        states = describe_all(self.store.all_latest_per_device(deadline=deadline), now, window)
        # stable sort keeps lastSeen-descending order inside each group
        states.sort(key=lambda s: not s.is_active)

        recent = self.store.heartbeats_since(now - self.stats_window, self.recent_limit, deadline=deadline)
        by_device = defaultdict(list)
        for record in recent:
            by_device[record.machine_id].append(record)

        devices = [
            DeviceReport(**state.model_dump(), heartbeat_stats=heartbeat_stats(by_device[state.machine_id]))
            for state in states
        ]
        online = [d for d in devices if d.is_active]
        offline = [d for d in devices if not d.is_active]

        summary = FleetSummary(
            total_devices=len(devices),
            online_devices=len(online),
            offline_devices=len(offline),
            total_heartbeats=len(recent),
            platform_distribution=dict(Counter(d.platform for d in devices)),
        )
        return FleetOverview(
            overview=summary,
            devices=devices,
            online_devices=online,
            offline_devices=offline,
        )
