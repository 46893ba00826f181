from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ValidationError
from app.services.ingestion import ingest
from app.services.query import QueryService, heartbeat_stats

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
WINDOW = timedelta(minutes=5)


def test_history_newest_first_and_bounded(store, queries):
    for minutes in range(15):
        ingest(store, {"machineId": "m1"}, now=T0 + timedelta(minutes=minutes))

    history = queries.get_device_history("m1", limit=10)
    assert len(history) == 10
    assert all(a.timestamp >= b.timestamp for a, b in zip(history, history[1:]))


def test_history_default_limit(store):
    queries = QueryService(store, default_limit=3)
    for minutes in range(5):
        ingest(store, {"machineId": "m1"}, now=T0 + timedelta(minutes=minutes))

    assert len(queries.get_device_history("m1")) == 3


def test_history_unknown_device_is_empty(queries):
    assert queries.get_device_history("ghost") == []


@pytest.mark.parametrize("machine_id", [None, "", "  "])
def test_history_requires_machine_id(queries, machine_id):
    with pytest.raises(ValidationError):
        queries.get_device_history(machine_id)


@pytest.mark.parametrize("limit", [0, -1])
def test_history_rejects_non_positive_limit(queries, limit):
    with pytest.raises(ValidationError):
        queries.get_device_history("m1", limit=limit)


def test_snapshot_judges_device_by_latest_heartbeat(store, queries):
    ingest(store, {"machineId": "m1"}, now=T0)
    ingest(store, {"machineId": "m1"}, now=T0 + timedelta(minutes=10))

    snapshot = queries.get_active_snapshot(now=T0 + timedelta(minutes=11), window=WINDOW)
    assert snapshot.active_count == 1
    assert snapshot.total_devices_ever_seen == 1

    snapshot = queries.get_active_snapshot(now=T0 + timedelta(minutes=16), window=WINDOW)
    assert snapshot.active_count == 0
    assert snapshot.active_devices == []
    assert snapshot.total_devices_ever_seen == 1


def test_snapshot_excludes_stale_device_but_counts_it(store, queries):
    ingest(store, {"machineId": "m1"}, now=T0)
    ingest(store, {"machineId": "m2"}, now=T0 + timedelta(minutes=10))

    snapshot = queries.get_active_snapshot(now=T0 + timedelta(minutes=11), window=WINDOW)
    assert [d.machine_id for d in snapshot.active_devices] == ["m2"]
    assert snapshot.total_devices_ever_seen == 2


def test_snapshot_two_active_devices(store, queries):
    ingest(store, {"machineId": "m1"}, now=T0)
    ingest(store, {"machineId": "m2"}, now=T0 + timedelta(minutes=1))

    snapshot = queries.get_active_snapshot(now=T0 + timedelta(minutes=2), window=WINDOW)
    assert snapshot.active_count == 2
    assert {d.machine_id for d in snapshot.active_devices} == {"m1", "m2"}
    assert snapshot.total_devices_ever_seen == 2


def test_snapshot_uses_configured_window(store):
    queries = QueryService(store, window=timedelta(minutes=1))
    ingest(store, {"machineId": "m1"}, now=T0)

    assert queries.get_active_snapshot(now=T0 + timedelta(minutes=2)).active_count == 0
    assert queries.get_active_snapshot(now=T0 + timedelta(minutes=2), window=WINDOW).active_count == 1


def test_snapshot_rejects_non_positive_window(queries):
    with pytest.raises(ValidationError):
        queries.get_active_snapshot(now=T0, window=timedelta(0))


def test_device_state(store, queries):
    ingest(store, {"machineId": "m1", "platform": "darwin"}, now=T0)

    state = queries.get_device_state("m1", now=T0 + timedelta(minutes=6), window=WINDOW)
    assert state.is_active is False
    assert state.last_seen == T0
    assert state.last_seen_seconds_ago == 360
    assert state.platform == "darwin"

    assert queries.get_device_state("m2", now=T0) is None


def test_fleet_overview(store, queries):
    ingest(store, {"machineId": "old", "platform": "win32"}, now=T0)
    ingest(store, {"machineId": "a", "platform": "win32"}, now=T0 + timedelta(minutes=8))
    ingest(store, {"machineId": "b", "platform": "linux"}, now=T0 + timedelta(minutes=9))
    ingest(store, {"machineId": "stale"}, now=T0 + timedelta(minutes=3))

    report = queries.get_fleet_overview(now=T0 + timedelta(minutes=10), window=WINDOW)
    assert report.overview.total_devices == 4
    assert report.overview.online_devices == 2
    assert report.overview.offline_devices == 2
    assert report.overview.total_heartbeats == 4
    assert report.overview.platform_distribution == {"win32": 2, "linux": 1, "unknown": 1}
    assert [d.machine_id for d in report.devices] == ["b", "a", "stale", "old"]
    assert [d.machine_id for d in report.online_devices] == ["b", "a"]
    assert [d.machine_id for d in report.offline_devices] == ["stale", "old"]


def test_fleet_overview_heartbeat_stats(store, queries):
    now = T0 + timedelta(hours=2)
    # outside the one-hour statistics window
    ingest(store, {"machineId": "m1"}, now=now - timedelta(minutes=90))
    for seconds in (0, 30, 60, 90):
        ingest(store, {"machineId": "m1"}, now=now - timedelta(minutes=10, seconds=seconds))
    ingest(store, {"machineId": "m2"}, now=now - timedelta(minutes=2))
    ingest(store, {"machineId": "m3"}, now=now - timedelta(hours=3))

    report = queries.get_fleet_overview(now=now, window=WINDOW)
    stats = {d.machine_id: d.heartbeat_stats for d in report.devices}

    assert stats["m1"].total_heartbeats == 4
    assert stats["m1"].last_heartbeat == now - timedelta(minutes=10)
    assert stats["m1"].average_interval_seconds == 30

    assert stats["m2"].total_heartbeats == 1
    assert stats["m2"].average_interval_seconds == 0

    assert stats["m3"].total_heartbeats == 0
    assert stats["m3"].last_heartbeat is None

    assert report.overview.total_heartbeats == 5


def test_fleet_overview_recent_heartbeats_are_bounded(store):
    queries = QueryService(store, recent_limit=3)
    for seconds in range(6):
        ingest(store, {"machineId": "m1"}, now=T0 + timedelta(seconds=seconds))

    report = queries.get_fleet_overview(now=T0 + timedelta(minutes=1), window=WINDOW)
    assert report.overview.total_heartbeats == 3
    assert report.devices[0].heartbeat_stats.last_heartbeat == T0 + timedelta(seconds=5)


def test_heartbeat_stats_empty():
    stats = heartbeat_stats([])
    assert stats.total_heartbeats == 0
    assert stats.last_heartbeat is None
    assert stats.average_interval_seconds == 0


def test_history_rejects_limit_above_maximum(store):
    queries = QueryService(store, max_limit=50)
    assert queries.get_device_history("m1", limit=50) == []
    with pytest.raises(ValidationError):
        queries.get_device_history("m1", limit=10 ** 20)


def test_snapshot_rejects_window_above_maximum(queries):
    with pytest.raises(ValidationError):
        queries.get_active_snapshot(now=T0, window=timedelta(days=400))
