from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, List, Optional


class HeartbeatRequest(BaseModel):
    machine_id: Optional[str] = Field(None, alias="machineId", description="Unique machine identifier")
    timestamp: Optional[datetime] = Field(None, description="When the heartbeat was generated (defaults to receipt time)")
    ip: Optional[str] = None
    version: Optional[str] = None
    platform: Optional[str] = None
    hostname: Optional[str] = None

    class Config:
        populate_by_name = True


class HeartbeatRecord(BaseModel):
    machine_id: str = Field(..., alias="machineId")
    timestamp: datetime
    ip: str
    version: str
    platform: str
    hostname: str

    class Config:
        from_attributes = True
        populate_by_name = True
        frozen = True


class DeviceState(BaseModel):
    machine_id: str = Field(..., alias="machineId")
    last_seen: datetime = Field(..., alias="lastSeen")
    last_seen_seconds_ago: int = Field(..., alias="lastSeenSecondsAgo")
    is_active: bool = Field(..., alias="isActive")
    ip: str
    version: str
    platform: str
    hostname: str

    class Config:
        populate_by_name = True
        frozen = True


class ActiveSnapshot(BaseModel):
    active_count: int = Field(..., alias="activeCount")
    active_devices: List[DeviceState] = Field(..., alias="activeDevices")
    total_devices_ever_seen: int = Field(..., alias="totalDevicesEverSeen")

    class Config:
        populate_by_name = True


class HeartbeatStats(BaseModel):
    total_heartbeats: int = Field(..., alias="totalHeartbeats")
    last_heartbeat: Optional[datetime] = Field(None, alias="lastHeartbeat")
    average_interval_seconds: int = Field(..., alias="averageIntervalSeconds")

    class Config:
        populate_by_name = True
        frozen = True


class DeviceReport(DeviceState):
    heartbeat_stats: HeartbeatStats = Field(..., alias="heartbeatStats")


class FleetSummary(BaseModel):
    total_devices: int = Field(..., alias="totalDevices")
    online_devices: int = Field(..., alias="onlineDevices")
    offline_devices: int = Field(..., alias="offlineDevices")
    total_heartbeats: int = Field(..., alias="totalHeartbeats")
    platform_distribution: Dict[str, int] = Field(..., alias="platformDistribution")

    class Config:
        populate_by_name = True


class FleetOverview(BaseModel):
    overview: FleetSummary
    devices: List[DeviceReport]
    online_devices: List[DeviceReport] = Field(..., alias="onlineDevices")
    offline_devices: List[DeviceReport] = Field(..., alias="offlineDevices")

    class Config:
        populate_by_name = True


# HTTP responses

class HeartbeatAck(BaseModel):
    success: bool
    message: str
    heartbeat: HeartbeatRecord


class HeartbeatHistoryResponse(BaseModel):
    count: int
    heartbeats: List[HeartbeatRecord]


class StatusResponse(BaseModel):
    active_client_count: int = Field(..., alias="activeClientCount")
    clients: List[DeviceState]
    total_devices: int = Field(..., alias="totalDevices")
    timestamp: datetime

    class Config:
        populate_by_name = True


class HeartbeatMonitorResponse(FleetOverview):
    success: bool
    timestamp: datetime
