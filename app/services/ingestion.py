import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Union

import pydantic

from app.core.config import UNKNOWN
from app.core.errors import ValidationError
from app.schemas.heartbeat import HeartbeatRecord, HeartbeatRequest
from app.utils.deadline import Deadline
from app.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("ip", "version", "platform", "hostname")


def _coerce(payload: Union[HeartbeatRequest, Mapping[str, Any], None]) -> HeartbeatRequest:
    if isinstance(payload, HeartbeatRequest):
        return payload
    if payload is None:
        payload = {}
    try:
        return HeartbeatRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"invalid heartbeat: {e.errors()[0]['msg']}") from e


def normalize(payload, now: Optional[datetime] = None) -> HeartbeatRecord:
    """Validate a heartbeat submission and fill in every omitted field."""
    data = _coerce(payload)

    machine_id = (data.machine_id or "").strip()
    if not machine_id:
        raise ValidationError("machineId required")

    fields = {}
    for name in METADATA_FIELDS:
        value = getattr(data, name)
        fields[name] = value if value else UNKNOWN

    timestamp = data.timestamp if data.timestamp is not None else (now or utcnow())
    try:
        timestamp = as_utc(timestamp)
    except (OverflowError, ValueError) as e:
        raise ValidationError(f"timestamp out of range: {data.timestamp}") from e

    return HeartbeatRecord(
        machine_id=machine_id,
        timestamp=timestamp,
        **fields
    )


def ingest(
    store,
    payload,
    now: Optional[datetime] = None,
    deadline: Optional[Deadline] = None
) -> HeartbeatRecord:
    """
    Accept one heartbeat and append it to ``store``.

    Returns the stored record. No deduplication or rate limiting happens
    here; a resubmitted heartbeat is simply stored again.
    """
    try:
        record = normalize(payload, now=now)
    except ValidationError as e:
        logger.warning("Rejected heartbeat: %s", e)
        raise

    stored = store.append(record, deadline=deadline)
    logger.info("Heartbeat from %s", stored.machine_id)
    return stored
