import logging
import threading
from contextlib import nullcontext
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from app.core.database import build_engine, build_session_factory, init_db
from app.core.errors import DeadlineExceeded, StorageError
from app.models.heartbeat import HeartbeatDB
from app.schemas.heartbeat import HeartbeatRecord
from app.utils.deadline import Deadline, check_deadline
from app.utils.timeutils import as_utc

logger = logging.getLogger(__name__)


def _to_record(row: HeartbeatDB) -> HeartbeatRecord:
    return HeartbeatRecord(
        machine_id=row.machine_id,
        timestamp=as_utc(row.timestamp),
        ip=row.ip,
        version=row.version,
        platform=row.platform,
        hostname=row.hostname,
    )


class HeartbeatStore:
    """
    Append-only heartbeat log backed by the ``heartbeats`` table.

    Rows are only ever inserted, so concurrent writers for the same device
    never contend on a row; history is rebuilt by ordering on timestamp.
    Every call uses its own session and either commits fully or rolls back.
    When every session shares one connection (in-memory SQLite), calls are
    serialized so one thread never commits or rolls back another's work.
    """

    def __init__(self, session_factory, engine=None):
        self._session_factory = session_factory
        self._engine = engine
        if engine is not None and isinstance(engine.pool, StaticPool):
            self._lock = threading.Lock()
        else:
            self._lock = nullcontext()

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "HeartbeatStore":
        engine = build_engine(database_url, echo=echo)
        try:
            init_db(engine)
        except SQLAlchemyError as e:
            engine.dispose()
            raise StorageError(f"Could not initialise heartbeat storage: {e}") from e
        return cls(build_session_factory(engine), engine=engine)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()

    # ==================== WRITES ====================

    def append(self, record: HeartbeatRecord, deadline: Optional[Deadline] = None) -> HeartbeatRecord:
        check_deadline(deadline, "append")
        with self._lock:
            return self._append(record, deadline)

    def _append(self, record, deadline):
        db = self._session_factory()
        try:
            row = HeartbeatDB(
                machine_id=record.machine_id,
                timestamp=as_utc(record.timestamp),
                ip=record.ip,
                version=record.version,
                platform=record.platform,
                hostname=record.hostname,
            )
            db.add(row)
            db.flush()

            # Last chance to abandon the insert without leaving it behind
            check_deadline(deadline, "append")
            db.commit()
            return _to_record(row)

        except DeadlineExceeded:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Heartbeat write failed for %s", record.machine_id)
            raise StorageError(f"Heartbeat write failed: {e}") from e
        finally:
            db.close()

    # ==================== READS ====================

    def _read(self, operation, query, deadline):
        check_deadline(deadline, operation)
        with self._lock:
            db = self._session_factory()
            try:
                result = query(db)
            except SQLAlchemyError as e:
                logger.exception("Heartbeat store %s failed", operation)
                raise StorageError(f"Heartbeat store {operation} failed: {e}") from e
            finally:
                db.close()
        check_deadline(deadline, operation)
        return result

    def query_by_device(
        self,
        machine_id: str,
        limit: int,
        deadline: Optional[Deadline] = None
    ) -> List[HeartbeatRecord]:
        """Newest-first records for one device; unknown devices yield []."""

        def query(db):
            rows = db.query(HeartbeatDB).filter(
                HeartbeatDB.machine_id == machine_id
            ).order_by(
                HeartbeatDB.timestamp.desc(),
                HeartbeatDB.id.desc()
            ).limit(limit).all()
            return [_to_record(r) for r in rows]

        return self._read("query_by_device", query, deadline)

    def latest_for_device(self, machine_id: str, deadline: Optional[Deadline] = None) -> Optional[HeartbeatRecord]:
        records = self.query_by_device(machine_id, 1, deadline=deadline)
        return records[0] if records else None

    def heartbeats_since(
        self,
        since: datetime,
        limit: int,
        deadline: Optional[Deadline] = None
    ) -> List[HeartbeatRecord]:
        """Newest-first records of every device at or after ``since``, at most ``limit``."""

        def query(db):
            rows = db.query(HeartbeatDB).filter(
                HeartbeatDB.timestamp >= as_utc(since)
            ).order_by(
                HeartbeatDB.timestamp.desc(),
                HeartbeatDB.id.desc()
            ).limit(limit).all()
            return [_to_record(r) for r in rows]

        return self._read("heartbeats_since", query, deadline)

    def all_latest_per_device(self, deadline: Optional[Deadline] = None) -> List[HeartbeatRecord]:
        """The most recent record of every device ever seen, one per device."""

        def query(db):
            ranked = select(
                HeartbeatDB.id,
                func.row_number().over(
                    partition_by=HeartbeatDB.machine_id,
                    order_by=(HeartbeatDB.timestamp.desc(), HeartbeatDB.id.desc())
                ).label("recency")
            ).subquery()

            rows = db.query(HeartbeatDB).join(
                ranked, ranked.c.id == HeartbeatDB.id
            ).filter(
                ranked.c.recency == 1
            ).all()
            return [_to_record(r) for r in rows]

        return self._read("all_latest_per_device", query, deadline)

    def ping(self) -> bool:
        def query(db):
            db.execute(text("SELECT 1"))
            return True

        return self._read("ping", query, None)
