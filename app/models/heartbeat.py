from sqlalchemy import Column, Integer, String, DateTime, Index
from app.utils.timeutils import utcnow
from app.core.database import Base

class HeartbeatDB(Base):
    __tablename__ = "heartbeats"

    id = Column(Integer, primary_key=True, index=True)
    machine_id = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    ip = Column(String, nullable=False, default="unknown")
    version = Column(String, nullable=False, default="unknown")
    platform = Column(String, nullable=False, default="unknown")
    hostname = Column(String, nullable=False, default="unknown")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_heartbeats_machine_id_timestamp", "machine_id", "timestamp"),
    )
