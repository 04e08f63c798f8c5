# listing_tracker/models.py
"""SQLAlchemy ORM models for the job store."""
import enum
import uuid
from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, func
from .db import Base


class JobStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def _new_id():
    return str(uuid.uuid4())


class Job(Base):
    __tablename__ = "jobs"
    id = Column(String(36), primary_key=True, default=_new_id)
    source_url = Column(Text, nullable=False)
    sheet_ref = Column(Text)
    active = Column(Boolean, nullable=False, default=True)
    status = Column(String(16), nullable=False, default=JobStatus.IDLE.value)
    # "append" or "replace", see sheets.SyncMode
    sync_mode = Column(String(16), nullable=False, default="append")
    owner_email = Column(Text)
    last_run = Column(DateTime(timezone=True))
    next_run = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Job {self.id[:8]} status={self.status}>"

Index("idx_jobs_active", Job.active)
