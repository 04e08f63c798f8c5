# listing_tracker/crud.py
"""Job store access: the sweep query and field-level updates."""
from sqlalchemy import select
from sqlalchemy.orm import Session
from typing import Any, Dict, List
from .models import Job

def get_active_jobs(db: Session) -> List[Job]:
    return list(db.scalars(select(Job).where(Job.active.is_(True)).order_by(Job.created_at, Job.id)))

def get_job(db: Session, job_id: str):
    return db.get(Job, job_id)

def list_jobs(db: Session, skip: int = 0, limit: int = 50, active: bool = None):
    q = db.query(Job)
    if active is not None:
        q = q.filter(Job.active.is_(active))
    total = q.count()
    items = q.order_by(Job.created_at, Job.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}

def update_job(db: Session, job_id: str, updates: Dict[str, Any]):
    obj = db.get(Job, job_id)
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(obj)
    return obj
