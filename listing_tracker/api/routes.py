# listing_tracker/api/routes.py
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import crud, schemas
from ..db import get_db
from ..errors import JobStoreError
from ..utils import logger

router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}

@router.get("/jobs", response_model=List[schemas.JobOut])
def jobs(
    skip: int = 0,
    limit: int = 20,
    active: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    res = crud.list_jobs(db, skip=skip, limit=limit, active=active)
    return res["items"]


@router.get("/jobs/{job_id}", response_model=schemas.JobOut)
def get_job(job_id: str, db: Session = Depends(get_db)):
    obj = crud.get_job(db, job_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Job not found")
    return obj


@router.post("/sweep", response_model=schemas.SweepSummary)
def trigger_sweep(request: Request):
    runner = request.app.state.runner_factory()
    try:
        report = runner.run_sweep()
    except JobStoreError as e:
        logger.exception("Sweep failed: %s", e)
        raise HTTPException(status_code=503, detail="Job store unavailable")
    return schemas.SweepSummary(
        total=len(report.outcomes),
        succeeded=len(report.succeeded),
        failed=len(report.failed),
    )
