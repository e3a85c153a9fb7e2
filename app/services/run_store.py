import uuid
import json
from datetime import datetime

from sqlalchemy.orm import Session

from app.db.database import SessionLocal
from app.db import models
from app.models.report import ImportReport, SavedRun, SavedRunList

def _get_db() -> Session:
    return SessionLocal()

def _to_saved_run(row: models.ImportRun) -> SavedRun:
    return SavedRun(
        id=row.id,
        started_at=row.started_at,
        dry_run=row.dry_run,
        entity_filter=row.entity_filter,
        has_failures=row.has_failures,
        report=json.loads(row.report_json),
    )

def save_run(report: ImportReport, started_at: datetime) -> SavedRun:
    """
    Stores the machine-readable report of one import run.
    """
    db = _get_db()
    try:
        row = models.ImportRun(
            id=str(uuid.uuid4()),
            started_at=started_at.isoformat(),
            dry_run=report.dry_run,
            entity_filter=report.entity_filter,
            has_failures=report.has_failures,
            report_json=json.dumps(report.to_dict(), default=str),
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return _to_saved_run(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def list_runs() -> SavedRunList:
    db = _get_db()
    try:
        rows = db.query(models.ImportRun).order_by(models.ImportRun.started_at.desc()).all()
        return SavedRunList(items=[_to_saved_run(r) for r in rows])
    finally:
        db.close()

def get_run(run_id: str) -> SavedRun:
    db = _get_db()
    try:
        row = db.query(models.ImportRun).filter(models.ImportRun.id == run_id).first()
        if not row:
            raise KeyError(f"Import run with id {run_id} not found")
        return _to_saved_run(row)
    finally:
        db.close()
