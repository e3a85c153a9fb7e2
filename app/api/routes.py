from datetime import datetime
from fastapi import APIRouter, HTTPException
from typing import List

from app.models.errors import ErrorResponse, ImportConfigError, DatabaseUnavailableError
from app.models.import_schema import IMPORT_SCHEMA
from app.models.report import EntitySummary, ImportRequest
from app.services import orchestrator, run_store

router = APIRouter()

@router.get("/entities", response_model=List[EntitySummary])
async def list_entities():
    """
    Configured entities, in the order an import runs them.
    """
    try:
        ordered = orchestrator.prepare_configs(IMPORT_SCHEMA)
    except ImportConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return [
        EntitySummary(
            name=c.name,
            source_file=c.source_file,
            table=c.table,
            unique_key=c.unique_key,
            depends_on=c.dependencies(),
            description=c.description,
        )
        for c in ordered
    ]

@router.post(
    "/import",
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def run_import(request: ImportRequest):
    # Sync handler: FastAPI runs it in a worker thread, the import itself is blocking
    started_at = datetime.now()
    try:
        report = orchestrator.run_import(dry_run=request.dry_run, entity_filter=request.table)
    except ImportConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DatabaseUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    # Dry runs write nothing, run history included
    if report.dry_run:
        return {"run_id": None, **report.to_dict()}

    saved = run_store.save_run(report, started_at)
    return {"run_id": saved.id, **report.to_dict()}

@router.get("/runs")
async def list_runs():
    return run_store.list_runs()

@router.get("/runs/{run_id}")
async def get_run(run_id: str):
    try:
        return run_store.get_run(run_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
