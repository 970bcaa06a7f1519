"""Production batch endpoints.

Machine feed upload, automatic reconciliation and manual linking.
"""

from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from api.services.engine import get_batch_store, get_reconciler
from batch_matcher.importer import ImportReport, import_batches_csv
from batch_matcher.reconciler import BatchReconciler
from core.errors import BatchImportError, InvalidTransition, NotFound
from models.production import MatchResult, ProductionBatch
from storage.batches import BatchStore


router = APIRouter()


class ManualLinkRequest(BaseModel):
    """Request to link a batch to a delivery note by hand."""
    note_id: str = Field(..., description="Delivery note to link")
    linked_by: str = Field(..., description="User confirming the link")


class ReconcileRunResponse(BaseModel):
    run_id: str
    processed: int
    auto_linked: int
    pending: int
    no_match: int
    skipped: int
    errors: List[str]


@router.post("/import", response_model=ImportReport)
async def import_batches(
    file: UploadFile = File(...),
    auto_link: bool = True,
    store: BatchStore = Depends(get_batch_store),
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> ImportReport:
    """Upload a machine feed export (CSV)."""
    content = await file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")

    try:
        return import_batches_csv(
            text,
            store,
            reconciler=reconciler if auto_link else None,
            source_file=file.filename,
        )
    except BatchImportError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/reconcile", response_model=ReconcileRunResponse)
async def reconcile_unlinked(
    limit: int = 500,
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> ReconcileRunResponse:
    """Run a reconciliation pass over unlinked batches."""
    summary = reconciler.reconcile_unlinked(limit=limit)
    return ReconcileRunResponse(**asdict(summary))


@router.get("/{batch_id}", response_model=ProductionBatch)
async def get_batch(
    batch_id: str,
    store: BatchStore = Depends(get_batch_store),
) -> ProductionBatch:
    batch = store.get(batch_id)
    if batch is None:
        raise HTTPException(status_code=404, detail="Production batch not found")
    return batch


@router.get("/{batch_id}/results", response_model=List[MatchResult])
async def list_batch_results(
    batch_id: str,
    store: BatchStore = Depends(get_batch_store),
) -> List[MatchResult]:
    """Every reconciliation result for a batch, superseded ones included."""
    return store.list_results(batch_id)


@router.post("/{batch_id}/auto-link", response_model=MatchResult)
async def auto_link_batch(
    batch_id: str,
    force: bool = False,
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> MatchResult:
    """Score a batch against same-day delivery notes and link it if confident."""
    try:
        return reconciler.reconcile_batch(batch_id, force=force)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{batch_id}/link", response_model=MatchResult)
async def link_batch(
    batch_id: str,
    request: ManualLinkRequest,
    reconciler: BatchReconciler = Depends(get_reconciler),
) -> MatchResult:
    """Confirm or override the link of a batch."""
    try:
        return reconciler.link_manually(batch_id, request.note_id, request.linked_by)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
