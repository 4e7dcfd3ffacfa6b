"""Purchase ledger endpoints.

WHAT:
    Spreadsheet uploads, manual saves, and the batch history (view, edit,
    export, delete).

WHY:
    Thin wrappers over app.services.ledger_service; ledger errors map to
    400 (bad input) and 404 (not the caller's batch).
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_current_user
from ..models import User
from ..services import ledger_service
from ..services.ledger_service import LedgerNotFound, LedgerValidationError, PurchaseEntry
from ..services.spreadsheet import SpreadsheetError

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


router = APIRouter(
    prefix="/purchases",
    tags=["Purchases"],
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid upload or entries"},
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Batch not found"},
    }
)


@router.post("/upload", response_model=schemas.PurchaseUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_purchases(
    files: List[UploadFile] = File(..., description="One or more .xlsx/.csv logistics exports"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a batch from uploaded spreadsheets, matching SKUs to synced products."""
    uploads = [(upload.filename or "upload", await upload.read()) for upload in files]

    try:
        result = ledger_service.upload_purchase_files(db, current_user.id, uploads)
    except (LedgerValidationError, SpreadsheetError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return schemas.PurchaseUploadResponse(
        batch=schemas.BatchOut.model_validate(result.batch),
        entries=[
            schemas.PurchaseEntryOut(sku=e.sku, shop_name=e.shop_name, title=e.title, quantity=e.quantity)
            for e in result.entries
        ],
        matched=result.matched,
        unmatched=result.unmatched,
    )


@router.post("/entries", response_model=schemas.BatchDetailOut, status_code=status.HTTP_201_CREATED)
def save_entries(
    payload: schemas.ManualEntriesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Save reviewed entries (received quantities, done/partial flags) as a batch."""
    entries = [PurchaseEntry(**entry.model_dump()) for entry in payload.entries]
    try:
        return ledger_service.save_manual_entries(db, current_user.id, entries)
    except LedgerValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/batches", response_model=List[schemas.BatchOut])
def list_batches(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ledger_service.list_batches(db, current_user.id)


@router.get("/batches/latest", response_model=Optional[schemas.BatchDetailOut])
def latest_batch(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Most recently created batch with its purchases, or null."""
    return ledger_service.get_latest_batch(db, current_user.id)


@router.get("/batches/{batch_id}", response_model=schemas.BatchDetailOut)
def get_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return ledger_service.get_batch(db, current_user.id, batch_id)
    except LedgerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("", response_model=List[schemas.PurchaseOut])
def update_purchases(
    payload: schemas.PurchaseBulkUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Bulk edit quantity, type and notes. All or nothing."""
    updates = [
        {"id": p.id, "quantity": p.quantity, "type": p.type.value, "notes": p.notes}
        for p in payload.purchases
    ]
    try:
        return ledger_service.update_purchases(db, current_user.id, updates)
    except LedgerValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LedgerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete("/batches/{batch_id}", response_model=schemas.SuccessResponse)
def delete_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a batch together with its purchases."""
    try:
        removed = ledger_service.delete_batch(db, current_user.id, batch_id)
    except LedgerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return schemas.SuccessResponse(detail=f"Deleted batch and {removed} purchases")


@router.get("/batches/{batch_id}/export")
def export_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Download a batch as .xlsx."""
    try:
        filename, content = ledger_service.export_batch(db, current_user.id, batch_id)
    except LedgerNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
