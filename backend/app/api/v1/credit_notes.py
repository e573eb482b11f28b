"""
Router FastAPI per le Note di credito (Avoirs)
Progetto: Billing Engine (Facturation)

La creazione avviene sotto la fattura (/invoices/{id}/credit-notes);
l'emissione passa dal BillingEngine.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.document import CorrectionLineCreate, CorrectionLineUpdate
from app.schemas.invoice import CreditNoteRead
from app.services.billing_engine import BillingEngine
from app.services.credit_note_service import CreditNoteService

router = APIRouter(
    prefix="/credit-notes",
    tags=["Note di Credito"],
)


def get_credit_note_service() -> CreditNoteService:
    return CreditNoteService()


@router.get("/{credit_note_id}", name="nota_credito_dettaglio", response_model=CreditNoteRead)
async def get_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.get_by_id(db, credit_note_id))


@router.post(
    "/{credit_note_id}/lines",
    name="nota_credito_aggiungi_riga",
    response_model=CreditNoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_credit_note_line(
    credit_note_id: uuid.UUID,
    data: CorrectionLineCreate,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.add_line(db, credit_note_id, data))


@router.patch(
    "/{credit_note_id}/lines/{line_id}",
    name="nota_credito_aggiorna_riga",
    response_model=CreditNoteRead,
)
async def update_credit_note_line(
    credit_note_id: uuid.UUID,
    line_id: uuid.UUID,
    data: CorrectionLineUpdate,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    credit_note = await service.update_line(db, credit_note_id, line_id, data)
    return CreditNoteRead.model_validate(credit_note)


@router.delete(
    "/{credit_note_id}/lines/{line_id}",
    name="nota_credito_rimuovi_riga",
    response_model=CreditNoteRead,
)
async def remove_credit_note_line(
    credit_note_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.remove_line(db, credit_note_id, line_id))


@router.post(
    "/{credit_note_id}/issue",
    name="nota_credito_emetti",
    summary="Emette la nota di credito (annulla la fattura se stornata interamente)",
    response_model=CreditNoteRead,
)
async def issue_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await BillingEngine().issue_credit_note(db, credit_note_id))


@router.post("/{credit_note_id}/send", name="nota_credito_invia", response_model=CreditNoteRead)
async def send_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.send(db, credit_note_id))


@router.post("/{credit_note_id}/refund", name="nota_credito_rimborsa", response_model=CreditNoteRead)
async def refund_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.mark_refunded(db, credit_note_id))


@router.post("/{credit_note_id}/cancel", name="nota_credito_annulla", response_model=CreditNoteRead)
async def cancel_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: CreditNoteService = Depends(get_credit_note_service),
) -> CreditNoteRead:
    return CreditNoteRead.model_validate(await service.cancel(db, credit_note_id))
