"""
Router FastAPI per gli Avenants
Progetto: Billing Engine (Facturation)

La creazione avviene sotto il preventivo (/quotes/{id}/amendments).
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.amendment import AmendmentRead, AmendmentSignRequest
from app.schemas.document import CorrectionLineCreate, CorrectionLineUpdate, DocumentType, PdfWriteBack
from app.services.amendment_service import AmendmentService
from app.services.billing_engine import BillingEngine
from app.services.invoice_service import InvoiceService

router = APIRouter(
    prefix="/amendments",
    tags=["Varianti"],
)


def get_amendment_service() -> AmendmentService:
    return AmendmentService()


@router.get("/{amendment_id}", name="variante_dettaglio", response_model=AmendmentRead)
async def get_amendment(
    amendment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.get_by_id(db, amendment_id))


@router.post(
    "/{amendment_id}/lines",
    name="variante_aggiungi_riga",
    response_model=AmendmentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_amendment_line(
    amendment_id: uuid.UUID,
    data: CorrectionLineCreate,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.add_line(db, amendment_id, data))


@router.patch("/{amendment_id}/lines/{line_id}", name="variante_aggiorna_riga", response_model=AmendmentRead)
async def update_amendment_line(
    amendment_id: uuid.UUID,
    line_id: uuid.UUID,
    data: CorrectionLineUpdate,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.update_line(db, amendment_id, line_id, data))


@router.delete("/{amendment_id}/lines/{line_id}", name="variante_rimuovi_riga", response_model=AmendmentRead)
async def remove_amendment_line(
    amendment_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.remove_line(db, amendment_id, line_id))


@router.post("/{amendment_id}/send", name="variante_invia", response_model=AmendmentRead)
async def send_amendment(
    amendment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.send(db, amendment_id))


@router.post("/{amendment_id}/cancel", name="variante_annulla", response_model=AmendmentRead)
async def cancel_amendment(
    amendment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: AmendmentService = Depends(get_amendment_service),
) -> AmendmentRead:
    return AmendmentRead.model_validate(await service.cancel(db, amendment_id))


@router.post(
    "/{amendment_id}/sign",
    name="variante_firma",
    summary="Firma la variante e genera fattura complementare o nota di credito",
    response_model=AmendmentRead,
)
async def sign_amendment(
    amendment_id: uuid.UUID,
    data: AmendmentSignRequest,
    db: AsyncSession = Depends(get_db),
) -> AmendmentRead:
    amendment = await BillingEngine().sign_amendment(db, amendment_id, data)
    return AmendmentRead.model_validate(amendment)


@router.put("/{amendment_id}/pdf", name="variante_pdf", response_model=AmendmentRead)
async def record_amendment_pdf(
    amendment_id: uuid.UUID,
    data: PdfWriteBack,
    db: AsyncSession = Depends(get_db),
) -> AmendmentRead:
    amendment = await InvoiceService().record_pdf(db, DocumentType.AMENDMENT, amendment_id, data)
    return AmendmentRead.model_validate(amendment)
