"""
Router FastAPI per la Fatturazione
Progetto: Billing Engine (Facturation)

Definisce gli endpoint API per le fatture: creazione diretta, righe
in bozza, emissione, invio, pagamento manuale, totali derivati e
scritture dei collaboratori PDF e PDP.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.document import DocumentLineCreate, DocumentLineUpdate, DocumentType, PdfWriteBack, TotalsRead
from app.schemas.invoice import (
    CreditNoteCreate,
    CreditNoteRead,
    InvoiceCreate,
    InvoiceList,
    InvoicePaymentRequest,
    InvoiceRead,
    InvoiceSendRequest,
    InvoiceStatus,
    PdpTransmission,
)
from app.services.credit_note_service import CreditNoteService
from app.services.invoice_service import InvoiceService
from app.services.numbering_service import with_numbering_retry

router = APIRouter(
    prefix="/invoices",
    tags=["Fatturazione"],
)


def get_invoice_service() -> InvoiceService:
    return InvoiceService()


# -------------------------------------------------------------------
# Lettura
# -------------------------------------------------------------------

@router.get(
    "/",
    name="fatture_lista",
    summary="Lista fatture",
    response_model=InvoiceList,
    status_code=status.HTTP_200_OK,
)
async def get_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filtro per stato"),
    client_id: Optional[uuid.UUID] = Query(None, description="Filtro per UUID cliente"),
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(20, ge=1, le=100, description="Elementi per pagina"),
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceList:
    invoices, total = await service.get_all(
        db, status=status_filter, client_id=client_id, page=page, per_page=per_page
    )
    return InvoiceList(
        items=[InvoiceRead.model_validate(i) for i in invoices],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{invoice_id}", name="fattura_dettaglio", response_model=InvoiceRead)
async def get_invoice(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.get_by_id(db, invoice_id))


@router.get(
    "/{invoice_id}/totals",
    name="fattura_totali",
    summary="Totali e totale corretto dalle note di credito",
    response_model=TotalsRead,
)
async def get_invoice_totals(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> TotalsRead:
    invoice = await service.get_by_id(db, invoice_id)
    return TotalsRead(
        subtotal=invoice.subtotal,
        vat_amount=invoice.vat_amount,
        total=invoice.total,
        corrected_total=await service.get_corrected_total(db, invoice),
    )


@router.get(
    "/{invoice_id}/late-penalty",
    name="fattura_penalita",
    summary="Penalità di ritardo maturata",
)
async def get_late_penalty(
    invoice_id: uuid.UUID,
    on_date: Optional[date] = Query(None, description="Data di calcolo (default: oggi)"),
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> dict:
    invoice = await service.get_by_id(db, invoice_id)
    on_date = on_date or date.today()
    return {
        "invoice_id": invoice.id,
        "on_date": on_date,
        "balance_due": invoice.balance_due,
        "penalty": service.late_payment_penalty(invoice, on_date),
    }


# -------------------------------------------------------------------
# Creazione e righe
# -------------------------------------------------------------------

@router.post(
    "/",
    name="fattura_crea",
    summary="Fattura diretta in bozza",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    invoice = await with_numbering_retry(lambda: service.create(db, data))
    return InvoiceRead.model_validate(invoice)


@router.post(
    "/{invoice_id}/lines",
    name="fattura_aggiungi_riga",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_invoice_line(
    invoice_id: uuid.UUID,
    data: DocumentLineCreate,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.add_line(db, invoice_id, data))


@router.patch("/{invoice_id}/lines/{line_id}", name="fattura_aggiorna_riga", response_model=InvoiceRead)
async def update_invoice_line(
    invoice_id: uuid.UUID,
    line_id: uuid.UUID,
    data: DocumentLineUpdate,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.update_line(db, invoice_id, line_id, data))


@router.delete("/{invoice_id}/lines/{line_id}", name="fattura_rimuovi_riga", response_model=InvoiceRead)
async def remove_invoice_line(
    invoice_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.remove_line(db, invoice_id, line_id))


# -------------------------------------------------------------------
# Transizioni
# -------------------------------------------------------------------

@router.post("/{invoice_id}/issue", name="fattura_emetti", response_model=InvoiceRead)
async def issue_invoice(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.issue(db, invoice_id))


@router.post("/{invoice_id}/send", name="fattura_invia", response_model=InvoiceRead)
async def send_invoice(
    invoice_id: uuid.UUID,
    data: InvoiceSendRequest,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.send(db, invoice_id, data.channel))


@router.post("/{invoice_id}/pay", name="fattura_paga", response_model=InvoiceRead)
async def pay_invoice(
    invoice_id: uuid.UUID,
    data: InvoicePaymentRequest,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.mark_paid(db, invoice_id, data.paid_at))


# -------------------------------------------------------------------
# Collaboratori esterni
# -------------------------------------------------------------------

@router.put("/{invoice_id}/pdf", name="fattura_pdf", response_model=InvoiceRead)
async def record_invoice_pdf(
    invoice_id: uuid.UUID,
    data: PdfWriteBack,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    invoice = await service.record_pdf(db, DocumentType.INVOICE, invoice_id, data)
    return InvoiceRead.model_validate(invoice)


@router.put("/{invoice_id}/pdp", name="fattura_pdp", response_model=InvoiceRead)
async def record_pdp_transmission(
    invoice_id: uuid.UUID,
    data: PdpTransmission,
    db: AsyncSession = Depends(get_db),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceRead:
    return InvoiceRead.model_validate(await service.record_pdp_transmission(db, invoice_id, data))


# -------------------------------------------------------------------
# Note di credito della fattura
# -------------------------------------------------------------------

@router.get("/{invoice_id}/credit-notes", name="fattura_note_credito", response_model=list[CreditNoteRead])
async def get_invoice_credit_notes(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[CreditNoteRead]:
    credit_notes = await CreditNoteService().get_by_invoice(db, invoice_id)
    return [CreditNoteRead.model_validate(c) for c in credit_notes]


@router.post(
    "/{invoice_id}/credit-notes",
    name="fattura_crea_nota_credito",
    response_model=CreditNoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_credit_note(
    invoice_id: uuid.UUID,
    data: CreditNoteCreate,
    db: AsyncSession = Depends(get_db),
) -> CreditNoteRead:
    service = CreditNoteService()
    credit_note = await with_numbering_retry(lambda: service.create(db, invoice_id, data))
    return CreditNoteRead.model_validate(credit_note)
