"""
Router FastAPI per i Preventivi (Devis)
Progetto: Billing Engine (Facturation)

Endpoint CRUD, righe, transizioni di stato e firma. La firma passa
dal BillingEngine: la risposta arriva dopo il commit della firma
anche se la fatturazione automatica fallisce.
"""

import uuid
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.amendment import AmendmentCreate, AmendmentRead
from app.schemas.document import DocumentLineCreate, DocumentLineUpdate, TotalsRead
from app.schemas.invoice import DepositRead, InvoiceRead
from app.schemas.quote import (
    QuoteCreate,
    QuoteList,
    QuoteRead,
    QuoteSignRequest,
    QuoteStatus,
    QuoteUpdate,
)
from app.services.amendment_service import AmendmentService
from app.services.billing_engine import BillingEngine
from app.services.deposit_service import DepositService
from app.services.invoice_service import InvoiceService
from app.services.numbering_service import with_numbering_retry
from app.services.quote_service import QuoteService

router = APIRouter(
    prefix="/quotes",
    tags=["Preventivi"],
)


def get_quote_service() -> QuoteService:
    return QuoteService()


def get_billing_engine() -> BillingEngine:
    return BillingEngine()


# -------------------------------------------------------------------
# Lettura
# -------------------------------------------------------------------

@router.get("/", name="preventivi_lista", summary="Lista preventivi", response_model=QuoteList)
async def get_quotes(
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteList:
    quotes, total = await service.get_all(
        db, status=status_filter, client_id=client_id, page=page, per_page=per_page
    )
    return QuoteList(
        items=[QuoteRead.model_validate(q) for q in quotes],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{quote_id}", name="preventivo_dettaglio", response_model=QuoteRead)
async def get_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    """Dettaglio; un preventivo oltre la validità viene scaduto alla lettura."""
    return QuoteRead.model_validate(await service.get_by_id(db, quote_id))


@router.get(
    "/{quote_id}/totals",
    name="preventivo_totali",
    summary="Totali e totale corretto dalle varianti firmate",
    response_model=TotalsRead,
)
async def get_quote_totals(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> TotalsRead:
    quote = await service.get_by_id(db, quote_id)
    corrected: Decimal = await service.get_corrected_total(db, quote)
    return TotalsRead(
        subtotal=quote.subtotal,
        vat_amount=quote.vat_amount,
        total=quote.total,
        corrected_total=corrected,
    )


# -------------------------------------------------------------------
# Creazione e modifica
# -------------------------------------------------------------------

@router.post(
    "/",
    name="preventivo_crea",
    response_model=QuoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_quote(
    data: QuoteCreate,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    quote = await with_numbering_retry(lambda: service.create(db, data))
    return QuoteRead.model_validate(quote)


@router.patch("/{quote_id}", name="preventivo_aggiorna", response_model=QuoteRead)
async def update_quote(
    quote_id: uuid.UUID,
    data: QuoteUpdate,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.update(db, quote_id, data))


@router.post(
    "/{quote_id}/lines",
    name="preventivo_aggiungi_riga",
    response_model=QuoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_quote_line(
    quote_id: uuid.UUID,
    data: DocumentLineCreate,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.add_line(db, quote_id, data))


@router.patch("/{quote_id}/lines/{line_id}", name="preventivo_aggiorna_riga", response_model=QuoteRead)
async def update_quote_line(
    quote_id: uuid.UUID,
    line_id: uuid.UUID,
    data: DocumentLineUpdate,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.update_line(db, quote_id, line_id, data))


@router.delete("/{quote_id}/lines/{line_id}", name="preventivo_rimuovi_riga", response_model=QuoteRead)
async def remove_quote_line(
    quote_id: uuid.UUID,
    line_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.remove_line(db, quote_id, line_id))


# -------------------------------------------------------------------
# Transizioni
# -------------------------------------------------------------------

@router.post("/{quote_id}/send", name="preventivo_invia", response_model=QuoteRead)
async def send_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.send(db, quote_id))


@router.post("/{quote_id}/refuse", name="preventivo_rifiuta", response_model=QuoteRead)
async def refuse_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.refuse(db, quote_id))


@router.post("/{quote_id}/cancel", name="preventivo_annulla", response_model=QuoteRead)
async def cancel_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.cancel(db, quote_id))


@router.post("/{quote_id}/draft", name="preventivo_bozza", response_model=QuoteRead)
async def back_to_draft(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: QuoteService = Depends(get_quote_service),
) -> QuoteRead:
    return QuoteRead.model_validate(await service.back_to_draft(db, quote_id))


@router.post(
    "/{quote_id}/sign",
    name="preventivo_firma",
    summary="Firma il preventivo e avvia acconto o fatturazione",
    response_model=QuoteRead,
)
async def sign_quote(
    quote_id: uuid.UUID,
    data: QuoteSignRequest,
    db: AsyncSession = Depends(get_db),
    engine: BillingEngine = Depends(get_billing_engine),
) -> QuoteRead:
    return QuoteRead.model_validate(await engine.sign_quote(db, quote_id, data))


# -------------------------------------------------------------------
# Documenti collegati
# -------------------------------------------------------------------

@router.post(
    "/{quote_id}/invoice",
    name="preventivo_fattura",
    summary="Fattura in bozza dal preventivo firmato (dopo l'acconto)",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice_from_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> InvoiceRead:
    service = InvoiceService()
    invoice = await with_numbering_retry(lambda: service.create_from_quote(db, quote_id))
    return InvoiceRead.model_validate(invoice)


@router.get("/{quote_id}/amendments", name="preventivo_varianti", response_model=list[AmendmentRead])
async def get_quote_amendments(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[AmendmentRead]:
    amendments = await AmendmentService().get_by_quote(db, quote_id)
    return [AmendmentRead.model_validate(a) for a in amendments]


@router.post(
    "/{quote_id}/amendments",
    name="preventivo_crea_variante",
    response_model=AmendmentRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_amendment(
    quote_id: uuid.UUID,
    data: AmendmentCreate,
    db: AsyncSession = Depends(get_db),
) -> AmendmentRead:
    service = AmendmentService()
    amendment = await with_numbering_retry(lambda: service.create(db, quote_id, data))
    return AmendmentRead.model_validate(amendment)


@router.get("/{quote_id}/deposits", name="preventivo_acconti", response_model=list[DepositRead])
async def get_quote_deposits(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[DepositRead]:
    deposits = await DepositService.get_by_quote(quote_id, db)
    return [DepositRead.model_validate(d) for d in deposits]
