"""
Orchestratore dei documenti commerciali
Progetto: Billing Engine (Facturation)

Le transizioni che generano altri documenti passano da qui, in un
ordine fisso:

1. cambio di stato (guardia + macchina a stati) e commit;
2. notifica dell'evento;
3. effetti collaterali in una transazione separata e idempotente
   (acconto o fattura alla firma del preventivo, fattura complementare
   o nota di credito alla firma della variante, annullamento della
   fattura stornata interamente).

Un errore negli effetti collaterali non annulla la firma già salvata:
viene registrato nel log e notificato come `billing_automation_failed`
per l'intervento manuale.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Deposit, Invoice
from app.models.quote import Quote
from app.schemas.amendment import AmendmentSignRequest, AmendmentStatus
from app.schemas.invoice import (
    CreditNoteStatus,
    DepositStatus,
    EMITTED_CREDIT_NOTE_STATUSES,
    InvoiceStatus,
)
from app.schemas.quote import QuoteSignRequest, QuoteStatus
from app.services.amendment_service import AmendmentService
from app.services.calculator import ZERO, is_offset
from app.services.credit_note_service import CREDITABLE_INVOICE_STATUSES, CreditNoteService
from app.services.deposit_service import DepositService
from app.services.expiry_service import sweep_expired_quotes
from app.services.immutability_guard import apply_changes
from app.services.invoice_service import InvoiceService
from app.services.notification import Notifier, default_notifier
from app.services.numbering_service import NumberingService, commit_numbered, with_numbering_retry
from app.services.quote_service import QuoteService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BillingEngine:
    """
    Punto d'ingresso per firma, emissione e scadenza dei documenti.

    I servizi dei singoli documenti sono iniettati con lo stesso notifier
    e la stessa numerazione.
    """

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        self.notifier = notifier
        numbering = numbering or NumberingService()
        self.quotes = QuoteService(notifier, numbering)
        self.amendments = AmendmentService(notifier, numbering)
        self.invoices = InvoiceService(notifier, numbering)
        self.credit_notes = CreditNoteService(notifier, numbering)

    # ------------------------------------------------------------
    # Preventivi
    # ------------------------------------------------------------

    async def sign_quote(
        self, db: AsyncSession, quote_id: uuid.UUID, data: QuoteSignRequest
    ) -> Quote:
        """
        Firma un preventivo inviato e avvia la fatturazione.

        Con deposit_percent > 0 viene richiesto un acconto; altrimenti la
        fattura è creata ed emessa subito.

        Raises:
            NotFoundError: preventivo inesistente
            IllegalTransitionError: preventivo non in SENT (anche se appena scaduto)
            SigningPreconditionError: righe, cliente o totale mancanti
        """
        quote = await self.quotes.get_by_id(db, quote_id)
        apply_changes(
            quote,
            {
                "status": QuoteStatus.SIGNED,
                "signature_date": data.signed_at or datetime.now(timezone.utc),
                "client_signature": data.client_signature,
            },
        )
        await db.commit()
        await db.refresh(quote)
        self.notifier.notify("quote", quote.id, "quote_signed")
        logger.info("Preventivo %s firmato", quote.number)

        await self._run_side_effects(
            db, "quote", quote.id, lambda: self._after_quote_signed(db, quote.id)
        )
        return quote

    async def _after_quote_signed(self, db: AsyncSession, quote_id: uuid.UUID) -> None:
        quote = await db.get(Quote, quote_id)

        if quote.deposit_percent and quote.deposit_percent > 0:
            result = await db.execute(
                select(Deposit.id).where(
                    Deposit.quote_id == quote.id,
                    Deposit.status != DepositStatus.CANCELLED.value,
                )
            )
            if result.first() is not None:
                logger.info("Preventivo %s: acconto già richiesto", quote.number)
                return
            deposit = await DepositService.create_for_quote(quote, db)
            await db.commit()
            self.notifier.notify("deposit", deposit.id, "deposit_requested")
            return

        if await self.invoices.get_by_quote(db, quote.id) is not None:
            logger.info("Preventivo %s: fattura già presente", quote.number)
            return
        invoice = await self.invoices.build_from_quote(db, quote)
        self.invoices.issue_document(invoice)
        await commit_numbered(db, invoice, "invoice")
        self.notifier.notify("invoice", invoice.id, "invoice_issued")
        logger.info("Fattura %s emessa dal preventivo %s", invoice.number, quote.number)

    # ------------------------------------------------------------
    # Varianti
    # ------------------------------------------------------------

    async def sign_amendment(
        self, db: AsyncSession, amendment_id: uuid.UUID, data: AmendmentSignRequest
    ) -> Amendment:
        """
        Firma una variante e genera il documento di conguaglio.

        Totale HT positivo: fattura complementare emessa.
        Totale HT negativo: nota di credito in bozza sulla fattura del preventivo.
        Totale nullo: nessun documento.
        """
        amendment = await self.amendments.get_by_id(db, amendment_id)
        apply_changes(
            amendment,
            {
                "status": AmendmentStatus.SIGNED,
                "signature_date": data.signed_at or datetime.now(timezone.utc),
                "client_signature": data.client_signature,
            },
        )
        await db.commit()
        await db.refresh(amendment)
        self.notifier.notify("amendment", amendment.id, "amendment_signed")
        logger.info("Variante %s firmata (totale HT %s)", amendment.number, amendment.subtotal)

        await self._run_side_effects(
            db,
            "amendment",
            amendment.id,
            lambda: self._after_amendment_signed(db, amendment.id),
        )
        return amendment

    async def _after_amendment_signed(self, db: AsyncSession, amendment_id: uuid.UUID) -> None:
        amendment = await db.get(Amendment, amendment_id)
        subtotal = amendment.subtotal or ZERO

        if subtotal > ZERO:
            if await self.invoices.get_by_amendment(db, amendment.id) is not None:
                logger.info("Variante %s: fattura complementare già presente", amendment.number)
                return
            invoice = await self.invoices.build_complementary(db, amendment)
            self.invoices.issue_document(invoice)
            await commit_numbered(db, invoice, "invoice")
            self.notifier.notify("invoice", invoice.id, "invoice_issued")
            logger.info(
                "Fattura complementare %s emessa per la variante %s",
                invoice.number,
                amendment.number,
            )
        elif subtotal < ZERO:
            if await self.credit_notes.get_by_amendment(db, amendment.id) is not None:
                logger.info("Variante %s: nota di credito già presente", amendment.number)
                return
            invoice = await self.invoices.get_by_quote(db, amendment.quote_id)
            if invoice is None or invoice.status not in CREDITABLE_INVOICE_STATUSES:
                logger.warning(
                    "Variante %s: nessuna fattura emessa da stornare, nota di credito non creata",
                    amendment.number,
                )
                return
            credit_note = await self.credit_notes.build_from_amendment(db, amendment, invoice)
            await commit_numbered(db, credit_note, "credit_note")
            logger.info(
                "Nota di credito %s creata per la variante %s",
                credit_note.number,
                amendment.number,
            )
        else:
            logger.info("Variante %s a totale nullo: nessun documento generato", amendment.number)

    # ------------------------------------------------------------
    # Note di credito
    # ------------------------------------------------------------

    async def issue_credit_note(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        """
        Emette una nota di credito; se le note emesse compensano il totale
        della fattura (tolleranza offset_tolerance) la fattura viene annullata.
        """
        credit_note = await self.credit_notes.get_by_id(db, credit_note_id)
        apply_changes(
            credit_note,
            {"status": CreditNoteStatus.ISSUED, "issued_at": datetime.now(timezone.utc)},
        )
        await db.commit()
        await db.refresh(credit_note)
        self.notifier.notify("credit_note", credit_note.id, "credit_note_issued")
        logger.info("Nota di credito %s emessa (totale TTC %s)", credit_note.number, credit_note.total)

        await self._run_side_effects(
            db,
            "credit_note",
            credit_note.id,
            lambda: self._cancel_if_offset(db, credit_note.invoice_id),
        )
        return credit_note

    async def _cancel_if_offset(self, db: AsyncSession, invoice_id: uuid.UUID) -> None:
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None or invoice.status == InvoiceStatus.CANCELLED.value:
            return

        result = await db.execute(
            select(func.coalesce(func.sum(CreditNote.total), ZERO)).where(
                CreditNote.invoice_id == invoice.id,
                CreditNote.status.in_([status.value for status in EMITTED_CREDIT_NOTE_STATUSES]),
            )
        )
        credited = result.scalar_one()
        if not is_offset(invoice.total, credited, settings.offset_tolerance):
            return

        apply_changes(invoice, {"status": InvoiceStatus.CANCELLED})
        await db.commit()
        self.notifier.notify("invoice", invoice.id, "invoice_cancelled")
        logger.info(
            "Fattura %s annullata: stornata interamente (%s su %s)",
            invoice.number,
            credited,
            invoice.total,
        )

    # ------------------------------------------------------------
    # Scadenze
    # ------------------------------------------------------------

    async def sweep_expired_quotes(self, db: AsyncSession, today: Optional[date] = None) -> int:
        return await sweep_expired_quotes(db, self.notifier, today)

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _run_side_effects(
        self,
        db: AsyncSession,
        document_type: str,
        document_id: uuid.UUID,
        operation: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        """Esegue gli effetti collaterali; un errore è registrato e notificato, non propagato."""
        try:
            return await with_numbering_retry(operation)
        except Exception:
            await db.rollback()
            logger.exception(
                "Automazione fallita dopo la transizione di %s %s", document_type, document_id
            )
            self.notifier.notify(document_type, document_id, "billing_automation_failed")
            return None
