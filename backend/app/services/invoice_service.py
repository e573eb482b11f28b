"""
Service Layer per la Fatturazione
Progetto: Billing Engine (Facturation)

Definisce la logica di business per le fatture: creazione diretta, da
preventivo firmato o da variante (fattura complementare), emissione,
invio, pagamento, valori derivati (saldo, totale corretto, penalità di
ritardo) e dati scritti dai collaboratori PDF e PDP.

Una fattura emessa è immutabile: ogni scrittura passa dalla guardia.
I metodi `build_*` e `issue_document` non fanno commit e sono usati dal
BillingEngine dentro la propria transazione.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Deposit, Invoice, InvoiceLine
from app.models.quote import Quote
from app.schemas.document import DocumentLineCreate, DocumentLineUpdate, DocumentType, PdfWriteBack
from app.schemas.quote import QuoteStatus
from app.schemas.invoice import (
    CreditNoteStatus,
    DeliveryChannel,
    DepositStatus,
    InvoiceCreate,
    InvoiceStatus,
    PdpTransmission,
)
from app.services.calculator import (
    CENT,
    ZERO,
    late_payment_penalty,
    quantize_money,
    recalculate_absolute,
)
from app.services.immutability_guard import apply_changes, guard_line_write
from app.services.notification import Notifier, default_notifier
from app.services.numbering_service import NumberingService, commit_numbered, flush_numbered

# Logger per questo modulo
logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (InvoiceStatus.ISSUED.value, InvoiceStatus.SENT.value)

# Documenti con colonne pdf_filename / pdf_hash
PDF_DOCUMENTS = {
    DocumentType.INVOICE: Invoice,
    DocumentType.AMENDMENT: Amendment,
}


def build_invoice_line(data: DocumentLineCreate, position: int) -> InvoiceLine:
    return InvoiceLine(
        position=position,
        description=data.description,
        quantity=data.quantity,
        unit_price=data.unit_price,
        vat_rate=data.vat_rate,
        subscription_mode=data.subscription_mode.value if data.subscription_mode else None,
        recurrence_amount=data.recurrence_amount,
    )


class InvoiceService:
    """
    Service per la gestione delle fatture.

    Implementa:
    - Numerazione FACT-YYYY-NNN senza buchi (assegnata alla creazione)
    - Copia delle righe dal preventivo con deduzione degli acconti pagati
    - Fattura complementare da variante con totale positivo
    - Emissione, invio, pagamento (manuale o dal collaboratore di pagamento)
    - Penalità di ritardo e totale corretto dalle note di credito
    """

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        self.notifier = notifier
        self.numbering = numbering or NumberingService()

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------

    async def get_by_id(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def get_by_quote(self, db: AsyncSession, quote_id: uuid.UUID) -> Optional[Invoice]:
        """Fattura principale di un preventivo (relazione 1:1), se esiste."""
        result = await db.execute(select(Invoice).where(Invoice.quote_id == quote_id))
        return result.scalar_one_or_none()

    async def get_by_amendment(self, db: AsyncSession, amendment_id: uuid.UUID) -> Optional[Invoice]:
        result = await db.execute(select(Invoice).where(Invoice.amendment_id == amendment_id))
        return result.scalar_one_or_none()

    async def get_all(
        self,
        db: AsyncSession,
        status: Optional[InvoiceStatus] = None,
        client_id: Optional[uuid.UUID] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Invoice], int]:
        conditions = []
        if status is not None:
            conditions.append(Invoice.status == status.value)
        if client_id is not None:
            conditions.append(Invoice.client_id == client_id)

        count_result = await db.execute(select(func.count()).select_from(Invoice).where(*conditions))
        total = count_result.scalar_one()

        stmt = (
            select(Invoice)
            .where(*conditions)
            .order_by(Invoice.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_corrected_total(self, db: AsyncSession, invoice: Invoice) -> Decimal:
        """Totale TTC più le note di credito non annullate (importi negativi)."""
        result = await db.execute(
            select(func.coalesce(func.sum(CreditNote.total), ZERO)).where(
                CreditNote.invoice_id == invoice.id,
                CreditNote.status != CreditNoteStatus.CANCELLED.value,
            )
        )
        return (invoice.total or ZERO) + result.scalar_one()

    def late_payment_penalty(self, invoice: Invoice, on_date: Optional[date] = None) -> Decimal:
        """
        Penalità di ritardo maturata alla data indicata.

        saldo × late_penalty_rate / 100 × giorni di ritardo; zero se la
        fattura non è in attesa di pagamento o non è scaduta.
        """
        on_date = on_date or date.today()
        if invoice.status not in PAYABLE_STATUSES or invoice.due_date is None:
            return ZERO
        days_late = (on_date - invoice.due_date).days
        return late_payment_penalty(invoice.balance_due, invoice.late_penalty_rate, days_late)

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------

    def _new_invoice(self, **fields) -> Invoice:
        fields.setdefault("id", uuid.uuid4())
        fields.setdefault("status", InvoiceStatus.DRAFT.value)
        fields.setdefault("due_date", date.today() + timedelta(days=settings.payment_terms_days))
        fields.setdefault("payment_terms", settings.payment_terms_text)
        fields.setdefault("late_penalty_rate", settings.late_penalty_rate)
        fields.setdefault("deposit_amount", ZERO)
        fields.setdefault("sent_count", 0)
        return Invoice(**fields)

    async def build_invoice(self, db: AsyncSession, **fields) -> Invoice:
        """
        Nuova fattura in bozza con totali calcolati e numero assegnato (senza commit).

        I campi non indicati prendono i valori di configurazione
        (scadenza, condizioni di pagamento, penalità di ritardo).
        """
        invoice = self._new_invoice(**fields)
        recalculate_absolute(invoice)
        db.add(invoice)

        await self.numbering.assign_number(db, invoice)
        await flush_numbered(db, invoice, "invoice")
        return invoice

    async def create(self, db: AsyncSession, data: InvoiceCreate) -> Invoice:
        """Crea una fattura diretta in bozza, già numerata."""
        invoice = self._new_invoice(
            client_id=data.client_id,
            vat_rate=data.vat_rate if data.vat_rate is not None else settings.default_vat_rate,
            per_line_vat=data.per_line_vat,
            notes=data.notes,
            lines=[build_invoice_line(line, position) for position, line in enumerate(data.lines)],
            **{
                key: value
                for key, value in (
                    ("due_date", data.due_date),
                    ("payment_terms", data.payment_terms),
                    ("late_penalty_rate", data.late_penalty_rate),
                )
                if value is not None
            },
        )
        recalculate_absolute(invoice)
        db.add(invoice)

        await self.numbering.assign_number(db, invoice)
        await commit_numbered(db, invoice, "invoice")
        await db.refresh(invoice)

        logger.info("Fattura %s creata (totale TTC %s)", invoice.number, invoice.total)
        return invoice

    async def build_from_quote(self, db: AsyncSession, quote: Quote) -> Invoice:
        """
        Costruisce la fattura di un preventivo firmato (senza commit).

        Le righe sono copiate (descrizione, quantità, prezzo, aliquota),
        mai ricollegate agli oggetti del preventivo. Gli acconti PAGATI e
        non ancora dedotti vengono collegati alla fattura e sommati in
        deposit_amount.

        Raises:
            ConflictError: se il preventivo ha già una fattura
        """
        existing = await self.get_by_quote(db, quote.id)
        if existing is not None:
            raise ConflictError(
                f"Il preventivo {quote.number} è già fatturato: {existing.number}"
            )

        invoice = await self.build_invoice(
            db,
            quote_id=quote.id,
            client_id=quote.client_id,
            vat_rate=quote.vat_rate,
            per_line_vat=quote.per_line_vat,
            notes=f"Facture du devis {quote.number}",
            lines=[
                InvoiceLine(
                    position=line.position,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    vat_rate=line.vat_rate,
                    subscription_mode=line.subscription_mode,
                    recurrence_amount=line.recurrence_amount,
                )
                for line in quote.lines
            ],
        )
        await self._deduct_deposits(db, invoice, quote)
        return invoice

    async def create_from_quote(self, db: AsyncSession, quote_id: uuid.UUID) -> Invoice:
        """Fattura in bozza da un preventivo firmato (es. dopo il pagamento dell'acconto)."""
        quote = await db.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Preventivo {quote_id} non trovato")
        if quote.status != QuoteStatus.SIGNED.value:
            raise BusinessValidationError(
                f"Solo un preventivo firmato può essere fatturato. Stato attuale: {quote.status}"
            )

        invoice = await self.build_from_quote(db, quote)
        await commit_numbered(db, invoice, "invoice")
        await db.refresh(invoice)
        return invoice

    async def build_complementary(self, db: AsyncSession, amendment: Amendment) -> Invoice:
        """
        Costruisce la fattura complementare di una variante con totale positivo.

        Una riga per riga di variante, valorizzata con il delta memorizzato:
        i totali seguono lo stesso calcolo TVA della variante.
        La fattura punta alla variante, non al preventivo (relazione 1:1 già occupata).
        """
        quote = await db.get(Quote, amendment.quote_id)
        if quote is None:
            raise NotFoundError(f"Preventivo {amendment.quote_id} non trovato")

        return await self.build_invoice(
            db,
            amendment_id=amendment.id,
            client_id=quote.client_id,
            vat_rate=amendment.vat_rate,
            per_line_vat=amendment.per_line_vat,
            notes=(
                f"Facture complémentaire suite à l'avenant {amendment.number}.\n\n"
                f"Motif : {amendment.motive}"
            ),
            lines=[
                InvoiceLine(
                    position=position,
                    description=line.description,
                    quantity=1,
                    unit_price=line.subtotal,
                    vat_rate=line.vat_rate,
                )
                for position, line in enumerate(amendment.lines)
            ],
        )

    async def _deduct_deposits(self, db: AsyncSession, invoice: Invoice, quote: Quote) -> Decimal:
        result = await db.execute(
            select(Deposit).where(
                Deposit.quote_id == quote.id,
                Deposit.status == DepositStatus.PAID.value,
                Deposit.invoice_id.is_(None),
            )
        )
        deducted = ZERO
        for deposit in result.scalars().all():
            deposit.invoice_id = invoice.id
            deducted += deposit.amount

        if deducted > ZERO:
            invoice.deposit_amount = quantize_money(invoice.deposit_amount + deducted)
            logger.info("Acconti dedotti dalla fattura %s: %s", invoice.number, deducted)
        return deducted

    # ------------------------------------------------------------
    # Righe (solo in bozza)
    # ------------------------------------------------------------

    async def add_line(
        self, db: AsyncSession, invoice_id: uuid.UUID, data: DocumentLineCreate
    ) -> Invoice:
        invoice = await self.get_by_id(db, invoice_id)
        guard_line_write(invoice)
        invoice.lines.append(build_invoice_line(data, len(invoice.lines)))
        recalculate_absolute(invoice)
        await db.commit()
        await db.refresh(invoice)
        return invoice

    async def update_line(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        line_id: uuid.UUID,
        data: DocumentLineUpdate,
    ) -> Invoice:
        invoice = await self.get_by_id(db, invoice_id)
        line = self._find_line(invoice, line_id)
        guard_line_write(invoice, line)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(line, field, value)
        recalculate_absolute(invoice)
        await db.commit()
        await db.refresh(invoice)
        return invoice

    async def remove_line(self, db: AsyncSession, invoice_id: uuid.UUID, line_id: uuid.UUID) -> Invoice:
        invoice = await self.get_by_id(db, invoice_id)
        line = self._find_line(invoice, line_id)
        guard_line_write(invoice, line)
        invoice.lines.remove(line)
        recalculate_absolute(invoice)
        await db.commit()
        await db.refresh(invoice)
        return invoice

    # ------------------------------------------------------------
    # Transizioni
    # ------------------------------------------------------------

    def issue_document(self, invoice: Invoice, on_date: Optional[date] = None) -> Invoice:
        """
        DRAFT → ISSUED (senza commit).

        Le precondizioni (righe, cliente, scadenza, importi non negativi)
        sono verificate dalla macchina a stati; la data di emissione è
        scritta prima del blocco.
        """
        apply_changes(
            invoice,
            {"status": InvoiceStatus.ISSUED, "issue_date": on_date or date.today()},
        )
        return invoice

    async def issue(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.get_by_id(db, invoice_id)
        self.issue_document(invoice)
        await db.commit()
        await db.refresh(invoice)
        self.notifier.notify("invoice", invoice.id, "invoice_issued")
        return invoice

    def send_document(
        self,
        invoice: Invoice,
        channel: DeliveryChannel = DeliveryChannel.EMAIL,
        sent_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Registra un invio (senza commit).

        ISSUED → SENT; su una fattura già inviata aggiorna solo i contatori.
        """
        changes = {
            "sent_at": sent_at or datetime.now(timezone.utc),
            "sent_count": (invoice.sent_count or 0) + 1,
            "delivery_channel": channel.value,
        }
        if invoice.status != InvoiceStatus.SENT.value:
            changes["status"] = InvoiceStatus.SENT
        apply_changes(invoice, changes)
        return invoice

    async def send(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        channel: DeliveryChannel = DeliveryChannel.EMAIL,
    ) -> Invoice:
        invoice = await self.get_by_id(db, invoice_id)
        self.send_document(invoice, channel)
        await db.commit()
        await db.refresh(invoice)
        self.notifier.notify("invoice", invoice.id, "invoice_sent")
        return invoice

    async def mark_paid(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        paid_at: Optional[datetime] = None,
    ) -> Invoice:
        """Pagamento registrato manualmente: ISSUED/SENT → PAID."""
        invoice = await self.get_by_id(db, invoice_id)
        await self._settle(db, invoice, paid_at)
        await db.commit()
        await db.refresh(invoice)
        self.notifier.notify("invoice", invoice.id, "invoice_paid")
        return invoice

    async def mark_paid_by_external_payment(
        self,
        db: AsyncSession,
        invoice: Invoice,
        amount: Optional[Decimal] = None,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """
        Pagamento notificato dal collaboratore di pagamento (senza commit).

        Idempotente: una fattura già PAID non cambia. Un importo inferiore
        al saldo (tolleranza un centesimo) non chiude la fattura.

        Returns:
            True se la fattura è passata in PAID

        Raises:
            BusinessValidationError: se la fattura non è emessa né inviata
        """
        if invoice.status == InvoiceStatus.PAID.value:
            logger.info("Fattura %s già pagata, notifica ignorata", invoice.number)
            return False
        if invoice.status not in PAYABLE_STATUSES:
            raise BusinessValidationError(
                f"La fattura {invoice.number} non può essere pagata. Stato attuale: {invoice.status}"
            )

        if amount is not None and amount < invoice.balance_due - CENT:
            logger.info(
                "Pagamento parziale su fattura %s: %s su %s",
                invoice.number,
                amount,
                invoice.balance_due,
            )
            return False

        await self._settle(db, invoice, paid_at)
        return True

    async def _settle(self, db: AsyncSession, invoice: Invoice, paid_at: Optional[datetime]) -> None:
        from app.services.subscription_service import SubscriptionService

        apply_changes(
            invoice,
            {"status": InvoiceStatus.PAID, "paid_at": paid_at or datetime.now(timezone.utc)},
        )
        await SubscriptionService().open_from_invoice(db, invoice)

    # ------------------------------------------------------------
    # Collaboratori esterni
    # ------------------------------------------------------------

    async def record_pdf(
        self,
        db: AsyncSession,
        document_type: DocumentType,
        document_id: uuid.UUID,
        data: PdfWriteBack,
    ):
        """Scrive nome e hash del PDF generato (campi in whitelist anche a documento bloccato)."""
        model = PDF_DOCUMENTS.get(document_type)
        if model is None:
            raise BusinessValidationError(
                f"Il documento di tipo {document_type.value} non memorizza dati PDF"
            )
        document = await db.get(model, document_id)
        if document is None:
            raise NotFoundError(f"Documento {document_type.value} {document_id} non trovato")

        apply_changes(document, {"pdf_filename": data.pdf_filename, "pdf_hash": data.pdf_hash})
        await db.commit()
        await db.refresh(document)
        return document

    async def record_pdp_transmission(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: PdpTransmission,
    ) -> Invoice:
        """Esito della trasmissione elettronica; solo per fatture emesse."""
        invoice = await self.get_by_id(db, invoice_id)
        if invoice.status == InvoiceStatus.DRAFT.value:
            raise BusinessValidationError(
                f"La fattura {invoice.number} deve essere emessa prima della trasmissione PDP"
            )
        apply_changes(
            invoice,
            {
                "pdp_status": data.pdp_status,
                "pdp_provider": data.pdp_provider,
                "pdp_transmission_date": data.pdp_transmission_date or datetime.now(timezone.utc),
                "pdp_response": data.pdp_response,
            },
        )
        await db.commit()
        await db.refresh(invoice)
        logger.info("Trasmissione PDP fattura %s: %s", invoice.number, data.pdp_status)
        return invoice

    @staticmethod
    def _find_line(invoice: Invoice, line_id: uuid.UUID) -> InvoiceLine:
        for line in invoice.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Riga {line_id} non trovata nella fattura {invoice.number}")
