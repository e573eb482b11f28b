"""
Service Layer per le Note di credito (Avoirs)
Progetto: Billing Engine (Facturation)

Una nota di credito corregge una fattura già emessa. Le righe passano
dal registro dei delta con importi forzati in negativo; l'emissione
passa dal BillingEngine, che annulla la fattura quando le note emesse
ne compensano il totale.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, CreditNoteLine, Invoice, InvoiceLine
from app.schemas.document import CorrectionLineCreate, CorrectionLineUpdate
from app.schemas.invoice import CreditNoteCreate, CreditNoteStatus, InvoiceStatus
from app.services.calculator import ZERO, recalculate_corrections
from app.services.delta_ledger import apply_delta, build_correction_line, update_correction_line
from app.services.immutability_guard import apply_changes, guard_line_write
from app.services.notification import Notifier, default_notifier
from app.services.numbering_service import NumberingService, commit_numbered, flush_numbered

logger = logging.getLogger(__name__)

CREDITABLE_INVOICE_STATUSES = (
    InvoiceStatus.ISSUED.value,
    InvoiceStatus.SENT.value,
    InvoiceStatus.PAID.value,
)


def recalculate_credit_note(credit_note: CreditNote) -> None:
    """Ricalcola i totali; una nota di credito non può avere totale positivo."""
    recalculate_corrections(credit_note)
    if credit_note.total > ZERO:
        raise BusinessValidationError(
            f"Il totale di una nota di credito deve essere negativo o nullo ({credit_note.total})"
        )


class CreditNoteService:
    """Service per la gestione delle note di credito."""

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        self.notifier = notifier
        self.numbering = numbering or NumberingService()

    async def get_by_id(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        credit_note = await db.get(CreditNote, credit_note_id)
        if credit_note is None:
            raise NotFoundError(f"Nota di credito {credit_note_id} non trovata")
        return credit_note

    async def get_by_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> list[CreditNote]:
        stmt = (
            select(CreditNote)
            .where(CreditNote.invoice_id == invoice_id)
            .order_by(CreditNote.created_at)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_amendment(
        self, db: AsyncSession, amendment_id: uuid.UUID
    ) -> Optional[CreditNote]:
        result = await db.execute(select(CreditNote).where(CreditNote.amendment_id == amendment_id))
        return result.scalar_one_or_none()

    async def create(
        self, db: AsyncSession, invoice_id: uuid.UUID, data: CreditNoteCreate
    ) -> CreditNote:
        """
        Crea una nota di credito in bozza su una fattura emessa.

        Raises:
            NotFoundError: fattura o riga sorgente inesistenti
            BusinessValidationError: fattura non emessa
        """
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        if invoice.status not in CREDITABLE_INVOICE_STATUSES:
            raise BusinessValidationError(
                f"Una nota di credito richiede una fattura emessa. Stato attuale: {invoice.status}"
            )

        credit_note = CreditNote(
            id=uuid.uuid4(),
            invoice_id=invoice.id,
            status=CreditNoteStatus.DRAFT.value,
            reason=data.reason,
            vat_rate=data.vat_rate if data.vat_rate is not None else invoice.vat_rate,
            per_line_vat=data.per_line_vat if data.per_line_vat is not None else invoice.per_line_vat,
            notes=data.notes,
            lines=[],
        )
        for position, line_data in enumerate(data.lines):
            credit_note.lines.append(await self._build_line(db, invoice, line_data, position))
        recalculate_credit_note(credit_note)
        db.add(credit_note)

        await self.numbering.assign_number(db, credit_note)
        await commit_numbered(db, credit_note, "credit_note")
        await db.refresh(credit_note)

        logger.info(
            "Nota di credito %s creata sulla fattura %s (totale TTC %s)",
            credit_note.number,
            invoice.number,
            credit_note.total,
        )
        return credit_note

    @staticmethod
    def _net_by_rate(amendment: Amendment) -> Dict[Optional[Decimal], Decimal]:
        """Saldo HT delle righe di variante, per aliquota se per_line_vat."""
        net_by_rate: Dict[Optional[Decimal], Decimal] = {}
        for line in amendment.lines:
            rate = None
            if amendment.per_line_vat:
                rate = line.vat_rate if line.vat_rate is not None else amendment.vat_rate
            net_by_rate[rate] = net_by_rate.get(rate, ZERO) + (line.subtotal or ZERO)
        return net_by_rate

    async def build_from_amendment(
        self, db: AsyncSession, amendment: Amendment, invoice: Invoice
    ) -> CreditNote:
        """
        Costruisce la nota di credito di una variante con totale negativo (senza commit).

        Una sola riga con il saldo HT della variante, senza riga sorgente di
        fattura. In modalità per_line_vat una riga per aliquota, così la TVA
        stornata resta quella della variante. Un'aliquota con saldo positivo
        non è stornabile: richiederebbe una fattura complementare.
        """
        credit_note = CreditNote(
            id=uuid.uuid4(),
            invoice_id=invoice.id,
            amendment_id=amendment.id,
            status=CreditNoteStatus.DRAFT.value,
            reason=f"Avoir suite à l'avenant {amendment.number} : {amendment.motive}",
            vat_rate=amendment.vat_rate,
            per_line_vat=amendment.per_line_vat,
            lines=[],
        )
        net_by_rate = self._net_by_rate(amendment)
        description = f"Avoir suite à l'avenant {amendment.number}"
        for rate, net in net_by_rate.items():
            shown_rate = rate if rate is not None else amendment.vat_rate
            if net > ZERO:
                raise BusinessValidationError(
                    f"La variante {amendment.number} aumenta l'imponibile al {shown_rate}% "
                    f"({net}): non stornabile con una nota di credito",
                    extra={"amendment_id": str(amendment.id), "vat_rate": str(shown_rate)},
                )
            if net == ZERO:
                continue
            line = CreditNoteLine(
                position=len(credit_note.lines),
                description=(
                    f"{description} (TVA {shown_rate} %)" if len(net_by_rate) > 1 else description
                ),
                vat_rate=rate if amendment.per_line_vat else None,
                subtotal=net,
            )
            apply_delta(line)
            credit_note.lines.append(line)
        recalculate_credit_note(credit_note)
        db.add(credit_note)

        await self.numbering.assign_number(db, credit_note)
        await flush_numbered(db, credit_note, "credit_note")
        return credit_note

    # ------------------------------------------------------------
    # Righe
    # ------------------------------------------------------------

    async def add_line(
        self, db: AsyncSession, credit_note_id: uuid.UUID, data: CorrectionLineCreate
    ) -> CreditNote:
        credit_note = await self.get_by_id(db, credit_note_id)
        guard_line_write(credit_note)

        invoice = await db.get(Invoice, credit_note.invoice_id)
        credit_note.lines.append(
            await self._build_line(db, invoice, data, len(credit_note.lines))
        )
        recalculate_credit_note(credit_note)

        await db.commit()
        await db.refresh(credit_note)
        return credit_note

    async def update_line(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        line_id: uuid.UUID,
        data: CorrectionLineUpdate,
    ) -> CreditNote:
        credit_note = await self.get_by_id(db, credit_note_id)
        line = self._find_line(credit_note, line_id)
        guard_line_write(credit_note, line)

        source = await db.get(InvoiceLine, line.source_line_id) if line.source_line_id else None
        update_correction_line(line, data.model_dump(exclude_unset=True), source)
        recalculate_credit_note(credit_note)

        await db.commit()
        await db.refresh(credit_note)
        return credit_note

    async def remove_line(
        self, db: AsyncSession, credit_note_id: uuid.UUID, line_id: uuid.UUID
    ) -> CreditNote:
        credit_note = await self.get_by_id(db, credit_note_id)
        line = self._find_line(credit_note, line_id)
        guard_line_write(credit_note, line)

        credit_note.lines.remove(line)
        recalculate_credit_note(credit_note)

        await db.commit()
        await db.refresh(credit_note)
        return credit_note

    # ------------------------------------------------------------
    # Transizioni
    # ------------------------------------------------------------

    async def send(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        return await self._change_status(db, credit_note_id, CreditNoteStatus.SENT)

    async def mark_refunded(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        return await self._change_status(db, credit_note_id, CreditNoteStatus.REFUNDED)

    async def cancel(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        """Annulla una nota di credito ancora in bozza (il numero resta assegnato)."""
        return await self._change_status(db, credit_note_id, CreditNoteStatus.CANCELLED)

    async def _change_status(
        self, db: AsyncSession, credit_note_id: uuid.UUID, new_status: CreditNoteStatus
    ) -> CreditNote:
        credit_note = await self.get_by_id(db, credit_note_id)
        apply_changes(credit_note, {"status": new_status})
        await db.commit()
        await db.refresh(credit_note)
        self.notifier.notify("credit_note", credit_note.id, f"credit_note_{new_status.value}")
        return credit_note

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _build_line(
        self,
        db: AsyncSession,
        invoice: Invoice,
        data: CorrectionLineCreate,
        position: int,
    ) -> CreditNoteLine:
        source = None
        if data.source_line_id is not None:
            source = await db.get(InvoiceLine, data.source_line_id)
            if source is None or source.invoice_id != invoice.id:
                raise NotFoundError(
                    f"Riga {data.source_line_id} non trovata nella fattura {invoice.number}"
                )
        line = build_correction_line(CreditNoteLine, data, position)
        apply_delta(line, source)
        return line

    @staticmethod
    def _find_line(credit_note: CreditNote, line_id: uuid.UUID) -> CreditNoteLine:
        for line in credit_note.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Riga {line_id} non trovata nella nota di credito {credit_note.number}")
