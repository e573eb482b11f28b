"""
Service Layer per i Preventivi (Devis)
Progetto: Billing Engine (Facturation)

Definisce la logica di business per i preventivi: creazione con
numerazione, modifica delle righe finché il preventivo non è finale,
transizioni di stato (invio, rifiuto, annullamento, ritorno in bozza)
e scadenza pigra alla lettura.

La firma passa dal BillingEngine, che ne gestisce gli effetti collaterali.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.amendment import Amendment
from app.models.quote import Quote, QuoteLine
from app.schemas.amendment import AmendmentStatus
from app.schemas.document import DocumentLineCreate, DocumentLineUpdate
from app.schemas.quote import QuoteCreate, QuoteStatus, QuoteUpdate
from app.services.calculator import ZERO, recalculate_absolute
from app.services.expiry_service import expire_if_needed
from app.services.immutability_guard import apply_changes, guard_line_write
from app.services.notification import Notifier, default_notifier
from app.services.numbering_service import NumberingService, commit_numbered

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Campi dell'intestazione che richiedono il ricalcolo dei totali
TOTALS_FIELDS = {"vat_rate", "per_line_vat"}


def build_quote_line(data: DocumentLineCreate, position: int) -> QuoteLine:
    return QuoteLine(
        position=position,
        description=data.description,
        quantity=data.quantity,
        unit_price=data.unit_price,
        vat_rate=data.vat_rate,
        subscription_mode=data.subscription_mode.value if data.subscription_mode else None,
        recurrence_amount=data.recurrence_amount,
    )


class QuoteService:
    """
    Service per la gestione dei preventivi.

    Ogni metodo pubblico chiude la propria transazione (commit);
    le notifiche partono dopo il commit.
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

    async def get_by_id(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> Quote:
        """
        Recupera un preventivo applicando la scadenza pigra.

        Se la validità è passata il preventivo viene portato in EXPIRED
        e la modifica è subito salvata.

        Raises:
            NotFoundError: se il preventivo non esiste
        """
        quote = await db.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Preventivo {quote_id} non trovato")

        if expire_if_needed(quote, today):
            await db.commit()
            self.notifier.notify("quote", quote.id, "quote_expired")

        return quote

    async def get_all(
        self,
        db: AsyncSession,
        status: Optional[QuoteStatus] = None,
        client_id: Optional[uuid.UUID] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Quote], int]:
        """Lista paginata dei preventivi, dal più recente."""
        conditions = []
        if status is not None:
            conditions.append(Quote.status == status.value)
        if client_id is not None:
            conditions.append(Quote.client_id == client_id)

        count_result = await db.execute(select(func.count()).select_from(Quote).where(*conditions))
        total = count_result.scalar_one()

        stmt = (
            select(Quote)
            .where(*conditions)
            .order_by(Quote.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_corrected_total(self, db: AsyncSession, quote: Quote) -> Decimal:
        """
        Totale TTC corretto: totale del preventivo più le varianti firmate.

        Valore derivato, ricalcolato a ogni lettura.
        """
        result = await db.execute(
            select(func.coalesce(func.sum(Amendment.total), ZERO)).where(
                Amendment.quote_id == quote.id,
                Amendment.status == AmendmentStatus.SIGNED.value,
            )
        )
        return (quote.total or ZERO) + result.scalar_one()

    # ------------------------------------------------------------
    # Creazione e modifica
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: QuoteCreate) -> Quote:
        """
        Crea un preventivo in bozza con numero DEV-YYYY-MM-NNN.

        Da eseguire dentro with_numbering_retry: un conflitto di numero
        solleva NumberingConflictError dopo il rollback.
        """
        quote = Quote(
            client_id=data.client_id,
            status=QuoteStatus.DRAFT.value,
            vat_rate=data.vat_rate if data.vat_rate is not None else settings.default_vat_rate,
            per_line_vat=data.per_line_vat,
            deposit_percent=data.deposit_percent,
            valid_until=data.valid_until
            or date.today() + timedelta(days=settings.quote_validity_days),
            notes=data.notes,
            lines=[build_quote_line(line, position) for position, line in enumerate(data.lines)],
        )
        recalculate_absolute(quote)
        db.add(quote)

        await self.numbering.assign_number(db, quote)
        await commit_numbered(db, quote, "quote")
        await db.refresh(quote)

        logger.info("Preventivo %s creato (totale TTC %s)", quote.number, quote.total)
        return quote

    async def update(self, db: AsyncSession, quote_id: uuid.UUID, data: QuoteUpdate) -> Quote:
        """
        Aggiorna l'intestazione passando dalla guardia di immutabilità.

        Raises:
            ImmutableDocumentError: se il preventivo è finale
        """
        quote = await self.get_by_id(db, quote_id)
        changed = apply_changes(quote, data.model_dump(exclude_unset=True))
        if TOTALS_FIELDS.intersection(changed):
            recalculate_absolute(quote)
        await db.commit()
        await db.refresh(quote)
        return quote

    async def add_line(
        self, db: AsyncSession, quote_id: uuid.UUID, data: DocumentLineCreate
    ) -> Quote:
        quote = await self.get_by_id(db, quote_id)
        guard_line_write(quote)

        quote.lines.append(build_quote_line(data, len(quote.lines)))
        recalculate_absolute(quote)

        await db.commit()
        await db.refresh(quote)
        return quote

    async def update_line(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        line_id: uuid.UUID,
        data: DocumentLineUpdate,
    ) -> Quote:
        quote = await self.get_by_id(db, quote_id)
        line = self._find_line(quote, line_id)
        guard_line_write(quote, line)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(line, field, value)
        recalculate_absolute(quote)

        await db.commit()
        await db.refresh(quote)
        return quote

    async def remove_line(self, db: AsyncSession, quote_id: uuid.UUID, line_id: uuid.UUID) -> Quote:
        quote = await self.get_by_id(db, quote_id)
        line = self._find_line(quote, line_id)
        guard_line_write(quote, line)

        quote.lines.remove(line)
        for position, remaining in enumerate(quote.lines):
            remaining.position = position
        recalculate_absolute(quote)

        await db.commit()
        await db.refresh(quote)
        return quote

    # ------------------------------------------------------------
    # Transizioni
    # ------------------------------------------------------------

    async def send(self, db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        """DRAFT → SENT (richiede almeno una riga e un cliente)."""
        return await self._change_status(db, quote_id, QuoteStatus.SENT)

    async def refuse(self, db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        return await self._change_status(db, quote_id, QuoteStatus.REFUSED)

    async def cancel(self, db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        return await self._change_status(db, quote_id, QuoteStatus.CANCELLED)

    async def back_to_draft(self, db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        """SENT → DRAFT per correzioni; azzera i dati di firma."""
        return await self._change_status(
            db,
            quote_id,
            QuoteStatus.DRAFT,
            signature_date=None,
            client_signature=None,
        )

    async def _change_status(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        new_status: QuoteStatus,
        **fields,
    ) -> Quote:
        quote = await self.get_by_id(db, quote_id)
        apply_changes(quote, {"status": new_status, **fields})
        await db.commit()
        await db.refresh(quote)
        self.notifier.notify("quote", quote.id, f"quote_{new_status.value}")
        return quote

    @staticmethod
    def _find_line(quote: Quote, line_id: uuid.UUID) -> QuoteLine:
        for line in quote.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Riga {line_id} non trovata nel preventivo {quote.number}")
