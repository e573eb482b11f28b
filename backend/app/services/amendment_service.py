"""
Service Layer per gli Avenants
Progetto: Billing Engine (Facturation)

Una variante si crea solo su un preventivo firmato. Le sue righe
passano dal registro dei delta: con una riga sorgente memorizzano la
variazione rispetto alla riga del preventivo.

La firma passa dal BillingEngine (fattura complementare o nota di credito).
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.amendment import Amendment, AmendmentLine
from app.models.quote import Quote, QuoteLine
from app.schemas.amendment import AmendmentCreate, AmendmentStatus
from app.schemas.document import CorrectionLineCreate, CorrectionLineUpdate
from app.schemas.quote import QuoteStatus
from app.services.calculator import recalculate_corrections
from app.services.delta_ledger import apply_delta, build_correction_line, update_correction_line
from app.services.immutability_guard import apply_changes, guard_line_write
from app.services.notification import Notifier, default_notifier
from app.services.numbering_service import NumberingService, commit_numbered

logger = logging.getLogger(__name__)


class AmendmentService:
    """Service per la gestione delle varianti."""

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        numbering: Optional[NumberingService] = None,
    ) -> None:
        self.notifier = notifier
        self.numbering = numbering or NumberingService()

    async def get_by_id(self, db: AsyncSession, amendment_id: uuid.UUID) -> Amendment:
        amendment = await db.get(Amendment, amendment_id)
        if amendment is None:
            raise NotFoundError(f"Variante {amendment_id} non trovata")
        return amendment

    async def get_by_quote(self, db: AsyncSession, quote_id: uuid.UUID) -> list[Amendment]:
        result = await db.execute(
            select(Amendment).where(Amendment.quote_id == quote_id).order_by(Amendment.created_at)
        )
        return list(result.scalars().all())

    async def create(
        self, db: AsyncSession, quote_id: uuid.UUID, data: AmendmentCreate
    ) -> Amendment:
        """
        Crea una variante in bozza su un preventivo firmato.

        Il numero {anno}-{seq}-A{n} deriva da quello del preventivo.

        Raises:
            NotFoundError: preventivo o riga sorgente inesistenti
            BusinessValidationError: preventivo non firmato
        """
        quote = await db.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Preventivo {quote_id} non trovato")
        if quote.status != QuoteStatus.SIGNED.value:
            raise BusinessValidationError(
                f"Una variante richiede un preventivo firmato. Stato attuale: {quote.status}"
            )

        amendment = Amendment(
            quote_id=quote.id,
            status=AmendmentStatus.DRAFT.value,
            motive=data.motive,
            vat_rate=data.vat_rate if data.vat_rate is not None else quote.vat_rate,
            per_line_vat=data.per_line_vat if data.per_line_vat is not None else quote.per_line_vat,
            notes=data.notes,
            lines=[],
        )
        for position, line_data in enumerate(data.lines):
            amendment.lines.append(await self._build_line(db, quote, line_data, position))
        recalculate_corrections(amendment)
        db.add(amendment)

        await self.numbering.assign_number(db, amendment)
        await commit_numbered(db, amendment, "amendment")
        await db.refresh(amendment)

        logger.info(
            "Variante %s creata sul preventivo %s (totale HT %s)",
            amendment.number,
            quote.number,
            amendment.subtotal,
        )
        return amendment

    # ------------------------------------------------------------
    # Righe
    # ------------------------------------------------------------

    async def add_line(
        self, db: AsyncSession, amendment_id: uuid.UUID, data: CorrectionLineCreate
    ) -> Amendment:
        amendment = await self.get_by_id(db, amendment_id)
        guard_line_write(amendment)

        quote = await db.get(Quote, amendment.quote_id)
        amendment.lines.append(await self._build_line(db, quote, data, len(amendment.lines)))
        recalculate_corrections(amendment)

        await db.commit()
        await db.refresh(amendment)
        return amendment

    async def update_line(
        self,
        db: AsyncSession,
        amendment_id: uuid.UUID,
        line_id: uuid.UUID,
        data: CorrectionLineUpdate,
    ) -> Amendment:
        amendment = await self.get_by_id(db, amendment_id)
        line = self._find_line(amendment, line_id)
        guard_line_write(amendment, line)

        source = await db.get(QuoteLine, line.source_line_id) if line.source_line_id else None
        update_correction_line(line, data.model_dump(exclude_unset=True), source)
        recalculate_corrections(amendment)

        await db.commit()
        await db.refresh(amendment)
        return amendment

    async def remove_line(
        self, db: AsyncSession, amendment_id: uuid.UUID, line_id: uuid.UUID
    ) -> Amendment:
        amendment = await self.get_by_id(db, amendment_id)
        line = self._find_line(amendment, line_id)
        guard_line_write(amendment, line)

        amendment.lines.remove(line)
        recalculate_corrections(amendment)

        await db.commit()
        await db.refresh(amendment)
        return amendment

    # ------------------------------------------------------------
    # Transizioni
    # ------------------------------------------------------------

    async def send(self, db: AsyncSession, amendment_id: uuid.UUID) -> Amendment:
        return await self._change_status(db, amendment_id, AmendmentStatus.SENT)

    async def cancel(self, db: AsyncSession, amendment_id: uuid.UUID) -> Amendment:
        return await self._change_status(db, amendment_id, AmendmentStatus.CANCELLED)

    async def _change_status(
        self, db: AsyncSession, amendment_id: uuid.UUID, new_status: AmendmentStatus
    ) -> Amendment:
        amendment = await self.get_by_id(db, amendment_id)
        apply_changes(amendment, {"status": new_status})
        await db.commit()
        await db.refresh(amendment)
        self.notifier.notify("amendment", amendment.id, f"amendment_{new_status.value}")
        return amendment

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _build_line(
        self,
        db: AsyncSession,
        quote: Quote,
        data: CorrectionLineCreate,
        position: int,
    ) -> AmendmentLine:
        source = None
        if data.source_line_id is not None:
            source = await db.get(QuoteLine, data.source_line_id)
            if source is None or source.quote_id != quote.id:
                raise NotFoundError(
                    f"Riga {data.source_line_id} non trovata nel preventivo {quote.number}"
                )
        line = build_correction_line(AmendmentLine, data, position)
        apply_delta(line, source)
        return line

    @staticmethod
    def _find_line(amendment: Amendment, line_id: uuid.UUID) -> AmendmentLine:
        for line in amendment.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f"Riga {line_id} non trovata nella variante {amendment.number}")
