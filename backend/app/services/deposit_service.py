import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.invoice import Deposit
from app.models.quote import Quote
from app.schemas.invoice import DepositStatus
from app.services.calculator import deposit_amount

logger = logging.getLogger(__name__)


class DepositService:
    @staticmethod
    async def create_for_quote(quote: Quote, db: AsyncSession) -> Deposit:
        """Acconto in attesa per la percentuale del totale TTC del preventivo (senza commit)."""
        if not quote.deposit_percent or quote.deposit_percent <= 0:
            raise BusinessValidationError(
                f"Il preventivo {quote.number} non prevede un acconto"
            )

        deposit = Deposit(
            id=uuid.uuid4(),
            quote_id=quote.id,
            client_id=quote.client_id,
            amount=deposit_amount(quote.total, quote.deposit_percent),
            percentage=quote.deposit_percent,
            status=DepositStatus.PENDING.value,
        )
        db.add(deposit)
        await db.flush()
        logger.info(
            "Acconto %s%% (%s) richiesto per il preventivo %s",
            deposit.percentage,
            deposit.amount,
            quote.number,
        )
        return deposit

    @staticmethod
    def settle(deposit: Deposit, paid_at: Optional[datetime] = None) -> bool:
        """
        PENDING → PAID (senza commit). Idempotente su un acconto già pagato.

        Returns:
            True se lo stato è cambiato
        """
        if deposit.status == DepositStatus.PAID.value:
            return False
        if deposit.status != DepositStatus.PENDING.value:
            raise BusinessValidationError(
                f"L'acconto non è in attesa di pagamento. Stato attuale: {deposit.status}"
            )
        deposit.status = DepositStatus.PAID.value
        deposit.paid_at = paid_at or datetime.now(timezone.utc)
        return True

    @staticmethod
    async def mark_paid(
        deposit_id: uuid.UUID, db: AsyncSession, paid_at: Optional[datetime] = None
    ) -> Deposit:
        deposit = await DepositService.get_by_id(deposit_id, db)
        DepositService.settle(deposit, paid_at)
        await db.commit()
        await db.refresh(deposit)
        return deposit

    @staticmethod
    async def cancel(deposit_id: uuid.UUID, db: AsyncSession) -> Deposit:
        deposit = await DepositService.get_by_id(deposit_id, db)

        if deposit.status != DepositStatus.PENDING.value:
            raise BusinessValidationError(
                "Solo un acconto in attesa di pagamento può essere annullato"
            )

        deposit.status = DepositStatus.CANCELLED.value
        await db.commit()
        await db.refresh(deposit)
        return deposit

    @staticmethod
    async def refund(deposit_id: uuid.UUID, db: AsyncSession) -> Deposit:
        deposit = await DepositService.get_by_id(deposit_id, db)

        if deposit.status != DepositStatus.PAID.value:
            raise BusinessValidationError("Solo un acconto pagato può essere rimborsato")
        if deposit.invoice_id is not None:
            raise BusinessValidationError(
                "L'acconto è già stato dedotto da una fattura: emettere una nota di credito"
            )

        deposit.status = DepositStatus.REFUNDED.value
        deposit.refunded_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(deposit)
        return deposit

    @staticmethod
    async def get_by_quote(quote_id: uuid.UUID, db: AsyncSession) -> Sequence[Deposit]:
        stmt = select(Deposit).where(Deposit.quote_id == quote_id).order_by(Deposit.created_at)
        result = await db.execute(stmt)
        return result.scalars().all()

    @staticmethod
    async def get_by_id(deposit_id: uuid.UUID, db: AsyncSession) -> Deposit:
        deposit = await db.get(Deposit, deposit_id)
        if not deposit:
            raise NotFoundError("Acconto non trovato")
        return deposit
