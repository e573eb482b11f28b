"""
Service Layer per i Pagamenti
Progetto: Billing Engine (Facturation)

Riceve gli esiti dal collaboratore di pagamento (es. Stripe) e li
traduce in normali transizioni di stato, soggette alla stessa guardia
di immutabilità delle altre scritture.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from app.models.invoice import Deposit, Invoice, Payment
from app.schemas.invoice import ExternalPaymentNotification, PaymentStatus
from app.services.deposit_service import DepositService
from app.services.invoice_service import InvoiceService
from app.services.notification import Notifier, default_notifier

logger = logging.getLogger(__name__)


class PaymentService:
    """Gestione delle notifiche del collaboratore di pagamento."""

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        invoices: Optional[InvoiceService] = None,
    ) -> None:
        self.notifier = notifier
        self.invoices = invoices or InvoiceService(notifier)

    async def get_by_reference(
        self, db: AsyncSession, provider_reference: str
    ) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.provider_reference == provider_reference)
        )
        return result.scalar_one_or_none()

    async def handle_payment_success(
        self,
        db: AsyncSession,
        data: ExternalPaymentNotification,
        paid_at: Optional[datetime] = None,
    ) -> Payment:
        """
        Registra un pagamento riuscito e salda fattura o acconto.

        Idempotente sul riferimento del provider: una seconda notifica
        dello stesso pagamento non produce altri effetti.

        Raises:
            BusinessValidationError: né fattura né acconto indicati
            NotFoundError: fattura o acconto inesistenti
        """
        if (data.invoice_id is None) == (data.deposit_id is None):
            raise BusinessValidationError("Indicare una fattura oppure un acconto")

        payment = await self.get_by_reference(db, data.provider_reference)
        if payment is not None and payment.status == PaymentStatus.SUCCEEDED.value:
            logger.info("Pagamento %s già registrato", data.provider_reference)
            return payment

        paid_at = paid_at or datetime.now(timezone.utc)
        if payment is None:
            payment = Payment(
                id=uuid.uuid4(),
                invoice_id=data.invoice_id,
                deposit_id=data.deposit_id,
                amount=data.amount,
                provider_reference=data.provider_reference,
            )
            db.add(payment)
        payment.status = PaymentStatus.SUCCEEDED.value
        payment.paid_at = paid_at
        payment.failure_reason = None

        invoice_paid = False
        if data.invoice_id is not None:
            invoice = await db.get(Invoice, data.invoice_id)
            if invoice is None:
                raise NotFoundError(f"Fattura {data.invoice_id} non trovata")
            invoice_paid = await self.invoices.mark_paid_by_external_payment(
                db, invoice, data.amount, paid_at
            )
        else:
            deposit = await db.get(Deposit, data.deposit_id)
            if deposit is None:
                raise NotFoundError(f"Acconto {data.deposit_id} non trovato")
            DepositService.settle(deposit, paid_at)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Pagamento %s registrato in concorrenza: %s", data.provider_reference, e)
            raise ConflictError(
                f"Pagamento {data.provider_reference} già in corso di registrazione"
            ) from e
        await db.refresh(payment)

        if invoice_paid:
            self.notifier.notify("invoice", data.invoice_id, "invoice_paid")
        logger.info(
            "Pagamento %s di %s registrato", data.provider_reference, data.amount
        )
        return payment

    async def handle_payment_failure(
        self, db: AsyncSession, payment_id: uuid.UUID, reason: str
    ) -> Optional[Payment]:
        """
        Segna un pagamento come fallito. Un pagamento sconosciuto è ignorato (log).
        """
        payment = await db.get(Payment, payment_id)
        if payment is None:
            logger.warning("Fallimento per pagamento sconosciuto %s: %s", payment_id, reason)
            return None
        if payment.status == PaymentStatus.SUCCEEDED.value:
            raise BusinessValidationError(
                f"Il pagamento {payment.provider_reference} è già stato incassato"
            )

        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = reason
        await db.commit()
        await db.refresh(payment)

        logger.warning("Pagamento %s fallito: %s", payment_id, reason)
        return payment
