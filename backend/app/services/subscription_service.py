"""
Service Layer per gli Abbonamenti manuali
Progetto: Billing Engine (Facturation)

Una fattura pagata con righe ricorrenti (subscription_mode) apre un
abbonamento per riga. Il comando renew-subscriptions emette e invia
le fatture di rinnovo e fa avanzare il periodo.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.invoice import Invoice, InvoiceLine
from app.models.subscription import Subscription
from app.schemas.invoice import DeliveryChannel
from app.services.invoice_service import InvoiceService
from app.services.notification import Notifier, default_notifier

logger = logging.getLogger(__name__)

INTERVALS = {"monthly": "month", "yearly": "year"}


def add_interval(start: date, interval_unit: str) -> date:
    """Data di inizio più un mese o un anno (giorno limitato alla fine del mese)."""
    if interval_unit == "year":
        year, month = start.year + 1, start.month
    else:
        year = start.year + start.month // 12
        month = start.month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class SubscriptionService:
    """Apertura e rinnovo degli abbonamenti a rinnovo manuale."""

    def __init__(
        self,
        notifier: Notifier = default_notifier,
        invoices: Optional[InvoiceService] = None,
    ) -> None:
        self.notifier = notifier
        self.invoices = invoices or InvoiceService(notifier)

    async def open_from_invoice(
        self,
        db: AsyncSession,
        invoice: Invoice,
        start: Optional[date] = None,
    ) -> list[Subscription]:
        """
        Apre un abbonamento per ogni riga ricorrente della fattura (senza commit).

        Idempotente per riga: una riga che ha già il suo abbonamento è ignorata.
        """
        recurring = [line for line in invoice.lines if line.subscription_mode in INTERVALS]
        if not recurring:
            return []

        result = await db.execute(
            select(Subscription.source_invoice_line_id).where(
                Subscription.source_invoice_line_id.in_([line.id for line in recurring])
            )
        )
        already_open = set(result.scalars().all())

        start = start or date.today()
        opened = []
        for line in recurring:
            if line.id in already_open:
                continue
            interval_unit = INTERVALS[line.subscription_mode]
            subscription = Subscription(
                client_id=invoice.client_id,
                source_invoice_line_id=line.id,
                label=line.description,
                amount=line.recurrence_amount if line.recurrence_amount is not None else line.subtotal,
                vat_rate=line.vat_rate if line.vat_rate is not None else invoice.vat_rate,
                interval_unit=interval_unit,
                current_period_start=start,
                current_period_end=add_interval(start, interval_unit),
                status="active",
            )
            db.add(subscription)
            opened.append(subscription)

        if opened:
            logger.info(
                "Fattura %s: %d abbonamenti aperti", invoice.number, len(opened)
            )
        return opened

    async def renew_due(
        self,
        db: AsyncSession,
        days_before: int = 0,
        today: Optional[date] = None,
    ) -> dict[str, int]:
        """
        Rinnova gli abbonamenti attivi il cui periodo termina entro oggi + days_before.

        Un abbonamento per transazione: un errore annulla solo quel rinnovo,
        viene registrato nel log e conteggiato.

        Returns:
            {"renewed": n, "failed": n}
        """
        today = today or date.today()
        limit = today + timedelta(days=days_before)
        result = await db.execute(
            select(Subscription)
            .where(
                Subscription.status == "active",
                Subscription.current_period_end <= limit,
            )
            .order_by(Subscription.current_period_end)
        )
        subscription_ids = [subscription.id for subscription in result.scalars().all()]

        renewed = failed = 0
        for subscription_id in subscription_ids:
            # Rilettura: un rollback precedente scade gli oggetti della sessione
            subscription = await db.get(Subscription, subscription_id)
            try:
                invoice = await self.renew(db, subscription)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Rinnovo abbonamento %s fallito", subscription_id)
                failed += 1
                continue
            renewed += 1
            self.notifier.notify("invoice", invoice.id, "invoice_issued")
            self.notifier.notify("invoice", invoice.id, "invoice_sent")

        logger.info("Rinnovo abbonamenti: %d rinnovati, %d falliti", renewed, failed)
        return {"renewed": renewed, "failed": failed}

    async def renew(self, db: AsyncSession, subscription: Subscription) -> Invoice:
        """
        Emette e invia la fattura del periodo successivo e avanza il periodo (senza commit).
        """
        period_start = subscription.current_period_end
        period_end = add_interval(period_start, subscription.interval_unit)

        invoice = await self.invoices.build_invoice(
            db,
            client_id=subscription.client_id,
            vat_rate=subscription.vat_rate,
            per_line_vat=False,
            lines=[
                InvoiceLine(
                    position=0,
                    description=(
                        f"Renouvellement abonnement : {subscription.label} "
                        f"(Période du {period_start:%d/%m/%Y} au {period_end:%d/%m/%Y})"
                    ),
                    quantity=1,
                    unit_price=subscription.amount,
                )
            ],
        )
        self.invoices.issue_document(invoice)
        self.invoices.send_document(invoice, DeliveryChannel.EMAIL)

        subscription.current_period_start = period_start
        subscription.current_period_end = period_end

        logger.info(
            "Abbonamento %s rinnovato con fattura %s fino al %s",
            subscription.id,
            invoice.number,
            period_end,
        )
        return invoice
