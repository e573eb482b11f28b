"""
Solleciti di pagamento (relances)
Progetto: Billing Engine (Facturation)

Scorre le fatture emesse o inviate con scadenza passata e applica
al più un sollecito per fattura a ogni esecuzione, secondo le regole
attive ordinate per giorni di ritardo.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.client import Client
from app.models.invoice import Invoice
from app.models.reminder import Reminder, ReminderRule
from app.services.invoice_service import PAYABLE_STATUSES
from app.services.notification import Notifier, default_notifier

logger = logging.getLogger(__name__)


class ReminderService:
    def __init__(self, notifier: Notifier = default_notifier) -> None:
        self.notifier = notifier

    async def process_reminders(
        self, db: AsyncSession, today: Optional[date] = None
    ) -> dict[str, int]:
        """
        Registra e notifica i solleciti dovuti.

        Una regola è saltata se il cliente non ha email, se la fattura ha
        già raggiunto max_reminders, se la regola è già stata applicata o
        se il ritardo non ha ancora raggiunto days_after_due.

        Returns:
            {"checked": n, "dispatched": n, "skipped": n}
        """
        today = today or date.today()
        stats = {"checked": 0, "dispatched": 0, "skipped": 0}

        rules_result = await db.execute(
            select(ReminderRule)
            .where(ReminderRule.is_active.is_(True))
            .order_by(ReminderRule.days_after_due)
        )
        rules = list(rules_result.scalars().all())
        if not rules:
            logger.info("Nessuna regola di sollecito attiva")
            return stats

        invoices_result = await db.execute(
            select(Invoice)
            .where(Invoice.status.in_(PAYABLE_STATUSES), Invoice.due_date < today)
            .order_by(Invoice.due_date)
        )
        invoices = list(invoices_result.scalars().all())
        logger.info("Solleciti: %d regole, %d fatture scadute", len(rules), len(invoices))

        dispatched = []
        for invoice in invoices:
            stats["checked"] += 1
            client = await db.get(Client, invoice.client_id) if invoice.client_id else None
            sent_count, applied_rules = await self._history(db, invoice.id)

            for rule in rules:
                if self._should_send(invoice, rule, client, sent_count, applied_rules, today):
                    db.add(
                        Reminder(
                            invoice_id=invoice.id,
                            rule_id=rule.id,
                            sent_at=datetime.now(timezone.utc),
                        )
                    )
                    dispatched.append(invoice)
                    stats["dispatched"] += 1
                    logger.info(
                        "Sollecito '%s' per la fattura %s", rule.name, invoice.number
                    )
                    break
                stats["skipped"] += 1

        await db.commit()

        for invoice in dispatched:
            self.notifier.notify("invoice", invoice.id, "invoice_reminder")

        logger.info(
            "Solleciti: %(checked)d fatture controllate, %(dispatched)d inviati, %(skipped)d saltati",
            stats,
        )
        return stats

    @staticmethod
    def _should_send(
        invoice: Invoice,
        rule: ReminderRule,
        client: Optional[Client],
        sent_count: int,
        applied_rules: set[uuid.UUID],
        today: date,
    ) -> bool:
        if client is None or not client.email:
            return False
        if sent_count >= rule.max_reminders:
            return False
        if rule.id in applied_rules:
            return False
        if invoice.due_date is None:
            return False
        return (today - invoice.due_date).days >= rule.days_after_due

    @staticmethod
    async def _history(db: AsyncSession, invoice_id: uuid.UUID) -> tuple[int, set[uuid.UUID]]:
        """Numero di solleciti già inviati e regole già applicate alla fattura."""
        result = await db.execute(select(Reminder.rule_id).where(Reminder.invoice_id == invoice_id))
        rule_ids = list(result.scalars().all())
        return len(rule_ids), set(rule_ids)
