"""
Test per i solleciti di pagamento.
"""

import uuid
from datetime import date, timedelta

import pytest

from app.models.reminder import Reminder, ReminderRule
from app.services.reminder_service import ReminderService
from tests.factories import added, make_client, make_invoice, make_result, register


TODAY = date(2026, 10, 19)


def _rule(name, days_after_due, max_reminders=3):
    return ReminderRule(
        id=uuid.uuid4(),
        name=name,
        days_after_due=days_after_due,
        max_reminders=max_reminders,
        is_active=True,
    )


@pytest.fixture
def rules():
    return [_rule("Première relance", 7), _rule("Relance ferme", 30)]


@pytest.fixture
def overdue(mock_db):
    client = make_client()
    invoice = make_invoice(status="sent", client_id=client.id, due_date=TODAY - timedelta(days=10))
    register(mock_db, client)
    return invoice


class TestProcessReminders:
    """Test applicazione delle regole di sollecito."""

    async def test_first_rule_dispatched(self, mock_db, notifier, rules, overdue):
        """Test primo sollecito dopo 10 giorni di ritardo"""
        mock_db.execute.side_effect = [
            make_result(items=rules),
            make_result(items=[overdue]),
            make_result(items=[]),
        ]

        stats = await ReminderService(notifier).process_reminders(mock_db, TODAY)

        assert stats == {"checked": 1, "dispatched": 1, "skipped": 0}
        reminder = added(mock_db, Reminder)[0]
        assert reminder.rule_id == rules[0].id
        assert reminder.invoice_id == overdue.id
        assert notifier.events == [("invoice", overdue.id, "invoice_reminder")]

    async def test_rule_not_applied_twice(self, mock_db, notifier, rules, overdue):
        """Test regola già applicata e seconda regola non ancora dovuta"""
        mock_db.execute.side_effect = [
            make_result(items=rules),
            make_result(items=[overdue]),
            make_result(items=[rules[0].id]),
        ]

        stats = await ReminderService(notifier).process_reminders(mock_db, TODAY)

        assert stats == {"checked": 1, "dispatched": 0, "skipped": 2}
        mock_db.add.assert_not_called()
        assert notifier.events == []

    async def test_client_without_email(self, mock_db, notifier, rules):
        """Test cliente senza email"""
        client = make_client(email=None)
        register(mock_db, client)
        invoice = make_invoice(status="issued", client_id=client.id, due_date=TODAY - timedelta(days=40))
        mock_db.execute.side_effect = [
            make_result(items=rules),
            make_result(items=[invoice]),
            make_result(items=[]),
        ]

        stats = await ReminderService(notifier).process_reminders(mock_db, TODAY)

        assert stats["dispatched"] == 0
        assert stats["skipped"] == 2

    async def test_max_reminders_reached(self, mock_db, notifier, overdue):
        """Test limite di solleciti per fattura"""
        rule = _rule("Relance", 1, max_reminders=1)
        mock_db.execute.side_effect = [
            make_result(items=[rule]),
            make_result(items=[overdue]),
            make_result(items=[uuid.uuid4()]),
        ]

        stats = await ReminderService(notifier).process_reminders(mock_db, TODAY)

        assert stats == {"checked": 1, "dispatched": 0, "skipped": 1}

    async def test_no_active_rules(self, mock_db, notifier):
        """Test nessuna regola attiva"""
        stats = await ReminderService(notifier).process_reminders(mock_db, TODAY)

        assert stats == {"checked": 0, "dispatched": 0, "skipped": 0}
        mock_db.commit.assert_not_awaited()
