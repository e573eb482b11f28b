"""
Test per gli abbonamenti a rinnovo manuale.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.models.invoice import Invoice
from app.models.subscription import Subscription
from app.services.invoice_service import InvoiceService
from app.services.subscription_service import SubscriptionService, add_interval
from tests.factories import added, make_invoice, make_result, register


@pytest.fixture
def service(notifier, numbering):
    return SubscriptionService(notifier, InvoiceService(notifier, numbering))


def _subscription(**kwargs):
    return Subscription(
        id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        label="Maintenance site",
        amount=Decimal("49.00"),
        vat_rate=Decimal("20.00"),
        interval_unit=kwargs.get("interval_unit", "month"),
        current_period_start=kwargs.get("start", date(2026, 9, 19)),
        current_period_end=kwargs.get("end", date(2026, 10, 19)),
        status="active",
    )


class TestAddInterval:
    """Test calcolo della fine periodo."""

    def test_month_end_clamped(self):
        """Test 31 gennaio + 1 mese"""
        assert add_interval(date(2026, 1, 31), "month") == date(2026, 2, 28)

    def test_december_rolls_year(self):
        """Test dicembre → gennaio dell'anno successivo"""
        assert add_interval(date(2026, 12, 15), "month") == date(2027, 1, 15)

    def test_leap_day_yearly(self):
        """Test 29 febbraio + 1 anno"""
        assert add_interval(date(2024, 2, 29), "year") == date(2025, 2, 28)


class TestOpenFromInvoice:
    """Test apertura abbonamenti da fattura pagata."""

    async def test_recurring_line_opens_subscription(self, service, mock_db):
        """Test riga mensile con importo di rinnovo"""
        invoice = make_invoice(
            status="paid",
            subscription_mode="monthly",
            recurrence_amount=Decimal("50.00"),
        )

        opened = await service.open_from_invoice(mock_db, invoice, start=date(2026, 10, 19))

        assert len(opened) == 1
        subscription = opened[0]
        assert subscription.amount == Decimal("50.00")
        assert subscription.interval_unit == "month"
        assert subscription.current_period_end == date(2026, 11, 19)
        assert subscription.source_invoice_line_id == invoice.lines[0].id

    async def test_line_already_open(self, service, mock_db):
        """Test idempotenza per riga"""
        invoice = make_invoice(status="paid", subscription_mode="yearly")
        mock_db.execute.return_value = make_result(items=[invoice.lines[0].id])

        assert await service.open_from_invoice(mock_db, invoice) == []
        mock_db.add.assert_not_called()

    async def test_no_recurring_lines(self, service, mock_db):
        """Test fattura senza righe ricorrenti"""
        assert await service.open_from_invoice(mock_db, make_invoice(status="paid")) == []
        mock_db.execute.assert_not_awaited()


class TestRenewal:
    """Test rinnovo."""

    async def test_renew_issues_and_sends_invoice(self, service, mock_db):
        """Test fattura di rinnovo emessa, inviata e periodo avanzato"""
        subscription = _subscription()

        invoice = await service.renew(mock_db, subscription)

        assert invoice.status == "sent"
        assert invoice.sent_count == 1
        assert invoice.total == Decimal("58.80")
        assert invoice.lines[0].description == (
            "Renouvellement abonnement : Maintenance site "
            "(Période du 19/10/2026 au 19/11/2026)"
        )
        assert subscription.current_period_start == date(2026, 10, 19)
        assert subscription.current_period_end == date(2026, 11, 19)

    async def test_renew_due_counts(self, service, mock_db, notifier):
        """Test scansione dei rinnovi dovuti"""
        subscription = _subscription()
        register(mock_db, subscription)
        mock_db.execute.return_value = make_result(items=[subscription])

        stats = await service.renew_due(mock_db, today=date(2026, 10, 19))

        assert stats == {"renewed": 1, "failed": 0}
        assert len(added(mock_db, Invoice)) == 1
        assert notifier.names() == ["invoice_issued", "invoice_sent"]

    async def test_renew_failure_isolated(self, service, mock_db, notifier):
        """Test errore su un rinnovo: conteggiato, nessuna notifica"""
        subscription = _subscription()
        register(mock_db, subscription)
        mock_db.execute.return_value = make_result(items=[subscription])
        mock_db.flush.side_effect = RuntimeError("vincolo violato")

        stats = await service.renew_due(mock_db, today=date(2026, 10, 19))

        assert stats == {"renewed": 0, "failed": 1}
        mock_db.rollback.assert_awaited_once()
        assert notifier.events == []
