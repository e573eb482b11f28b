"""
Test per le notifiche del collaboratore di pagamento.
"""

import uuid
from decimal import Decimal

import pytest

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.invoice import Payment
from app.schemas.invoice import ExternalPaymentNotification
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService
from tests.factories import added, make_deposit, make_invoice, make_quote, make_result, register


@pytest.fixture
def service(notifier, numbering):
    return PaymentService(notifier, InvoiceService(notifier, numbering))


class TestPaymentSuccess:
    """Test pagamenti riusciti."""

    async def test_invoice_paid(self, service, mock_db, notifier):
        """Test pagamento completo di una fattura inviata"""
        invoice = make_invoice(status="sent")
        register(mock_db, invoice)
        data = ExternalPaymentNotification(
            provider_reference="pi_123", invoice_id=invoice.id, amount=Decimal("240.00")
        )

        payment = await service.handle_payment_success(mock_db, data)

        assert payment.status == "succeeded"
        assert payment.provider_reference == "pi_123"
        assert added(mock_db, Payment) == [payment]
        assert invoice.status == "paid"
        assert notifier.names() == ["invoice_paid"]

    async def test_partial_payment_recorded_without_closing(self, service, mock_db, notifier):
        """Test pagamento parziale registrato, fattura aperta"""
        invoice = make_invoice(status="sent")
        register(mock_db, invoice)
        data = ExternalPaymentNotification(
            provider_reference="pi_partial", invoice_id=invoice.id, amount=Decimal("40.00")
        )

        await service.handle_payment_success(mock_db, data)

        assert invoice.status == "sent"
        assert notifier.events == []
        mock_db.commit.assert_awaited_once()

    async def test_duplicate_notification(self, service, mock_db, notifier):
        """Test idempotenza sul riferimento del provider"""
        existing = Payment(id=uuid.uuid4(), status="succeeded", provider_reference="pi_123")
        mock_db.execute.return_value = make_result(scalar=existing)
        data = ExternalPaymentNotification(
            provider_reference="pi_123", invoice_id=uuid.uuid4(), amount=Decimal("240.00")
        )

        assert await service.handle_payment_success(mock_db, data) is existing
        mock_db.commit.assert_not_awaited()
        assert notifier.events == []

    async def test_deposit_paid(self, service, mock_db):
        """Test pagamento di un acconto"""
        deposit = make_deposit(make_quote(status="signed"))
        register(mock_db, deposit)
        data = ExternalPaymentNotification(
            provider_reference="pi_dep", deposit_id=deposit.id, amount=deposit.amount
        )

        await service.handle_payment_success(mock_db, data)

        assert deposit.status == "paid"
        assert deposit.paid_at is not None

    async def test_invoice_and_deposit_together(self, service, mock_db):
        """Test notifica ambigua"""
        data = ExternalPaymentNotification(
            provider_reference="pi_x",
            invoice_id=uuid.uuid4(),
            deposit_id=uuid.uuid4(),
            amount=Decimal("10.00"),
        )
        with pytest.raises(BusinessValidationError):
            await service.handle_payment_success(mock_db, data)

    async def test_unknown_invoice(self, service, mock_db):
        """Test fattura inesistente"""
        data = ExternalPaymentNotification(
            provider_reference="pi_y", invoice_id=uuid.uuid4(), amount=Decimal("10.00")
        )
        with pytest.raises(NotFoundError):
            await service.handle_payment_success(mock_db, data)


class TestPaymentFailure:
    """Test pagamenti falliti."""

    async def test_failure_recorded(self, service, mock_db):
        """Test pagamento fallito"""
        payment = Payment(id=uuid.uuid4(), status="pending", provider_reference="pi_f")
        register(mock_db, payment)

        result = await service.handle_payment_failure(mock_db, payment.id, "carte refusée")

        assert result.status == "failed"
        assert result.failure_reason == "carte refusée"

    async def test_unknown_payment_ignored(self, service, mock_db):
        """Test fallimento di un pagamento sconosciuto"""
        assert await service.handle_payment_failure(mock_db, uuid.uuid4(), "timeout") is None
        mock_db.commit.assert_not_awaited()

    async def test_succeeded_payment_cannot_fail(self, service, mock_db):
        """Test fallimento dopo l'incasso"""
        payment = Payment(id=uuid.uuid4(), status="succeeded", provider_reference="pi_ok")
        register(mock_db, payment)
        with pytest.raises(BusinessValidationError):
            await service.handle_payment_failure(mock_db, payment.id, "chargeback")
