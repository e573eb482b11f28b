"""
Test per i servizi di preventivi, varianti e note di credito.
"""

import uuid
from decimal import Decimal

import pytest

from app.core.exceptions import (
    BusinessValidationError,
    IllegalTransitionError,
    ImmutableDocumentError,
    NotFoundError,
)
from app.schemas.amendment import AmendmentCreate
from app.schemas.document import CorrectionLineCreate, DocumentLineCreate
from app.schemas.invoice import CreditNoteCreate
from app.schemas.quote import QuoteCreate, QuoteUpdate
from app.services.amendment_service import AmendmentService
from app.services.calculator import recalculate_corrections
from app.services.credit_note_service import CreditNoteService
from app.services.quote_service import QuoteService
from tests.factories import make_amendment, make_credit_note, make_invoice, make_quote, register


# ============================================================
# Preventivi
# ============================================================


class TestQuoteService:
    """Test preventivi."""

    async def test_create_numbered_draft(self, mock_db, notifier, numbering):
        """Test creazione preventivo in bozza"""
        data = QuoteCreate(
            client_id=uuid.uuid4(),
            deposit_percent=Decimal("30"),
            lines=[DocumentLineCreate(description="Logo", quantity=1, unit_price=Decimal("500.00"))],
        )

        quote = await QuoteService(notifier, numbering).create(mock_db, data)

        assert quote.status == "draft"
        assert quote.number == "QUOTE-001"
        assert quote.total == Decimal("600.00")
        assert quote.valid_until is not None

    async def test_update_signed_quote_rejected(self, mock_db, notifier):
        """Test modifica di un preventivo firmato"""
        quote = make_quote(status="signed")
        register(mock_db, quote)

        with pytest.raises(ImmutableDocumentError):
            await QuoteService(notifier).update(mock_db, quote.id, QuoteUpdate(notes="trop tard"))
        mock_db.commit.assert_not_awaited()

    async def test_update_vat_rate_recalculates(self, mock_db, notifier):
        """Test cambio aliquota con ricalcolo"""
        quote = make_quote(status="draft")
        register(mock_db, quote)

        await QuoteService(notifier).update(mock_db, quote.id, QuoteUpdate(vat_rate=Decimal("10")))

        assert quote.vat_amount == Decimal("100.00")
        assert quote.total == Decimal("1100.00")

    async def test_send_requires_lines(self, mock_db, notifier):
        """Test invio di un preventivo vuoto"""
        quote = make_quote(status="draft", lines=[])
        register(mock_db, quote)

        with pytest.raises(BusinessValidationError):
            await QuoteService(notifier).send(mock_db, quote.id)
        assert quote.status == "draft"

    async def test_send_and_back_to_draft(self, mock_db, notifier):
        """Test invio e ritorno in bozza"""
        quote = make_quote(status="draft")
        register(mock_db, quote)
        service = QuoteService(notifier)

        await service.send(mock_db, quote.id)
        await service.back_to_draft(mock_db, quote.id)

        assert quote.status == "draft"
        assert notifier.names() == ["quote_sent", "quote_draft"]

    async def test_refused_quote_is_final(self, mock_db, notifier):
        """Test preventivo rifiutato non più modificabile"""
        quote = make_quote(status="sent")
        register(mock_db, quote)
        service = QuoteService(notifier)

        await service.refuse(mock_db, quote.id)

        with pytest.raises(IllegalTransitionError):
            await service.cancel(mock_db, quote.id)

    async def test_remove_line_renumbers_positions(self, mock_db, notifier):
        """Test rimozione riga e posizioni"""
        quote = make_quote(
            status="draft",
            lines=[("A", 1, Decimal("10.00")), ("B", 1, Decimal("20.00")), ("C", 1, Decimal("30.00"))],
        )
        register(mock_db, quote)

        await QuoteService(notifier).remove_line(mock_db, quote.id, quote.lines[0].id)

        assert [(line.description, line.position) for line in quote.lines] == [("B", 0), ("C", 1)]
        assert quote.subtotal == Decimal("50.00")


# ============================================================
# Varianti
# ============================================================


class TestAmendmentService:
    """Test varianti."""

    async def test_create_with_sourced_line(self, mock_db, notifier, numbering):
        """Test variante che riduce una riga del preventivo"""
        quote = make_quote(status="signed")
        register(mock_db, quote, *quote.lines)
        data = AmendmentCreate(
            motive="Réduction du périmètre",
            lines=[
                CorrectionLineCreate(
                    description="Développement site",
                    quantity=1,
                    unit_price=Decimal("-200.00"),
                    source_line_id=quote.lines[0].id,
                )
            ],
        )

        amendment = await AmendmentService(notifier, numbering).create(mock_db, quote.id, data)

        line = amendment.lines[0]
        assert (line.old_value, line.new_value, line.delta) == (
            Decimal("1000.00"),
            Decimal("800.00"),
            Decimal("-200.00"),
        )
        assert amendment.subtotal == Decimal("-200.00")
        assert amendment.status == "draft"
        assert amendment.number == "AMENDMENT-001"

    async def test_create_on_unsigned_quote(self, mock_db, notifier):
        """Test variante su preventivo non firmato"""
        quote = make_quote(status="sent")
        register(mock_db, quote)

        with pytest.raises(BusinessValidationError):
            await AmendmentService(notifier).create(mock_db, quote.id, AmendmentCreate(motive="x"))

    async def test_source_line_from_other_quote(self, mock_db, notifier):
        """Test riga sorgente di un altro preventivo"""
        quote = make_quote(status="signed")
        other = make_quote(status="signed")
        register(mock_db, quote, *other.lines)
        data = AmendmentCreate(
            motive="Erreur",
            lines=[
                CorrectionLineCreate(
                    description="x", quantity=1, unit_price=Decimal("1"), source_line_id=other.lines[0].id
                )
            ],
        )

        with pytest.raises(NotFoundError):
            await AmendmentService(notifier).create(mock_db, quote.id, data)

    async def test_signed_amendment_lines_locked(self, mock_db, notifier):
        """Test riga aggiunta a variante firmata"""
        amendment = make_amendment(make_quote(status="signed"), status="signed")
        register(mock_db, amendment)

        with pytest.raises(ImmutableDocumentError):
            await AmendmentService(notifier).add_line(
                mock_db,
                amendment.id,
                CorrectionLineCreate(description="Ajout", quantity=1, unit_price=Decimal("5")),
            )


# ============================================================
# Note di credito
# ============================================================


class TestCreditNoteService:
    """Test note di credito."""

    async def test_create_on_issued_invoice(self, mock_db, notifier, numbering):
        """Test nota di credito su riga di fattura"""
        invoice = make_invoice(status="issued")
        register(mock_db, invoice, *invoice.lines)
        data = CreditNoteCreate(
            reason="Remise commerciale",
            lines=[
                CorrectionLineCreate(
                    description="Remise",
                    quantity=1,
                    unit_price=Decimal("50.00"),
                    source_line_id=invoice.lines[0].id,
                )
            ],
        )

        credit_note = await CreditNoteService(notifier, numbering).create(mock_db, invoice.id, data)

        assert credit_note.status == "draft"
        assert credit_note.number == "CREDITNOTE-001"
        assert credit_note.lines[0].new_value == Decimal("150.00")
        assert credit_note.subtotal == Decimal("-50.00")
        assert credit_note.total == Decimal("-60.00")

    async def test_create_on_draft_invoice(self, mock_db, notifier):
        """Test nota di credito su fattura non emessa"""
        invoice = make_invoice(status="draft")
        register(mock_db, invoice)

        with pytest.raises(BusinessValidationError):
            await CreditNoteService(notifier).create(mock_db, invoice.id, CreditNoteCreate(reason="x"))

    async def test_positive_total_rejected(self, mock_db, notifier):
        """Test totale positivo da un importo esterno"""
        invoice = make_invoice(status="issued")
        register(mock_db, invoice)
        data = CreditNoteCreate(
            reason="Erreur",
            lines=[CorrectionLineCreate(description="Montant", subtotal=Decimal("30.00"))],
        )

        with pytest.raises(BusinessValidationError):
            await CreditNoteService(notifier).create(mock_db, invoice.id, data)
        mock_db.add.assert_not_called()

    async def test_issued_credit_note_cannot_be_cancelled(self, mock_db, notifier):
        """Test annullamento dopo l'emissione"""
        credit_note = make_credit_note(make_invoice(), status="issued")
        register(mock_db, credit_note)

        with pytest.raises(IllegalTransitionError):
            await CreditNoteService(notifier).cancel(mock_db, credit_note.id)

    async def test_send_then_refund(self, mock_db, notifier):
        """Test invio e rimborso"""
        credit_note = make_credit_note(make_invoice(), status="issued")
        register(mock_db, credit_note)
        service = CreditNoteService(notifier)

        await service.send(mock_db, credit_note.id)
        await service.mark_refunded(mock_db, credit_note.id)

        assert credit_note.status == "refunded"
        assert notifier.names() == ["credit_note_sent", "credit_note_refunded"]

    async def test_from_amendment_mixed_lines_net_negative(self, mock_db, notifier, numbering):
        """Test variante con righe di segno opposto: una sola riga negativa col saldo"""
        quote = make_quote(status="signed")
        invoice = make_invoice(quote_id=quote.id, lines=[("Site", 1, Decimal("1000.00"))])
        amendment = make_amendment(
            quote,
            lines=[("Ajout", 1, Decimal("100.00")), ("Retrait", 1, Decimal("-400.00"))],
            status="signed",
        )

        credit_note = await CreditNoteService(notifier, numbering).build_from_amendment(
            mock_db, amendment, invoice
        )

        assert [(line.description, line.subtotal) for line in credit_note.lines] == [
            (f"Avoir suite à l'avenant {amendment.number}", Decimal("-300.00"))
        ]
        assert all(line.subtotal <= 0 for line in credit_note.lines)
        assert credit_note.subtotal == Decimal("-300.00")
        assert credit_note.total == Decimal("-360.00")
        mock_db.commit.assert_not_awaited()

    async def test_from_amendment_one_line_per_vat_rate(self, mock_db, notifier, numbering):
        """Test TVA per riga: una riga negativa per aliquota"""
        quote = make_quote(status="signed")
        invoice = make_invoice(quote_id=quote.id)
        amendment = make_amendment(
            quote,
            lines=[
                ("Formation", 1, Decimal("-200.00")),
                ("Hébergement", 1, Decimal("50.00")),
                ("Maintenance", 1, Decimal("-100.00")),
            ],
            status="signed",
        )
        amendment.per_line_vat = True
        amendment.lines[0].vat_rate = Decimal("10.00")
        amendment.lines[1].vat_rate = Decimal("20.00")
        amendment.lines[2].vat_rate = Decimal("20.00")
        recalculate_corrections(amendment)

        credit_note = await CreditNoteService(notifier, numbering).build_from_amendment(
            mock_db, amendment, invoice
        )

        assert [(line.vat_rate, line.subtotal) for line in credit_note.lines] == [
            (Decimal("10.00"), Decimal("-200.00")),
            (Decimal("20.00"), Decimal("-50.00")),
        ]
        assert credit_note.vat_amount == amendment.vat_amount == Decimal("-30.00")
        assert credit_note.total == Decimal("-280.00")

    async def test_from_amendment_rate_with_increase_rejected(self, mock_db, notifier, numbering):
        """Test aliquota con saldo positivo non stornabile"""
        quote = make_quote(status="signed")
        invoice = make_invoice(quote_id=quote.id)
        amendment = make_amendment(
            quote,
            lines=[("Formation", 1, Decimal("-500.00")), ("Hébergement", 1, Decimal("100.00"))],
            status="signed",
        )
        amendment.per_line_vat = True
        amendment.lines[0].vat_rate = Decimal("20.00")
        amendment.lines[1].vat_rate = Decimal("5.50")

        with pytest.raises(BusinessValidationError):
            await CreditNoteService(notifier, numbering).build_from_amendment(mock_db, amendment, invoice)
        mock_db.add.assert_not_called()
