"""
Test per la macchina a stati e la guardia di immutabilità.
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import (
    BusinessValidationError,
    IllegalTransitionError,
    ImmutableDocumentError,
    SigningPreconditionError,
)
from app.schemas.invoice import InvoiceStatus
from app.schemas.quote import QuoteStatus
from app.services.immutability_guard import apply_changes, guard_line_write, guard_write
from app.services.state_machine import (
    INVOICE_STATE_MACHINE,
    QUOTE_STATE_MACHINE,
    is_locked,
    transition,
)
from tests.factories import make_credit_note, make_invoice, make_quote


class TestTransitions:
    """Test della matrice delle transizioni."""

    def test_invoice_draft_to_issued(self):
        """Test emissione di una fattura in bozza"""
        invoice = make_invoice(status="draft")
        previous = transition(invoice, InvoiceStatus.ISSUED)

        assert previous == InvoiceStatus.DRAFT
        assert invoice.status == "issued"

    def test_paid_invoice_cannot_go_back_to_sent(self):
        """Test PAID → SENT rifiutata"""
        invoice = make_invoice(status="paid")

        with pytest.raises(IllegalTransitionError) as exc_info:
            transition(invoice, InvoiceStatus.SENT)

        assert exc_info.value.from_status == "paid"
        assert exc_info.value.to_status == "sent"
        assert invoice.status == "paid"

    def test_final_quote_has_no_exit(self):
        """Test preventivo firmato senza transizioni in uscita"""
        for target in QuoteStatus:
            assert not QUOTE_STATE_MACHINE.can_transition(QuoteStatus.SIGNED, target)

    def test_unknown_status_rejected(self):
        """Test stato sconosciuto"""
        invoice = make_invoice(status="draft")
        with pytest.raises(BusinessValidationError):
            transition(invoice, "archived")

    def test_locked_statuses(self):
        """Test predicato di blocco sullo stato corrente"""
        assert is_locked(make_quote(status="signed"))
        assert not is_locked(make_quote(status="sent"))
        assert INVOICE_STATE_MACHINE.is_locked(make_invoice(status="cancelled"))
        assert not is_locked(make_invoice(status="draft"))


class TestPreconditions:
    """Test precondizioni di firma ed emissione."""

    def test_sign_quote_without_lines(self):
        """Test firma rifiutata per preventivo senza righe"""
        quote = make_quote(lines=[])

        with pytest.raises(SigningPreconditionError) as exc_info:
            transition(quote, QuoteStatus.SIGNED)

        assert quote.status == "sent"
        assert exc_info.value.problems

    def test_issue_invoice_without_due_date(self):
        """Test emissione rifiutata senza data di scadenza"""
        invoice = make_invoice(status="draft", due_date=None)

        with pytest.raises(BusinessValidationError):
            transition(invoice, InvoiceStatus.ISSUED)
        assert invoice.status == "draft"

    def test_issue_credit_note_without_reason(self):
        """Test nota di credito senza motivo"""
        credit_note = make_credit_note(make_invoice(), reason="  ")
        with pytest.raises(BusinessValidationError):
            transition(credit_note, "issued")


class TestImmutabilityGuard:
    """Test guardia di immutabilità."""

    def test_signed_quote_rejects_notes(self):
        """Test modifica delle note su preventivo firmato"""
        quote = make_quote(status="signed")

        with pytest.raises(ImmutableDocumentError) as exc_info:
            apply_changes(quote, {"notes": "modifica tardiva"})

        assert exc_info.value.fields == ["notes"]
        assert exc_info.value.number == quote.number
        assert quote.notes is None

    def test_signed_quote_accepts_whitelisted_field(self):
        """Test campo in whitelist su preventivo firmato"""
        quote = make_quote(status="signed")
        now = datetime.now(timezone.utc)

        changed = apply_changes(quote, {"updated_at": now})

        assert changed == ["updated_at"]
        assert quote.updated_at == now

    def test_mixed_write_applies_nothing(self):
        """Test scrittura mista: nessun campo applicato"""
        invoice = make_invoice(status="issued")

        with pytest.raises(ImmutableDocumentError):
            apply_changes(invoice, {"pdf_filename": "f.pdf", "due_date": None})

        assert invoice.pdf_filename is None

    def test_unchanged_field_is_not_a_write(self):
        """Test valore identico non considerato modifica"""
        invoice = make_invoice(status="issued")
        assert guard_write(invoice, {"vat_rate": invoice.vat_rate}) == []

    def test_pdf_on_issued_invoice(self):
        """Test scrittura PDF su fattura emessa"""
        invoice = make_invoice(status="issued")
        apply_changes(invoice, {"pdf_filename": "FACT-2026-001.pdf", "pdf_hash": "abc"})
        assert invoice.pdf_filename == "FACT-2026-001.pdf"

    def test_status_change_checks_transition_first(self):
        """Test transizione illegale anche su campo in whitelist"""
        invoice = make_invoice(status="paid")
        with pytest.raises(IllegalTransitionError):
            apply_changes(invoice, {"status": InvoiceStatus.ISSUED})

    def test_signing_sets_fields_and_status(self):
        """Test firma: data e stato nella stessa scrittura"""
        quote = make_quote(status="sent")
        signed_at = datetime.now(timezone.utc)

        apply_changes(
            quote,
            {"status": QuoteStatus.SIGNED, "signature_date": signed_at, "client_signature": "J. Dupont"},
        )

        assert quote.status == "signed"
        assert quote.signature_date == signed_at

    def test_line_write_on_locked_document(self):
        """Test modifica riga su fattura emessa"""
        invoice = make_invoice(status="sent")
        line = invoice.lines[0]

        with pytest.raises(ImmutableDocumentError) as exc_info:
            guard_line_write(invoice, line)

        assert exc_info.value.fields == [f"lines[{line.id}]"]

    def test_line_write_on_draft(self):
        """Test modifica riga su bozza consentita"""
        guard_line_write(make_invoice(status="draft"))
