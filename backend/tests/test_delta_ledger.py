"""
Test per il registro dei delta delle righe di correzione.
"""

from decimal import Decimal
from types import SimpleNamespace

from app.models.amendment import AmendmentLine
from app.models.invoice import CreditNoteLine
from app.schemas.document import CorrectionLineCreate
from app.services.calculator import ZERO
from app.services.delta_ledger import apply_delta, build_correction_line, update_correction_line


def _source(subtotal):
    return SimpleNamespace(subtotal=Decimal(subtotal))


class TestSourcedLine:
    """Test regola 1: riga con sorgente e prodotto valorizzato."""

    def test_amendment_reduction(self):
        """Test variante che riduce una riga da 1000 a 800"""
        line = AmendmentLine(quantity=1, unit_price=Decimal("-200.00"))
        result = apply_delta(line, _source("1000.00"))

        assert line.old_value == Decimal("1000.00")
        assert line.subtotal == Decimal("-200.00")
        assert line.new_value == Decimal("800.00")
        assert line.delta == Decimal("-200.00")
        assert result.delta == line.delta

    def test_credit_line_forced_negative(self):
        """Test riga di nota di credito sempre negativa"""
        line = CreditNoteLine(quantity=1, unit_price=Decimal("50.00"))
        apply_delta(line, _source("200.00"))

        assert line.subtotal == Decimal("-50.00")
        assert line.new_value == Decimal("150.00")
        assert line.delta == Decimal("-50.00")

    def test_old_value_captured_once(self):
        """Test idempotenza: la sorgente modificata non cambia old_value"""
        line = AmendmentLine(quantity=1, unit_price=Decimal("100.00"))
        apply_delta(line, _source("1000.00"))
        apply_delta(line, _source("5000.00"))

        assert line.old_value == Decimal("1000.00")
        assert line.new_value == Decimal("1100.00")

    def test_zero_old_value_recaptured(self):
        """Test old_value a zero trattato come non catturato"""
        line = AmendmentLine(quantity=1, unit_price=Decimal("10.00"), old_value=ZERO)
        apply_delta(line, _source("40.00"))
        assert line.old_value == Decimal("40.00")


class TestPureAddition:
    """Test regola 2: riga senza sorgente."""

    def test_amendment_addition(self):
        """Test aggiunta pura su variante"""
        line = AmendmentLine(quantity=2, unit_price=Decimal("400.00"))
        apply_delta(line)

        assert line.old_value == ZERO
        assert line.new_value == Decimal("800.00")
        assert line.subtotal == Decimal("800.00")
        assert line.delta == Decimal("800.00")

    def test_credit_addition_negated(self):
        """Test aggiunta su nota di credito negata"""
        line = CreditNoteLine(quantity=1, unit_price=Decimal("50.00"))
        apply_delta(line)
        assert line.subtotal == Decimal("-50.00")
        assert line.delta == Decimal("-50.00")


class TestExternalTotal:
    """Test regola 3: riga valorizzata da un totale esterno."""

    def test_subtotal_without_product(self):
        """Test new_value dal subtotal esistente"""
        line = AmendmentLine(quantity=None, unit_price=None, subtotal=Decimal("750.00"))
        apply_delta(line, _source("1000.00"))

        assert line.new_value == Decimal("750.00")
        assert line.old_value == Decimal("1000.00")
        assert line.delta == Decimal("-250.00")

    def test_update_replaces_new_value(self):
        """Test modifica del subtotal esterno"""
        line = AmendmentLine(quantity=None, unit_price=None, subtotal=Decimal("750.00"))
        apply_delta(line, _source("1000.00"))
        update_correction_line(line, {"subtotal": Decimal("900.00")}, _source("1000.00"))

        assert line.old_value == Decimal("1000.00")
        assert line.new_value == Decimal("900.00")
        assert line.delta == Decimal("-100.00")


class TestBuildCorrectionLine:
    """Test costruzione righe da schema."""

    def test_build_from_schema(self):
        """Test riga costruita dal payload"""
        data = CorrectionLineCreate(
            description="Remise",
            quantity=1,
            unit_price=Decimal("25.00"),
        )
        line = build_correction_line(CreditNoteLine, data, position=3)
        apply_delta(line)

        assert line.position == 3
        assert line.description == "Remise"
        assert line.subtotal == Decimal("-25.00")
