"""
Test per il calcolo degli importi e della TVA.
"""

from decimal import Decimal
from types import SimpleNamespace

from app.services.calculator import (
    LineAmount,
    ZERO,
    compute_line_totals,
    compute_totals,
    deposit_amount,
    is_offset,
    late_payment_penalty,
    line_subtotal,
    quantize_money,
)


def _line(quantity, unit_price, vat_rate=None):
    return SimpleNamespace(quantity=quantity, unit_price=Decimal(unit_price), vat_rate=vat_rate)


class TestRounding:
    """Test arrotondamento al centesimo."""

    def test_half_up(self):
        """Test arrotondamento ROUND_HALF_UP"""
        assert quantize_money(Decimal("0.005")) == Decimal("0.01")
        assert quantize_money(Decimal("2.344")) == Decimal("2.34")
        assert quantize_money(Decimal("-1.005")) == Decimal("-1.01")

    def test_line_subtotal(self):
        """Test totale HT riga"""
        assert line_subtotal(3, Decimal("33.333")) == Decimal("100.00")
        assert line_subtotal(-1, Decimal("50")) == Decimal("-50.00")


class TestDocumentTotals:
    """Test totali documento."""

    def test_total_is_subtotal_plus_vat(self):
        """Test identità TTC = HT + TVA"""
        totals = compute_line_totals(
            [_line(1, "1000.00"), _line(2, "12.35")],
            Decimal("20.00"),
            per_line_vat=False,
        )
        assert totals.subtotal == Decimal("1024.70")
        assert totals.vat_amount == Decimal("204.94")
        assert totals.total == totals.subtotal + totals.vat_amount

    def test_vat_rounded_per_line(self):
        """Test TVA arrotondata riga per riga prima della somma"""
        # 0.05 × 5.5% = 0.00275 → 0.00 per riga; sul totale sarebbe 0.01
        totals = compute_totals(
            [LineAmount(Decimal("0.05")), LineAmount(Decimal("0.05"))],
            Decimal("5.5"),
            per_line_vat=False,
        )
        assert totals.vat_amount == ZERO

    def test_per_line_rates(self):
        """Test aliquote francesi 20 / 10 / 5,5 / 0 per riga"""
        totals = compute_line_totals(
            [
                _line(1, "100.00", Decimal("20")),
                _line(1, "100.00", Decimal("10")),
                _line(1, "100.00", Decimal("5.5")),
                _line(1, "100.00", Decimal("0")),
            ],
            Decimal("20.00"),
            per_line_vat=True,
        )
        assert totals.subtotal == Decimal("400.00")
        assert totals.vat_amount == Decimal("35.50")
        assert totals.total == Decimal("435.50")

    def test_line_without_rate_uses_document_rate(self):
        """Test riga senza aliquota in modalità per riga"""
        totals = compute_line_totals(
            [_line(1, "100.00", None), _line(1, "100.00", Decimal("0"))],
            Decimal("20.00"),
            per_line_vat=True,
        )
        assert totals.vat_amount == Decimal("20.00")

    def test_line_rate_ignored_without_per_line_vat(self):
        """Test aliquota di riga ignorata se per_line_vat è falso"""
        totals = compute_line_totals(
            [_line(1, "100.00", Decimal("5.5"))],
            Decimal("20.00"),
            per_line_vat=False,
        )
        assert totals.vat_amount == Decimal("20.00")

    def test_empty_document(self):
        """Test documento senza righe"""
        totals = compute_totals([], Decimal("20.00"), per_line_vat=False)
        assert totals == (ZERO, ZERO, ZERO)


class TestDepositAndPenalty:
    """Test acconto, penalità e compensazione."""

    def test_deposit_thirty_percent(self):
        """Test acconto 30% del TTC"""
        assert deposit_amount(Decimal("1200.00"), Decimal("30")) == Decimal("360.00")

    def test_late_penalty(self):
        """Test penalità: residuo × tasso / 100 × giorni"""
        penalty = late_payment_penalty(Decimal("1000.00"), Decimal("0.05"), 10)
        assert penalty == Decimal("5.00")

    def test_late_penalty_not_late(self):
        """Test nessuna penalità senza ritardo o senza tasso"""
        assert late_payment_penalty(Decimal("1000.00"), Decimal("0.05"), 0) == ZERO
        assert late_payment_penalty(Decimal("1000.00"), None, 5) == ZERO
        assert late_payment_penalty(ZERO, Decimal("0.05"), 5) == ZERO

    def test_offset_within_tolerance(self):
        """Test compensazione totale della fattura"""
        assert is_offset(Decimal("240.00"), Decimal("-240.00"))
        assert is_offset(Decimal("240.00"), Decimal("-239.995"))
        assert not is_offset(Decimal("240.00"), Decimal("-180.00"))
