"""
Calcolo importi e TVA
Progetto: Billing Engine (Facturation)

Funzioni pure: nessun accesso al database, nessun effetto collaterale.
Tutti gli importi sono Decimal arrotondati a 2 decimali ROUND_HALF_UP
riga per riga (convenzione di fatturazione francese).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple, Optional


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


class LineAmount(NamedTuple):
    """Importo HT di una riga e sua aliquota propria (None = aliquota documento)."""

    subtotal: Decimal
    vat_rate: Optional[Decimal] = None


class DocumentTotals(NamedTuple):
    """Totali HT / TVA / TTC di un documento."""

    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


def quantize_money(value) -> Decimal:
    """Arrotonda un importo a 2 decimali (ROUND_HALF_UP)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity, unit_price) -> Decimal:
    """Totale HT di una riga: quantity × unit_price."""
    return quantize_money(Decimal(str(quantity)) * Decimal(str(unit_price)))


def vat_for(amount: Decimal, rate: Decimal) -> Decimal:
    """TVA di un importo HT, arrotondata al centesimo."""
    return quantize_money(amount * Decimal(str(rate)) / HUNDRED)


def compute_totals(
    amounts: Iterable[LineAmount],
    vat_rate: Decimal,
    per_line_vat: bool,
) -> DocumentTotals:
    """
    Calcola i totali di un documento a partire dagli importi delle righe.

    La TVA è calcolata e arrotondata riga per riga e poi sommata, per
    evitare derive di arrotondamento quando le aliquote differiscono.
    In modalità per_line_vat una riga con aliquota propria usa quella
    (anche se vale 0); una riga senza aliquota usa l'aliquota del documento.

    Args:
        amounts: Importi HT delle righe con eventuale aliquota propria
        vat_rate: Aliquota del documento
        per_line_vat: True se le righe possono avere una propria aliquota

    Returns:
        DocumentTotals: (subtotal, vat_amount, total) con total = subtotal + vat_amount
    """
    document_rate = Decimal(str(vat_rate)) if vat_rate is not None else ZERO
    subtotal = ZERO
    vat_amount = ZERO

    for amount in amounts:
        line_excl = quantize_money(amount.subtotal)
        subtotal += line_excl

        # None e 0 non sono equivalenti: 0 è un'aliquota esplicita
        if per_line_vat and amount.vat_rate is not None:
            rate = Decimal(str(amount.vat_rate))
        else:
            rate = document_rate
        vat_amount += vat_for(line_excl, rate)

    return DocumentTotals(subtotal, vat_amount, subtotal + vat_amount)


def compute_line_totals(lines, vat_rate: Decimal, per_line_vat: bool) -> DocumentTotals:
    """
    Totali per righe assolute {quantity, unit_price, vat_rate}.

    Quantità e prezzi negativi sono ammessi e seguono l'aritmetica.
    """
    return compute_totals(
        (
            LineAmount(line_subtotal(line.quantity, line.unit_price), line.vat_rate)
            for line in lines
        ),
        vat_rate,
        per_line_vat,
    )


def compute_stored_totals(lines, vat_rate: Decimal, per_line_vat: bool) -> DocumentTotals:
    """
    Totali per righe di correzione: usa il subtotal memorizzato (il delta).

    Le righe di avenant e avoir con sorgente contengono la variazione,
    non il prodotto quantity × unit_price.
    """
    return compute_totals(
        (LineAmount(line.subtotal or ZERO, line.vat_rate) for line in lines),
        vat_rate,
        per_line_vat,
    )


def apply_totals(document, totals: DocumentTotals) -> None:
    """Scrive i totali calcolati sul documento."""
    document.subtotal = totals.subtotal
    document.vat_amount = totals.vat_amount
    document.total = totals.total


def deposit_amount(total: Decimal, percent: Decimal) -> Decimal:
    """Acconto: percentuale del totale TTC."""
    return quantize_money(Decimal(str(total)) * Decimal(str(percent)) / HUNDRED)


def late_payment_penalty(remaining: Decimal, daily_rate: Optional[Decimal], days_late: int) -> Decimal:
    """
    Penalità di ritardo: residuo × tasso / 100 × giorni di ritardo.

    Restituisce 0 se non c'è ritardo, residuo o tasso.
    """
    if not daily_rate or days_late <= 0 or remaining <= 0:
        return ZERO
    return quantize_money(remaining * Decimal(str(daily_rate)) / HUNDRED * days_late)


def is_offset(amount: Decimal, credited: Decimal, tolerance: Decimal = CENT) -> bool:
    """True se la somma (negativa) delle note di credito compensa l'importo."""
    return abs(amount + credited) < tolerance


def recalculate_absolute(document) -> DocumentTotals:
    """
    Ricalcola righe e totali di un documento con righe assolute (preventivo, fattura).

    Ogni riga torna a subtotal = quantity × unit_price.
    """
    for line in document.lines:
        line.subtotal = line_subtotal(line.quantity, line.unit_price)
    totals = compute_line_totals(document.lines, document.vat_rate, document.per_line_vat)
    apply_totals(document, totals)
    return totals


def recalculate_corrections(document) -> DocumentTotals:
    """Ricalcola i totali di una variante o nota di credito dai delta memorizzati."""
    totals = compute_stored_totals(document.lines, document.vat_rate, document.per_line_vat)
    apply_totals(document, totals)
    return totals
