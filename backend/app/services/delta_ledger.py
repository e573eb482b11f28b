"""
Registro dei delta per le righe di correzione
Progetto: Billing Engine (Facturation)

Le righe di avenant (AmendmentLine) e di avoir (CreditNoteLine) non
contengono un valore assoluto: con una riga sorgente memorizzano la
variazione rispetto a quella riga.

Regole (in ordine di priorità):
1. Riga sorgente presente e quantity/unit_price valorizzati:
   old_value = subtotal della sorgente (catturato una sola volta),
   variazione = quantity × unit_price (forzata negativa per gli avoir),
   new_value = old_value + variazione, subtotal = variazione.
2. Nessuna riga sorgente: old_value = 0, totale = quantity × unit_price
   (negato per gli avoir se positivo), new_value = subtotal = totale.
3. quantity/unit_price assenti: new_value dal subtotal esistente,
   old_value dalla sorgente se presente, altrimenti 0.
In ogni caso delta = new_value - old_value come ultimo passo.
"""

import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from app.models.invoice import CreditNoteLine
from app.services.calculator import ZERO, line_subtotal, quantize_money

logger = logging.getLogger(__name__)


class DeltaResult(NamedTuple):
    old_value: Decimal
    new_value: Decimal
    delta: Decimal


def _is_credit_line(line) -> bool:
    return isinstance(line, CreditNoteLine)


def _not_captured(value: Optional[Decimal]) -> bool:
    return value is None or value == ZERO


def apply_delta(line, source_line=None) -> DeltaResult:
    """
    Calcola old_value / new_value / delta di una riga di correzione.

    Da chiamare prima di salvare ogni riga di avenant o avoir.
    Idempotente: un old_value già catturato (non nullo e diverso da zero)
    non viene più ricalcolato, anche se la riga sorgente è cambiata.

    Args:
        line: AmendmentLine o CreditNoteLine (modificata sul posto)
        source_line: QuoteLine / InvoiceLine corretta, oppure None

    Returns:
        DeltaResult: valori scritti sulla riga
    """
    is_credit = _is_credit_line(line)
    has_product = line.quantity is not None and line.unit_price is not None

    if source_line is not None and has_product:
        # Regola 1: la riga rappresenta la variazione, non il nuovo totale
        if _not_captured(line.old_value):
            line.old_value = quantize_money(source_line.subtotal or ZERO)
        raw_delta = line_subtotal(line.quantity, line.unit_price)
        if is_credit:
            raw_delta = -abs(raw_delta)
        line.new_value = line.old_value + raw_delta
        line.subtotal = raw_delta

    elif source_line is None and has_product:
        # Regola 2: aggiunta pura
        line.old_value = ZERO
        total = line_subtotal(line.quantity, line.unit_price)
        if is_credit and total > 0:
            total = -total
        line.new_value = total
        line.subtotal = total

    else:
        # Regola 3: riga valorizzata da un totale esterno
        if line.new_value is None:
            line.new_value = quantize_money(line.subtotal or ZERO)
        if _not_captured(line.old_value):
            line.old_value = (
                quantize_money(source_line.subtotal or ZERO)
                if source_line is not None
                else ZERO
            )

    line.delta = line.new_value - line.old_value

    logger.debug(
        "Delta riga %s: old=%s new=%s delta=%s",
        getattr(line, "id", None),
        line.old_value,
        line.new_value,
        line.delta,
    )
    return DeltaResult(line.old_value, line.new_value, line.delta)


def build_correction_line(line_cls, data, position: int):
    """Nuova riga di correzione (AmendmentLine o CreditNoteLine) da uno schema CorrectionLineCreate."""
    return line_cls(
        position=position,
        description=data.description,
        quantity=data.quantity,
        unit_price=data.unit_price,
        vat_rate=data.vat_rate,
        source_line_id=data.source_line_id,
        subtotal=quantize_money(data.subtotal) if data.subtotal is not None else ZERO,
    )


def update_correction_line(line, changes, source_line=None) -> DeltaResult:
    """
    Applica una modifica a una riga di correzione e ricalcola il delta.

    old_value resta quello catturato alla creazione; un nuovo subtotal
    esterno (regola 3) sostituisce new_value.
    """
    for field, value in changes.items():
        setattr(line, field, value)
    if "subtotal" in changes and (line.quantity is None or line.unit_price is None):
        line.subtotal = quantize_money(line.subtotal or ZERO)
        line.new_value = None
    return apply_delta(line, source_line)
