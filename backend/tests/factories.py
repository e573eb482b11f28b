"""
Collaboratori finti e factory dei documenti per i test.

I documenti sono istanze ORM transienti (nessun database): i default
di colonna non sono applicati, quindi id, stato e totali sono
valorizzati esplicitamente.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from app.models.amendment import Amendment, AmendmentLine
from app.models.client import Client
from app.models.invoice import CreditNote, CreditNoteLine, Deposit, Invoice, InvoiceLine
from app.models.quote import Quote, QuoteLine
from app.services.calculator import ZERO, recalculate_absolute, recalculate_corrections
from app.services.delta_ledger import apply_delta


# ============================================================
# Collaboratori finti
# ============================================================


class RecordingNotifier:
    """Notifier che memorizza gli eventi ricevuti."""

    def __init__(self):
        self.events = []

    def notify(self, document_type, document_id, event):
        self.events.append((document_type, document_id, event))

    def names(self):
        return [event for _, _, event in self.events]


class FakeNumbering:
    """Numerazione sequenziale in memoria, un contatore per tipo di documento."""

    def __init__(self):
        self.counters = {}

    async def assign_number(self, db, document, on_date=None):
        if document.number:
            return document.number
        prefix = type(document).__name__.upper()
        self.counters[prefix] = self.counters.get(prefix, 0) + 1
        document.number = f"{prefix}-{self.counters[prefix]:03d}"
        return document.number


def make_result(scalar=None, items=None, total=None):
    """Risultato di db.execute con le forme di lettura usate dai servizi."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = total if total is not None else ZERO
    result.scalar.return_value = total if total is not None else 0
    result.scalars.return_value.all.return_value = list(items or [])
    result.first.return_value = (scalar,) if scalar is not None else None
    return result


def register(db, *objects):
    """Rende gli oggetti raggiungibili con db.get(Model, id)."""
    for obj in objects:
        db._store[(type(obj), obj.id)] = obj


def added(db, model):
    """Oggetti del tipo indicato passati a db.add."""
    return [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], model)]


# ============================================================
# Factory dei documenti
# ============================================================


def make_client(**kwargs):
    return Client(
        id=kwargs.get("id", uuid.uuid4()),
        name=kwargs.get("name", "Dupont"),
        client_type="company",
        country="FR",
        email=kwargs.get("email", "compta@dupont.fr"),
        is_active=kwargs.get("is_active", True),
    )


def make_quote(lines=None, **kwargs):
    """Preventivo transiente; lines = [(descrizione, quantità, prezzo)]."""
    if lines is None:
        lines = [("Développement site", 1, Decimal("1000.00"))]
    quote_id = kwargs.get("id", uuid.uuid4())
    quote = Quote(
        id=quote_id,
        number=kwargs.get("number", "DEV-2026-10-001"),
        client_id=kwargs.get("client_id", uuid.uuid4()),
        status=kwargs.get("status", "sent"),
        vat_rate=kwargs.get("vat_rate", Decimal("20.00")),
        per_line_vat=kwargs.get("per_line_vat", False),
        deposit_percent=kwargs.get("deposit_percent", Decimal("0")),
        valid_until=kwargs.get("valid_until", date.today() + timedelta(days=30)),
        lines=[
            QuoteLine(
                id=uuid.uuid4(),
                quote_id=quote_id,
                position=position,
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                subscription_mode=kwargs.get("subscription_mode"),
            )
            for position, (description, quantity, unit_price) in enumerate(lines)
        ],
    )
    recalculate_absolute(quote)
    return quote


def make_invoice(lines=None, **kwargs):
    """Fattura transiente; lines = [(descrizione, quantità, prezzo)]."""
    if lines is None:
        lines = [("Prestation", 1, Decimal("200.00"))]
    invoice_id = kwargs.get("id", uuid.uuid4())
    invoice = Invoice(
        id=invoice_id,
        number=kwargs.get("number", "FACT-2026-001"),
        quote_id=kwargs.get("quote_id"),
        amendment_id=kwargs.get("amendment_id"),
        client_id=kwargs.get("client_id", uuid.uuid4()),
        status=kwargs.get("status", "issued"),
        vat_rate=kwargs.get("vat_rate", Decimal("20.00")),
        per_line_vat=False,
        issue_date=kwargs.get("issue_date", date.today()),
        due_date=kwargs.get("due_date", date.today() + timedelta(days=30)),
        deposit_amount=kwargs.get("deposit_amount", ZERO),
        late_penalty_rate=kwargs.get("late_penalty_rate", Decimal("0.05")),
        sent_count=kwargs.get("sent_count", 0),
        lines=[
            InvoiceLine(
                id=uuid.uuid4(),
                invoice_id=invoice_id,
                position=position,
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                subscription_mode=kwargs.get("subscription_mode"),
                recurrence_amount=kwargs.get("recurrence_amount"),
            )
            for position, (description, quantity, unit_price) in enumerate(lines)
        ],
    )
    recalculate_absolute(invoice)
    return invoice


def make_amendment(quote, lines=None, **kwargs):
    """Variante transiente con righe senza sorgente (aggiunte pure)."""
    if lines is None:
        lines = [("Module supplémentaire", 1, Decimal("800.00"))]
    amendment = Amendment(
        id=kwargs.get("id", uuid.uuid4()),
        number=kwargs.get("number", "2026-001-A1"),
        quote_id=quote.id,
        status=kwargs.get("status", "sent"),
        motive=kwargs.get("motive", "Extension du périmètre"),
        vat_rate=quote.vat_rate,
        per_line_vat=False,
        lines=[],
    )
    for position, (description, quantity, unit_price) in enumerate(lines):
        line = AmendmentLine(
            id=uuid.uuid4(),
            position=position,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=ZERO,
        )
        apply_delta(line)
        amendment.lines.append(line)
    recalculate_corrections(amendment)
    return amendment


def make_credit_note(invoice, lines=None, **kwargs):
    """Nota di credito transiente; gli importi positivi diventano negativi."""
    if lines is None:
        lines = [("Remise commerciale", 1, Decimal("50.00"))]
    credit_note = CreditNote(
        id=kwargs.get("id", uuid.uuid4()),
        number=kwargs.get("number", "AV-2026-001"),
        invoice_id=invoice.id,
        amendment_id=kwargs.get("amendment_id"),
        status=kwargs.get("status", "draft"),
        reason=kwargs.get("reason", "Geste commercial"),
        vat_rate=invoice.vat_rate,
        per_line_vat=False,
        lines=[],
    )
    for position, (description, quantity, unit_price) in enumerate(lines):
        line = CreditNoteLine(
            id=uuid.uuid4(),
            position=position,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=ZERO,
        )
        apply_delta(line)
        credit_note.lines.append(line)
    recalculate_corrections(credit_note)
    return credit_note


def make_deposit(quote, **kwargs):
    return Deposit(
        id=kwargs.get("id", uuid.uuid4()),
        quote_id=quote.id,
        client_id=quote.client_id,
        invoice_id=kwargs.get("invoice_id"),
        amount=kwargs.get("amount", Decimal("360.00")),
        percentage=kwargs.get("percentage", Decimal("30")),
        status=kwargs.get("status", "pending"),
    )
