"""
Modelli Database SQLAlchemy
Progetto: Billing Engine (Facturation)

Import centralizzato di tutti i modelli per create_all e usage generico.

Documenti commerciali:
- Quote / QuoteLine: Preventivi (Devis)
- Amendment / AmendmentLine: Varianti di preventivo (Avenants)
- Invoice / InvoiceLine: Fatture (Factures)
- CreditNote / CreditNoteLine: Note di credito (Avoirs)

Entità collegate:
- Client, Deposit, Payment, Subscription, ReminderRule, Reminder
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.client import Client
from app.models.quote import Quote, QuoteLine
from app.models.amendment import Amendment, AmendmentLine
from app.models.invoice import (
    CreditNote,
    CreditNoteLine,
    Deposit,
    Invoice,
    InvoiceLine,
    Payment,
)
from app.models.subscription import Subscription
from app.models.reminder import Reminder, ReminderRule

__all__ = [
    "Base",
    "Client",
    "Quote",
    "QuoteLine",
    "Amendment",
    "AmendmentLine",
    "Invoice",
    "InvoiceLine",
    "CreditNote",
    "CreditNoteLine",
    "Deposit",
    "Payment",
    "Subscription",
    "Reminder",
    "ReminderRule",
]
