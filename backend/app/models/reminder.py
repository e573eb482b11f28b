"""
Modelli SQLAlchemy per i Solleciti di pagamento (relances)
Progetto: Billing Engine (Facturation)

Contiene:
- ReminderRule: Regola di sollecito (dopo quanti giorni, quante volte)
- Reminder: Sollecito inviato per una fattura secondo una regola
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class ReminderRule(Base, UUIDMixin, TimestampMixin):
    """Regola di sollecito applicata alle fatture scadute."""

    __tablename__ = "reminder_rules"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    days_after_due: Mapped[int] = mapped_column(
        Integer, nullable=False, doc="Giorni dopo la scadenza"
    )
    max_reminders: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, doc="Solleciti massimi per fattura"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ReminderRule(name={self.name}, days_after_due={self.days_after_due})>"


class Reminder(Base, UUIDMixin, TimestampMixin):
    """Sollecito inviato."""

    __tablename__ = "reminders"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reminder_rules.id", ondelete="CASCADE"), nullable=False
    )
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_reminders_invoice_rule", "invoice_id", "rule_id", unique=True),
    )
