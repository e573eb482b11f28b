"""
Modello SQLAlchemy per gli Abbonamenti manuali
Progetto: Billing Engine (Facturation)

Un abbonamento viene aperto quando una fattura con righe ricorrenti
è pagata; il comando renew-subscriptions emette le fatture di rinnovo.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Subscription(Base, UUIDMixin, TimestampMixin):
    """
    Abbonamento a rinnovo manuale.

    Attributes:
        client_id: Cliente fatturato a ogni rinnovo
        source_invoice_line_id: Riga ricorrente che ha aperto l'abbonamento
        label: Descrizione della prestazione
        amount: Importo HT del rinnovo
        vat_rate: Aliquota TVA applicata al rinnovo
        interval_unit: 'month' o 'year'
        current_period_start / current_period_end: Periodo coperto
        status: 'active' o 'cancelled'
    """

    __tablename__ = "subscriptions"

    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=True,
    )

    source_invoice_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("invoice_lines.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        doc="Una sola sottoscrizione per riga ricorrente",
    )

    label: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("20.00")
    )
    interval_unit: Mapped[str] = mapped_column(String(10), nullable=False)
    current_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    current_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    __table_args__ = (
        Index("ix_subscriptions_status_period_end", "status", "current_period_end"),
        CheckConstraint(
            "interval_unit IN ('month', 'year')",
            name="ck_subscriptions_interval_unit",
        ),
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, label={self.label[:30]!r}, period_end={self.current_period_end})>"
