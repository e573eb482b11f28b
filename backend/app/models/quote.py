"""
Modelli SQLAlchemy per i Preventivi (Devis)
Progetto: Billing Engine (Facturation)

Contiene:
- Quote: Preventivo, diventa vincolante con la firma del cliente
- QuoteLine: Righe del preventivo
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import (
    BillingDocumentMixin,
    DocumentLineMixin,
    TimestampMixin,
    UUIDMixin,
)


class Quote(Base, UUIDMixin, TimestampMixin, BillingDocumentMixin):
    """
    Modello per i preventivi.

    Ciclo di vita: draft → sent → (signed | refused | expired | cancelled).
    Gli stati finali bloccano il documento (vedi app.services.immutability_guard).

    Attributes:
        id: UUID primary key, generato automaticamente
        client_id: UUID del cliente
        number: Numero DEV-YYYY-MM-NNN (assegnato alla creazione)
        status: Stato corrente
        vat_rate: Aliquota TVA del documento
        per_line_vat: Modalità TVA per riga
        deposit_percent: Percentuale di acconto richiesta alla firma (0 = nessun acconto)
        valid_until: Data di validità; oltre questa data il preventivo scade
        signature_date: Data/ora della firma
        client_signature: Firma del cliente (immagine base64 o riferimento)
        subtotal / vat_amount / total: Importi HT / TVA / TTC

    Relationships:
        lines: Righe del preventivo (cascade delete)
    """

    __tablename__ = "quotes"

    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=True,
        doc="UUID del cliente (obbligatorio per l'invio e la firma)",
    )

    deposit_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Percentuale di acconto (acompte) richiesta alla firma",
    )

    valid_until: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Data limite di validità",
    )

    signature_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora della firma",
    )

    client_signature: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Firma del cliente",
    )

    lines: Mapped[List["QuoteLine"]] = relationship(
        "QuoteLine",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QuoteLine.position",
        doc="Righe del preventivo",
    )

    __table_args__ = (
        Index("ix_quotes_client_id", "client_id"),
        Index("ix_quotes_status_valid_until", "status", "valid_until"),
        CheckConstraint(
            "deposit_percent >= 0 AND deposit_percent <= 100",
            name="ck_quotes_deposit_percent",
        ),
        CheckConstraint("vat_rate >= 0", name="ck_quotes_vat_rate_positive"),
    )

    def __repr__(self) -> str:
        return f"<Quote(id={self.id}, number={self.number}, status={self.status}, total={self.total})>"


class QuoteLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """
    Riga di preventivo.

    subtotal = quantity × unit_price (valore assoluto, mai un delta).
    subscription_mode marca le prestazioni ricorrenti che, una volta
    fatturate e pagate, aprono un abbonamento manuale.
    """

    __tablename__ = "quote_lines"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID del preventivo padre",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Quantità (intero positivo)",
    )

    subscription_mode: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        doc="Ricorrenza: 'monthly', 'yearly' o null",
    )

    recurrence_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Importo HT di ogni rinnovo",
    )

    quote: Mapped["Quote"] = relationship(
        "Quote",
        back_populates="lines",
        doc="Preventivo padre",
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quote_lines_quantity_positive"),
        CheckConstraint(
            "subscription_mode IS NULL OR subscription_mode IN ('monthly', 'yearly')",
            name="ck_quote_lines_subscription_mode",
        ),
    )

    def __repr__(self) -> str:
        return f"<QuoteLine(id={self.id}, description={self.description[:30]!r}, subtotal={self.subtotal})>"
