"""
Modelli SQLAlchemy per gli Avenants (varianti di un preventivo firmato)
Progetto: Billing Engine (Facturation)

Contiene:
- Amendment: Variante che modifica il valore di un preventivo già firmato
- AmendmentLine: Righe di correzione (delta rispetto a una riga del preventivo)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import (
    BillingDocumentMixin,
    CorrectionLineMixin,
    DocumentLineMixin,
    TimestampMixin,
    UUIDMixin,
)


class Amendment(Base, UUIDMixin, TimestampMixin, BillingDocumentMixin):
    """
    Modello per gli avenants.

    Il numero deriva da quello del preventivo padre: {anno}-{seq}-A{n}.
    Una volta firmata viene fatturata: fattura complementare se il
    totale HT è positivo, nota di credito se negativo. Il documento
    generato punta alla variante (amendment_id), non il contrario:
    la variante firmata è bloccata.

    Attributes:
        quote_id: UUID del preventivo padre
        motive: Motivazione della variante
        signature_date / client_signature: Dati di firma
        pdf_filename / pdf_hash: Scritti dal generatore PDF
    """

    __tablename__ = "amendments"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID del preventivo padre",
    )

    # Univoco per preventivo: lo stesso prefisso {anno}-{seq} ricorre ogni mese
    number: Mapped[Optional[str]] = mapped_column(
        String(40),
        nullable=True,
        doc="Numero variante (null finché il preventivo padre non è numerato)",
    )

    motive: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Motivazione / giustificazione della variante",
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

    pdf_filename: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Nome del file PDF generato",
    )

    pdf_hash: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        doc="Hash del PDF generato",
    )

    lines: Mapped[List["AmendmentLine"]] = relationship(
        "AmendmentLine",
        back_populates="amendment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AmendmentLine.position",
        doc="Righe della variante",
    )

    __table_args__ = (
        Index("ix_amendments_quote_id", "quote_id"),
        UniqueConstraint("quote_id", "number", name="uq_amendments_quote_number"),
    )

    def __repr__(self) -> str:
        return f"<Amendment(id={self.id}, number={self.number}, status={self.status}, subtotal={self.subtotal})>"


class AmendmentLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin, CorrectionLineMixin):
    """
    Riga di avenant.

    Con source_line_id valorizzato unit_price è interpretato come delta
    e subtotal memorizza la variazione, non il nuovo totale.
    """

    __tablename__ = "amendment_lines"

    amendment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("amendments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID della variante padre",
    )

    source_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("quote_lines.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Riga del preventivo corretta da questa riga",
    )

    quantity: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Quantità (null se la riga è valorizzata da un totale esterno)",
    )

    amendment: Mapped["Amendment"] = relationship(
        "Amendment",
        back_populates="lines",
        doc="Variante padre",
    )

    def __repr__(self) -> str:
        return f"<AmendmentLine(id={self.id}, old={self.old_value}, new={self.new_value}, delta={self.delta})>"
