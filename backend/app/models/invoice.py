"""
Modelli SQLAlchemy per la Fatturazione
Progetto: Billing Engine (Facturation)

Contiene:
- Invoice: Fattura (Facture), immutabile una volta emessa
- InvoiceLine: Righe della fattura (sempre valori assoluti)
- CreditNote: Nota di credito (Avoir), importi memorizzati in negativo
- CreditNoteLine: Righe di correzione con semantica delta
- Deposit: Acconto richiesto alla firma di un preventivo
- Payment: Pagamenti registrati dal collaboratore di pagamento
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

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
    CorrectionLineMixin,
    DocumentLineMixin,
    TimestampMixin,
    UUIDMixin,
)


class Invoice(Base, UUIDMixin, TimestampMixin, BillingDocumentMixin):
    """
    Modello per le fatture.

    Una fattura nasce da un preventivo firmato, da una variante
    (fattura complementare), da un rinnovo di abbonamento oppure
    direttamente. La numerazione FACT-YYYY-NNN è senza buchi:
    l'annullamento cambia lo stato, mai il numero.

    Attributes:
        id: UUID primary key, generato automaticamente
        quote_id: Preventivo di origine (relazione 1:1, opzionale)
        amendment_id: Variante fatturata (fattura complementare)
        client_id: UUID del cliente
        number: Numero FACT-YYYY-NNN
        issue_date: Data di emissione
        due_date: Data di scadenza del pagamento
        deposit_amount: Acconti già versati e dedotti dal saldo
        payment_terms: Condizioni di pagamento
        late_penalty_rate: Penalità di ritardo (% del residuo per giorno)
        paid_at: Data/ora del pagamento
        sent_at: Data/ora dell'ultimo invio
        sent_count / delivery_channel: Tracciamento degli invii
        pdp_status / pdp_provider / pdp_transmission_date / pdp_response:
            Stato della trasmissione elettronica (PDP)
        pdf_filename / pdf_hash: Scritti dal generatore PDF

    Relationships:
        lines: Righe della fattura
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    quote_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
        doc="UUID del preventivo di origine (relazione 1:1)",
    )

    amendment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("amendments.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
        doc="Variante di cui questa è la fattura complementare",
    )

    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=True,
        doc="UUID del cliente",
    )

    # ------------------------------------------------------------
    # Colonne Date e Pagamento
    # ------------------------------------------------------------
    issue_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Data di emissione",
    )

    due_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Data scadenza pagamento",
    )

    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Acconti già incassati dedotti dal saldo",
    )

    payment_terms: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Condizioni di pagamento",
    )

    late_penalty_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(6, 3),
        nullable=True,
        doc="Penalità di ritardo: % del residuo per giorno",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora del pagamento",
    )

    # ------------------------------------------------------------
    # Colonne Invio
    # ------------------------------------------------------------
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora dell'ultimo invio",
    )

    sent_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Numero di invii effettuati",
    )

    delivery_channel: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Canale dell'ultimo invio (email, pdp, post...)",
    )

    # ------------------------------------------------------------
    # Colonne Trasmissione elettronica (PDP)
    # ------------------------------------------------------------
    pdp_status: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        doc="Stato della trasmissione PDP",
    )

    pdp_provider: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Piattaforma PDP utilizzata",
    )

    pdp_transmission_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora della trasmissione PDP",
    )

    pdp_response: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Risposta grezza della piattaforma PDP",
    )

    # ------------------------------------------------------------
    # Colonne PDF
    # ------------------------------------------------------------
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

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLine.position",
        doc="Righe della fattura",
    )

    # ------------------------------------------------------------
    # Properties Calcolate
    # ------------------------------------------------------------
    @property
    def balance_due(self) -> Decimal:
        """Importo residuo: totale TTC meno acconti già versati."""
        return (self.total or Decimal("0")) - (self.deposit_amount or Decimal("0"))

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_invoices_client_id", "client_id"),
        Index("ix_invoices_status_due_date", "status", "due_date"),
        CheckConstraint("subtotal >= 0", name="ck_invoices_subtotal_positive"),
        CheckConstraint("vat_rate >= 0", name="ck_invoices_vat_rate_positive"),
        CheckConstraint("total >= 0", name="ck_invoices_total_positive"),
        CheckConstraint("deposit_amount >= 0", name="ck_invoices_deposit_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.number}, status={self.status}, total={self.total})>"


class InvoiceLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """
    Riga di fattura.

    Stessa forma di QuoteLine: una fattura contiene sempre valori
    assoluti, subtotal = quantity × unit_price.
    """

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID della fattura padre",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Quantità",
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

    invoice: Mapped["Invoice"] = relationship(
        "Invoice",
        back_populates="lines",
        doc="Fattura padre",
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<InvoiceLine(id={self.id}, description={self.description[:30]!r}, subtotal={self.subtotal})>"


class CreditNote(Base, UUIDMixin, TimestampMixin, BillingDocumentMixin):
    """
    Modello per le note di credito (avoirs).

    Rappresenta uno storno parziale o totale di una fattura emessa.
    Gli importi sono memorizzati in negativo. Quando la somma delle note
    emesse compensa il totale della fattura, la fattura viene annullata.
    """

    __tablename__ = "credit_notes"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=False
    )
    amendment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("amendments.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    issued_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, doc="Data/ora di emissione"
    )

    lines: Mapped[List["CreditNoteLine"]] = relationship(
        "CreditNoteLine",
        back_populates="credit_note",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CreditNoteLine.position",
    )

    __table_args__ = (
        Index("ix_credit_notes_invoice_id", "invoice_id"),
        CheckConstraint("total <= 0", name="ck_credit_notes_total_negative"),
    )

    def __repr__(self) -> str:
        return f"<CreditNote(id={self.id}, number={self.number}, status={self.status}, total={self.total})>"


class CreditNoteLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin, CorrectionLineMixin):
    """Righe di una nota di credito: delta forzati in negativo."""

    __tablename__ = "credit_note_lines"

    credit_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("credit_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("invoice_lines.id", ondelete="RESTRICT"),
        nullable=True,
        doc="Riga di fattura corretta da questa riga",
    )
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    credit_note: Mapped["CreditNote"] = relationship("CreditNote", back_populates="lines")

    def __repr__(self) -> str:
        return f"<CreditNoteLine(id={self.id}, old={self.old_value}, new={self.new_value}, delta={self.delta})>"


class Deposit(Base, UUIDMixin, TimestampMixin):
    """
    Modello per gli acconti (acomptes) richiesti alla firma di un preventivo.

    Un acconto pagato viene dedotto dalla fattura finale del preventivo
    (invoice_id valorizzato al momento della deduzione).
    """
    __tablename__ = "deposits"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotes.id", ondelete="RESTRICT"), nullable=False
    )
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="RESTRICT"), nullable=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", doc="pending, paid, cancelled, refunded"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_deposits_quote_id", "quote_id"),
        CheckConstraint("amount > 0", name="ck_deposits_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Deposit(id={self.id}, quote={self.quote_id}, amount={self.amount}, status={self.status})>"


class Payment(Base, UUIDMixin, TimestampMixin):
    """
    Pagamento notificato dal collaboratore esterno (es. Stripe).

    Attributes:
        invoice_id: Fattura saldata dal pagamento
        deposit_id: Acconto saldato dal pagamento (alternativo a invoice_id)
        amount: Importo del pagamento
        status: pending, succeeded, failed, cancelled, refunded
        provider_reference: Identificativo del pagamento presso il provider
        paid_at: Data/ora dell'incasso
        failure_reason: Motivo del fallimento
    """

    __tablename__ = "payments"

    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=True
    )
    deposit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("deposits.id", ondelete="RESTRICT"), nullable=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    provider_reference: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_payments_invoice_id", "invoice_id"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount}, status={self.status})>"
