"""
Mixin SQLAlchemy per modelli
Progetto: Billing Engine (Facturation)

Mixin riutilizzabili per aggiungere funzionalità comuni ai modelli:
identificativo, timestamp, colonne comuni dei documenti commerciali
(Devis, Avenant, Facture, Avoir) e delle loro righe.
"""

import datetime
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy import event
from sqlalchemy.orm import Mapped, mapped_column, Session
from sqlalchemy.sql import func


class SoftDeleteMixin:
    """
    Mixin per implementare la cancellazione logica (soft delete).

    Aggiunge il campo is_active che, se impostato a False,
    indica che il record è stato "eliminato" ma non rimosso fisicamente.
    """

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Flag per soft delete: False = eliminato, True = attivo",
    )


class TimestampMixin:
    """
    Mixin per gestione automatica timestamp creazione e aggiornamento.

    Aggiunge i campi:
    - created_at: data/ora di creazione record (impostato automaticamente)
    - updated_at: data/ora ultimo aggiornamento (aggiornato automaticamente)

    updated_at è nella whitelist di tutti i documenti bloccati:
    il listener può aggiornarlo anche su un documento emesso.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Data/ora di creazione del record",
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Data/ora ultimo aggiornamento del record",
    )


class UUIDMixin:
    """
    Mixin per ID UUID generato lato applicazione.

    Aggiunge il campo id come UUID primary key con generazione automatica.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="UUID primary key",
    )


class BillingDocumentMixin:
    """
    Colonne comuni a tutti i documenti commerciali.

    - number: numero leggibile, assegnato una sola volta e mai modificato
    - status: stato corrente (valori degli enum in app.schemas)
    - vat_rate / per_line_vat: aliquota del documento e modalità di calcolo TVA
    - subtotal / vat_amount / total: importi HT, TVA e TTC ricalcolati dalle righe
    """

    number: Mapped[Optional[str]] = mapped_column(
        String(40),
        nullable=True,
        unique=True,
        doc="Numero documento (null finché non assegnato)",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Stato del documento",
    )

    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("20.00"),
        doc="Aliquota TVA del documento",
    )

    per_line_vat: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="True: ogni riga può definire la propria aliquota",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale HT",
    )

    vat_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale TVA",
    )

    total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale TTC",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note libere",
    )


class DocumentLineMixin:
    """Colonne comuni alle righe di tutti i documenti."""

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Ordine della riga nel documento",
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Descrizione della riga",
    )

    unit_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Prezzo unitario HT",
    )

    vat_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        doc="Aliquota propria della riga (null = aliquota del documento)",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Totale HT della riga (delta per le righe di correzione con sorgente)",
    )


class CorrectionLineMixin:
    """
    Colonne del registro dei delta (righe di Avenant e Avoir).

    old_value è catturato una sola volta dalla riga sorgente,
    new_value = old_value + delta.
    """

    old_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Totale HT della riga sorgente al momento della correzione",
    )

    new_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Nuovo totale HT dopo la correzione",
    )

    delta: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        doc="Differenza new_value - old_value",
    )


# ------------------------------------------------------------
# Event Listeners
# ------------------------------------------------------------
@event.listens_for(Session, "before_flush")
def update_timestamp(session: Session, flush_context, instances) -> None:
    """
    Aggiorna automaticamente updated_at prima di ogni flush.

    Args:
        session: Sessione SQLAlchemy
        flush_context: Contesto del flush
        instances: Oggetti instances (non usato)
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    for obj in session.dirty:
        if hasattr(obj, "updated_at"):
            # Solo se l'oggetto è stato effettivamente modificato
            if session.is_modified(obj, include_collections=False):
                obj.updated_at = now

    for obj in session.new:
        if hasattr(obj, "updated_at"):
            obj.updated_at = now
