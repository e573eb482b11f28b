"""
Modello SQLAlchemy per l'entità Client
Progetto: Billing Engine (Facturation)

Rappresenta l'anagrafica dei clienti (privati e aziende) con
l'indirizzo di fatturazione.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin, SoftDeleteMixin


class Client(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """
    Modello per l'anagrafica clienti.

    Referenziato per id da Devis, Facture, Acompte e Abonnement.
    Le modifiche all'anagrafica non toccano i documenti già emessi.

    Attributes:
        id: UUID primary key, generato automaticamente
        name: Nome o ragione sociale (obbligatorio)
        surname: Cognome (opzionale, per persone fisiche)
        client_type: Tipo cliente: 'private', 'company'
        siret: SIRET (14 cifre, solo aziende)
        vat_number: Numero TVA intracomunitario
        address: Indirizzo di fatturazione
        zip_code: Codice postale
        city: Città
        country: Paese (ISO 3166-1 alpha-2)
        email: Indirizzo email (necessario per i solleciti)
        phone: Numero di telefono
        notes: Note aggiuntive
    """

    __tablename__ = "clients"

    # ------------------------------------------------------------
    # Colonne Dati Anagrafici
    # ------------------------------------------------------------
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nome o ragione sociale",
    )

    surname: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Cognome (per persone fisiche)",
    )

    client_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="private",
        doc="Tipo cliente: 'private', 'company'",
    )

    siret: Mapped[Optional[str]] = mapped_column(
        String(14),
        nullable=True,
        index=True,
        doc="SIRET (14 cifre)",
    )

    vat_number: Mapped[Optional[str]] = mapped_column(
        String(13),
        nullable=True,
        doc="Numero TVA intracomunitario",
    )

    # ------------------------------------------------------------
    # Colonne Indirizzo di fatturazione
    # ------------------------------------------------------------
    address: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Indirizzo",
    )

    zip_code: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        doc="Codice postale",
    )

    city: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Città",
    )

    country: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        default="FR",
        doc="Paese (ISO 3166-1 alpha-2)",
    )

    # ------------------------------------------------------------
    # Colonne Contatti
    # ------------------------------------------------------------
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Indirizzo email",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Numero di telefono",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note aggiuntive",
    )

    # ------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------
    @property
    def display_name(self) -> str:
        """Nome completo per documenti e notifiche."""
        if self.surname:
            return f"{self.name} {self.surname}"
        return self.name

    __table_args__ = (
        Index("ix_clients_name", "name"),
        CheckConstraint(
            "client_type IN ('private', 'company')",
            name="ck_clients_client_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.display_name})>"
