"""
Schemas Pydantic per i Preventivi (Devis)
Progetto: Billing Engine (Facturation)

Contiene:
- QuoteStatus e matrice VALID_QUOTE_TRANSITIONS
- Schemas di creazione, aggiornamento e lettura
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.document import DocumentLineCreate, LineRead


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class QuoteStatus(str, Enum):
    """Stati del preventivo."""
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    REFUSED = "refused"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# Matrice delle transizioni di stato valide
VALID_QUOTE_TRANSITIONS: dict[QuoteStatus, list[QuoteStatus]] = {
    QuoteStatus.DRAFT: [QuoteStatus.SENT, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED],
    QuoteStatus.SENT: [
        QuoteStatus.SIGNED,
        QuoteStatus.REFUSED,
        QuoteStatus.EXPIRED,
        QuoteStatus.CANCELLED,
        QuoteStatus.DRAFT,  # ritorno in bozza per correzioni
    ],
    QuoteStatus.SIGNED: [],  # Stato finale
    QuoteStatus.REFUSED: [],  # Stato finale
    QuoteStatus.EXPIRED: [],  # Stato finale
    QuoteStatus.CANCELLED: [],  # Stato finale
}

FINAL_QUOTE_STATUSES = frozenset(
    {QuoteStatus.SIGNED, QuoteStatus.REFUSED, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED}
)


# -------------------------------------------------------------------
# Schemas
# -------------------------------------------------------------------

class QuoteCreate(BaseModel):
    """Schema per la creazione di un preventivo (stato draft)."""

    client_id: Optional[uuid.UUID] = None
    vat_rate: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Default: aliquota di configurazione"
    )
    per_line_vat: bool = False
    deposit_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    valid_until: Optional[date] = Field(
        None, description="Default: oggi + quote_validity_days"
    )
    notes: Optional[str] = None
    lines: List[DocumentLineCreate] = Field(default_factory=list)


class QuoteUpdate(BaseModel):
    """Aggiornamento parziale dell'intestazione (passa dalla guardia di immutabilità)."""

    client_id: Optional[uuid.UUID] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    per_line_vat: Optional[bool] = None
    deposit_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    valid_until: Optional[date] = None
    notes: Optional[str] = None


class QuoteSignRequest(BaseModel):
    """Dati di firma del cliente."""

    client_signature: Optional[str] = None
    signed_at: Optional[datetime] = None


class QuoteRead(BaseModel):
    """Schema di lettura di un preventivo."""

    id: uuid.UUID
    number: Optional[str] = None
    client_id: Optional[uuid.UUID] = None
    status: QuoteStatus
    vat_rate: Decimal
    per_line_vat: bool
    deposit_percent: Decimal
    valid_until: Optional[date] = None
    signature_date: Optional[datetime] = None
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    notes: Optional[str] = None
    lines: List[LineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class QuoteList(BaseModel):
    items: List[QuoteRead] = Field(default_factory=list)
    total: int
    page: int
    per_page: int
