"""
Schemas Pydantic per gli Avenants
Progetto: Billing Engine (Facturation)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.document import CorrectionLineCreate, CorrectionLineRead


class AmendmentStatus(str, Enum):
    """Stati della variante."""
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    CANCELLED = "cancelled"


VALID_AMENDMENT_TRANSITIONS: dict[AmendmentStatus, list[AmendmentStatus]] = {
    AmendmentStatus.DRAFT: [AmendmentStatus.SENT, AmendmentStatus.CANCELLED],
    AmendmentStatus.SENT: [AmendmentStatus.SIGNED, AmendmentStatus.CANCELLED],
    AmendmentStatus.SIGNED: [],  # Stato finale
    AmendmentStatus.CANCELLED: [],  # Stato finale
}


class AmendmentCreate(BaseModel):
    """Creazione di una variante su un preventivo firmato."""

    motive: str = Field(..., min_length=1, description="Motivazione della variante")
    vat_rate: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Default: aliquota del preventivo"
    )
    per_line_vat: Optional[bool] = None
    notes: Optional[str] = None
    lines: List[CorrectionLineCreate] = Field(default_factory=list)


class AmendmentSignRequest(BaseModel):
    client_signature: Optional[str] = None
    signed_at: Optional[datetime] = None


class AmendmentRead(BaseModel):
    id: uuid.UUID
    number: Optional[str] = None
    quote_id: uuid.UUID
    status: AmendmentStatus
    motive: str
    vat_rate: Decimal
    per_line_vat: bool
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    lines: List[CorrectionLineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
