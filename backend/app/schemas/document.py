"""
Schemas Pydantic comuni ai documenti commerciali
Progetto: Billing Engine (Facturation)

Contiene:
- DocumentType: tipo di documento gestito dal motore
- Schemas per le righe (assolute e di correzione)
- Schemas per i dati scritti dai collaboratori esterni (PDF)
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class DocumentType(str, Enum):
    """Tipi di documento gestiti dal motore."""
    QUOTE = "quote"
    AMENDMENT = "amendment"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"


class SubscriptionMode(str, Enum):
    """Ricorrenza di una riga di abbonamento."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


# -------------------------------------------------------------------
# Schemas per le righe
# -------------------------------------------------------------------

class DocumentLineCreate(BaseModel):
    """Riga con valori assoluti (preventivo, fattura)."""

    description: str = Field(..., min_length=1, max_length=500, description="Descrizione")
    quantity: int = Field(..., gt=0, description="Quantità")
    unit_price: Decimal = Field(..., description="Prezzo unitario HT")
    vat_rate: Optional[Decimal] = Field(
        None,
        ge=0,
        le=100,
        description="Aliquota propria della riga (null = aliquota del documento)",
    )
    subscription_mode: Optional[SubscriptionMode] = Field(
        None, description="Ricorrenza della prestazione"
    )
    recurrence_amount: Optional[Decimal] = Field(
        None, ge=0, description="Importo HT di ogni rinnovo"
    )


class DocumentLineUpdate(BaseModel):
    """Aggiornamento parziale di una riga assoluta."""

    description: Optional[str] = Field(None, min_length=1, max_length=500)
    quantity: Optional[int] = Field(None, gt=0)
    unit_price: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)


class CorrectionLineCreate(BaseModel):
    """
    Riga di correzione (avenant, avoir).

    Con source_line_id il prodotto quantity × unit_price è la variazione
    da applicare alla riga sorgente. Senza quantity/unit_price la riga è
    valorizzata da un totale esterno (subtotal).
    """

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    source_line_id: Optional[uuid.UUID] = Field(
        None, description="Riga del documento precedente corretta da questa riga"
    )
    subtotal: Optional[Decimal] = Field(
        None, description="Totale HT precalcolato (solo senza quantity/unit_price)"
    )

    @model_validator(mode="after")
    def check_amount_source(self) -> "CorrectionLineCreate":
        has_product = self.quantity is not None and self.unit_price is not None
        if not has_product and self.subtotal is None:
            raise ValueError("Indicare quantity e unit_price oppure subtotal")
        return self


class CorrectionLineUpdate(BaseModel):
    """Aggiornamento parziale di una riga di correzione (la riga sorgente non cambia)."""

    description: Optional[str] = Field(None, min_length=1, max_length=500)
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    subtotal: Optional[Decimal] = None


class LineRead(BaseModel):
    """Lettura di una riga qualsiasi."""

    id: uuid.UUID
    position: int
    description: str
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = None
    subtotal: Decimal

    model_config = ConfigDict(from_attributes=True)


class CorrectionLineRead(LineRead):
    """Lettura di una riga di correzione con i valori del registro delta."""

    source_line_id: Optional[uuid.UUID] = None
    old_value: Optional[Decimal] = None
    new_value: Optional[Decimal] = None
    delta: Optional[Decimal] = None


# -------------------------------------------------------------------
# Schemas per i collaboratori esterni
# -------------------------------------------------------------------

class PdfWriteBack(BaseModel):
    """Dati scritti dal generatore PDF (campi in whitelist)."""

    pdf_filename: str = Field(..., min_length=1, max_length=255)
    pdf_hash: str = Field(..., min_length=1, max_length=128)


class TotalsRead(BaseModel):
    """Totali di un documento, con eventuale totale corretto."""

    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    corrected_total: Optional[Decimal] = None
