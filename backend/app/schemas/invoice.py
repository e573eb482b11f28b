"""
Schemas Pydantic per la Fatturazione
Progetto: Billing Engine (Facturation)

Contiene:
- Enums: InvoiceStatus, CreditNoteStatus, DepositStatus, PaymentStatus, DeliveryChannel
- Matrici delle transizioni di fattura e nota di credito
- Schemas per Invoice, CreditNote, Deposit, Payment
- Schemas per i dati scritti dai collaboratori (PDP, pagamento)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.document import CorrectionLineCreate, CorrectionLineRead, DocumentLineCreate, LineRead


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    """Stati della fattura."""
    DRAFT = "draft"
    ISSUED = "issued"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class CreditNoteStatus(str, Enum):
    """Stati della nota di credito."""
    DRAFT = "draft"
    ISSUED = "issued"
    SENT = "sent"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class DepositStatus(str, Enum):
    """Stati dell'acconto."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Stati del pagamento riportati dal collaboratore di pagamento."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class DeliveryChannel(str, Enum):
    """Canali di invio di una fattura."""
    EMAIL = "email"
    PDP = "pdp"
    POST = "post"
    HAND = "hand"


# Matrice delle transizioni di stato valide.
# L'annullamento avviene solo tramite una nota di credito che compensa il totale.
VALID_INVOICE_TRANSITIONS: dict[InvoiceStatus, list[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: [InvoiceStatus.ISSUED],
    InvoiceStatus.ISSUED: [InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
    InvoiceStatus.SENT: [InvoiceStatus.PAID, InvoiceStatus.CANCELLED],
    InvoiceStatus.PAID: [InvoiceStatus.CANCELLED],
    InvoiceStatus.CANCELLED: [],  # Stato finale
}

EMITTED_INVOICE_STATUSES = frozenset(
    {InvoiceStatus.ISSUED, InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
)

VALID_CREDIT_NOTE_TRANSITIONS: dict[CreditNoteStatus, list[CreditNoteStatus]] = {
    CreditNoteStatus.DRAFT: [CreditNoteStatus.ISSUED, CreditNoteStatus.CANCELLED],
    CreditNoteStatus.ISSUED: [CreditNoteStatus.SENT, CreditNoteStatus.REFUNDED],
    CreditNoteStatus.SENT: [CreditNoteStatus.REFUNDED],
    CreditNoteStatus.REFUNDED: [],  # Stato finale
    CreditNoteStatus.CANCELLED: [],  # Stato finale
}

EMITTED_CREDIT_NOTE_STATUSES = frozenset(
    {CreditNoteStatus.ISSUED, CreditNoteStatus.SENT, CreditNoteStatus.REFUNDED}
)


# -------------------------------------------------------------------
# Schemas per Invoice
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """Creazione di una fattura diretta (senza preventivo)."""

    client_id: Optional[uuid.UUID] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    per_line_vat: bool = False
    due_date: Optional[date] = Field(
        None, description="Default: oggi + payment_terms_days"
    )
    payment_terms: Optional[str] = None
    late_penalty_rate: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    lines: List[DocumentLineCreate] = Field(default_factory=list)


class InvoiceSendRequest(BaseModel):
    channel: DeliveryChannel = DeliveryChannel.EMAIL


class PdpTransmission(BaseModel):
    """Esito della trasmissione elettronica scritto dal collaboratore PDP."""

    pdp_status: str = Field(..., min_length=1, max_length=30)
    pdp_provider: str = Field(..., min_length=1, max_length=50)
    pdp_transmission_date: Optional[datetime] = None
    pdp_response: Optional[str] = None


class InvoiceRead(BaseModel):
    id: uuid.UUID
    number: Optional[str] = None
    quote_id: Optional[uuid.UUID] = None
    amendment_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    status: InvoiceStatus
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    vat_rate: Decimal
    per_line_vat: bool
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    deposit_amount: Decimal
    balance_due: Decimal
    paid_at: Optional[datetime] = None
    sent_count: int
    delivery_channel: Optional[str] = None
    pdp_status: Optional[str] = None
    lines: List[LineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    items: List[InvoiceRead] = Field(default_factory=list)
    total: int
    page: int
    per_page: int


class InvoicePaymentRequest(BaseModel):
    """Pagamento registrato manualmente."""

    paid_at: Optional[datetime] = None


# -------------------------------------------------------------------
# Schemas per CreditNote
# -------------------------------------------------------------------

class CreditNoteCreate(BaseModel):
    """Creazione di una nota di credito su una fattura emessa."""

    reason: str = Field(..., description="Motivo dello storno (obbligatorio)")
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    per_line_vat: Optional[bool] = None
    notes: Optional[str] = None
    lines: List[CorrectionLineCreate] = Field(default_factory=list)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Il motivo della nota di credito è obbligatorio")
        return v.strip()


class CreditNoteRead(BaseModel):
    id: uuid.UUID
    number: Optional[str] = None
    invoice_id: uuid.UUID
    amendment_id: Optional[uuid.UUID] = None
    status: CreditNoteStatus
    reason: str
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    issued_at: Optional[datetime] = None
    lines: List[CorrectionLineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Schemas per Deposit e Payment
# -------------------------------------------------------------------

class DepositRead(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    invoice_id: Optional[uuid.UUID] = None
    amount: Decimal
    percentage: Decimal
    status: DepositStatus
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExternalPaymentNotification(BaseModel):
    """Pagamento riuscito notificato dal collaboratore di pagamento."""

    provider_reference: str = Field(..., min_length=1, max_length=255)
    invoice_id: Optional[uuid.UUID] = None
    deposit_id: Optional[uuid.UUID] = None
    amount: Decimal = Field(..., gt=0)


class PaymentFailureNotification(BaseModel):
    payment_id: uuid.UUID
    reason: str = Field(..., min_length=1)


class PaymentRead(BaseModel):
    id: uuid.UUID
    invoice_id: Optional[uuid.UUID] = None
    deposit_id: Optional[uuid.UUID] = None
    amount: Decimal
    status: PaymentStatus
    provider_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
