"""
Schemas Pydantic per il progetto Billing Engine

Questo modulo contiene gli schemi Pydantic utilizzati per la validazione
e serializzazione delle richieste e risposte API, oltre agli enum di stato
e alle matrici delle transizioni dei documenti.
"""

from app.schemas.client import ClientCreate, ClientList, ClientRead, ClientUpdate
from app.schemas.document import (
    CorrectionLineCreate,
    CorrectionLineRead,
    CorrectionLineUpdate,
    DocumentLineCreate,
    DocumentLineUpdate,
    DocumentType,
    LineRead,
    PdfWriteBack,
    SubscriptionMode,
    TotalsRead,
)
from app.schemas.quote import (
    QuoteCreate,
    QuoteList,
    QuoteRead,
    QuoteSignRequest,
    QuoteStatus,
    QuoteUpdate,
    VALID_QUOTE_TRANSITIONS,
)
from app.schemas.amendment import (
    AmendmentCreate,
    AmendmentRead,
    AmendmentSignRequest,
    AmendmentStatus,
    VALID_AMENDMENT_TRANSITIONS,
)
from app.schemas.invoice import (
    CreditNoteCreate,
    CreditNoteRead,
    CreditNoteStatus,
    DeliveryChannel,
    DepositRead,
    DepositStatus,
    ExternalPaymentNotification,
    InvoiceCreate,
    InvoiceList,
    InvoicePaymentRequest,
    InvoiceRead,
    InvoiceSendRequest,
    InvoiceStatus,
    PaymentFailureNotification,
    PaymentRead,
    PaymentStatus,
    PdpTransmission,
    VALID_CREDIT_NOTE_TRANSITIONS,
    VALID_INVOICE_TRANSITIONS,
)

__all__ = [
    "ClientCreate",
    "ClientList",
    "ClientRead",
    "ClientUpdate",
    "CorrectionLineCreate",
    "CorrectionLineRead",
    "CorrectionLineUpdate",
    "DocumentLineCreate",
    "DocumentLineUpdate",
    "DocumentType",
    "LineRead",
    "PdfWriteBack",
    "SubscriptionMode",
    "TotalsRead",
    "QuoteCreate",
    "QuoteList",
    "QuoteRead",
    "QuoteSignRequest",
    "QuoteStatus",
    "QuoteUpdate",
    "VALID_QUOTE_TRANSITIONS",
    "AmendmentCreate",
    "AmendmentRead",
    "AmendmentSignRequest",
    "AmendmentStatus",
    "VALID_AMENDMENT_TRANSITIONS",
    "CreditNoteCreate",
    "CreditNoteRead",
    "CreditNoteStatus",
    "DeliveryChannel",
    "DepositRead",
    "DepositStatus",
    "ExternalPaymentNotification",
    "InvoiceCreate",
    "InvoiceList",
    "InvoicePaymentRequest",
    "InvoiceRead",
    "InvoiceSendRequest",
    "InvoiceStatus",
    "PaymentFailureNotification",
    "PaymentRead",
    "PaymentStatus",
    "PdpTransmission",
    "VALID_CREDIT_NOTE_TRANSITIONS",
    "VALID_INVOICE_TRANSITIONS",
]
