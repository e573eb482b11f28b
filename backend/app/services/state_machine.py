"""
Macchina a stati dei documenti commerciali
Progetto: Billing Engine (Facturation)

Una macchina per tipo di documento (preventivo, variante, fattura,
nota di credito) con:
- stati e transizioni ammesse (matrici VALID_*_TRANSITIONS in app.schemas)
- predicato di blocco calcolato sullo stato persistito
- precondizioni verificate prima di entrare in certi stati
  (firma, invio, emissione)

Il punto d'ingresso è `transition(document, new_status)`; il controllo
delle scritture su documenti bloccati è in app.services.immutability_guard.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Type

from app.core.exceptions import (
    BusinessValidationError,
    IllegalTransitionError,
    SigningPreconditionError,
)
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Invoice
from app.models.quote import Quote
from app.schemas.amendment import AmendmentStatus, VALID_AMENDMENT_TRANSITIONS
from app.schemas.document import DocumentType
from app.schemas.invoice import (
    CreditNoteStatus,
    EMITTED_CREDIT_NOTE_STATUSES,
    EMITTED_INVOICE_STATUSES,
    InvoiceStatus,
    VALID_CREDIT_NOTE_TRANSITIONS,
    VALID_INVOICE_TRANSITIONS,
)
from app.schemas.quote import FINAL_QUOTE_STATUSES, QuoteStatus, VALID_QUOTE_TRANSITIONS

logger = logging.getLogger(__name__)

Precondition = Callable[[object], List[str]]


# ------------------------------------------------------------
# Precondizioni
# ------------------------------------------------------------

def quote_send_problems(quote: Quote) -> List[str]:
    problems = []
    if not quote.lines:
        problems.append("il preventivo deve contenere almeno una riga")
    if quote.client_id is None:
        problems.append("il preventivo deve avere un cliente")
    return problems


def quote_signing_problems(quote: Quote) -> List[str]:
    """Un preventivo firmabile ha righe, un cliente e un totale TTC positivo."""
    problems = quote_send_problems(quote)
    if (quote.total or Decimal("0")) <= 0:
        problems.append("il totale TTC deve essere positivo")
    return problems


def amendment_signing_problems(amendment: Amendment) -> List[str]:
    problems = []
    if not amendment.lines:
        problems.append("la variante deve contenere almeno una riga")
    if amendment.quote_id is None:
        problems.append("la variante deve riferirsi a un preventivo")
    return problems


def invoice_issue_problems(invoice: Invoice) -> List[str]:
    """Controlli prima dell'emissione: dopo l'emissione la fattura è immutabile."""
    problems = []
    if not invoice.lines:
        problems.append("la fattura deve contenere almeno una riga")
    if invoice.client_id is None:
        problems.append("la fattura deve avere un cliente")
    if invoice.due_date is None:
        problems.append("la fattura deve avere una data di scadenza")
    if (invoice.subtotal or Decimal("0")) < 0 or (invoice.total or Decimal("0")) < 0:
        problems.append("gli importi della fattura non possono essere negativi")
    return problems


def credit_note_issue_problems(credit_note: CreditNote) -> List[str]:
    problems = []
    if not credit_note.lines:
        problems.append("la nota di credito deve contenere almeno una riga")
    if not (credit_note.reason or "").strip():
        problems.append("la nota di credito richiede un motivo")
    if credit_note.invoice_id is None:
        problems.append("la nota di credito deve riferirsi a una fattura")
    return problems


# ------------------------------------------------------------
# Macchina a stati
# ------------------------------------------------------------

class DocumentStateMachine:
    """
    Stati, transizioni e predicato di blocco per un tipo di documento.

    Args:
        document_type: Tipo di documento gestito
        status_enum: Enum degli stati
        transitions: Matrice stato → stati raggiungibili
        locked_statuses: Stati (persistiti) in cui il documento è bloccato
        preconditions: Controlli da superare per entrare in uno stato
        signing_status: Stato di firma, le cui precondizioni sollevano
            SigningPreconditionError
    """

    def __init__(
        self,
        document_type: DocumentType,
        status_enum: Type[Enum],
        transitions: Mapping[Enum, Sequence[Enum]],
        locked_statuses: FrozenSet[Enum],
        preconditions: Dict[Enum, Precondition],
        signing_status: Optional[Enum] = None,
    ) -> None:
        self.document_type = document_type
        self.status_enum = status_enum
        self.transitions = transitions
        self.locked_statuses = locked_statuses
        self.preconditions = preconditions
        self.signing_status = signing_status

    def parse_status(self, value) -> Enum:
        try:
            return self.status_enum(value)
        except ValueError:
            logger.error("Stato invalido per %s: %s", self.document_type.value, value)
            raise BusinessValidationError(f"Stato invalido: {value}")

    def status_of(self, document) -> Enum:
        """Stato corrente (persistito) del documento."""
        return self.parse_status(document.status)

    def is_locked(self, document) -> bool:
        """True se lo stato corrente blocca il documento."""
        return self.status_of(document) in self.locked_statuses

    def can_transition(self, from_status, to_status) -> bool:
        return self.parse_status(to_status) in self.transitions.get(
            self.parse_status(from_status), []
        )

    def check_transition(self, document, new_status) -> Enum:
        """
        Verifica che la transizione sia nella matrice.

        Raises:
            IllegalTransitionError: se la transizione non è consentita
        """
        current = self.status_of(document)
        target = self.parse_status(new_status)
        if target not in self.transitions.get(current, []):
            logger.warning(
                "Transizione non consentita per %s %s: %s -> %s",
                self.document_type.value,
                document.number or document.id,
                current.value,
                target.value,
            )
            raise IllegalTransitionError(
                self.document_type.value, document.id, current.value, target.value
            )
        return target

    def check_preconditions(self, document, new_status) -> None:
        target = self.parse_status(new_status)
        check = self.preconditions.get(target)
        if check is None:
            return
        problems = check(document)
        if not problems:
            return
        if target == self.signing_status:
            raise SigningPreconditionError(self.document_type.value, document.id, problems)
        raise BusinessValidationError(
            "Operazione non consentita: " + "; ".join(problems),
            extra={"problems": problems},
        )

    def transition(self, document, new_status) -> Enum:
        """
        Applica una transizione di stato.

        Ordine: legalità della transizione, precondizioni, cambio di stato.
        Un fallimento lascia il documento invariato.

        Returns:
            Lo stato precedente
        """
        target = self.check_transition(document, new_status)
        self.check_preconditions(document, target)
        previous = self.status_of(document)
        document.status = target.value
        logger.info(
            "%s %s: %s -> %s",
            self.document_type.value,
            document.number or document.id,
            previous.value,
            target.value,
        )
        return previous


QUOTE_STATE_MACHINE = DocumentStateMachine(
    DocumentType.QUOTE,
    QuoteStatus,
    VALID_QUOTE_TRANSITIONS,
    FINAL_QUOTE_STATUSES,
    {
        QuoteStatus.SENT: quote_send_problems,
        QuoteStatus.SIGNED: quote_signing_problems,
    },
    signing_status=QuoteStatus.SIGNED,
)

AMENDMENT_STATE_MACHINE = DocumentStateMachine(
    DocumentType.AMENDMENT,
    AmendmentStatus,
    VALID_AMENDMENT_TRANSITIONS,
    frozenset({AmendmentStatus.SIGNED}),
    {AmendmentStatus.SIGNED: amendment_signing_problems},
    signing_status=AmendmentStatus.SIGNED,
)

INVOICE_STATE_MACHINE = DocumentStateMachine(
    DocumentType.INVOICE,
    InvoiceStatus,
    VALID_INVOICE_TRANSITIONS,
    EMITTED_INVOICE_STATUSES,
    {InvoiceStatus.ISSUED: invoice_issue_problems},
)

CREDIT_NOTE_STATE_MACHINE = DocumentStateMachine(
    DocumentType.CREDIT_NOTE,
    CreditNoteStatus,
    VALID_CREDIT_NOTE_TRANSITIONS,
    EMITTED_CREDIT_NOTE_STATUSES,
    {CreditNoteStatus.ISSUED: credit_note_issue_problems},
)

STATE_MACHINES = {
    Quote: QUOTE_STATE_MACHINE,
    Amendment: AMENDMENT_STATE_MACHINE,
    Invoice: INVOICE_STATE_MACHINE,
    CreditNote: CREDIT_NOTE_STATE_MACHINE,
}


def get_state_machine(document) -> DocumentStateMachine:
    try:
        return STATE_MACHINES[type(document)]
    except KeyError:
        raise BusinessValidationError(
            f"Nessuna macchina a stati per {type(document).__name__}"
        ) from None


def transition(document, new_status) -> Enum:
    """Applica una transizione con la macchina del tipo di documento."""
    return get_state_machine(document).transition(document, new_status)


def is_locked(document) -> bool:
    return get_state_machine(document).is_locked(document)
