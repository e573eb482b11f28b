"""
Guardia di immutabilità dei documenti
Progetto: Billing Engine (Facturation)

Un documento firmato o emesso non può più essere modificato, salvo i
campi della whitelist del suo tipo (stato, date di firma/invio/pagamento,
dati scritti dai collaboratori PDF/PDP). Le correzioni passano da un
nuovo documento collegato (variante o nota di credito).

Tutte le scritture dei servizi passano da `apply_changes` (intestazione)
o `guard_line_write` (righe), nella stessa transazione della modifica
e sullo stato letto prima della scrittura.
"""

import logging
from typing import Any, Dict, FrozenSet, List, Mapping

from app.core.exceptions import ImmutableDocumentError
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Invoice
from app.models.quote import Quote
from app.services.state_machine import get_state_machine

logger = logging.getLogger(__name__)


# Campi modificabili anche a documento bloccato
LOCKED_FIELD_WHITELIST: Dict[type, FrozenSet[str]] = {
    Quote: frozenset({
        "status",
        "signature_date",
        "client_signature",
        "updated_at",
    }),
    Invoice: frozenset({
        "status",
        "paid_at",
        "sent_at",
        "updated_at",
        "pdp_status",
        "pdp_provider",
        "pdp_transmission_date",
        "pdp_response",
        "pdf_filename",
        "pdf_hash",
        "sent_count",
        "delivery_channel",
    }),
    Amendment: frozenset({
        "status",
        "signature_date",
        "client_signature",
        "updated_at",
        "pdf_filename",
        "pdf_hash",
    }),
    CreditNote: frozenset({
        "status",
        "issued_at",
        "updated_at",
    }),
}


def changed_fields(document, changes: Mapping[str, Any]) -> List[str]:
    """Campi il cui nuovo valore differisce da quello corrente."""
    changed = []
    for field, new_value in changes.items():
        if not hasattr(document, field):
            raise AttributeError(f"{type(document).__name__} non ha il campo '{field}'")
        if field == "status" and hasattr(new_value, "value"):
            new_value = new_value.value
        if getattr(document, field) != new_value:
            changed.append(field)
    return changed


def guard_write(document, changes: Mapping[str, Any]) -> List[str]:
    """
    Verifica che una scrittura sia consentita sul documento.

    Il blocco è determinato dallo stato corrente (quello persistito),
    non da quello eventualmente in scrittura. La legalità della
    transizione è verificata indipendentemente dalla whitelist.

    Args:
        document: Quote, Amendment, Invoice o CreditNote
        changes: Mappa campo → nuovo valore

    Returns:
        Lista dei campi effettivamente modificati

    Raises:
        IllegalTransitionError: se status cambia verso uno stato non raggiungibile
        ImmutableDocumentError: se il documento è bloccato e un campo modificato
            non è in whitelist
    """
    machine = get_state_machine(document)
    changed = changed_fields(document, changes)

    if "status" in changed:
        machine.check_transition(document, changes["status"])

    if machine.is_locked(document):
        whitelist = LOCKED_FIELD_WHITELIST[type(document)]
        forbidden = [field for field in changed if field not in whitelist]
        if forbidden:
            logger.warning(
                "Scrittura rifiutata su %s %s (stato %s): %s",
                machine.document_type.value,
                document.number or document.id,
                document.status,
                ", ".join(forbidden),
            )
            raise ImmutableDocumentError(
                machine.document_type.value,
                document.id,
                document.number,
                forbidden,
            )

    return changed


def apply_changes(document, changes: Mapping[str, Any]) -> List[str]:
    """
    Applica le modifiche dopo averle validate con guard_write.

    Un cambio di stato passa dalla macchina a stati (precondizioni comprese)
    dopo la verifica della whitelist; gli altri campi sono assegnati
    direttamente. Nessun campo viene scritto se la verifica fallisce.

    Returns:
        Lista dei campi modificati
    """
    changed = guard_write(document, changes)
    if "status" in changed:
        get_state_machine(document).check_preconditions(document, changes["status"])

    for field in changed:
        if field == "status":
            continue
        setattr(document, field, changes[field])

    if "status" in changed:
        get_state_machine(document).transition(document, changes["status"])

    return changed


def guard_line_write(parent, line=None) -> None:
    """
    Rifiuta creazione, modifica o cancellazione di una riga di un documento bloccato.

    Controllo indipendente da quello sull'intestazione: una riga
    appartiene al documento e ne segue il blocco.
    """
    machine = get_state_machine(parent)
    if machine.is_locked(parent):
        field = "lines"
        if line is not None and getattr(line, "id", None) is not None:
            field = f"lines[{line.id}]"
        logger.warning(
            "Modifica riga rifiutata su %s %s (stato %s)",
            machine.document_type.value,
            parent.number or parent.id,
            parent.status,
        )
        raise ImmutableDocumentError(
            machine.document_type.value,
            parent.id,
            parent.number,
            [field],
        )
