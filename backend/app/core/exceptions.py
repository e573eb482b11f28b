"""
Eccezioni Custom per l'applicazione.
Progetto: Billing Engine (Facturation)

Definisce eccezioni specifiche del dominio per una gestione
centralizzata degli errori.

NOTA: BusinessValidationError è volutamente distinta da pydantic.ValidationError.
- pydantic.ValidationError: errori di formato/tipo nei dati di input (gestiti da FastAPI → 422)
- BusinessValidationError: violazioni delle regole di business logic (gestiti dal nostro handler → 422)

Le eccezioni del motore documentale (ImmutableDocumentError, IllegalTransitionError,
SigningPreconditionError, NumberingConflictError) trasportano in `extra` i dati
necessari allo strato esterno per costruire un messaggio per l'utente.
"""

from typing import Any, Dict, List, Optional, Sequence

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ValidationError",       # alias di BusinessValidationError
    "ConflictError",
    "ImmutableDocumentError",
    "IllegalTransitionError",
    "SigningPreconditionError",
    "NumberingConflictError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Tutte le eccezioni custom ereditano da questa classe base.

    Attributes:
        status_code: HTTP status code da restituire al client
        error_code: Identificativo univoco dell'errore per il frontend
        detail: Messaggio di errore leggibile per l'utente
        extra: Dizionario con dati aggiuntivi per il frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Inizializza l'eccezione.

        Args:
            detail: Messaggio di errore dettagliato
            error_code: Identificativo univoco (default: quello di classe)
            extra: Dati aggiuntivi da passare al frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """
    Eccezione sollevata quando una risorsa non viene trovata.

    Utilizzata quando un documento, una riga sorgente o un cliente
    referenziato non esiste nel database.
    """

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Risorsa non trovata",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Eccezione sollevata per violazioni delle regole di business logic.

    Eredita da ValueError per essere catturata dai validatori Pydantic.

    Esempi di utilizzo:
        - "Il preventivo deve contenere almeno una riga"
        - "La fattura non ha una data di scadenza"
        - "La nota di credito richiede un motivo"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validazione dati fallita",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Chiama AppException.__init__ direttamente per evitare ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias per compatibilità
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Eccezione sollevata per conflitti di stato.

    Utilizzata quando un'operazione non può essere eseguita
    a causa dello stato corrente della risorsa.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "Conflitto di stato",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ImmutableDocumentError(AppException):
    """
    Scrittura rifiutata su un documento bloccato (firmato o emesso).

    Un documento bloccato accetta modifiche solo sui campi della whitelist
    del proprio tipo. Porta con sé numero del documento e campi rifiutati.
    """

    status_code: int = 409
    error_code: str = "IMMUTABLE_DOCUMENT"

    def __init__(
        self,
        document_type: str,
        document_id: Any,
        number: Optional[str],
        fields: Sequence[str],
        detail: Optional[str] = None,
    ) -> None:
        self.document_type = document_type
        self.document_id = document_id
        self.number = number
        self.fields: List[str] = sorted(fields)
        if detail is None:
            label = number or str(document_id)
            detail = (
                f"Il documento {label} è bloccato: "
                f"modifica non consentita su {', '.join(self.fields)}"
            )
        super().__init__(
            detail,
            extra={
                "document_type": document_type,
                "document_id": str(document_id) if document_id is not None else None,
                "number": number,
                "fields": self.fields,
            },
        )


class IllegalTransitionError(AppException):
    """Transizione di stato non presente nella tabella delle transizioni ammesse."""

    status_code: int = 409
    error_code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        document_type: str,
        document_id: Any,
        from_status: str,
        to_status: str,
    ) -> None:
        self.document_type = document_type
        self.document_id = document_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Transizione da '{from_status}' a '{to_status}' non consentita",
            extra={
                "document_type": document_type,
                "document_id": str(document_id) if document_id is not None else None,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


class SigningPreconditionError(BusinessValidationError):
    """
    Il documento non soddisfa le condizioni per la firma.

    Sollevata prima di qualsiasi cambio di stato: il documento resta
    nello stato corrente.
    """

    error_code: str = "SIGNING_PRECONDITION_FAILED"

    def __init__(
        self,
        document_type: str,
        document_id: Any,
        problems: Sequence[str],
    ) -> None:
        self.document_type = document_type
        self.document_id = document_id
        self.problems = list(problems)
        super().__init__(
            "Documento non firmabile: " + "; ".join(self.problems),
            extra={
                "document_type": document_type,
                "document_id": str(document_id) if document_id is not None else None,
                "problems": self.problems,
            },
        )


class NumberingConflictError(ConflictError):
    """
    Numero documento duplicato rilevato al commit.

    Indica una corsa benigna tra due scrittori: il chiamante deve ripetere
    l'operazione con una nuova lettura della sequenza (vedi with_numbering_retry).
    """

    error_code: str = "NUMBERING_CONFLICT"

    def __init__(
        self,
        document_type: str,
        number: Optional[str] = None,
    ) -> None:
        self.document_type = document_type
        self.number = number
        super().__init__(
            f"Conflitto di numerazione per {document_type} {number or ''}".rstrip(),
            extra={"document_type": document_type, "number": number},
        )
