"""
Collaboratore di notifica
Progetto: Billing Engine (Facturation)

Il motore chiama `notify(document_type, document_id, event)` dopo ogni
transizione di stato e non attende conferma di consegna. L'invio reale
(email, webhook) è fuori dal motore: l'implementazione di default
registra l'evento nel log.
"""

import logging
import uuid
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Interfaccia del collaboratore di notifica."""

    def notify(self, document_type: str, document_id: uuid.UUID, event: str) -> None:
        ...


class LoggingNotifier:
    """Notifier di default: registra l'evento nel log applicativo."""

    def notify(self, document_type: str, document_id: uuid.UUID, event: str) -> None:
        logger.info("Notifica %s per %s %s", event, document_type, document_id)


default_notifier = LoggingNotifier()
