"""
Scadenza dei preventivi
Progetto: Billing Engine (Facturation)

Un preventivo non finale la cui data di validità è passata diventa
EXPIRED: in modo pigro alla lettura (QuoteService.get_by_id) e con una
scansione periodica (comando expire-quotes).
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.quote import Quote
from app.schemas.quote import QuoteStatus
from app.services.notification import Notifier, default_notifier
from app.services.state_machine import QUOTE_STATE_MACHINE

logger = logging.getLogger(__name__)

EXPIRABLE_STATUSES = (QuoteStatus.DRAFT.value, QuoteStatus.SENT.value)


def is_past_validity(quote: Quote, today: Optional[date] = None) -> bool:
    """True se il preventivo non è finale e la validità è scaduta (valid_until < oggi)."""
    today = today or date.today()
    if quote.valid_until is None or quote.status not in EXPIRABLE_STATUSES:
        return False
    return quote.valid_until < today


def expire_if_needed(quote: Quote, today: Optional[date] = None) -> bool:
    """
    Porta il preventivo in EXPIRED se la validità è passata.

    Returns:
        True se lo stato è cambiato
    """
    if not is_past_validity(quote, today):
        return False
    QUOTE_STATE_MACHINE.transition(quote, QuoteStatus.EXPIRED)
    return True


async def sweep_expired_quotes(
    db: AsyncSession,
    notifier: Notifier = default_notifier,
    today: Optional[date] = None,
) -> int:
    """
    Scade tutti i preventivi non finali con validità passata.

    Un'unica transazione per l'intera scansione; le notifiche partono
    dopo il commit.

    Returns:
        Numero di preventivi scaduti
    """
    today = today or date.today()
    stmt = (
        select(Quote)
        .where(
            Quote.status.in_(EXPIRABLE_STATUSES),
            Quote.valid_until.is_not(None),
            Quote.valid_until < today,
        )
        .order_by(Quote.valid_until)
    )
    result = await db.execute(stmt)
    expired = [quote for quote in result.scalars().all() if expire_if_needed(quote, today)]

    await db.commit()

    for quote in expired:
        notifier.notify("quote", quote.id, "quote_expired")

    logger.info("Scansione scadenze: %d preventivi scaduti", len(expired))
    return len(expired)
