"""
Service Layer per la Numerazione dei documenti
Progetto: Billing Engine (Facturation)

Formati:
- Preventivo:     DEV-YYYY-MM-NNN  (sequenza per anno e mese)
- Fattura:        FACT-YYYY-NNN    (sequenza annuale senza buchi)
- Nota di credito: AV-YYYY-NNN     (sequenza annuale)
- Variante:       {anno}-{seq}-A{n} (derivato dal numero del preventivo)

Il calcolo "ultimo + 1" è serializzato con un advisory lock PostgreSQL
per ambito (tipo + anno/mese o preventivo padre), tenuto fino alla fine
della transazione. Il vincolo unique sul numero (per le varianti la coppia
preventivo + numero) resta l'ultima difesa: un duplicato al flush diventa
NumberingConflictError, da ripetere con with_numbering_retry.
"""

import logging
import re
import zlib
from datetime import date
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, NotFoundError, NumberingConflictError
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Invoice
from app.models.quote import Quote

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUOTE_NUMBER_PATTERN = re.compile(r"^DEV-(\d{4})-(?:\d{2}-)?(\d+)$")


class NumberingService:
    """Assegna numeri leggibili e univoci ai documenti."""

    async def assign_number(
        self,
        db: AsyncSession,
        document,
        on_date: Optional[date] = None,
    ) -> Optional[str]:
        """
        Assegna il numero al documento se non ne ha già uno.

        Idempotente: un documento già numerato non viene toccato.
        Per le varianti il numero è differito (None) finché il
        preventivo padre non è numerato.

        Args:
            db: Sessione database
            document: Quote, Amendment, Invoice o CreditNote
            on_date: Data di riferimento per anno/mese (default: oggi)

        Returns:
            Il numero del documento, o None se differito
        """
        if document.number:
            return document.number

        on_date = on_date or date.today()

        if isinstance(document, Quote):
            number = await self._next_quote_number(db, on_date)
        elif isinstance(document, Invoice):
            number = await self._next_yearly_number(db, Invoice, "FACT", on_date.year)
        elif isinstance(document, CreditNote):
            number = await self._next_yearly_number(db, CreditNote, "AV", on_date.year)
        elif isinstance(document, Amendment):
            number = await self._next_amendment_number(db, document)
            if number is None:
                return None
        else:
            raise BusinessValidationError(
                f"Numerazione non prevista per {type(document).__name__}"
            )

        document.number = number
        logger.info("Numero %s assegnato a %s %s", number, type(document).__name__, document.id)
        return number

    async def number_pending_amendments(self, db: AsyncSession, quote: Quote) -> int:
        """Numera le varianti rimaste in attesa del numero del preventivo."""
        if not quote.number:
            return 0
        result = await db.execute(
            select(Amendment)
            .where(Amendment.quote_id == quote.id, Amendment.number.is_(None))
            .order_by(Amendment.created_at)
        )
        count = 0
        for amendment in result.scalars().all():
            if await self.assign_number(db, amendment):
                count += 1
        return count

    # ------------------------------------------------------------
    # Sequenze per tipo
    # ------------------------------------------------------------

    async def _next_quote_number(self, db: AsyncSession, on_date: date) -> str:
        prefix = f"DEV-{on_date.year}-{on_date.month:02d}-"
        await self._lock_scope(db, f"quote:{on_date.year}:{on_date.month:02d}")
        next_seq = self._sequence_after(await self._last_number(db, Quote, prefix), prefix)
        return f"{prefix}{next_seq:03d}"

    async def _next_yearly_number(self, db: AsyncSession, model, code: str, year: int) -> str:
        prefix = f"{code}-{year}-"
        await self._lock_scope(db, f"{model.__tablename__}:{year}")
        next_seq = self._sequence_after(await self._last_number(db, model, prefix), prefix)
        return f"{prefix}{next_seq:03d}"

    async def _next_amendment_number(self, db: AsyncSession, amendment: Amendment) -> Optional[str]:
        quote = await db.get(Quote, amendment.quote_id)
        if quote is None:
            raise NotFoundError(f"Preventivo {amendment.quote_id} non trovato")

        if not quote.number:
            logger.debug(
                "Numerazione variante %s differita: preventivo %s senza numero",
                amendment.id,
                quote.id,
            )
            return None

        match = QUOTE_NUMBER_PATTERN.match(quote.number)
        if not match:
            raise BusinessValidationError(
                f"Numero preventivo '{quote.number}' non riconosciuto"
            )
        quote_year, quote_seq = match.groups()

        prefix = f"{quote_year}-{quote_seq}-A"
        await self._lock_scope(db, f"amendment:{quote.id}")
        last = await self._last_number(db, Amendment, prefix, Amendment.quote_id == quote.id)
        return f"{prefix}{self._sequence_after(last, prefix)}"

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    @staticmethod
    def _sequence_after(last_number: Optional[str], prefix: str) -> int:
        if not last_number:
            return 1
        return int(last_number[len(prefix):]) + 1

    async def _lock_scope(self, db: AsyncSession, scope: str) -> None:
        """Advisory lock transazionale sull'ambito di numerazione."""
        lock_key = zlib.crc32(scope.encode("utf-8"))
        await db.execute(text("SELECT pg_advisory_xact_lock(:lock_key)"), {"lock_key": lock_key})

    async def _last_number(self, db: AsyncSession, model, prefix: str, *criteria) -> Optional[str]:
        """
        Ultimo numero assegnato con il prefisso dato.

        Ordinato per lunghezza e poi alfabeticamente: "…-1000" segue "…-999".
        `criteria` restringe l'ambito (varianti: solo quelle del preventivo padre).
        """
        stmt = (
            select(model.number)
            .where(model.number.like(f"{prefix}%"), *criteria)
            .order_by(func.length(model.number).desc(), model.number.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()


# ------------------------------------------------------------
# Conflitti e retry
# ------------------------------------------------------------

async def flush_numbered(db: AsyncSession, document, document_type: str) -> None:
    """
    Flush di un documento appena numerato.

    Un IntegrityError sul numero diventa NumberingConflictError dopo il rollback.
    """
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(
            "Conflitto di numerazione per %s %s: %s", document_type, document.number, e
        )
        raise NumberingConflictError(document_type, document.number) from e


async def commit_numbered(db: AsyncSession, document, document_type: str) -> None:
    """Commit con la stessa conversione dei conflitti di numerazione."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(
            "Conflitto di numerazione per %s %s: %s", document_type, document.number, e
        )
        raise NumberingConflictError(document_type, document.number) from e


async def with_numbering_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
) -> T:
    """
    Esegue un'operazione transazionale ripetendola in caso di conflitto di numerazione.

    L'operazione deve rileggere la sequenza a ogni tentativo (nuova transazione).

    Args:
        operation: Coroutine function senza argomenti
        attempts: Tentativi massimi (default: settings.numbering_max_attempts)

    Raises:
        NumberingConflictError: se tutti i tentativi falliscono
    """
    attempts = attempts or settings.numbering_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except NumberingConflictError:
            if attempt == attempts:
                logger.error("Conflitto di numerazione non risolto dopo %d tentativi", attempts)
                raise
            logger.warning("Conflitto di numerazione, tentativo %d/%d", attempt + 1, attempts)
