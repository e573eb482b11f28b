"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Billing Engine (Facturation)

Engine, session factory, dependency FastAPI e sessioni per i comandi
pianificati. I servizi fanno commit da soli: qui si gestisce solo il
rollback della transazione rimasta aperta in caso di errore.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    # Visibile in pg_stat_activity / pg_locks durante le attese sugli advisory lock
    connect_args={"server_settings": {"application_name": "billing-engine"}},
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
# expire_on_commit=False: i documenti restano leggibili dopo il commit,
# le notifiche partono dopo il commit usando numero e stato già caricati.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Una sessione per richiesta. Se l'operazione fallisce prima del commit
    (transizione illegale, documento bloccato, conflitto di numerazione)
    la transazione viene annullata e nessuna modifica parziale resta in sessione.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def background_session(job: str) -> AsyncIterator[AsyncSession]:
    """Sessione per un comando pianificato (scadenze, solleciti, rinnovi)."""
    async with AsyncSessionLocal() as session:
        logger.debug("Sessione aperta per il comando %s", job)
        try:
            yield session
        except Exception:
            logger.error("Comando %s interrotto, rollback della transazione", job)
            await session.rollback()
            raise


async def init_db() -> None:
    """Verifica che il database sia raggiungibile all'avvio dell'API."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def create_schema() -> None:
    """Crea le tabelle mancanti (comando init-db)."""
    from app.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema creato: %d tabelle", len(Base.metadata.tables))


async def close_db() -> None:
    """Chiude il pool di connessioni (shutdown API e fine comando)."""
    await engine.dispose()
    logger.info("Connessioni database chiuse")
