"""
Service Layer per l'entità Client
Progetto: Billing Engine (Facturation)

Anagrafica clienti con cancellazione logica: un cliente disattivato
resta referenziato dai documenti già emessi.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.models import Client
from app.schemas.client import ClientCreate, ClientUpdate

# Logger per questo modulo
logger = logging.getLogger(__name__)


class ClientService:
    """
    Service per la gestione dei clienti.

    Implementa:
    - Soft Delete: cancellazione logica tramite flag is_active
    - Controllo duplicati SIRET prima del create
    - Filtro Automatico: di default esclude i clienti disattivati
    """

    async def get_all(
        self,
        db: AsyncSession,
        page: int = 1,
        per_page: int = 20,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> tuple[list[Client], int]:
        """
        Recupera la lista paginata dei clienti.

        Args:
            db: Sessione database
            page: Numero pagina (default 1)
            per_page: Elementi per pagina
            search: Termine di ricerca su nome, cognome, SIRET, email
            include_inactive: Se True, include anche i clienti disattivati

        Returns:
            Tuple di (lista clienti, totale count)
        """
        conditions = []
        if not include_inactive:
            conditions.append(Client.is_active.is_(True))
        if search:
            search_term = f"%{search}%"
            conditions.append(
                or_(
                    Client.name.ilike(search_term),
                    Client.surname.ilike(search_term),
                    Client.siret.ilike(search_term),
                    Client.email.ilike(search_term),
                )
            )

        count_result = await db.execute(select(func.count()).select_from(Client).where(*conditions))
        total = count_result.scalar() or 0

        query = (
            select(Client)
            .where(*conditions)
            .order_by(Client.name.asc(), Client.surname.asc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(query)
        clients = list(result.scalars().all())

        logger.info("Recuperati %s clienti su %s totali (pagina %s)", len(clients), total, page)
        return clients, total

    async def get_by_id(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> Client:
        client = await db.get(Client, client_id)
        if client is None or (not include_inactive and not client.is_active):
            logger.warning("Cliente non trovato o disattivato: %s", client_id)
            raise NotFoundError(f"Cliente con ID {client_id} non trovato")
        return client

    async def create(self, db: AsyncSession, client_data: ClientCreate) -> Client:
        """
        Crea un nuovo cliente.

        Raises:
            ConflictError: SIRET già registrato
        """
        if client_data.siret:
            result = await db.execute(select(Client).where(Client.siret == client_data.siret))
            if result.scalar_one_or_none() is not None:
                logger.warning("Tentativo di creare cliente con SIRET duplicato: %s", client_data.siret)
                raise ConflictError(f"SIRET '{client_data.siret}' già registrato per un altro cliente")

        client = Client(**client_data.model_dump())
        db.add(client)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Errore IntegrityError creazione cliente: %s", e.orig)
            raise ConflictError("Errore durante la creazione del cliente") from e
        await db.refresh(client)

        logger.info("Creato nuovo cliente: %s - %s", client.id, client.display_name)
        return client

    async def update(
        self, db: AsyncSession, client_id: uuid.UUID, client_data: ClientUpdate
    ) -> Client:
        client = await self.get_by_id(db, client_id)
        for field, value in client_data.model_dump(exclude_unset=True).items():
            setattr(client, field, value)
        await db.commit()
        await db.refresh(client)
        logger.info("Aggiornato cliente: %s - %s", client.id, client.display_name)
        return client

    async def deactivate(self, db: AsyncSession, client_id: uuid.UUID) -> Client:
        """Cancellazione logica (is_active=False)."""
        client = await self.get_by_id(db, client_id)
        client.is_active = False
        await db.commit()
        await db.refresh(client)
        logger.info("Cliente disattivato: %s", client.id)
        return client
