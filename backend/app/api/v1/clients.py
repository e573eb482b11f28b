"""
Router FastAPI per l'entità Client
Progetto: Billing Engine (Facturation)

Definisce gli endpoint API per la gestione dei clienti.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.client import ClientCreate, ClientList, ClientRead, ClientUpdate
from app.services.client_service import ClientService

router = APIRouter(
    prefix="/clients",
    tags=["Clienti"],
)


def get_client_service() -> ClientService:
    """Dependency per ottenere un'istanza del ClientService."""
    return ClientService()


@router.get(
    "/",
    name="clienti_lista",
    summary="Lista clienti",
    response_model=ClientList,
    status_code=status.HTTP_200_OK,
)
async def get_clients(
    page: int = Query(1, ge=1, description="Numero pagina"),
    per_page: int = Query(20, ge=1, le=100, description="Elementi per pagina"),
    search: Optional[str] = Query(None, description="Termine di ricerca"),
    include_inactive: bool = Query(False, description="Includi clienti disattivati"),
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientList:
    clients, total = await service.get_all(
        db=db,
        page=page,
        per_page=per_page,
        search=search,
        include_inactive=include_inactive,
    )
    return ClientList(
        items=[ClientRead.model_validate(c) for c in clients],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/{client_id}",
    name="cliente_dettaglio",
    summary="Dettaglio cliente",
    response_model=ClientRead,
)
async def get_client(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientRead:
    client = await service.get_by_id(db=db, client_id=client_id)
    return ClientRead.model_validate(client)


@router.post(
    "/",
    name="cliente_crea",
    summary="Crea cliente",
    response_model=ClientRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_client(
    data: ClientCreate,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientRead:
    client = await service.create(db=db, client_data=data)
    return ClientRead.model_validate(client)


@router.patch(
    "/{client_id}",
    name="cliente_aggiorna",
    summary="Aggiorna cliente",
    response_model=ClientRead,
)
async def update_client(
    client_id: uuid.UUID,
    data: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientRead:
    client = await service.update(db=db, client_id=client_id, client_data=data)
    return ClientRead.model_validate(client)


@router.delete(
    "/{client_id}",
    name="cliente_disattiva",
    summary="Disattiva cliente",
    description="Cancellazione logica: i documenti già emessi restano collegati.",
    response_model=ClientRead,
)
async def deactivate_client(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientRead:
    client = await service.deactivate(db=db, client_id=client_id)
    return ClientRead.model_validate(client)
