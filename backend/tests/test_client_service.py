"""
Test per l'anagrafica clienti.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError
from app.schemas.client import ClientCreate, ClientUpdate
from app.services.client_service import ClientService
from tests.factories import make_client, make_result, register


class TestClientService:
    """Test creazione, modifica e disattivazione."""

    async def test_duplicate_siret(self, mock_db):
        """Test SIRET già registrato"""
        mock_db.execute.return_value = make_result(scalar=make_client())
        data = ClientCreate(name="Martin", client_type="company", siret="732 829 320 00074")

        with pytest.raises(ConflictError):
            await ClientService().create(mock_db, data)
        mock_db.add.assert_not_called()

    async def test_integrity_error_on_commit(self, mock_db):
        """Test vincolo violato al commit"""
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(ConflictError):
            await ClientService().create(mock_db, ClientCreate(name="Martin"))
        mock_db.rollback.assert_awaited_once()

    async def test_update_fields(self, mock_db):
        """Test modifica parziale"""
        client = make_client()
        register(mock_db, client)

        await ClientService().update(mock_db, client.id, ClientUpdate(city="Lyon"))

        assert client.city == "Lyon"
        assert client.name == "Dupont"

    async def test_deactivated_client_hidden(self, mock_db):
        """Test cliente disattivato non più visibile"""
        client = make_client()
        register(mock_db, client)
        service = ClientService()

        await service.deactivate(mock_db, client.id)

        assert client.is_active is False
        with pytest.raises(NotFoundError):
            await service.get_by_id(mock_db, client.id)
        assert await service.get_by_id(mock_db, client.id, include_inactive=True) is client
