"""
Pytest configuration and fixtures for the billing engine tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import FakeNumbering, RecordingNotifier, make_result


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """
    Crea un mock di AsyncSession.

    `get` legge da un registro in memoria (vedi factories.register);
    `execute` restituisce un risultato vuoto salvo configurazione.
    """
    db = AsyncMock(spec=AsyncSession)
    db._store = {}

    async def get(model, object_id):
        return db._store.get((model, object_id))

    db.get = AsyncMock(side_effect=get)
    db.execute = AsyncMock(return_value=make_result())
    db.add = MagicMock()
    db.delete = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    return db


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def numbering():
    return FakeNumbering()
