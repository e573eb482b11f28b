"""
Test per i comandi pianificati.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app import commands
from app.core import database


class TestCommands:
    """Test parsing ed exit code."""

    def test_parse_renew_days_before(self):
        """Test opzione --days-before"""
        args = commands.build_parser().parse_args(["renew-subscriptions", "--days-before", "3"])
        assert args.command == "renew-subscriptions"
        assert args.days_before == 3

    def test_success_exit_code(self):
        """Test comando riuscito"""
        with patch.object(commands, "expire_quotes", AsyncMock()) as expire, patch.object(
            commands, "close_db", AsyncMock()
        ) as close:
            assert commands.main(["expire-quotes"]) == 0
        expire.assert_awaited_once()
        close.assert_awaited_once()

    def test_failure_exit_code(self):
        """Test comando fallito: exit code 1 e connessioni chiuse"""
        failing = AsyncMock(side_effect=RuntimeError("2 rinnovi falliti"))
        with patch.object(commands, "renew_subscriptions", failing), patch.object(
            commands, "close_db", AsyncMock()
        ) as close:
            assert commands.main(["renew-subscriptions"]) == 1
        failing.assert_awaited_once_with(0)
        close.assert_awaited_once()

    async def test_background_session_rolls_back(self, mock_db):
        """Test rollback della sessione quando il comando fallisce"""
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=mock_db)
        factory.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(database, "AsyncSessionLocal", factory):
            with pytest.raises(RuntimeError):
                async with database.background_session("expire-quotes"):
                    raise RuntimeError("sweep interrotto")

        mock_db.rollback.assert_awaited_once()
