"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, patch

import pytest


class TestCli:
    """Tests for cli()."""

    def test_serve(self, mock_env_vars):
        """Test serve starts uvicorn with the given address."""
        from ledgersync import main

        with patch.object(main, "serve") as mock_serve, \
                patch.object(main, "configure_logging"):
            main.cli(["serve", "--host", "127.0.0.1", "--port", "9000"])

        mock_serve.assert_called_once_with("127.0.0.1", 9000, reload=False)

    def test_init_db(self, mock_env_vars):
        """Test init-db creates the schema."""
        from ledgersync import main

        with patch.object(main, "init_db", new=AsyncMock()) as mock_init, \
                patch.object(main, "configure_logging"):
            main.cli(["init-db", "--database-url", "postgresql://localhost/ledger"])

        mock_init.assert_awaited_once_with("postgresql://localhost/ledger")

    def test_init_db_without_url(self, mock_env_vars):
        """Test init-db exits when no database is configured."""
        from ledgersync import main

        with patch.object(main, "configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main.cli(["init-db"])
        assert exc_info.value.code == 1

    def test_command_required(self, mock_env_vars):
        """Test a subcommand is required."""
        from ledgersync import main

        with pytest.raises(SystemExit):
            main.cli([])

    @pytest.mark.asyncio
    async def test_init_db_closes_store(self, mock_env_vars):
        """Test the schema helper always releases its pool."""
        from ledgersync import main

        with patch.object(main.PostgresRecordStore, "ensure_schema", new=AsyncMock()) as ensure, \
                patch.object(main.PostgresRecordStore, "close", new=AsyncMock()) as close:
            await main.init_db("postgresql://localhost/ledger")

        ensure.assert_awaited_once()
        close.assert_awaited_once()
