"""Tests for the logging utility module."""

import structlog


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_default(self, mock_env_vars):
        """Test configure_logging with defaults."""
        from ledgersync.utils.logging import configure_logging

        # Should not raise
        configure_logging()

    def test_configure_logging_json_format(self, mock_env_vars):
        """Test configure_logging with JSON output."""
        from ledgersync.utils.logging import configure_logging

        configure_logging(level="WARNING", json_format=True, include_timestamp=False)


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_with_context(self, mock_env_vars):
        """Test get_logger binds context."""
        from ledgersync.utils.logging import configure_logging, get_logger

        configure_logging()
        logger = get_logger("ledgersync.test", component="orchestrator")

        assert logger is not None
        logger.info("bound logger works")


class TestLogContext:
    """Tests for LogContext."""

    def test_binds_and_unbinds(self, mock_env_vars):
        """Test context variables live only inside the block."""
        from ledgersync.utils.logging import LogContext

        with LogContext(actor="user-7", entity_type="supplier"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["actor"] == "user-7"
            assert bound["entity_type"] == "supplier"

        assert "actor" not in structlog.contextvars.get_contextvars()


class TestLogOperation:
    """Tests for log_operation."""

    def test_yields_result_dict(self, mock_env_vars):
        """Test the operation dict is yielded."""
        from ledgersync.utils.logging import log_operation

        with log_operation("resolve_conflict", server_id=12) as op:
            op["version"] = 4

        assert op["version"] == 4

    def test_reraises_errors(self, mock_env_vars):
        """Test failures propagate."""
        import pytest

        from ledgersync.utils.logging import log_operation

        with pytest.raises(ValueError):
            with log_operation("sync_batch"):
                raise ValueError("bad")
