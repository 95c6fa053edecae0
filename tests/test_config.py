"""Tests for configuration module."""

import pytest
from pydantic import ValidationError


class TestSettings:
    """Tests for Settings class."""

    def test_settings_default_values(self, mock_env_vars):
        """Test default values are set correctly."""
        from ledgersync.config import Settings, StoreBackend

        settings = Settings()
        assert settings.database_url is None
        assert settings.store_backend == StoreBackend.MEMORY
        assert settings.sync_max_batch_size == 500
        assert settings.change_feed_page_cap == 1000
        assert settings.change_feed_lag_seconds == 2.0
        assert settings.default_entity_type == "supplier"
        assert settings.server_port == 8000
        assert settings.debug is False

    def test_settings_loads_from_env(self, mock_env_vars, monkeypatch):
        """Test that settings loads from environment variables."""
        from ledgersync.config import Settings, StoreBackend

        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/ledger")
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
        monkeypatch.setenv("CHANGE_FEED_PAGE_CAP", "200")

        settings = Settings()
        assert settings.store_backend == StoreBackend.POSTGRES
        assert settings.supabase_service_key.get_secret_value() == "service-key"
        assert settings.change_feed_page_cap == 200
        assert settings.log_level == "DEBUG"

    def test_batch_size_must_be_positive(self, mock_env_vars, monkeypatch):
        """Test limits are validated."""
        from ledgersync.config import Settings

        monkeypatch.setenv("SYNC_MAX_BATCH_SIZE", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings(self, mock_env_vars):
        """Test get_settings returns a Settings instance."""
        from ledgersync.config import Settings, get_settings

        assert isinstance(get_settings(), Settings)


class TestCreateRecordStore:
    """Tests for store selection."""

    def test_memory_without_database(self, mock_env_vars):
        """Test the in-memory store is the default."""
        from ledgersync.config import Settings
        from ledgersync.storage import InMemoryRecordStore, create_record_store

        assert isinstance(create_record_store(Settings()), InMemoryRecordStore)

    def test_postgres_with_database(self, mock_env_vars, monkeypatch):
        """Test a database URL selects PostgreSQL."""
        from ledgersync.config import Settings
        from ledgersync.storage import PostgresRecordStore, create_record_store

        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/ledger")
        monkeypatch.setenv("DB_POOL_MAX_SIZE", "4")

        store = create_record_store(Settings())
        assert isinstance(store, PostgresRecordStore)
        assert store.max_size == 4
