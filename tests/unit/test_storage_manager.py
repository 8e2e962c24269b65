"""
Tests unitarios para StorageManager.

Los backends se mockean; el comportamiento real de un backend esta cubierto
en test_sqlite_backend.py.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from dirsync.application.interfaces.storage_observer import CountingStorageObserver
from dirsync.core.config import Settings
from dirsync.domain.entities.storage import BatchResult
from dirsync.infrastructure.storage.manager import StorageManager, build_backends_from_settings
from dirsync.infrastructure.storage.mssql_backend import MssqlBackend
from dirsync.infrastructure.storage.postgres_backend import PostgresBackend
from dirsync.infrastructure.storage.sqlite_backend import SqliteBackend
from dirsync.shared.exceptions.base import ConfigurationError
from dirsync.shared.exceptions.storage import (
    BackendConnectionError,
    HealthCheckError,
    NoBackendsConfiguredError,
    TableSetupError,
)


def _backend(name: str, stored: int = 3, failed: int = 0) -> MagicMock:
    backend = MagicMock()
    backend.name = name
    backend.initialize = AsyncMock()
    backend.ensure_table = AsyncMock()
    backend.ensure_schema = AsyncMock(return_value=[])
    backend.health_check = AsyncMock()
    backend.cleanup = AsyncMock()
    backend.upsert_batch = AsyncMock(
        return_value=BatchResult(backend=name, table_name="devices", inserted=stored, failed=failed)
    )
    return backend


class TestStorageManager:
    """Tests para StorageManager."""

    def test_requires_at_least_one_backend(self):
        with pytest.raises(NoBackendsConfiguredError):
            StorageManager([])

    def test_backend_names_keep_order(self):
        manager = StorageManager([_backend("SQLite"), _backend("PostgreSQL"), _backend("MSSQL")])

        assert manager.backend_names() == ["SQLite", "PostgreSQL", "MSSQL"]

    def test_observer_is_injected_into_backends(self):
        observer = CountingStorageObserver()
        sqlite = _backend("SQLite")

        StorageManager([sqlite], observer=observer)

        assert sqlite.observer is observer

    # =========================================================================
    # upsert_batch
    # =========================================================================

    @pytest.mark.asyncio
    async def test_upsert_reports_last_backend_count(self):
        """El conteo reportado es el del ultimo backend, no la suma ni el minimo."""
        manager = StorageManager([_backend("SQLite", stored=3), _backend("PostgreSQL", stored=2, failed=1)])

        report = await manager.upsert_batch("devices", [{"serialNumber": "A"}] * 3)

        assert report.stored_count == 2
        assert report.failed_count == 1
        assert report.diverged is True
        assert report.for_backend("SQLite").stored == 3

    @pytest.mark.asyncio
    async def test_upsert_without_divergence(self):
        manager = StorageManager([_backend("SQLite"), _backend("MSSQL")])

        report = await manager.upsert_batch("devices", [{}] * 3)

        assert report.stored_count == 3
        assert report.diverged is False

    @pytest.mark.asyncio
    async def test_hard_error_stops_remaining_backends(self):
        sqlite = _backend("SQLite")
        postgres = _backend("PostgreSQL")
        mssql = _backend("MSSQL")
        postgres.upsert_batch.side_effect = BackendConnectionError("PostgreSQL", "timeout")
        manager = StorageManager([sqlite, postgres, mssql])

        with pytest.raises(BackendConnectionError):
            await manager.upsert_batch("devices", [{}])

        sqlite.upsert_batch.assert_awaited_once()
        mssql.upsert_batch.assert_not_awaited()

    # =========================================================================
    # ensure_table / health_check / cleanup
    # =========================================================================

    @pytest.mark.asyncio
    async def test_ensure_table_names_failing_backend(self):
        postgres = _backend("PostgreSQL")
        postgres.ensure_table.side_effect = RuntimeError("permiso denegado")
        manager = StorageManager([_backend("SQLite"), postgres])

        with pytest.raises(TableSetupError) as exc_info:
            await manager.ensure_table("devices")

        assert exc_info.value.backend == "PostgreSQL"
        assert "devices" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_ensure_table_with_schema_hint(self):
        sqlite = _backend("SQLite")
        manager = StorageManager([sqlite])

        await manager.ensure_table("devices", schema_hint={"serialNumber": "SN"})

        sqlite.ensure_schema.assert_awaited_once_with("devices", {"serialNumber": "SN"})

    @pytest.mark.asyncio
    async def test_health_check_fails_fast(self):
        sqlite = _backend("SQLite")
        sqlite.health_check.side_effect = HealthCheckError("SQLite", "disk I/O error")
        postgres = _backend("PostgreSQL")
        manager = StorageManager([sqlite, postgres])

        with pytest.raises(HealthCheckError) as exc_info:
            await manager.health_check()

        assert exc_info.value.backend == "SQLite"
        postgres.health_check.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_status_reports_every_backend(self):
        sqlite = _backend("SQLite")
        postgres = _backend("PostgreSQL")
        postgres.health_check.side_effect = HealthCheckError("PostgreSQL", "refused")
        manager = StorageManager([sqlite, postgres])

        status = await manager.health_status()

        assert status["SQLite"] == "healthy"
        assert status["PostgreSQL"].startswith("unhealthy")

    @pytest.mark.asyncio
    async def test_cleanup_continues_after_failure(self):
        sqlite = _backend("SQLite")
        sqlite.cleanup.side_effect = RuntimeError("boom")
        mssql = _backend("MSSQL")
        manager = StorageManager([sqlite, mssql])

        await manager.cleanup()

        mssql.cleanup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_in_order(self):
        calls = []
        sqlite = _backend("SQLite")
        sqlite.initialize.side_effect = lambda: calls.append("SQLite")
        postgres = _backend("PostgreSQL")
        postgres.initialize.side_effect = lambda: calls.append("PostgreSQL")

        await StorageManager([sqlite, postgres]).initialize()

        assert calls == ["SQLite", "PostgreSQL"]

    @pytest.mark.asyncio
    async def test_initialize_failure_closes_opened_backends(self):
        """Si un backend no conecta, los ya abiertos se cierran y el error sube."""
        sqlite = _backend("SQLite")
        postgres = _backend("PostgreSQL")
        postgres.initialize.side_effect = BackendConnectionError("PostgreSQL", "refused")
        mssql = _backend("MSSQL")

        with pytest.raises(BackendConnectionError):
            await StorageManager([sqlite, postgres, mssql]).initialize()

        sqlite.cleanup.assert_awaited_once()
        postgres.cleanup.assert_not_awaited()
        mssql.initialize.assert_not_awaited()


class TestBuildBackends:
    """Tests para build_backends_from_settings()."""

    def test_canonical_order(self):
        config = Settings(
            _env_file=None,
            SQLITE_ENABLED=True,
            POSTGRES_ENABLED=True,
            POSTGRES_URL="postgresql+asyncpg://u:p@localhost/db",
            MSSQL_ENABLED=True,
            MSSQL_URL="mssql+aioodbc://u:p@localhost/db?driver=ODBC+Driver+18+for+SQL+Server",
        )

        backends = build_backends_from_settings(config)

        assert [type(b) for b in backends] == [SqliteBackend, PostgresBackend, MssqlBackend]

    def test_enabled_backend_without_url(self):
        config = Settings(_env_file=None, SQLITE_ENABLED=False, POSTGRES_ENABLED=True, POSTGRES_URL="", MSSQL_ENABLED=False)

        with pytest.raises(ConfigurationError):
            build_backends_from_settings(config)

    def test_nothing_enabled(self):
        config = Settings(_env_file=None, SQLITE_ENABLED=False, POSTGRES_ENABLED=False, MSSQL_ENABLED=False)

        assert build_backends_from_settings(config) == []
        with pytest.raises(NoBackendsConfiguredError):
            StorageManager.from_settings(config)
