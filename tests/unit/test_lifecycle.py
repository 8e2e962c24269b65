"""
Tests del ciclo de vida de la aplicacion (lifespan: startup + shutdown).

El storage y el servicio de sync se mockean en build_from_settings.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from dirsync.core.config import settings
from dirsync.shared.exceptions.storage import BackendConnectionError
from main import create_application


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.initialize = AsyncMock()
    storage.cleanup = AsyncMock()
    storage.backend_names.return_value = ["SQLite"]
    storage.health_status = AsyncMock(return_value={"SQLite": "healthy"})
    return storage


@pytest.fixture
def service():
    service = MagicMock()
    service.run_forever = AsyncMock(return_value=None)
    return service


@pytest.fixture
def build(storage, service, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "LOG_FILE", str(tmp_path / "logs" / "dirsync.log"))
    with patch("dirsync.core.events.build_from_settings", return_value=(service, storage)) as mock_build:
        yield mock_build


class TestLifespan:
    """Tests para el lifespan registrado por create_application()."""

    def test_startup_and_shutdown(self, build, storage, service):
        app = create_application(with_lifecycle=True)

        with TestClient(app) as client:
            storage.initialize.assert_awaited_once()
            assert app.state.storage is storage
            assert app.state.sync_service is service
            assert client.get("/health").status_code == 200

        service.run_forever.assert_awaited_once()
        assert app.state.stop_event.is_set()
        storage.cleanup.assert_awaited_once()

    def test_cleanup_runs_when_sync_loop_failed(self, build, storage, service):
        """Si el loop termino con error, el shutdown igual cierra los backends."""
        service.run_forever.side_effect = RuntimeError("loop roto")
        app = create_application(with_lifecycle=True)

        with TestClient(app):
            pass

        storage.cleanup.assert_awaited_once()

    def test_startup_failure_propagates(self, build, storage):
        storage.initialize.side_effect = BackendConnectionError("SQLite", "disk full")
        app = create_application(with_lifecycle=True)

        with pytest.raises(BackendConnectionError):
            with TestClient(app):
                pass

    def test_without_lifecycle_nothing_is_built(self, build):
        app = create_application(with_lifecycle=False)

        with TestClient(app):
            pass

        build.assert_not_called()
