"""
Configuración de fixtures para pytest.
"""
from typing import Any, AsyncGenerator, Dict

import pytest

from dirsync.infrastructure.storage.sqlite_backend import SqliteBackend


DEVICES_TABLE = "devices"


@pytest.fixture
def device_record() -> Dict[str, Any]:
    """Registro de dispositivo tal como lo devuelve la API de directorio."""
    return {
        "id": "not-a-uuid",
        "deviceName": "LAPTOP-001",
        "serialNumber": "SN123",
        "operatingSystem": "Windows",
        "osVersion": "10.0.19045",
        "isEncrypted": True,
        "totalStorageSpaceInBytes": 256000000000,
        "enrolledDateTime": "2023-01-01T10:00:00Z",
        "hardwareInformation": {"manufacturer": "Contoso", "hardwareId": "HW-9"},
    }


@pytest.fixture
async def sqlite_backend(tmp_path) -> AsyncGenerator[SqliteBackend, None]:
    """
    Backend SQLite real sobre un archivo temporal, con la tabla de dispositivos creada.
    """
    backend = SqliteBackend(str(tmp_path / "output" / "devices.db"))
    await backend.initialize()
    await backend.ensure_table(DEVICES_TABLE)

    yield backend

    await backend.cleanup()
