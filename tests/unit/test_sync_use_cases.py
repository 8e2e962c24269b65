"""
Tests unitarios para SyncService (pasada y loop).

El StorageManager y la fuente upstream se mockean.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dirsync.application.services.record_filter import DeviceOsFilter
from dirsync.application.use_cases.sync_use_cases import SyncService
from dirsync.core.config import EndpointConfig
from dirsync.domain.entities.storage import BatchResult, UpsertReport
from dirsync.shared.exceptions.storage import BackendConnectionError
from dirsync.shared.exceptions.sync import SyncInProgressError, UpstreamApiError


DEVICES = EndpointConfig(name="devices", endpoint_url="https://graph/devices", table_name="devices")
USERS = EndpointConfig(name="users", endpoint_url="https://graph/users", table_name="users")
GROUPS = EndpointConfig(name="groups", endpoint_url="https://graph/groups", table_name="groups", enabled=False)


def _storage() -> MagicMock:
    storage = MagicMock()
    storage.ensure_table = AsyncMock()

    async def upsert(table_name, records):
        return UpsertReport(
            table_name=table_name,
            results=[BatchResult(backend="SQLite", table_name=table_name, inserted=len(records))],
        )

    storage.upsert_batch = AsyncMock(side_effect=upsert)
    return storage


def _source(payloads) -> MagicMock:
    source = MagicMock()
    source.fetch_all = MagicMock(side_effect=lambda endpoint: payloads[endpoint.name])
    return source


PAYLOADS = {
    "devices": [
        {"deviceName": "PC-1", "operatingSystem": "Windows", "serialNumber": "SN1"},
        {"deviceName": "MAC-1", "operatingSystem": "macOS", "serialNumber": "SN2"},
    ],
    "users": [{"id": "u1", "displayName": "Ana"}, {"id": "u2", "displayName": "Luis"}],
}


class TestRunPass:
    """Tests para run_pass()."""

    @pytest.fixture
    def storage(self):
        return _storage()

    @pytest.fixture
    def service(self, storage):
        return SyncService(
            storage=storage,
            source=_source(PAYLOADS),
            endpoints=[DEVICES, USERS, GROUPS],
            os_filter=DeviceOsFilter(["windows"]),
            endpoint_delay=0,
        )

    @pytest.mark.asyncio
    async def test_processes_enabled_endpoints_in_order(self, service, storage):
        report = await service.run_pass()

        assert [e.endpoint for e in report.endpoints] == ["devices", "users"]
        assert [c.args[0] for c in storage.ensure_table.await_args_list] == ["devices", "users"]
        assert report.status == "success"
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_os_filter_applies_only_to_devices(self, service, storage):
        report = await service.run_pass()

        devices, users = report.endpoints
        assert devices.fetched == 2
        assert devices.filtered_out == 1
        assert devices.stored == 1
        assert users.filtered_out == 0
        assert users.stored == 2

        device_batch = storage.upsert_batch.await_args_list[0].args[1]
        assert [r["deviceName"] for r in device_batch] == ["PC-1"]

    @pytest.mark.asyncio
    async def test_report_counts(self, service):
        report = await service.run_pass()

        assert report.processed == 3
        assert report.failed == 0
        assert report.skipped == 1
        assert service.last_report is report
        assert report.to_dict()["endpoints"][0]["per_backend"]["SQLite"]["inserted"] == 1

    @pytest.mark.asyncio
    async def test_upstream_error_is_counted_and_pass_continues(self, storage):
        source = MagicMock()

        def fetch(endpoint):
            if endpoint.name == "devices":
                raise UpstreamApiError("403 Forbidden", status_code_upstream=403)
            return PAYLOADS[endpoint.name]

        source.fetch_all = MagicMock(side_effect=fetch)
        service = SyncService(storage=storage, source=source, endpoints=[DEVICES, USERS], endpoint_delay=0)

        report = await service.run_pass()

        assert report.status == "success"
        assert report.endpoint_errors == 1
        assert report.endpoints[0].error == "403 Forbidden"
        assert report.processed == 2

    @pytest.mark.asyncio
    async def test_connectivity_error_aborts_pass(self, service, storage):
        storage.upsert_batch.side_effect = BackendConnectionError("PostgreSQL", "timeout")

        with pytest.raises(BackendConnectionError):
            await service.run_pass()

        assert service.last_report.status == "failed"
        assert "PostgreSQL" in service.last_report.error
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_passes_never_overlap(self, service):
        async with service._lock:
            assert service.is_running
            with pytest.raises(SyncInProgressError):
                await service.run_pass()

    @pytest.mark.asyncio
    async def test_delay_between_endpoints(self, storage):
        service = SyncService(
            storage=storage,
            source=_source(PAYLOADS),
            endpoints=[DEVICES, USERS],
            endpoint_delay=0.5,
        )

        with patch("dirsync.application.use_cases.sync_use_cases.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await service.run_pass()

        mock_sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_empty_endpoint_still_ensures_table(self, storage):
        service = SyncService(
            storage=storage,
            source=_source({"users": []}),
            endpoints=[USERS],
            endpoint_delay=0,
        )

        report = await service.run_pass()

        storage.ensure_table.assert_awaited_once_with("users")
        storage.upsert_batch.assert_not_awaited()
        assert report.processed == 0


class TestRunForever:
    """Tests para run_forever()."""

    @pytest.mark.asyncio
    async def test_stops_after_in_flight_pass(self):
        storage = _storage()
        stop_event = asyncio.Event()
        service = SyncService(
            storage=storage,
            source=_source(PAYLOADS),
            endpoints=[USERS],
            endpoint_delay=0,
            poll_interval=3600,
        )

        async def upsert_and_stop(table_name, records):
            stop_event.set()
            return UpsertReport(table_name=table_name)

        storage.upsert_batch.side_effect = upsert_and_stop

        await asyncio.wait_for(service.run_forever(stop_event), timeout=5)

        assert service.passes == 1

    @pytest.mark.asyncio
    async def test_retries_after_connectivity_error(self):
        storage = _storage()
        stop_event = asyncio.Event()
        attempts = []

        async def flaky(table_name, records):
            attempts.append(table_name)
            if len(attempts) == 1:
                raise BackendConnectionError("MSSQL", "connection reset")
            stop_event.set()
            return UpsertReport(table_name=table_name)

        storage.upsert_batch.side_effect = flaky
        service = SyncService(
            storage=storage,
            source=_source(PAYLOADS),
            endpoints=[USERS],
            endpoint_delay=0,
            poll_interval=3600,
            retry_delay=0.01,
        )

        await asyncio.wait_for(service.run_forever(stop_event), timeout=5)

        assert service.passes == 2
        assert service.last_report.status == "success"

    @pytest.mark.asyncio
    async def test_no_pass_when_stopped_before_first_tick(self):
        storage = _storage()
        stop_event = asyncio.Event()
        stop_event.set()
        service = SyncService(storage=storage, source=_source(PAYLOADS), endpoints=[USERS])

        await asyncio.wait_for(service.run_forever(stop_event, run_immediately=False), timeout=5)

        assert service.passes == 0
