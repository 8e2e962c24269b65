"""
Construccion del grafo de objetos a partir de la configuracion.

Lo usan el startup de la API y el script de pasada unica.
"""
from typing import Optional, Tuple

from dirsync.application.interfaces.record_source import RecordSource
from dirsync.application.interfaces.storage_observer import StorageObserver
from dirsync.application.services.record_filter import DeviceOsFilter
from dirsync.application.use_cases.sync_use_cases import SyncService
from dirsync.core.config import Settings, get_endpoints, get_os_filters
from dirsync.infrastructure.external.graph.graph_client import GraphClient
from dirsync.infrastructure.storage.manager import StorageManager


def build_from_settings(
    config: Settings,
    *,
    source: Optional[RecordSource] = None,
    observer: Optional[StorageObserver] = None,
) -> Tuple[SyncService, StorageManager]:
    """
    Instancia StorageManager + SyncService (sin inicializar los backends).

    Raises:
        ConfigurationError: endpoints o duracion invalidos, backend sin URL
        NoBackendsConfiguredError: ningun backend habilitado
    """
    storage = StorageManager.from_settings(config, observer=observer)

    if source is None:
        source = GraphClient(
            config.GRAPH_ACCESS_TOKEN,
            timeout_s=config.GRAPH_TIMEOUT_SECONDS,
            max_retries=config.GRAPH_MAX_RETRIES,
        )

    service = SyncService(
        storage=storage,
        source=source,
        endpoints=get_endpoints(config.ENDPOINTS),
        os_filter=DeviceOsFilter(get_os_filters(config.DEVICE_OS_FILTER)),
        poll_interval=config.poll_interval_seconds,
        endpoint_delay=config.ENDPOINT_DELAY_SECONDS,
        retry_delay=config.RETRY_DELAY_SECONDS,
    )
    return service, storage
