"""
Frontera con el colaborador de fetch.

El sync solo necesita, por endpoint, la lista completa de registros crudos
(paginacion ya resuelta). Cualquier cliente HTTP que cumpla el protocolo sirve.
"""
from __future__ import annotations

from typing import Any, Dict, List, Protocol

from dirsync.core.config import EndpointConfig


class RecordSource(Protocol):
    def fetch_all(self, endpoint: EndpointConfig) -> List[Dict[str, Any]]:
        ...
