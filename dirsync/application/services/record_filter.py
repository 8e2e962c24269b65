"""
Filtro de dispositivos por sistema operativo.

Reglas:
- Los filtros se normalizan: split por coma, trim, minusculas, sin vacios.
- "*" acepta todo. Sin filtros configurados equivale a "*".
- Si no, match case-insensitive por substring ("win" acepta "Windows").
- Un dispositivo sin OS se trata como "unknown".
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from dirsync.application.services.identity import get_device_name, get_device_os


WILDCARD = "*"


def normalize_filter(raw: str) -> List[str]:
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def os_matches_filter(device_os: Optional[str], filters: List[str]) -> bool:
    if WILDCARD in filters:
        return True

    os_name = device_os.strip().lower() if device_os and device_os.strip() else "unknown"
    return any(f in os_name for f in filters)


class DeviceOsFilter:
    """Filtro de OS configurado a partir de una o varias listas separadas por coma."""

    def __init__(self, raw_filters: Iterable[str]):
        filters: List[str] = []
        for raw in raw_filters:
            filters.extend(normalize_filter(raw))
        self._filters = filters or [WILDCARD]
        logger.info(f"Filtro de OS inicializado con reglas: {self._filters}")

    @property
    def filters(self) -> List[str]:
        return list(self._filters)

    @property
    def allows_all(self) -> bool:
        return WILDCARD in self._filters

    def should_include_device(self, device_name: Optional[str], device_os: Optional[str]) -> bool:
        matched = os_matches_filter(device_os, self._filters)
        action = "Permitido" if matched else "Omitido"
        logger.debug(f"[Filtro] {action} dispositivo '{device_name or 'unknown'}' con OS '{device_os or 'unknown'}'")
        return matched

    def apply(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Filtra una lista de registros de dispositivos."""
        if self.allows_all:
            return list(records)

        kept = [
            r for r in records
            if self.should_include_device(get_device_name(r), get_device_os(r))
        ]
        logger.info(f"Filtro de dispositivos aplicado: {len(records)} -> {len(kept)} registros")
        return kept
