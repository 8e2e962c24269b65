"""
Motor de fingerprints.

Dos hashes distintos por registro:

- fingerprint: SHA-256 sobre el subconjunto identificador del registro. Se usa
  una cadena de precedencia y SOLO el primer nivel no vacio contribuye:

      serialNumber -> imei -> hardwareId -> azureADDeviceId
      -> (model + enrolledDateTime) -> "unknown_device"

  Asi el fingerprint es estable aunque campos opcionales aparezcan o
  desaparezcan entre syncs, mientras el primer nivel disponible no cambie.

- change_hash: SHA-256 sobre TODOS los campos (claves ordenadas). Solo sirve
  para detectar "nada cambio desde la ultima escritura".

Ambas funciones son puras y totales: nunca lanzan excepcion.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from dirsync.shared.utils.json_utils import canonical_json


UNKNOWN_DEVICE_SENTINEL = "unknown_device"


@dataclass(frozen=True)
class DeviceIdentifiers:
    """Campos identificadores extraidos de un registro (None si faltan o vienen vacios)."""

    serial_number: Optional[str] = None
    imei: Optional[str] = None
    hardware_id: Optional[str] = None
    azure_ad_device_id: Optional[str] = None
    model: Optional[str] = None
    enrolled_date_time: Optional[str] = None


def _as_identifier(value: Any) -> Optional[str]:
    """Convierte un valor a identificador textual; vacio/whitespace cuenta como ausente."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def extract_identifiers(record: Dict[str, Any]) -> DeviceIdentifiers:
    """
    Extrae la informacion identificadora de un registro.

    hardwareId se busca primero dentro de hardwareInformation y luego en la raiz.
    """
    hardware_info = record.get("hardwareInformation")
    hardware_id = None
    if isinstance(hardware_info, dict):
        hardware_id = _as_identifier(hardware_info.get("hardwareId"))
    if hardware_id is None:
        hardware_id = _as_identifier(record.get("hardwareId"))

    return DeviceIdentifiers(
        serial_number=_as_identifier(record.get("serialNumber")),
        imei=_as_identifier(record.get("imei")),
        hardware_id=hardware_id,
        azure_ad_device_id=_as_identifier(record.get("azureADDeviceId")),
        model=_as_identifier(record.get("model")),
        enrolled_date_time=_as_identifier(record.get("enrolledDateTime")),
    )


def identifying_components(identifiers: DeviceIdentifiers) -> List[Tuple[str, str]]:
    """
    Retorna los componentes del primer nivel disponible de la cadena.

    Lista vacia = ningun nivel disponible (camino del sentinel).
    """
    chain = [
        ("serial", identifiers.serial_number),
        ("imei", identifiers.imei),
        ("hardware_id", identifiers.hardware_id),
        ("azure_ad_device_id", identifiers.azure_ad_device_id),
    ]
    for label, value in chain:
        if value:
            return [(label, value)]

    # Fallback: model + fecha de enrolamiento (cualquiera de los dos alcanza)
    fallback = [
        (label, value)
        for label, value in (("model", identifiers.model), ("enrolled", identifiers.enrolled_date_time))
        if value
    ]
    return fallback


def generate_fingerprint(identifiers: DeviceIdentifiers) -> str:
    """Fingerprint SHA-256 (hex) a partir de identificadores ya extraidos."""
    components = identifying_components(identifiers)

    if not components:
        logger.warning("Sin informacion identificadora para el fingerprint, se usa sentinel (baja confianza)")
        payload = UNKNOWN_DEVICE_SENTINEL
    else:
        payload = "|".join(f"{label}:{value}" for label, value in components)

    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    logger.debug(f"Fingerprint {digest} generado desde componentes: {components or [UNKNOWN_DEVICE_SENTINEL]}")
    return digest


def fingerprint(record: Dict[str, Any]) -> str:
    """Fingerprint de un registro crudo."""
    return generate_fingerprint(extract_identifiers(record))


def change_hash(record: Dict[str, Any]) -> str:
    """
    Hash de cambios sobre todos los campos del registro.

    Para cada clave en orden lexicografico se hashea `clave:valor;`, donde el
    valor es su JSON canonico (las estructuras anidadas tambien cuentan).
    """
    hasher = hashlib.sha256()
    for key in sorted(record):
        hasher.update(key.encode("utf-8"))
        hasher.update(b":")
        hasher.update(canonical_json(record[key]).encode("utf-8"))
        hasher.update(b";")
    return hasher.hexdigest()
