"""
Resolucion de identidad de registros.

Cada registro termina con un UUID estable:
1. Si trae un `id` o `uuid` que parsea como UUID, se reutiliza.
2. Si no, se deriva del fingerprint: sha256(fingerprint + salt), primeros 16
   bytes, forzando los bits de version 4 / variante RFC 4122.

La derivacion es una funcion pura del fingerprint: re-ingestar la misma entidad
logica siempre produce la misma identidad, aun sin clave natural.
"""
from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from dirsync.application.services.fingerprint import change_hash, fingerprint


UUID_GENERATION_SALT = b"uuid_generation_salt"
IDENTITY_FIELDS = ("id", "uuid")


@dataclass(frozen=True)
class ResolvedRecord:
    """Registro con su identidad, fingerprint y change-hash ya calculados."""

    identity: uuid.UUID
    fingerprint: str
    change_hash: str
    reused_identity: bool
    data: Dict[str, Any]

    @property
    def identity_str(self) -> str:
        return str(self.identity)


def parse_identity(value: Any) -> Optional[uuid.UUID]:
    """Parsea un UUID; None si el valor no es un string con forma de UUID."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        return None


def is_valid_identity(value: Any) -> bool:
    return parse_identity(value) is not None


def identity_from_fingerprint(fp: str) -> uuid.UUID:
    """Deriva un UUID (forma v4) de forma deterministica a partir del fingerprint."""
    digest = hashlib.sha256(fp.encode("utf-8") + UUID_GENERATION_SALT).digest()
    raw = bytearray(digest[:16])
    raw[6] = (raw[6] & 0x0F) | 0x40   # version 4
    raw[8] = (raw[8] & 0x3F) | 0x80   # variante 10
    return uuid.UUID(bytes=bytes(raw))


def existing_identity(record: Dict[str, Any]) -> Optional[uuid.UUID]:
    """Identidad preexistente del registro, si es valida."""
    for field_name in IDENTITY_FIELDS:
        if field_name not in record:
            continue
        parsed = parse_identity(record[field_name])
        if parsed is not None:
            return parsed
        # Identidad malformada: no es error, se cae a la derivacion
        logger.debug(f"Campo '{field_name}' no es un UUID valido, se ignora: {record[field_name]!r}")
    return None


def resolve_identity(record: Dict[str, Any]) -> uuid.UUID:
    """
    Identidad estable de un registro. Nunca falla.
    """
    found = existing_identity(record)
    if found is not None:
        logger.debug(f"Usando UUID existente: {found}")
        return found

    fp = fingerprint(record)
    derived = identity_from_fingerprint(fp)
    logger.debug(f"UUID {derived} derivado del fingerprint {fp}")
    return derived


def resolve_record(record: Dict[str, Any]) -> ResolvedRecord:
    """Calcula identidad + fingerprint + change-hash de una sola vez."""
    fp = fingerprint(record)
    found = existing_identity(record)
    if found is not None:
        logger.debug(f"Usando UUID existente: {found}")
        identity = found
    else:
        identity = identity_from_fingerprint(fp)
        logger.debug(f"UUID {identity} derivado del fingerprint {fp}")

    return ResolvedRecord(
        identity=identity,
        fingerprint=fp,
        change_hash=change_hash(record),
        reused_identity=found is not None,
        data=record,
    )


def get_device_name(record: Dict[str, Any]) -> str:
    """Nombre legible para logs: deviceName -> displayName -> 'unknown'."""
    for key in ("deviceName", "displayName"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return "unknown"


def get_device_os(record: Dict[str, Any]) -> Optional[str]:
    """Sistema operativo para filtrado: operatingSystem -> osVersion."""
    for key in ("operatingSystem", "osVersion"):
        value = record.get(key)
        if isinstance(value, str):
            return value
    return None
