"""
Inferencia de esquema a partir de registros JSON.

El inferidor es la unica fuente de verdad para decisiones de tipo: los
adaptadores solo traducen ColumnType a su tipo nativo. El esquema es de una
sola via (solo se agregan columnas), por lo que `diff_columns` es una
diferencia de conjuntos y aplicar dos veces el mismo esquema no agrega nada.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping, Optional

from dirsync.domain.entities.storage import ColumnType
from dirsync.shared.utils.datetime_utils import is_timestamp_string, normalize_timestamp
from dirsync.shared.utils.json_utils import canonical_json


ID_COLUMN = "id"
LAST_SYNC_COLUMN = "last_sync_date_time"
HASH_COLUMN = "sync_hash"
FINGERPRINT_COLUMN = "sync_fingerprint"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"

# Columnas que existen siempre, sin importar el payload
STANDARD_COLUMNS: Dict[str, ColumnType] = {
    ID_COLUMN: ColumnType.TEXT,
    LAST_SYNC_COLUMN: ColumnType.TIMESTAMP,
    HASH_COLUMN: ColumnType.TEXT,
    FINGERPRINT_COLUMN: ColumnType.TEXT,
}

TIMESTAMP_NAME_SYNONYMS = frozenset({"created", "updated", "modified", "enrolled"})


def is_timestamp_name(name: str) -> bool:
    """Nombre con pinta de timestamp: contiene date/time, termina en _at/_on o es un sinonimo conocido."""
    lowered = name.lower()
    return (
        "date" in lowered
        or "time" in lowered
        or lowered.endswith("_at")
        or lowered.endswith("_on")
        or lowered in TIMESTAMP_NAME_SYNONYMS
    )


def infer_column_type(name: str, value: Any) -> ColumnType:
    """
    Tipo de columna para un campo, por orden de prioridad:
    nombre -> bool -> numero -> string timestamp -> array/objeto -> texto.
    """
    if is_timestamp_name(name):
        return ColumnType.TIMESTAMP
    # bool antes que int: en Python bool es subclase de int
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, int):
        return ColumnType.INTEGER
    if isinstance(value, float):
        return ColumnType.FLOAT
    if isinstance(value, str) and is_timestamp_string(value):
        return ColumnType.TIMESTAMP
    if isinstance(value, (list, dict)):
        return ColumnType.JSON
    return ColumnType.TEXT


def infer_columns(record: Mapping[str, Any]) -> Dict[str, ColumnType]:
    """
    Columnas necesarias para guardar el registro.

    Incluye siempre las columnas estandar (id, last_sync_date_time y las de
    control de cambios). Los campos del registro con el mismo nombre que una
    columna estandar no cambian su tipo.
    """
    columns: Dict[str, ColumnType] = dict(STANDARD_COLUMNS)
    for name, value in record.items():
        if name in columns:
            continue
        columns[name] = infer_column_type(name, value)
    return columns


def diff_columns(
    existing: Iterable[str],
    required: Mapping[str, ColumnType],
    case_sensitive: bool = True,
) -> Dict[str, ColumnType]:
    """
    Columnas requeridas que no existen todavia (orden del esquema requerido).

    Con case_sensitive=False "serialNumber" y "SERIALNUMBER" se consideran la
    misma columna (SQLite y SQL Server no distinguen mayusculas en identificadores).
    """
    if case_sensitive:
        known = set(existing)
        return {name: col_type for name, col_type in required.items() if name not in known}

    known = {name.lower() for name in existing}
    missing: Dict[str, ColumnType] = {}
    for name, col_type in required.items():
        if name.lower() in known:
            continue
        known.add(name.lower())
        missing[name] = col_type
    return missing


def stringify_value(value: Any, column_type: Optional[ColumnType] = None) -> Optional[str]:
    """
    Convierte un valor JSON a su forma textual de almacenamiento.

    - None -> None (NULL)
    - bool -> "true" / "false"
    - numeros -> su texto JSON
    - arrays/objetos -> JSON canonico
    - strings con forma de timestamp -> forma canonica UTC
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if isinstance(value, (list, dict)):
        return canonical_json(value)
    text = str(value)
    if column_type is ColumnType.TIMESTAMP or is_timestamp_string(text):
        return normalize_timestamp(text)
    return text
