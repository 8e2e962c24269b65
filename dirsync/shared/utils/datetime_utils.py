"""
Utilidades para manejo de fechas y horas.

Todas las marcas de tiempo que se persisten pasan por `normalize_timestamp`,
que produce una unica representacion textual en UTC sin importar la variante
de entrada (RFC-3339 con offset, sin fraccion, o con espacio como separador).
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional


# YYYY-MM-DD[T ]HH:MM:SS[.fraccion][Z|±HH:MM|±HHMM]
_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"(Z|z|[+-]\d{2}:?\d{2})?$"
)


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Un datetime naive se interpreta como UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_offset(raw: Optional[str]) -> timezone:
    if raw is None or raw in ("Z", "z"):
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
    return timezone(sign * delta)


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parsea un timestamp ISO-8601 / RFC-3339.

    Acepta:
    - 2023-01-01T10:00:00Z / 2023-01-01T10:00:00.1234567+02:00
    - 2023-01-01T10:00:00 (sin offset: se asume UTC)
    - 2023-01-01 10:00:00 (separado por espacio)

    La fraccion de segundos se trunca a microsegundos (la API de directorio
    devuelve hasta 7 digitos).

    Returns:
        datetime aware en UTC, o None si el string no tiene forma de timestamp
    """
    if not isinstance(value, str):
        return None

    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        return None

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))

    try:
        dt = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micros,
            tzinfo=_parse_offset(offset),
        )
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def is_timestamp_string(value: str) -> bool:
    """Indica si el string parsea como timestamp."""
    return parse_timestamp(value) is not None


def to_canonical(dt: datetime) -> str:
    """Representacion textual canonica (UTC, ISO-8601 con microsegundos y offset +00:00)."""
    return ensure_utc(dt).isoformat(timespec="microseconds")


def normalize_timestamp(value: str) -> str:
    """
    Normaliza un timestamp a su forma canonica UTC.

    Si el valor no parsea, se retorna tal cual (el caller decide que hacer).
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return to_canonical(parsed)
