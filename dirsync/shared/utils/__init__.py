"""
Utilidades (fechas, JSON canonico).
"""
from dirsync.shared.utils.datetime_utils import utc_now, ensure_utc, parse_timestamp, normalize_timestamp
from dirsync.shared.utils.json_utils import canonical_json

__all__ = ["utc_now", "ensure_utc", "parse_timestamp", "normalize_timestamp", "canonical_json"]
