"""
Servicios de aplicacion (logica pura, sin I/O).
"""
from dirsync.application.services.fingerprint import fingerprint, change_hash
from dirsync.application.services.identity import resolve_identity, resolve_record, ResolvedRecord
from dirsync.application.services.schema_inference import infer_columns, diff_columns
from dirsync.application.services.record_filter import DeviceOsFilter

__all__ = [
    "fingerprint",
    "change_hash",
    "resolve_identity",
    "resolve_record",
    "ResolvedRecord",
    "infer_columns",
    "diff_columns",
    "DeviceOsFilter",
]
