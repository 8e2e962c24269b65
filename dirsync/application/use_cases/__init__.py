"""
Casos de uso.
"""
from dirsync.application.use_cases.sync_use_cases import SyncService, PassReport, EndpointReport

__all__ = ["SyncService", "PassReport", "EndpointReport"]
