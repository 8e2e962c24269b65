"""
Cliente de la API de directorio.
"""
from dirsync.infrastructure.external.graph.graph_client import GraphClient

__all__ = ["GraphClient"]
