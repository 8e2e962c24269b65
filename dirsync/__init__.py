"""
dirsync: identidad y almacenamiento para sincronizar registros de directorio en backends SQL.
"""

__version__ = "1.0.0"
