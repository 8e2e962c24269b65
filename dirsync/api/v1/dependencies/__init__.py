"""
Dependencias de la API v1.
"""
