"""
Endpoints de la API v1.
"""
