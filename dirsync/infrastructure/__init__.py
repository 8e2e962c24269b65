"""
Capa de infraestructura.
"""
