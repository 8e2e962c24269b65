"""
Capa de aplicacion.
"""
