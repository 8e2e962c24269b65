"""
Integraciones con servicios externos.
"""
