"""
Configuracion y ciclo de vida de la aplicacion.
"""
