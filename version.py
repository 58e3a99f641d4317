"""
Control de versiones para la API de composición de reacciones.
"""

VERSION = "1.0.0"
API_VERSION = "v1"
BUILD_DATE = "2026-10-19"
SERVICE_NAME = "ReactionAPI"

def get_version_info():
    """Retorna información de versión como diccionario."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "api_version": API_VERSION,
        "build_date": BUILD_DATE
    }

def get_version_string():
    """Retorna string formateado con información de versión."""
    return f"{SERVICE_NAME} v{VERSION} (API {API_VERSION}) - Build {BUILD_DATE}"
