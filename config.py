# --- START OF FILE config.py ---

import os
from dotenv import load_dotenv

# Cargar variables de entorno desde archivo .env si existe
load_dotenv()

# --------------------------------------------------------------------------
# --- Security Configuration ---
# --------------------------------------------------------------------------
# API key opcional. Si no se define, los endpoints de render quedan abiertos
# (el editor web los consume sin credenciales).
API_KEY = os.environ.get('API_KEY', '')

# --------------------------------------------------------------------------
# --- Workspace Configuration ---
# --------------------------------------------------------------------------
# Directorio raíz donde se crean los workspaces temporales de cada render
TEMP_DIR = os.environ.get('TEMP_DIR', '/tmp')
# Prefijo de los directorios de workspace (ffmpeg-<epoch ms>-<sufijo>)
WORKSPACE_PREFIX = os.environ.get('WORKSPACE_PREFIX', 'ffmpeg-')
# Edad máxima (minutos) de un workspace huérfano antes de que el sweeper lo elimine
WORKSPACE_MAX_AGE_MINUTES = int(os.environ.get('WORKSPACE_MAX_AGE_MINUTES', 60))
# Intervalo del sweeper de workspaces huérfanos (0 = desactivado)
SWEEP_INTERVAL_MINUTES = int(os.environ.get('SWEEP_INTERVAL_MINUTES', 30))

# --------------------------------------------------------------------------
# --- Asset Configuration ---
# --------------------------------------------------------------------------
# Directorio con los stickers de reacción (1.png, 2.png, ...)
REACTIONS_DIR = os.environ.get('REACTIONS_DIR', os.path.join('public', 'reactions'))
# Directorio con las marcas de agua (credit.png, credit-oneline.png)
WATERMARKS_DIR = os.environ.get('WATERMARKS_DIR', 'public')

# --------------------------------------------------------------------------
# --- Processing Configuration ---
# --------------------------------------------------------------------------
# Ruta explícita al binario de FFmpeg (vacío = autodetectar)
FFMPEG_PATH = os.environ.get('FFMPEG_PATH', '')
# Timeout para FFmpeg en segundos (0 = sin límite; el llamador impone el suyo)
FFMPEG_TIMEOUT = int(os.environ.get('FFMPEG_TIMEOUT', 0))
# Tamaño máximo de cada archivo subido
MAX_UPLOAD_SIZE = int(os.environ.get('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))  # 50MB
# Tamaño máximo de una imagen base descargada por URL
MAX_DOWNLOAD_SIZE = int(os.environ.get('MAX_DOWNLOAD_SIZE', 50 * 1024 * 1024))
# Timeout de descarga de la imagen base (segundos)
DOWNLOAD_TIMEOUT = int(os.environ.get('DOWNLOAD_TIMEOUT', 30))

# --------------------------------------------------------------------------
# --- Error Handling and Monitoring Configuration ---
# --------------------------------------------------------------------------
# Nivel de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
# Directorio de logs (reactionapi.log rotado por tamaño, error.log rotado por día)
LOG_DIR = os.environ.get('LOG_DIR', 'logs')
# Días de retención para los archivos de log de errores rotados
ERROR_RETENTION_DAYS = int(os.environ.get('ERROR_RETENTION_DAYS', 30))
# DSN de Sentry para monitoreo de errores (opcional)
SENTRY_DSN = os.environ.get('SENTRY_DSN', '')
# Nombre del entorno para monitoreo (e.g., production, staging, development)
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')

# --- Configuration Validation ---
valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
if LOG_LEVEL not in valid_log_levels:
    print(f"WARNING: Invalid LOG_LEVEL '{LOG_LEVEL}' provided. Defaulting to INFO. Valid levels: {valid_log_levels}")
    LOG_LEVEL = 'INFO'

if FFMPEG_TIMEOUT < 0:
    print(f"WARNING: Invalid FFMPEG_TIMEOUT '{FFMPEG_TIMEOUT}'. Disabling timeout.")
    FFMPEG_TIMEOUT = 0

TEMP_DIR = os.path.abspath(TEMP_DIR)
REACTIONS_DIR = os.path.abspath(REACTIONS_DIR)
WATERMARKS_DIR = os.path.abspath(WATERMARKS_DIR)

# --- END OF FILE config.py ---
