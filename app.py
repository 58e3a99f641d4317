"""
app.py - Main entry point for the Reaction Compositing API

This application provides a Flask-based REST API that composites a reaction
sticker (and an optional credit watermark) onto an uploaded image or GIF
through FFmpeg.
"""

from flask import Flask, jsonify, request
import logging
import os
import time
import platform
import psutil
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from werkzeug.middleware.proxy_fix import ProxyFix

# Internal imports
from services.cleanup_service import WorkspaceSweeper
from services.authentication import authenticate
from services.render_executor import resolve_ffmpeg_binary
from errors import ReactionAPIError, capture_exception
from error_middleware import init_app as init_error_handling
from version import get_version_info, get_version_string
import config

# Tres archivos por render como máximo (base, sticker, marca de agua) más los campos del formulario
FORM_OVERHEAD = 1024 * 1024


# Configure logging
def configure_logging():
    """Configure application logging with rotation and formatting"""
    log_directory = config.LOG_DIR
    os.makedirs(log_directory, exist_ok=True)

    log_level = getattr(logging, config.LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Log principal con rotación por tamaño
    main_log_path = os.path.join(log_directory, 'reactionapi.log')
    file_handler = RotatingFileHandler(
        main_log_path,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(log_level)

    # Log de errores con rotación diaria
    error_log_path = os.path.join(log_directory, 'error.log')
    error_handler = TimedRotatingFileHandler(
        error_log_path,
        when='midnight',
        interval=1,
        backupCount=config.ERROR_RETENTION_DAYS
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.ERROR)

    root_logger = logging.getLogger()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(error_handler)

    logger = logging.getLogger('reactionapi')
    logger.setLevel(log_level)

    return logger

logger = configure_logging()

# Optional Sentry integration for error monitoring
if config.SENTRY_DSN:
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=config.SENTRY_DSN,
            environment=config.ENVIRONMENT,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.2,
            sample_rate=0.5,
            # Las imágenes subidas no se envían a Sentry
            max_request_body_size='never',
            before_send=lambda event, hint: event if event.get('level') != 'debug' else None
        )
        logger.info("Sentry monitoring initialized")
    except ImportError:
        logger.warning("Sentry SDK not installed. Error monitoring disabled.")

# Create Flask application
app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_SIZE * 3 + FORM_OVERHEAD
app.config['WORKSPACE_ROOT'] = config.TEMP_DIR
# None = FFmpegExecutor por defecto; los tests inyectan aquí un ejecutor falso
app.config['RENDER_EXECUTOR'] = None

# Configure for working behind proxy
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

# Request ids, request logging and JSON error handlers
init_error_handling(app)

startup_time = time.time()
workspace_sweeper = WorkspaceSweeper(interval_minutes=config.SWEEP_INTERVAL_MINUTES or 30)

ENDPOINTS = {
    "image": [
        "/v1/image/reaction",
        "/v1/image/reactions",
        "/v1/image/reaction/placement"
    ],
    "legacy": [
        "/api/render"
    ],
    "maintenance": [
        "/maintenance/sweep"
    ]
}


def register_blueprints():
    """Register all blueprint modules from the routes package"""
    try:
        from routes.v1.image.reaction import v1_image_reaction_bp

        blueprints = [
            v1_image_reaction_bp,
        ]

        for blueprint in blueprints:
            app.register_blueprint(blueprint)
            logger.info(f"Registered blueprint: {blueprint.name}")

        return True
    except ImportError as e:
        logger.error(f"Error registering blueprints: {str(e)}")
        return False

if not register_blueprints():
    logger.critical("Failed to register all blueprints. Application may not function correctly.")


@app.after_request
def add_response_headers(response):
    """Security and CORS headers (the web editor calls the API cross-origin)"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, X-API-Key, X-Request-ID'
    return response


@app.route('/', methods=['GET'])
def index():
    """API information endpoint"""
    return jsonify({
        "status": "operational",
        "endpoints": ENDPOINTS,
        **get_version_info()
    })


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for monitoring"""
    health_status = {
        "status": "healthy",
        "checks": {},
        "uptime": time.time() - startup_time,
        "uptime_formatted": format_time_delta(time.time() - startup_time)
    }

    # Workspace root
    workspace_ok = os.path.isdir(config.TEMP_DIR) and os.access(config.TEMP_DIR, os.W_OK)
    health_status["checks"]["workspace_root"] = {
        "status": "ok" if workspace_ok else "error",
        "path": config.TEMP_DIR
    }

    # FFmpeg
    try:
        binary = resolve_ffmpeg_binary()
        health_status["checks"]["ffmpeg"] = {"status": "ok", "binary": binary}
        ffmpeg_ok = True
    except ReactionAPIError as e:
        ffmpeg_ok = False
        health_status["checks"]["ffmpeg"] = {"status": "error", "message": e.details.get("reason", e.message)}

    # Disk space
    try:
        disk_usage = psutil.disk_usage(config.TEMP_DIR)
        disk_status = "ok"
        if disk_usage.percent > 90:
            disk_status = "warning"
        if disk_usage.percent > 95:
            disk_status = "error"

        health_status["checks"]["disk"] = {
            "status": disk_status,
            "total_gb": round(disk_usage.total / (1024**3), 2),
            "free_gb": round(disk_usage.free / (1024**3), 2),
            "used_percent": round(disk_usage.percent, 2)
        }
        disk_ok = disk_status != "error"
    except OSError as e:
        disk_ok = False
        health_status["checks"]["disk"] = {"status": "error", "message": str(e)}

    if all([workspace_ok, ffmpeg_ok, disk_ok]):
        status_code = 200
    elif not workspace_ok or not disk_ok:
        health_status["status"] = "critical"
        status_code = 503
    else:
        # Sin FFmpeg los renders fallan, pero el catálogo y la colocación siguen disponibles
        health_status["status"] = "degraded"
        status_code = 200

    return jsonify(health_status), status_code


@app.route('/version', methods=['GET'])
def version():
    """Version information endpoint"""
    version_info = get_version_info()
    version_info["python_version"] = platform.python_version()
    version_info["platform"] = platform.platform()

    return jsonify(version_info)


@app.route('/maintenance/sweep', methods=['POST'])
@authenticate
def trigger_sweep():
    """Endpoint to manually remove orphaned render workspaces"""
    try:
        result = workspace_sweeper.run_once()
    except OSError as e:
        error_id = capture_exception(e, {"endpoint": "/maintenance/sweep"})
        return jsonify({
            "status": "error",
            "error": "Sweep failed",
            "error_id": error_id
        }), 500

    return jsonify({
        "status": "success",
        "result": result.to_dict(),
        "stats": workspace_sweeper.get_stats()
    })


def format_time_delta(seconds):
    """Format seconds into readable time format"""
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{int(days)} days")
    if hours > 0 or days > 0:
        parts.append(f"{int(hours)} hours")
    if minutes > 0 or hours > 0 or days > 0:
        parts.append(f"{int(minutes)} minutes")
    parts.append(f"{int(seconds)} seconds")

    return ", ".join(parts)


def initialize_services():
    """Initialize background services"""
    try:
        os.makedirs(config.TEMP_DIR, exist_ok=True)

        logger.info(f"System: {platform.system()} {platform.release()}")
        logger.info(f"Python: {platform.python_version()}")

        if config.SWEEP_INTERVAL_MINUTES > 0:
            workspace_sweeper.start()
        else:
            logger.info("Workspace sweeper disabled (SWEEP_INTERVAL_MINUTES=0)")

        logger.info(f"{get_version_string()} initialized successfully")
        return True

    except OSError as e:
        logger.critical(f"Error initializing services: {str(e)}", exc_info=True)
        return False


def graceful_shutdown(signal_num, frame):
    """Perform clean shutdown when signal received"""
    logger.info(f"Received signal {signal_num}, performing graceful shutdown...")
    workspace_sweeper.stop()
    logger.info("Shutdown completed")
    raise SystemExit(0)


initialize_services()

# Run the application
if __name__ == '__main__':
    import signal
    signal.signal(signal.SIGTERM, graceful_shutdown)
    signal.signal(signal.SIGINT, graceful_shutdown)

    debug_mode = config.LOG_LEVEL == 'DEBUG'
    app.run(host='0.0.0.0', port=8080, debug=debug_mode)
