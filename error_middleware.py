"""
error_middleware.py - Middleware for request ids, request logging and last-resort errors
"""

import json
import uuid
import time
import logging
from flask import request, g

logger = logging.getLogger(__name__)

# Rutas de monitorización que no se registran en cada petición
QUIET_PATHS = ('/health',)


def _is_quiet(method, path):
    return method == 'GET' and path in QUIET_PATHS


class ErrorHandlingMiddleware:
    """
    WSGI wrapper que asigna un request id y convierte cualquier excepción
    que escape de Flask en un 500 JSON sin detalles internos
    """

    def __init__(self, app):
        self.app = app
        app.wsgi_app = self._middleware(app.wsgi_app)

        from errors import register_error_handlers
        register_error_handlers(app)

    def _middleware(self, wsgi_app):
        """WSGI middleware wrapper"""

        def _wrapped_app(environ, start_response):
            # Se respeta el id que envía un proxy o el cliente
            request_id = environ.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
            environ['HTTP_X_REQUEST_ID'] = request_id
            start_time = time.time()

            try:
                return wsgi_app(environ, start_response)
            except Exception:
                logger.exception(f"Unhandled exception in request {request_id}")

                error_response = json.dumps({
                    'status': 'error',
                    'error': 'Failed to process image',
                    'error_code': 'internal_server_error',
                    'request_id': request_id
                }).encode('utf-8')

                start_response('500 Internal Server Error', [
                    ('Content-Type', 'application/json'),
                    ('Content-Length', str(len(error_response))),
                    ('X-Request-ID', request_id),
                ])
                return [error_response]
            finally:
                path = environ.get('PATH_INFO', '')
                method = environ.get('REQUEST_METHOD')
                if not _is_quiet(method, path):
                    logger.debug(f"Request {request_id} handled in {time.time() - start_time:.3f}s: "
                                 f"{method} {path}")

        return _wrapped_app


def setup_request_handlers(app):
    """Set up before/after request handlers for logging and tracking"""

    @app.before_request
    def before_request():
        g.start_time = time.time()
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

        if not _is_quiet(request.method, request.path):
            logger.info(
                f"Request {g.request_id} started: {request.method} {request.path} "
                f"from {request.remote_addr}"
            )

    @app.after_request
    def after_request(response):
        duration = time.time() - g.get('start_time', time.time())
        response.headers['X-Request-ID'] = g.get('request_id', 'unknown')

        if not _is_quiet(request.method, request.path):
            logger.info(
                f"Request {g.get('request_id', 'unknown')} completed in {duration:.3f}s "
                f"with status {response.status_code}"
            )
        return response

    @app.teardown_request
    def teardown_request(exception):
        if exception:
            logger.error(
                f"Exception in request {g.get('request_id', 'unknown')}: {exception}"
            )


def init_app(app):
    """Initialize error handling for the app"""
    ErrorHandlingMiddleware(app)
    setup_request_handlers(app)
