import functools
import hmac
import logging
from flask import request

from errors import AuthenticationError
import config

logger = logging.getLogger(__name__)


def authenticate(f):
    """
    Decorador para autenticación mediante X-API-Key.

    Solo se aplica si API_KEY está configurada; sin ella el endpoint es público.
    """
    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        if not config.API_KEY:
            return f(*args, **kwargs)

        api_key = request.headers.get('X-API-Key')

        if not api_key:
            logger.warning(f"API request without key: {request.path}")
            raise AuthenticationError(message="API key is required")

        if not hmac.compare_digest(api_key, config.API_KEY):
            logger.warning(f"API request with invalid key: {request.path}")
            raise AuthenticationError(message="Invalid API key")

        return f(*args, **kwargs)

    return decorated_function
