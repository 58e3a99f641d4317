# --- START OF FILE file_management.py ---

import logging
import socket
import ipaddress
import re
from urllib.parse import urlparse, unquote, urljoin
from typing import Optional
import requests
from werkzeug.datastructures import FileStorage
import config

from errors import (
    NetworkError,
    ValidationError,
    capture_exception
)

logger = logging.getLogger(__name__)

# Constantes para configuración
MAX_DOWNLOAD_SIZE = getattr(config, 'MAX_DOWNLOAD_SIZE', 50 * 1024 * 1024)
DOWNLOAD_TIMEOUT = getattr(config, 'DOWNLOAD_TIMEOUT', 30)
MAX_UPLOAD_SIZE = getattr(config, 'MAX_UPLOAD_SIZE', 50 * 1024 * 1024)
DOWNLOAD_CHUNK_SIZE = 8192  # 8KB por chunk
MAX_REDIRECTS = 5

# Tipos MIME aceptados para la imagen base remota
ALLOWED_IMAGE_MIME_TYPES = [
    'image/jpeg', 'image/png', 'image/gif', 'image/webp', 'application/octet-stream'
]

# Lista de dominios para redes privadas/locales
PRIVATE_NETWORK_PATTERNS = [
    r'^10\.\d+\.\d+\.\d+$',           # 10.0.0.0/8
    r'^172\.(1[6-9]|2[0-9]|3[0-1])\.\d+\.\d+$',  # 172.16.0.0/12
    r'^192\.168\.\d+\.\d+$',          # 192.168.0.0/16
    r'^127\.\d+\.\d+\.\d+$',          # 127.0.0.0/8
    r'^169\.254\.\d+\.\d+$',          # 169.254.0.0/16
    r'^fc00:',                        # fc00::/7
    r'^fe80:',                        # fe80::/10
    r'^::1$',                         # localhost
    r'^[fF][dD]',                     # fd00::/8
]


def _is_internal_ip(ip) -> bool:
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_multicast or ip.is_reserved


def validate_url(url: str) -> str:
    """
    Valida una URL para prevenir ataques SSRF

    Args:
        url (str): URL a validar

    Returns:
        str: URL validada

    Raises:
        ValidationError: Si la URL no es válida o potencialmente peligrosa
    """
    if not isinstance(url, str) or not url:
        raise ValidationError(message="URL must be a non-empty string",
                              error_code="invalid_url_empty",
                              details={"url": url})

    decoded_url = unquote(url)
    parsed_url = urlparse(decoded_url)

    if parsed_url.scheme not in ['http', 'https']:
        raise ValidationError(message=f"URL scheme not allowed: {parsed_url.scheme}",
                              error_code="invalid_url_scheme",
                              details={"url": url, "scheme": parsed_url.scheme})

    hostname = parsed_url.hostname
    if not hostname:
        raise ValidationError(message="Invalid URL: missing hostname",
                              error_code="invalid_url_no_hostname",
                              details={"url": url})

    suspicious_chars = ['@', '..', '\\', '\r', '\n', '\t', '\0']
    if any(char in decoded_url for char in suspicious_chars):
        raise ValidationError(message="URL contains suspicious characters",
                              error_code="suspicious_characters_in_url",
                              details={"url": url})

    if hostname.lower() in ['localhost', '0.0.0.0']:
        raise ValidationError(message=f"Hostname not allowed: {hostname}",
                              error_code="disallowed_hostname",
                              details={"url": url, "hostname": hostname})

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        ip = None

    if ip is not None:
        if _is_internal_ip(ip):
            raise ValidationError(message=f"Access to private/internal networks is not allowed: {hostname}",
                                  error_code="private_ip_access",
                                  details={"url": url, "hostname": hostname})
        return url

    for pattern in PRIVATE_NETWORK_PATTERNS:
        if re.match(pattern, hostname):
            raise ValidationError(message=f"Hostname matches a private network pattern: {hostname}",
                                  error_code="private_hostname_pattern",
                                  details={"url": url, "hostname": hostname})

    try:
        addresses = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        logger.warning(f"No se pudo resolver hostname: {hostname}")
        return url

    for _, _, _, _, sockaddr in addresses:
        resolved = ipaddress.ip_address(sockaddr[0])
        if _is_internal_ip(resolved):
            raise ValidationError(message=f"Hostname {hostname} resolves to a private/internal address",
                                  error_code="private_resolved_ip",
                                  details={"url": url, "hostname": hostname})
    return url


def _get_following_redirects(url: str) -> requests.Response:
    """
    GET en streaming siguiendo las redirecciones a mano

    Cada salto pasa por validate_url: una redirección no puede llevar a una
    red interna que la URL original no revelaba.

    Raises:
        ValidationError: Destino de una redirección no permitido o demasiados saltos
    """
    current_url = url
    for _ in range(MAX_REDIRECTS + 1):
        response = requests.get(current_url, stream=True, timeout=DOWNLOAD_TIMEOUT, allow_redirects=False)
        if not response.is_redirect:
            return response

        location = urljoin(current_url, response.headers.get('Location', ''))
        response.close()
        logger.info(f"Redirección {current_url} -> {location}")
        current_url = validate_url(location)

    raise ValidationError(message="Too many redirects",
                          error_code="too_many_redirects",
                          details={"url": url, "max_redirects": MAX_REDIRECTS})


def fetch_remote_image(url: str, max_size: Optional[int] = None) -> bytes:
    """
    Descarga una imagen base a memoria

    Args:
        url (str): URL http(s) de la imagen
        max_size (int, optional): Tamaño máximo permitido en bytes

    Returns:
        bytes: Contenido descargado

    Raises:
        ValidationError: URL insegura, tipo de contenido no permitido o archivo demasiado grande
        NetworkError: Error de red o respuesta HTTP no exitosa
    """
    validated_url = validate_url(url)
    limit = max_size if max_size is not None else MAX_DOWNLOAD_SIZE

    try:
        with _get_following_redirects(validated_url) as response:
            response.raise_for_status()

            content_type = response.headers.get('Content-Type', '').split(';')[0].strip().lower()
            if content_type and content_type not in ALLOWED_IMAGE_MIME_TYPES:
                raise ValidationError(message=f"Content type not allowed: {content_type}",
                                      error_code="invalid_content_type",
                                      details={"url": validated_url, "content_type": content_type})

            content_length = response.headers.get('Content-Length')
            if content_length and content_length.isdigit() and int(content_length) > limit:
                raise ValidationError(message="Remote image too large",
                                      error_code="file_too_large_header",
                                      details={"url": validated_url, "content_length": int(content_length),
                                               "max_size": limit})

            chunks = []
            downloaded = 0
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if not chunk:
                    continue
                downloaded += len(chunk)
                if downloaded > limit:
                    raise ValidationError(message="Remote image too large",
                                          error_code="file_too_large_stream",
                                          details={"url": validated_url, "max_size": limit})
                chunks.append(chunk)

    except requests.RequestException as e:
        error_id = capture_exception(e, {"url": validated_url, "context": "fetch_remote_image"})
        error = NetworkError.from_request_exception(e)
        error.details["error_id"] = error_id
        raise error from e

    logger.info(f"Imagen remota descargada: {validated_url} ({format_size(downloaded)})")
    return b"".join(chunks)


def read_upload(upload: Optional[FileStorage], max_size: Optional[int] = None) -> Optional[bytes]:
    """
    Lee un archivo subido en un formulario multipart

    Returns:
        Optional[bytes]: Contenido, o None si el campo no vino o vino vacío

    Raises:
        ValidationError: Si supera el tamaño máximo
    """
    if upload is None:
        return None

    # Navegadores envían una parte vacía para inputs sin archivo: se trata como ausente
    limit = max_size if max_size is not None else MAX_UPLOAD_SIZE
    data = upload.read(limit + 1)
    if len(data) > limit:
        raise ValidationError(message=f"Uploaded file too large: {upload.name}",
                              error_code="file_too_large_upload",
                              details={"field": upload.name, "max_size": limit})
    return data or None


def format_size(size_bytes: int) -> str:
    if size_bytes < 0: return "0 B"
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0 or unit == 'TB':
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"

# --- END OF FILE file_management.py ---
