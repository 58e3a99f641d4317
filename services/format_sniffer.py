"""
Clasificación de imágenes por magic bytes.

Solo se inspecciona la firma (máximo 4 bytes). No existe comprobación de
firma JPEG: todo lo que no es PNG ni GIF se trata como JPEG, incluidos los
archivos corruptos o vacíos.
"""

from typing import BinaryIO, Union

PNG = "PNG"
GIF = "GIF"
OTHER = "OTHER"

PNG_SIGNATURE = b"\x89PNG"
GIF_SIGNATURE = b"GIF"
SNIFF_LENGTH = 4

EXTENSIONS = {
    PNG: "png",
    GIF: "gif",
    OTHER: "jpg",
}


def detect_format(data: Union[bytes, bytearray, memoryview]) -> str:
    """
    Clasifica un buffer como PNG, GIF u OTHER según su prefijo

    Args:
        data: Bytes de la imagen; basta con el prefijo

    Returns:
        str: PNG, GIF u OTHER
    """
    prefix = bytes(data[:SNIFF_LENGTH])
    if prefix == PNG_SIGNATURE:
        return PNG
    if prefix[:len(GIF_SIGNATURE)] == GIF_SIGNATURE:
        return GIF
    return OTHER


def sniff_stream(stream: BinaryIO) -> str:
    """Clasifica un archivo abierto leyendo solo su prefijo y rebobinándolo."""
    position = stream.tell()
    try:
        return detect_format(stream.read(SNIFF_LENGTH))
    finally:
        stream.seek(position)


def extension_for(fmt: str) -> str:
    return EXTENSIONS.get(fmt, EXTENSIONS[OTHER])


def is_animated(fmt: str) -> bool:
    """Solo GIF fuerza un contenedor de salida animado."""
    return fmt == GIF
