"""
Conversión de coordenadas entre el lienzo normalizado (1080x1080) y la
vista previa del editor (containerSize x containerSize píxeles).

El grafo de filtros siempre se expresa en el espacio normalizado. La
escala del overlay es un divisor: ancho en lienzo = ancho intrínseco / scale.
"""

import logging
from typing import Dict, Any, Optional, Tuple

from errors import ValidationError

logger = logging.getLogger(__name__)

CANVAS_SIZE = 1080
MIN_OVERLAY_PX = 50
MIN_SCALE_FLOOR = 0.1
# Tamaño asumido cuando aún no se conoce el tamaño intrínseco del sticker
DEFAULT_INTRINSIC_SIZE = 100


class Placement:
    """Posición (x, y) y escala del overlay en el lienzo normalizado"""

    def __init__(self, x: float, y: float, scale: float):
        if scale is None or scale <= 0:
            raise ValidationError(message="Overlay scale must be greater than 0",
                                  error_code="invalid_scale",
                                  details={"scale": scale})
        self.x = x
        self.y = y
        self.scale = scale

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "scale": self.scale}

    def __eq__(self, other):
        if not isinstance(other, Placement):
            return NotImplemented
        return (self.x, self.y, self.scale) == (other.x, other.y, other.scale)

    def __repr__(self):
        return f"Placement(x={self.x!r}, y={self.y!r}, scale={self.scale!r})"


def _validate_container(container_size: float) -> None:
    if container_size is None or container_size <= 0:
        raise ValidationError(message="Container size must be greater than 0",
                              error_code="invalid_container_size",
                              details={"container_size": container_size})


def _intrinsic(width: Optional[float], height: Optional[float]) -> Tuple[float, float]:
    return (width or DEFAULT_INTRINSIC_SIZE, height or DEFAULT_INTRINSIC_SIZE)


def to_preview_px(normalized: float, container_size: float) -> float:
    _validate_container(container_size)
    return normalized / CANVAS_SIZE * container_size


def to_normalized(preview_px: float, container_size: float) -> float:
    _validate_container(container_size)
    return preview_px / container_size * CANVAS_SIZE


def overlay_size_normalized(intrinsic_width: float, intrinsic_height: float,
                            scale: float) -> Tuple[float, float]:
    """Tamaño del overlay en el lienzo normalizado (iw/scale, ih/scale)."""
    return intrinsic_width / scale, intrinsic_height / scale


def overlay_size_preview(intrinsic_width: float, intrinsic_height: float,
                         scale: float, container_size: float) -> Tuple[float, float]:
    """Tamaño en pantalla del overlay dentro de la vista previa."""
    _validate_container(container_size)
    width, height = overlay_size_normalized(intrinsic_width, intrinsic_height, scale)
    factor = container_size / CANVAS_SIZE
    return width * factor, height * factor


def drag(placement: Placement, left_px: float, top_px: float,
         intrinsic_width: Optional[float], intrinsic_height: Optional[float],
         container_size: float) -> Placement:
    """
    Calcula la nueva posición tras arrastrar el overlay en la vista previa

    Args:
        placement: Posición actual (se conserva la escala)
        left_px, top_px: Esquina superior izquierda en píxeles de la vista previa
        intrinsic_width, intrinsic_height: Tamaño real del sticker
        container_size: Lado de la vista previa en píxeles

    Returns:
        Placement: Posición normalizada, limitada a [0, 1080 - tamaño overlay]
    """
    width, height = _intrinsic(intrinsic_width, intrinsic_height)
    new_x = to_normalized(left_px, container_size)
    new_y = to_normalized(top_px, container_size)

    overlay_w, overlay_h = overlay_size_normalized(width, height, placement.scale)
    new_x = max(0, min(new_x, CANVAS_SIZE - overlay_w))
    new_y = max(0, min(new_y, CANVAS_SIZE - overlay_h))
    return Placement(new_x, new_y, placement.scale)


def min_scale_at(x: float, y: float, intrinsic_width: float, intrinsic_height: float) -> float:
    """Escala mínima que mantiene el overlay dentro del lienzo desde (x, y)."""
    max_width = CANVAS_SIZE - x
    max_height = CANVAS_SIZE - y
    candidates = [MIN_SCALE_FLOOR]
    # En el borde mismo no hay tamaño posible; solo se aplica el piso
    if max_width > 0:
        candidates.append(intrinsic_width / max_width)
    if max_height > 0:
        candidates.append(intrinsic_height / max_height)
    return max(candidates)


def resize(placement: Placement, start_width_px: float, delta_px: float,
           intrinsic_width: float, intrinsic_height: float,
           container_size: float) -> Placement:
    """
    Calcula la nueva escala tras arrastrar el tirador de redimensionado

    El lado menor del overlay nunca baja de 50 px en pantalla (se conserva
    la relación de aspecto) y la escala resultante se limita para que el
    overlay no se salga del lienzo desde su posición actual.

    Args:
        placement: Posición actual (x, y no cambian)
        start_width_px: Ancho en pantalla al iniciar el gesto
        delta_px: Desplazamiento horizontal del puntero desde el inicio
        intrinsic_width, intrinsic_height: Tamaño real del sticker
        container_size: Lado de la vista previa en píxeles

    Returns:
        Placement: Misma posición con la escala resuelta
    """
    _validate_container(container_size)
    if not intrinsic_width or not intrinsic_height:
        raise ValidationError(message="Intrinsic overlay size is required to resize",
                              error_code="missing_intrinsic_size")

    aspect = intrinsic_height / intrinsic_width
    new_width = start_width_px + delta_px
    new_height = aspect * new_width

    if new_width < MIN_OVERLAY_PX or new_height < MIN_OVERLAY_PX:
        if new_width < new_height:
            new_width = MIN_OVERLAY_PX
            new_height = aspect * MIN_OVERLAY_PX
        else:
            new_height = MIN_OVERLAY_PX
            new_width = (intrinsic_width / intrinsic_height) * MIN_OVERLAY_PX
    new_width = max(new_width, MIN_OVERLAY_PX)

    px_to_canvas = CANVAS_SIZE / container_size
    new_scale = intrinsic_width / (new_width * px_to_canvas)
    new_scale = max(new_scale, min_scale_at(placement.x, placement.y,
                                            intrinsic_width, intrinsic_height))

    logger.debug(f"Resize: width {start_width_px}+{delta_px}px -> scale {new_scale}")
    return Placement(placement.x, placement.y, new_scale)


def is_within_canvas(placement: Placement, intrinsic_width: float,
                     intrinsic_height: float) -> bool:
    """Invariante en reposo: 0 <= x <= 1080 - iw/scale (y análogo para y)."""
    overlay_w, overlay_h = overlay_size_normalized(intrinsic_width, intrinsic_height,
                                                   placement.scale)
    return (0 <= placement.x <= CANVAS_SIZE - overlay_w
            and 0 <= placement.y <= CANVAS_SIZE - overlay_h)
