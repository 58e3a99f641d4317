"""
Pipeline de composición de reacciones.

Flujo: validar entradas -> detectar formato de la imagen base -> construir
el grafo -> preparar el workspace -> ejecutar FFmpeg -> leer la salida ->
eliminar el workspace. Cada render es independiente y sin estado.
"""

import time
import uuid
import logging
import random
from typing import Dict, Any, Optional

from errors import (
    ProcessingError,
    MissingRequiredInput,
    NotFoundError,
    capture_exception
)
from services.format_sniffer import detect_format, extension_for
from services.filter_graph import build_filter_graph, FilterGraph
from services.placement import Placement
from services.render_executor import RenderExecutor, default_executor
from services.workspace import open_workspace
from services import reaction_catalog

logger = logging.getLogger(__name__)

OUTPUT_EXTENSIONS = ("gif", "png", "jpg")
EXTENSION_ALIASES = {"jpeg": "jpg"}

# Colocación del sticker clásico cuando no viene del catálogo ni del llamador
DEFAULT_PLACEMENT = {"x": 650, "y": 70, "scale": 3}

# Valores por defecto del endpoint de servidor para la marca de agua
DEFAULT_WATERMARK_SCALE = 1
DEFAULT_WATERMARK_PADDING_X = 20
DEFAULT_WATERMARK_PADDING_Y = 20


class WatermarkSettings:
    """Marca de agua opcional. La escala es un multiplicador (iw*scale)."""

    def __init__(self, enabled: bool = False, image: Optional[bytes] = None,
                 scale: float = DEFAULT_WATERMARK_SCALE,
                 padding_x: float = DEFAULT_WATERMARK_PADDING_X,
                 padding_y: float = DEFAULT_WATERMARK_PADDING_Y):
        self.enabled = enabled
        self.image = image
        self.scale = scale
        self.padding_x = padding_x
        self.padding_y = padding_y

    @property
    def active(self) -> bool:
        """Solo se compone si está activada y hay imagen."""
        return bool(self.enabled and self.image)


class RenderRequest:
    """Entrada de un render. La escala del overlay es un divisor (iw/scale)."""

    def __init__(self, base_image: Optional[bytes], overlay_image: Optional[bytes],
                 overlay: Placement, watermark: Optional[WatermarkSettings] = None,
                 output_extension_hint: Optional[str] = None,
                 overlay_id: Optional[int] = None):
        self.base_image = base_image
        self.overlay_image = overlay_image
        self.overlay = overlay
        self.watermark = watermark or WatermarkSettings()
        self.output_extension_hint = output_extension_hint
        self.overlay_id = overlay_id


class RenderResult:
    """Bytes renderizados y su tipo MIME"""

    def __init__(self, data: bytes, extension: str, graph: FilterGraph):
        self.data = data
        self.extension = extension
        self.mime_type = f"image/{extension}"
        self.graph = graph

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mime_type": self.mime_type,
            "size": len(self.data),
            "filter_complex": self.graph.description,
            "output_flags": self.graph.output_flags,
        }


def normalize_extension(hint: Optional[str]) -> Optional[str]:
    """Normaliza la extensión declarada; None si no es gif, png ni jpg."""
    if not hint:
        return None
    ext = hint.strip().lower().lstrip(".")
    ext = EXTENSION_ALIASES.get(ext, ext)
    return ext if ext in OUTPUT_EXTENSIONS else None


def resolve_output_extension(hint: Optional[str], input_extension: str) -> str:
    """
    Extensión del contenedor de salida

    Manda la extensión declarada por el llamador; sin ella, la detectada en
    la entrada. El flag de GIF animado no depende de esto.
    """
    ext = normalize_extension(hint)
    if ext is None:
        if hint:
            logger.warning(f"Extensión de salida no soportada '{hint}', usando '{input_extension}'")
        return input_extension
    return ext


def build_render_request(base_image: Optional[bytes],
                         overlay_id: Optional[int] = None,
                         overlay_image: Optional[bytes] = None,
                         x: Optional[float] = None,
                         y: Optional[float] = None,
                         scale: Optional[float] = None,
                         watermark: Optional[WatermarkSettings] = None,
                         watermark_style: Optional[str] = None,
                         output_extension_hint: Optional[str] = None,
                         reactions_dir: Optional[str] = None,
                         watermarks_dir: Optional[str] = None) -> RenderRequest:
    """
    Resuelve un RenderRequest a partir de campos sueltos

    Los bytes del sticker salen del catálogo cuando no se suben; la posición
    del catálogo solo se usa para los campos que no envía el llamador.

    Raises:
        MissingRequiredInput: Falta la imagen base o el sticker (o el id no existe)
        ProcessingError: El catálogo apunta a un archivo que no está en el servidor
    """
    if not base_image:
        raise MissingRequiredInput(details={"missing": ["base_image"]})

    defaults = dict(DEFAULT_PLACEMENT)
    if overlay_id is not None:
        try:
            asset = reaction_catalog.get_reaction(overlay_id)
        except NotFoundError as e:
            raise MissingRequiredInput(details={"missing": ["overlay"], "overlay_id": overlay_id}) from e
        defaults = {"x": asset.x, "y": asset.y, "scale": asset.scale}
        if not overlay_image:
            try:
                overlay_image = reaction_catalog.load_reaction_bytes(asset, reactions_dir)
            except NotFoundError as e:
                error_id = capture_exception(e, {"overlay_id": overlay_id})
                raise ProcessingError(details={"error_id": error_id}) from e

    if not overlay_image:
        raise MissingRequiredInput(details={"missing": ["overlay"]})

    placement = Placement(
        defaults["x"] if x is None else x,
        defaults["y"] if y is None else y,
        defaults["scale"] if scale is None else scale,
    )

    watermark = watermark or WatermarkSettings()
    if watermark.enabled and not watermark.image:
        try:
            watermark.image = reaction_catalog.load_watermark_bytes(watermark_style, watermarks_dir)
        except NotFoundError as e:
            # Sin asset de marca de agua se renderiza sin ella
            capture_exception(e, {"watermark_style": watermark_style})

    return RenderRequest(base_image, overlay_image, placement, watermark,
                         output_extension_hint=output_extension_hint, overlay_id=overlay_id)


def validate_request(request: RenderRequest) -> None:
    """Comprobación previa a reservar recursos"""
    missing = []
    if not request.base_image:
        missing.append("base_image")
    if not request.overlay_image:
        missing.append("overlay")
    if missing:
        raise MissingRequiredInput(details={"missing": missing})


def stage_names(request: RenderRequest, input_extension: str) -> Dict[str, bytes]:
    """Nombres fijos en orden de entrada de FFmpeg: base, sticker, [marca de agua]"""
    inputs = {
        f"input.{input_extension}": request.base_image,
        f"reaction.{extension_for(detect_format(request.overlay_image))}": request.overlay_image,
    }
    if request.watermark.active:
        inputs[f"watermark.{extension_for(detect_format(request.watermark.image))}"] = request.watermark.image
    return inputs


def render_reaction(request: RenderRequest,
                    executor: Optional[RenderExecutor] = None,
                    workspace_root: Optional[str] = None,
                    rng: Optional[random.Random] = None) -> RenderResult:
    """
    Ejecuta un render completo

    Args:
        request: Entradas ya resueltas
        executor: Motor a usar (FFmpegExecutor por defecto)
        workspace_root: Directorio donde crear el workspace (config.TEMP_DIR)
        rng: Generador para el nombre del workspace

    Returns:
        RenderResult: bytes y tipo MIME

    Raises:
        MissingRequiredInput: Antes de crear cualquier recurso
        ProcessingError: Cualquier fallo desde la preparación hasta la lectura de la salida
    """
    validate_request(request)

    render_id = uuid.uuid4().hex[:12]
    detected = detect_format(request.base_image)
    input_extension = extension_for(detected)
    output_extension = resolve_output_extension(request.output_extension_hint, input_extension)
    graph = build_filter_graph(request, detected)
    inputs = stage_names(request, input_extension)

    logger.info(f"Render {render_id}: entrada {detected} -> output.{output_extension}, "
                f"{graph.input_count} entradas, flags={graph.output_flags}")
    logger.debug(f"Render {render_id}: filter_complex={graph.description}")

    executor = executor or default_executor()
    start_time = time.time()

    try:
        with open_workspace(inputs, root=workspace_root, rng=rng) as workspace:
            data = executor.execute(workspace.path, graph.description, graph.output_flags,
                                    list(inputs), output_extension)
    except ProcessingError as e:
        logger.error(f"Render {render_id}: {e.error_code} - {e.message} {e.details}")
        raise
    except Exception as e:
        error_id = capture_exception(e, {"render_id": render_id, "context": "render_reaction"})
        raise ProcessingError(details={"render_id": render_id, "error_id": error_id}) from e

    logger.info(f"Render {render_id}: completado en {time.time() - start_time:.2f}s ({len(data)} bytes)")
    return RenderResult(data, output_extension, graph)
