"""
Construcción del filter_complex de FFmpeg para componer reacciones.

La imagen base se reescala siempre a 1080x1080 (sin letterbox). La escala
del overlay divide (iw/scale) y la de la marca de agua multiplica
(iw*scale): las URLs compartidas dependen de ambas convenciones. El
padding de la marca de agua se interpola tal cual, negativo incluido.
"""

from typing import List

from errors import ValidationError
from services.format_sniffer import is_animated

CANVAS_SIZE = 1080
ANIMATED_OUTPUT_FLAGS = ["-f", "gif"]
# A partir de aquí repr(float) ya usa notación científica
MAX_GRAPH_INTEGER = 10 ** 16


class FilterGraph:
    """Resultado del builder: descripción del grafo y flags de salida"""

    def __init__(self, description: str, output_flags: List[str], input_count: int):
        self.description = description
        self.output_flags = output_flags
        self.input_count = input_count

    def __eq__(self, other):
        if not isinstance(other, FilterGraph):
            return NotImplemented
        return (self.description, self.output_flags, self.input_count) == \
               (other.description, other.output_flags, other.input_count)

    def __repr__(self):
        return f"FilterGraph({self.description!r}, {self.output_flags!r})"


def format_number(value) -> str:
    """
    Interpola un número sin redondear

    650.0 -> "650", 2.5 -> "2.5", -170 -> "-170"
    """
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid filter graph number")
    if isinstance(value, float):
        # nan, inf y notación científica (1e-05, 1e+16) no son expresiones válidas para FFmpeg
        text = repr(value)
        if "e" in text or "n" in text:
            raise ValidationError(message=f"Number out of range for the filter graph: {text}",
                                  error_code="number_out_of_range",
                                  details={"value": text})
        return str(int(value)) if value.is_integer() else text
    if abs(value) >= MAX_GRAPH_INTEGER:
        raise ValidationError(message=f"Number out of range for the filter graph: {value}",
                              error_code="number_out_of_range",
                              details={"value": str(value)})
    return str(value)


def overlay_terms(x, y, scale) -> List[str]:
    """Escalado de la base a 1080x1080 y del sticker (divisor), más su overlay."""
    return [
        f"[0:v]scale={CANVAS_SIZE}:{CANVAS_SIZE}[scaled_input]",
        f"[1:v]scale=iw/{format_number(scale)}:ih/{format_number(scale)}[scaled1]",
        f"[scaled_input][scaled1]overlay={format_number(x)}:{format_number(y)}",
    ]


def watermark_terms(watermark_scale, padding_x, padding_y) -> List[str]:
    """Marca de agua anclada abajo a la derecha (multiplicador de escala)."""
    return [
        f"[2:v]scale=iw*{format_number(watermark_scale)}:-1[scaled2]",
        f"[video1][scaled2]overlay=x=W-w-{format_number(padding_x)}"
        f":y=H-h-{format_number(padding_y)}",
    ]


def build_filter_graph(request, detected_format: str) -> FilterGraph:
    """
    Construye el grafo para un RenderRequest

    Args:
        request: RenderRequest (overlay y watermark ya resueltos)
        detected_format: Formato de la imagen base según el sniffer

    Returns:
        FilterGraph: descripción, flags de salida y número de entradas
    """
    placement = request.overlay
    terms = overlay_terms(placement.x, placement.y, placement.scale)
    input_count = 2

    watermark = request.watermark
    if watermark is not None and watermark.active:
        terms[-1] += "[video1]"
        terms.extend(watermark_terms(watermark.scale, watermark.padding_x, watermark.padding_y))
        input_count = 3

    output_flags = list(ANIMATED_OUTPUT_FLAGS) if is_animated(detected_format) else []
    return FilterGraph("; ".join(terms), output_flags, input_count)
