"""
Catálogo de stickers de reacción y marcas de agua.

Los ids son 1-based: el id n corresponde a REACTIONS[n - 1]. Cada sticker
trae su posición por defecto en el lienzo 1080x1080; los valores que envía
el llamador tienen prioridad.
"""

import os
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from errors import NotFoundError, capture_exception
import config

logger = logging.getLogger(__name__)


class ReactionAsset:
    """Sticker del catálogo con su colocación por defecto"""

    def __init__(self, title: str, filename: str, x: float, y: float, scale: float):
        self.title = title
        self.filename = filename
        self.x = x
        self.y = y
        self.scale = scale

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "filename": self.filename,
            "x": self.x,
            "y": self.y,
            "scale": self.scale,
        }


REACTIONS: List[ReactionAsset] = [
    ReactionAsset("OK!", "1.png", 650, 70, 3),
    ReactionAsset("YES!", "2.png", 650, 70, 3),
    ReactionAsset("NO!", "3.png", 650, 70, 3),
    ReactionAsset("COOL!", "4.png", 650, 70, 3),
    ReactionAsset("LOL!", "5.png", 650, 70, 3),
    ReactionAsset("NICE!", "6.png", 650, 70, 3),
    ReactionAsset("WHAT?", "7.png", 650, 70, 3),
    ReactionAsset("WHY?", "8.png", 650, 70, 3),
    ReactionAsset("GREAT!", "9.png", 650, 70, 3),
    ReactionAsset("LOL!", "10.png", 650, 70, 3),
    ReactionAsset("SURE!", "11.png", 650, 70, 3),
    ReactionAsset("LFC!", "12.png", 650, 70, 3),
    ReactionAsset("!CHIMP", "13.png", 650, 70, 3),
    ReactionAsset("?", "14.png", 650, 70, 3),
    ReactionAsset("WOW!", "15.png", 650, 70, 3),
    ReactionAsset("XD", "16.png", 650, 70, 3),
    ReactionAsset("<3", "17.png", 650, 70, 3),
    ReactionAsset("GM!", "18.png", 650, 70, 3),
    ReactionAsset("GN!", "19.png", 650, 70, 3),
    ReactionAsset("F4F", "20.png", 650, 70, 3),
    ReactionAsset("WLTC!", "21.png", 650, 70, 3),
    ReactionAsset("G(Y)M!", "22.png", 650, 70, 3),
    ReactionAsset("HAPPY CHUESDAY", "23.png", 650, 70, 3),
    ReactionAsset("I AM !CHIMP AND !CHIMP IS ME", "I AM !CHIMP AND !CHIMP IS ME.png", 500, 100, 0.9),
    ReactionAsset("#CHOOSECUTE", "CHOOSECUTE.png", 550, 100, 0.9),
    ReactionAsset("HAPPY 100K!", "happy 100k.png", 550, 100, 0.9),
    ReactionAsset("WELCOME!", "welcome!.png", 600, 100, 0.7),
    ReactionAsset("THANKS!", "thanks.png", 600, 100, 0.7),
    ReactionAsset("LFCHIMP!", "LFCHIMP.png", 600, 100, 0.7),
    ReactionAsset("WEN MINT?", "wen mint.png", 600, 100, 0.7),
    ReactionAsset("FEELING !CHIMPISH", "feeling chimpish.png", 650, 70, 0.8),
    ReactionAsset("WE LOVE $PENGU", "we love pengu.png", 700, 80, 0.9),
    ReactionAsset("$PENGU TO THE MOON!", "pengu to the moon.png", 700, 80, 0.9),
    ReactionAsset("HAPPY CHRISTMAS EVE!", "Happy Christmas Eve.png", 550, 100, 0.9),
    ReactionAsset("MERRY CHRISTMAS!", "merry christmas.png", 600, 100, 0.8),
    ReactionAsset("MERRY CHIMPMAS!", "Merry Chimpmas.png", 400, 100, 0.8),
    ReactionAsset("HAPPY NEW YEAR!", "happy new year.png", 600, 80, 0.8),
    ReactionAsset("TOGETHER WE WHALE!", "together we whale.png", 600, 80, 0.8),
    ReactionAsset("RUMOR IS !CHIMP IS THE ALPHA", "rumor is chimp is the alpha.png", 450, 50, 0.8),
    ReactionAsset("HANDSOME!", "handsome.png", 550, 70, 0.7),
    ReactionAsset("Happy Wisebeard Wednesday!", "Happy Wisebeard Wednesday!.png", 600, 20, 0.9),
    ReactionAsset("Happy WBW!", "Happy WBW.png", 550, 60, 0.7),
    ReactionAsset("$DOOD", "$DOOD.png", 600, 80, 0.8),
    ReactionAsset("$ANIME", "$ANIME.png", 600, 80, 0.8),
    ReactionAsset("yo", "yo.png", 600, 80, 0.6),
    ReactionAsset("HMM!", "HMM!.png", 600, 80, 0.8),
    ReactionAsset("Happy\nMutant Monday!", "Happy Mutant Monday!.png", 500, 60, 1),
    ReactionAsset("Happy Thursday!", "Happy Thursday!.png", 550, 70, 1),
    ReactionAsset("Happy\nHump Day!", "Happy Hump Day!.png", 550, 70, 0.7),
    ReactionAsset("Raid it.", "Raid it.png", 600, 80, 1),
    ReactionAsset("HAPPY\nFRIDAY!", "HAPPY FRIDAY!.png", 550, 70, 0.7),
    ReactionAsset("SIUUU", "SIUUU.png", 600, 80, 0.6),
]

# Estilos de marca de agua; credit.png es el fallback de cualquier estilo
WATERMARK_STYLES = {
    "twoline": "credit.png",
    "oneline": "credit-oneline.png",
}
DEFAULT_WATERMARK_STYLE = "twoline"
FALLBACK_WATERMARK = "credit.png"


def get_reaction(overlay_id: int) -> ReactionAsset:
    """
    Obtiene un sticker por id (1-based)

    Raises:
        NotFoundError: Si el id está fuera del catálogo
    """
    if isinstance(overlay_id, bool) or not isinstance(overlay_id, int) \
            or overlay_id < 1 or overlay_id > len(REACTIONS):
        raise NotFoundError(message=f"Unknown overlay id: {overlay_id}",
                            error_code="unknown_overlay",
                            details={"overlay_id": overlay_id, "catalog_size": len(REACTIONS)})
    return REACTIONS[overlay_id - 1]


def reaction_path(asset: ReactionAsset, reactions_dir: Optional[str] = None) -> str:
    return os.path.join(reactions_dir or config.REACTIONS_DIR, asset.filename)


def load_reaction_bytes(asset: ReactionAsset, reactions_dir: Optional[str] = None) -> bytes:
    """
    Lee los bytes del sticker

    Raises:
        NotFoundError: Si el archivo del sticker no existe
    """
    path = reaction_path(asset, reactions_dir)
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError as e:
        raise NotFoundError(message=f"Reaction asset missing: {asset.filename}",
                            error_code="reaction_asset_missing",
                            details={"filename": asset.filename}) from e


def image_size(data: bytes) -> Tuple[int, int]:
    """Tamaño intrínseco (ancho, alto) de una imagen en memoria"""
    with Image.open(BytesIO(data)) as img:
        return img.size


def reaction_size(asset: ReactionAsset, reactions_dir: Optional[str] = None) -> Optional[Tuple[int, int]]:
    """
    Tamaño intrínseco del sticker, o None si no se puede leer

    El editor asume 100x100 mientras no conoce el tamaño real.
    """
    path = reaction_path(asset, reactions_dir)
    try:
        with Image.open(path) as img:
            return img.size
    except FileNotFoundError:
        logger.warning(f"Sticker no encontrado para medir: {path}")
        return None
    except (UnidentifiedImageError, OSError) as e:
        capture_exception(e, {"path": path, "context": "reaction_size"})
        return None


def load_watermark_bytes(style: Optional[str] = None, watermarks_dir: Optional[str] = None) -> bytes:
    """
    Lee la marca de agua del estilo pedido, con fallback a credit.png

    Raises:
        NotFoundError: Si no existe ni el estilo pedido ni el fallback
    """
    directory = watermarks_dir or config.WATERMARKS_DIR
    filename = WATERMARK_STYLES.get(style or DEFAULT_WATERMARK_STYLE, FALLBACK_WATERMARK)

    for candidate in dict.fromkeys([filename, FALLBACK_WATERMARK]):
        path = os.path.join(directory, candidate)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            if candidate != FALLBACK_WATERMARK:
                logger.info(f"Fallback: {candidate} no encontrado, usando {FALLBACK_WATERMARK}")
            continue
        return data

    raise NotFoundError(message="Watermark asset missing",
                        error_code="watermark_asset_missing",
                        details={"style": style})


def list_reactions(reactions_dir: Optional[str] = None, include_size: bool = False) -> List[Dict[str, Any]]:
    """Listado del catálogo con ids 1-based"""
    items = []
    for index, asset in enumerate(REACTIONS, start=1):
        item = {"id": index, **asset.to_dict()}
        if include_size:
            size = reaction_size(asset, reactions_dir)
            item["width"], item["height"] = size if size else (None, None)
        items.append(item)
    return items
