from flask import Blueprint, Response, current_app, jsonify, request
import logging
from app_utils import validate_payload, form_float, form_int, form_bool
from errors import ValidationError, NotFoundError
from services.authentication import authenticate
from services.file_management import read_upload, fetch_remote_image
from services.render_pipeline import (
    WatermarkSettings,
    build_render_request,
    render_reaction,
    DEFAULT_WATERMARK_SCALE,
    DEFAULT_WATERMARK_PADDING_X,
    DEFAULT_WATERMARK_PADDING_Y,
)
from services import placement as placement_math
from services import reaction_catalog

v1_image_reaction_bp = Blueprint('v1_image_reaction', __name__)
logger = logging.getLogger(__name__)

PLACEMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "action": {"type": "string", "enum": ["drag", "resize"]},
        "container_size": {"type": "number", "exclusiveMinimum": 0},
        "x": {"type": "number"},
        "y": {"type": "number"},
        "scale": {"type": "number", "exclusiveMinimum": 0},
        "overlay_id": {"type": "integer", "minimum": 1},
        "intrinsic_width": {"type": "number", "exclusiveMinimum": 0},
        "intrinsic_height": {"type": "number", "exclusiveMinimum": 0},
        "left_px": {"type": "number"},
        "top_px": {"type": "number"},
        "start_width_px": {"type": "number"},
        "delta_px": {"type": "number"}
    },
    "required": ["action", "container_size", "x", "y", "scale"],
    "additionalProperties": False
}


def _read_base_image():
    """Imagen base subida (inputImage) o descargada desde imageUrl"""
    data = read_upload(request.files.get('inputImage'))
    if data is None:
        image_url = request.form.get('imageUrl', '').strip()
        if image_url:
            data = fetch_remote_image(image_url)
    return data


@v1_image_reaction_bp.route('/v1/image/reaction', methods=['POST'])
@v1_image_reaction_bp.route('/api/render', methods=['POST'])
@authenticate
def render_reaction_endpoint():
    form = request.form

    base_image = _read_base_image()
    overlay_image = read_upload(request.files.get('reactionImage'))
    overlay_id = form_int(form, 'overlayId')

    watermark = WatermarkSettings(
        enabled=form_bool(form, 'overlayEnabled'),
        image=read_upload(request.files.get('watermarkImage')),
        scale=form_float(form, 'watermarkScale', DEFAULT_WATERMARK_SCALE),
        padding_x=form_float(form, 'watermarkPaddingX', DEFAULT_WATERMARK_PADDING_X),
        padding_y=form_float(form, 'watermarkPaddingY', DEFAULT_WATERMARK_PADDING_Y),
    )

    render_request = build_render_request(
        base_image,
        overlay_id=overlay_id,
        overlay_image=overlay_image,
        x=form_float(form, 'x'),
        y=form_float(form, 'y'),
        scale=form_float(form, 'scale'),
        watermark=watermark,
        watermark_style=form.get('watermarkStyle'),
        output_extension_hint=form.get('imageExtension'),
    )

    logger.info(f"Render solicitado: overlay_id={overlay_id}, watermark={watermark.active}, "
                f"extension={form.get('imageExtension')}")

    result = render_reaction(
        render_request,
        executor=current_app.config.get('RENDER_EXECUTOR'),
        workspace_root=current_app.config.get('WORKSPACE_ROOT'),
    )

    response = Response(result.data, status=200, mimetype=result.mime_type)
    response.headers['Content-Length'] = str(len(result.data))
    return response


@v1_image_reaction_bp.route('/v1/image/reactions', methods=['GET'])
def list_reactions_endpoint():
    include_size = request.args.get('include_size', 'false').lower() == 'true'
    reactions = reaction_catalog.list_reactions(include_size=include_size)
    return jsonify({
        "status": "success",
        "count": len(reactions),
        "reactions": reactions,
        "watermark_styles": sorted(reaction_catalog.WATERMARK_STYLES)
    })


def _intrinsic_size(payload):
    width = payload.get('intrinsic_width')
    height = payload.get('intrinsic_height')
    if width and height:
        return width, height

    overlay_id = payload.get('overlay_id')
    if overlay_id is None:
        return None, None
    try:
        asset = reaction_catalog.get_reaction(overlay_id)
    except NotFoundError as e:
        raise ValidationError(message=f"Unknown overlay id: {overlay_id}",
                              details={"field": "overlay_id"}) from e
    size = reaction_catalog.reaction_size(asset)
    return size if size else (None, None)


@v1_image_reaction_bp.route('/v1/image/reaction/placement', methods=['POST'])
@validate_payload(PLACEMENT_SCHEMA)
def placement_endpoint(payload):
    container_size = payload['container_size']
    current = placement_math.Placement(payload['x'], payload['y'], payload['scale'])
    width, height = _intrinsic_size(payload)

    if payload['action'] == 'drag':
        missing = [name for name in ('left_px', 'top_px') if name not in payload]
        if missing:
            raise ValidationError(message="Drag requires left_px and top_px",
                                  details={"missing": missing})
        updated = placement_math.drag(current, payload['left_px'], payload['top_px'],
                                      width, height, container_size)
    else:
        if width is None or height is None:
            raise ValidationError(message="Resize requires the intrinsic overlay size",
                                  details={"missing": ["intrinsic_width", "intrinsic_height"]})
        start_width = payload.get('start_width_px')
        if start_width is None:
            start_width = placement_math.overlay_size_preview(width, height, current.scale,
                                                              container_size)[0]
        updated = placement_math.resize(current, start_width, payload.get('delta_px', 0),
                                        width, height, container_size)

    preview_w, preview_h = placement_math.overlay_size_preview(
        width or placement_math.DEFAULT_INTRINSIC_SIZE,
        height or placement_math.DEFAULT_INTRINSIC_SIZE,
        updated.scale, container_size)

    return jsonify({
        "status": "success",
        "placement": updated.to_dict(),
        "preview": {
            "left_px": placement_math.to_preview_px(updated.x, container_size),
            "top_px": placement_math.to_preview_px(updated.y, container_size),
            "width_px": preview_w,
            "height_px": preview_h
        }
    })
