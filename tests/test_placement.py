import pytest

from errors import ValidationError
from services.placement import (
    CANVAS_SIZE,
    MIN_OVERLAY_PX,
    MIN_SCALE_FLOOR,
    Placement,
    to_preview_px,
    to_normalized,
    overlay_size_normalized,
    overlay_size_preview,
    drag,
    resize,
    min_scale_at,
    is_within_canvas,
)


def test_preview_round_trip():
    assert to_preview_px(540, 540) == 270
    assert to_normalized(270, 540) == 540
    assert to_normalized(to_preview_px(650, 432), 432) == pytest.approx(650)


def test_scale_is_a_divisor():
    assert overlay_size_normalized(300, 150, 3) == (100, 50)
    assert overlay_size_preview(300, 150, 3, 540) == (50, 25)


def test_placement_rejects_non_positive_scale():
    with pytest.raises(ValidationError):
        Placement(0, 0, 0)
    with pytest.raises(ValidationError):
        Placement(0, 0, -1)


def test_container_size_must_be_positive():
    with pytest.raises(ValidationError):
        to_preview_px(10, 0)


def test_drag_maps_preview_pixels():
    moved = drag(Placement(650, 70, 3), 100, 50, 300, 150, 540)
    assert moved == Placement(200, 100, 3)


def test_drag_clamps_to_canvas():
    # Overlay de 100x50 en el lienzo: x máximo 980, y máximo 1030
    moved = drag(Placement(0, 0, 3), 10000, 10000, 300, 150, 540)
    assert moved.x == CANVAS_SIZE - 100
    assert moved.y == CANVAS_SIZE - 50

    moved = drag(Placement(0, 0, 3), -40, -40, 300, 150, 540)
    assert (moved.x, moved.y) == (0, 0)


def test_drag_keeps_scale_and_uses_default_intrinsic_size():
    moved = drag(Placement(0, 0, 2), 10000, 0, None, None, 1080)
    # 100 / 2 = 50 px en el lienzo
    assert moved.x == CANVAS_SIZE - 50
    assert moved.scale == 2


def test_resize_grows_overlay():
    current = Placement(100, 100, 3)
    # 300/3 = 100 en lienzo = 50 px en una vista de 540; +50 px -> 100 px -> escala 1.5
    resized = resize(current, 50, 50, 300, 150, 540)
    assert resized.scale == pytest.approx(1.5)
    assert (resized.x, resized.y) == (100, 100)


def test_resize_enforces_minimum_on_smaller_side():
    resized = resize(Placement(100, 100, 3), 50, -45, 300, 150, 540)
    _, height = overlay_size_preview(300, 150, resized.scale, 540)
    assert height == pytest.approx(MIN_OVERLAY_PX)


def test_resize_cannot_leave_canvas():
    current = Placement(900, 900, 3)
    resized = resize(current, 50, 5000, 300, 150, 540)
    assert resized.scale == pytest.approx(min_scale_at(900, 900, 300, 150))
    assert is_within_canvas(resized, 300, 150)


def test_resize_requires_intrinsic_size():
    with pytest.raises(ValidationError):
        resize(Placement(0, 0, 1), 50, 10, None, None, 540)


def test_min_scale_floor():
    assert min_scale_at(0, 0, 10, 10) == MIN_SCALE_FLOOR
    assert min_scale_at(980, 0, 300, 150) == pytest.approx(3)


def test_min_scale_at_canvas_edge_is_finite():
    assert min_scale_at(CANVAS_SIZE, CANVAS_SIZE, 300, 150) == MIN_SCALE_FLOOR


def test_within_canvas():
    assert is_within_canvas(Placement(650, 70, 3), 300, 150)
    assert not is_within_canvas(Placement(1000, 70, 3), 300, 150)
