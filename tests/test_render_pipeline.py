import os
import random
import threading

import pytest

from conftest import FakeExecutor
from errors import MissingRequiredInput, ProcessingError, EngineExecutionFailed, StagingFailed
from services.placement import Placement
from services.render_pipeline import (
    RenderRequest,
    WatermarkSettings,
    build_render_request,
    normalize_extension,
    render_reaction,
    resolve_output_extension,
)


def test_scenario_gif_overlay_only(gif_bytes, png_bytes, fake_executor, workspace_root):
    request = RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3))
    result = render_reaction(request, executor=fake_executor, workspace_root=workspace_root)

    assert result.mime_type == "image/gif"
    assert result.data == b"rendered-bytes"
    call = fake_executor.calls[0]
    assert "overlay=650:70" in call["graph"]
    assert "scale=iw/3:ih/3" in call["graph"]
    assert "[2:v]" not in call["graph"]
    assert call["flags"] == ["-f", "gif"]
    assert call["inputs"] == ["input.gif", "reaction.png"]
    assert call["staged"] == ["input.gif", "reaction.png"]


def test_scenario_gif_with_watermark(gif_bytes, png_bytes, fake_executor, workspace_root):
    watermark = WatermarkSettings(enabled=True, image=png_bytes, scale=3, padding_x=20, padding_y=30)
    request = RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3), watermark)
    render_reaction(request, executor=fake_executor, workspace_root=workspace_root)

    call = fake_executor.calls[0]
    assert "[2:v]scale=iw*3:-1[scaled2]" in call["graph"]
    assert "overlay=x=W-w-20:y=H-h-30" in call["graph"]
    assert call["inputs"] == ["input.gif", "reaction.png", "watermark.png"]


def test_scenario_png_with_hint(png_bytes, fake_executor, workspace_root):
    request = RenderRequest(png_bytes, png_bytes, Placement(650, 70, 3), output_extension_hint="png")
    result = render_reaction(request, executor=fake_executor, workspace_root=workspace_root)

    assert result.mime_type == "image/png"
    assert result.extension == "png"
    assert fake_executor.calls[0]["flags"] == []


def test_hint_wins_over_detected_format(gif_bytes, png_bytes, fake_executor, workspace_root):
    request = RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3), output_extension_hint="png")
    result = render_reaction(request, executor=fake_executor, workspace_root=workspace_root)

    assert result.mime_type == "image/png"
    # El flag de contenedor animado solo depende del formato detectado
    assert fake_executor.calls[0]["flags"] == ["-f", "gif"]


def test_jpeg_base_uses_jpg_extension(jpeg_bytes, png_bytes, fake_executor, workspace_root):
    request = RenderRequest(jpeg_bytes, png_bytes, Placement(10, 10, 1))
    result = render_reaction(request, executor=fake_executor, workspace_root=workspace_root)
    assert result.mime_type == "image/jpg"
    assert fake_executor.calls[0]["inputs"][0] == "input.jpg"


def test_missing_base_allocates_nothing(png_bytes, fake_executor, workspace_root):
    request = RenderRequest(None, png_bytes, Placement(650, 70, 3))
    with pytest.raises(MissingRequiredInput) as exc_info:
        render_reaction(request, executor=fake_executor, workspace_root=workspace_root)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Missing required files"
    assert os.listdir(workspace_root) == []
    assert fake_executor.calls == []


def test_missing_overlay_allocates_nothing(gif_bytes, fake_executor, workspace_root):
    request = RenderRequest(gif_bytes, b"", Placement(650, 70, 3))
    with pytest.raises(MissingRequiredInput):
        render_reaction(request, executor=fake_executor, workspace_root=workspace_root)
    assert os.listdir(workspace_root) == []


def test_workspace_removed_after_success(gif_bytes, png_bytes, fake_executor, workspace_root):
    render_reaction(RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3)),
                    executor=fake_executor, workspace_root=workspace_root)
    assert not os.path.exists(fake_executor.calls[0]["workspace_dir"])
    assert os.listdir(workspace_root) == []


def test_workspace_removed_after_engine_failure(gif_bytes, png_bytes, workspace_root):
    executor = FakeExecutor(error=EngineExecutionFailed(details={"reason": "boom"}))
    with pytest.raises(ProcessingError) as exc_info:
        render_reaction(RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3)),
                        executor=executor, workspace_root=workspace_root)

    assert exc_info.value.message == "Failed to process image"
    assert os.listdir(workspace_root) == []


def test_unexpected_errors_become_processing_errors(gif_bytes, png_bytes, workspace_root):
    executor = FakeExecutor(error=KeyError("unexpected"))
    with pytest.raises(ProcessingError) as exc_info:
        render_reaction(RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3)),
                        executor=executor, workspace_root=workspace_root)

    assert exc_info.value.status_code == 500
    assert "unexpected" not in exc_info.value.to_dict()["error"]
    assert os.listdir(workspace_root) == []


def test_unwritable_root_is_staging_failure(gif_bytes, png_bytes, fake_executor, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(StagingFailed):
        render_reaction(RenderRequest(gif_bytes, png_bytes, Placement(650, 70, 3)),
                        executor=fake_executor, workspace_root=str(blocker / "root"))


class EchoExecutor(FakeExecutor):
    """Devuelve los bytes de la imagen base de su propio workspace"""

    def __init__(self, barrier):
        super().__init__()
        self.barrier = barrier

    def execute(self, workspace_dir, graph_description, output_flags, input_names, extension):
        self.calls.append({"workspace_dir": workspace_dir, "inputs": list(input_names)})
        # Todos los renders a la vez dentro de sus workspaces
        self.barrier.wait(timeout=10)
        with open(os.path.join(workspace_dir, input_names[0]), "rb") as f:
            data = f.read()
        with open(os.path.join(workspace_dir, f"output.{extension}"), "wb") as f:
            f.write(data)
        with open(os.path.join(workspace_dir, f"output.{extension}"), "rb") as f:
            return f.read()


def test_concurrent_renders_are_isolated(gif_bytes, png_bytes, jpeg_bytes, workspace_root):
    bases = {
        0: gif_bytes,
        1: png_bytes,
        2: b"\x00garbage",
        3: jpeg_bytes,
    }
    executor = EchoExecutor(threading.Barrier(len(bases)))
    results = {}
    errors = []

    def worker(seed):
        try:
            results[seed] = render_reaction(
                RenderRequest(bases[seed], png_bytes, Placement(seed, seed, 3)),
                executor=executor, workspace_root=workspace_root, rng=random.Random(seed))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in bases]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    for seed, base in bases.items():
        assert results[seed].data == base
        assert f"overlay={seed}:{seed}" in results[seed].graph.description

    assert results[2].mime_type == "image/jpg"
    workspaces = [call["workspace_dir"] for call in executor.calls]
    assert len(set(workspaces)) == len(bases)
    assert os.listdir(workspace_root) == []


def test_build_request_uses_catalog_defaults(asset_dirs, gif_bytes):
    request = build_render_request(gif_bytes, overlay_id=1)
    assert request.overlay == Placement(650, 70, 3)
    assert request.overlay_image.startswith(b"\x89PNG")


def test_build_request_caller_values_win(asset_dirs, gif_bytes):
    request = build_render_request(gif_bytes, overlay_id=1, x=10, scale=2.5)
    assert request.overlay == Placement(10, 70, 2.5)


def test_build_request_unknown_overlay(asset_dirs, gif_bytes):
    with pytest.raises(MissingRequiredInput):
        build_render_request(gif_bytes, overlay_id=999)


def test_build_request_missing_asset_file(asset_dirs, gif_bytes):
    # El id 3 existe en el catálogo pero no hay 3.png en disco
    with pytest.raises(ProcessingError):
        build_render_request(gif_bytes, overlay_id=3)


def test_build_request_requires_base(asset_dirs):
    with pytest.raises(MissingRequiredInput):
        build_render_request(None, overlay_id=1)


def test_build_request_loads_watermark_from_catalog(asset_dirs, gif_bytes, png_bytes):
    request = build_render_request(gif_bytes, overlay_image=png_bytes,
                                   watermark=WatermarkSettings(enabled=True),
                                   watermark_style="oneline")
    # credit-oneline.png no existe: fallback a credit.png
    assert request.watermark.active
    assert request.watermark.image.startswith(b"\x89PNG")


def test_build_request_without_watermark_asset(tmp_path, gif_bytes, png_bytes):
    request = build_render_request(gif_bytes, overlay_image=png_bytes,
                                   watermark=WatermarkSettings(enabled=True),
                                   watermarks_dir=str(tmp_path))
    assert not request.watermark.active


@pytest.mark.parametrize("hint,expected", [
    ("gif", "gif"), ("PNG", "png"), (".jpg", "jpg"), ("jpeg", "jpg"), ("webp", None), ("", None), (None, None),
])
def test_normalize_extension(hint, expected):
    assert normalize_extension(hint) == expected


def test_unsupported_hint_falls_back_to_detected():
    assert resolve_output_extension("bmp", "gif") == "gif"
    assert resolve_output_extension(None, "jpg") == "jpg"
