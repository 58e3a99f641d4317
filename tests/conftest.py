import os
import sys
import tempfile
from io import BytesIO

# La configuración se lee al importar config: el entorno de test va primero
_TEST_ROOT = tempfile.mkdtemp(prefix="reactionapi-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ["TEMP_DIR"] = os.path.join(_TEST_ROOT, "workspaces")
os.environ["SWEEP_INTERVAL_MINUTES"] = "0"
os.environ["API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from PIL import Image

from services.render_executor import RenderExecutor


def _image_bytes(fmt, size=(40, 30), color=(200, 30, 30, 255)):
    mode = "RGBA" if fmt == "PNG" else "RGB"
    img = Image.new(mode, size, color if mode == "RGBA" else color[:3])
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return _image_bytes("PNG")


@pytest.fixture
def gif_bytes():
    frames = [Image.new("P", (40, 30), i * 40) for i in range(3)]
    buffer = BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:], duration=100, loop=0)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return _image_bytes("JPEG")


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspaces"
    root.mkdir()
    return str(root)


class FakeExecutor(RenderExecutor):
    """Registra cada llamada y escribe output.<ext> como lo haría FFmpeg"""

    def __init__(self, output=b"rendered-bytes", error=None):
        self.output = output
        self.error = error
        self.calls = []

    def execute(self, workspace_dir, graph_description, output_flags, input_names, extension):
        self.calls.append({
            "workspace_dir": workspace_dir,
            "graph": graph_description,
            "flags": list(output_flags),
            "inputs": list(input_names),
            "extension": extension,
            "staged": sorted(os.listdir(workspace_dir)),
        })
        if self.error is not None:
            raise self.error
        output_path = os.path.join(workspace_dir, f"output.{extension}")
        with open(output_path, "wb") as f:
            f.write(self.output)
        # Artefacto extra que también debe desaparecer con el workspace
        with open(os.path.join(workspace_dir, "ffmpeg2pass-0.log"), "w") as f:
            f.write("log")
        return self.output


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def asset_dirs(tmp_path, monkeypatch):
    """Catálogo en disco: stickers 1.png y 2.png, marca de agua credit.png"""
    import config

    reactions = tmp_path / "reactions"
    reactions.mkdir()
    (reactions / "1.png").write_bytes(_image_bytes("PNG", size=(300, 150)))
    (reactions / "2.png").write_bytes(_image_bytes("PNG", size=(120, 240)))

    watermarks = tmp_path / "watermarks"
    watermarks.mkdir()
    (watermarks / "credit.png").write_bytes(_image_bytes("PNG", size=(80, 20)))

    monkeypatch.setattr(config, "REACTIONS_DIR", str(reactions))
    monkeypatch.setattr(config, "WATERMARKS_DIR", str(watermarks))
    return {"reactions": str(reactions), "watermarks": str(watermarks)}


@pytest.fixture
def flask_app(workspace_root, fake_executor):
    from app import app

    original = dict(app.config)
    app.config.update(TESTING=True, WORKSPACE_ROOT=workspace_root, RENDER_EXECUTOR=fake_executor)
    yield app
    app.config.clear()
    app.config.update(original)


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
