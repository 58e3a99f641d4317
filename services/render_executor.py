# --- START OF FILE render_executor.py ---

import os
import subprocess
import logging
import threading
import time
import platform
from typing import List, Optional, Sequence

from errors import EngineExecutionFailed, capture_exception
import config

logger = logging.getLogger(__name__)

# Rutas probadas en orden cuando no hay FFMPEG_PATH; después, el binario de imageio-ffmpeg
SYSTEM_FFMPEG_CANDIDATES = ["ffmpeg", "/usr/bin/ffmpeg", "/opt/bin/ffmpeg"]
VERSION_CHECK_TIMEOUT = 15

_resolved_binary: Optional[str] = None
_resolve_lock = threading.Lock()


def _binary_works(path: str) -> bool:
    """Comprueba que un binario de FFmpeg responde a -version"""
    try:
        subprocess.run([path, "-version"], capture_output=True, check=True,
                       timeout=VERSION_CHECK_TIMEOUT)
        return True
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"FFmpeg no disponible en {path}: {e}")
        return False


def bundled_ffmpeg_binary() -> str:
    """
    Binario empaquetado por imageio-ffmpeg

    Raises:
        EngineExecutionFailed: Si el paquete no puede proporcionar un binario
    """
    import imageio_ffmpeg

    try:
        return imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        raise EngineExecutionFailed(details={"reason": f"bundled ffmpeg unavailable: {e}"}) from e


def resolve_ffmpeg_binary(candidates: Optional[Sequence[str]] = None, use_cache: bool = True) -> str:
    """
    Localiza un binario de FFmpeg funcional

    Prueba FFMPEG_PATH (si está configurado), luego las rutas del sistema y por
    último el binario empaquetado. El resultado se cachea por proceso.

    Args:
        candidates: Rutas a probar en lugar de las rutas por defecto
        use_cache: Reutilizar el binario ya resuelto

    Returns:
        str: Ruta del binario

    Raises:
        EngineExecutionFailed: Si ningún binario funciona
    """
    global _resolved_binary

    with _resolve_lock:
        if use_cache and _resolved_binary:
            return _resolved_binary

        if candidates is None:
            candidates = ([config.FFMPEG_PATH] if config.FFMPEG_PATH else []) + SYSTEM_FFMPEG_CANDIDATES

        for path in candidates:
            if _binary_works(path):
                logger.info(f"Usando FFmpeg del sistema: {path}")
                _resolved_binary = path
                return path

        logger.warning("No se encontró FFmpeg del sistema, probando binario empaquetado")
        bundled = bundled_ffmpeg_binary()
        if not _binary_works(bundled):
            raise EngineExecutionFailed(details={"reason": "no working ffmpeg binary found",
                                                 "candidates": list(candidates) + [bundled]})
        logger.info(f"Usando FFmpeg empaquetado: {bundled}")
        _resolved_binary = bundled
        return bundled


def reset_resolved_binary() -> None:
    global _resolved_binary
    with _resolve_lock:
        _resolved_binary = None


class RenderExecutor:
    """
    Ejecuta el grafo de filtros contra un workspace ya preparado

    Es el único componente que lanza procesos.
    """

    def execute(self, workspace_dir: str, graph_description: str, output_flags: List[str],
                input_names: List[str], extension: str) -> bytes:
        raise NotImplementedError


class FFmpegExecutor(RenderExecutor):
    """Invoca el binario de FFmpeg una vez por render, con cwd en el workspace"""

    def __init__(self, binary: Optional[str] = None, timeout: Optional[int] = None):
        self._binary = binary
        # 0/None = sin límite: el timeout lo impone quien llama
        self.timeout = timeout if timeout is not None else (config.FFMPEG_TIMEOUT or None)

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = resolve_ffmpeg_binary()
        return self._binary

    def build_command(self, graph_description: str, output_flags: List[str],
                      input_names: List[str], extension: str) -> List[str]:
        """
        Construye argv: -y, un -i por entrada (base, reacción, [marca de agua]),
        -filter_complex, flags de salida y output.<ext> al final
        """
        cmd = [self.binary, "-y"]
        for name in input_names:
            cmd.extend(["-i", name])
        cmd.extend(["-filter_complex", graph_description])
        cmd.extend(output_flags)
        cmd.append(output_name(extension))
        return cmd

    def execute(self, workspace_dir: str, graph_description: str, output_flags: List[str],
                input_names: List[str], extension: str) -> bytes:
        """
        Ejecuta FFmpeg y devuelve los bytes de output.<ext>

        Raises:
            EngineExecutionFailed: Código de salida distinto de cero, error al
                lanzar el proceso, timeout, o salida inexistente/vacía
        """
        cmd = self.build_command(graph_description, output_flags, input_names, extension)
        cmd_str = " ".join(cmd)
        logger.debug(f"Ejecutando comando FFmpeg en {workspace_dir}: {cmd_str}")
        start_time = time.time()

        try:
            result = subprocess.run(
                cmd,
                cwd=workspace_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                creationflags=subprocess.CREATE_NO_WINDOW if platform.system() == "Windows" else 0,
            )
        except subprocess.TimeoutExpired as e:
            error_id = capture_exception(e, {"command": cmd_str, "timeout_seconds": self.timeout})
            raise EngineExecutionFailed(details={"reason": "timeout", "error_id": error_id}) from e
        except OSError as e:
            error_id = capture_exception(e, {"command": cmd_str})
            raise EngineExecutionFailed(details={"reason": str(e), "error_id": error_id}) from e

        processing_time = time.time() - start_time

        if result.returncode != 0:
            error = EngineExecutionFailed.from_engine_output(result.returncode, result.stderr, cmd)
            logger.error(f"FFmpeg falló ({processing_time:.2f}s). Code: {result.returncode}, "
                         f"stderr: {error.details['engine_stderr']}")
            raise error

        output_path = os.path.join(workspace_dir, output_name(extension))
        try:
            with open(output_path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.error(f"FFmpeg terminó sin errores pero {output_path} no se puede leer: {e}")
            raise EngineExecutionFailed(details={"reason": "output missing",
                                                 "engine_stderr": (result.stderr or "")[-500:]}) from e

        if not data:
            raise EngineExecutionFailed(details={"reason": "output empty"})

        logger.info(f"Render FFmpeg completado en {processing_time:.2f}s ({len(data)} bytes)")
        return data


class BundledFFmpegExecutor(FFmpegExecutor):
    """Mismo contrato, siempre con el motor empaquetado (despliegue sin FFmpeg del sistema)"""

    def __init__(self, timeout: Optional[int] = None):
        super().__init__(binary=None, timeout=timeout)

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = bundled_ffmpeg_binary()
        return self._binary


def output_name(extension: str) -> str:
    return f"output.{extension}"


def default_executor() -> RenderExecutor:
    return FFmpegExecutor()

# --- END OF FILE render_executor.py ---
