"""
Gestión del ciclo de vida de los workspaces de render.

Cada render obtiene un directorio propio con nombre único
(<prefijo><epoch ms>-<9 caracteres base36>), escribe en él sus entradas con
nombres fijos (input.<ext>, reaction.<ext>, watermark.<ext>), FFmpeg escribe
output.<ext> y el directorio completo se elimina al salir, tanto si el
render terminó bien como si falló. Un fallo al eliminar solo se registra.
"""

import os
import random
import shutil
import string
import threading
import time
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set

from errors import StagingFailed, CleanupFailed, capture_exception
import config

logger = logging.getLogger(__name__)

BASE36_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9
MAX_CREATE_ATTEMPTS = 5

_system_random = random.SystemRandom()

# Workspaces de renders en curso; el sweeper nunca los toca
_active_workspaces: Set[str] = set()
_active_lock = threading.Lock()


def _register(path: str) -> None:
    with _active_lock:
        _active_workspaces.add(os.path.abspath(path))


def _unregister(path: str) -> None:
    with _active_lock:
        _active_workspaces.discard(os.path.abspath(path))


def is_active(path: str) -> bool:
    """True si el directorio pertenece a un render que aún no lo ha liberado"""
    with _active_lock:
        return os.path.abspath(path) in _active_workspaces


def active_workspaces() -> Set[str]:
    with _active_lock:
        return set(_active_workspaces)


def generate_workspace_name(prefix: str, rng: Optional[random.Random] = None,
                            now: Optional[float] = None) -> str:
    """
    Genera el nombre de un workspace

    Args:
        prefix: Prefijo configurado (por defecto "ffmpeg-")
        rng: Generador aleatorio para el sufijo (SystemRandom si es None)
        now: Marca de tiempo en segundos (time.time() si es None)

    Returns:
        str: Nombre como "ffmpeg-1697712345678-k3j9x0a1b"
    """
    rng = rng or _system_random
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(rng.choice(BASE36_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}{millis}-{suffix}"


class Workspace:
    """Directorio temporal exclusivo de un render"""

    def __init__(self, path: str):
        self.path = path
        self.staged: List[str] = []
        self._destroyed = False

    @classmethod
    def create(cls, root: Optional[str] = None, prefix: Optional[str] = None,
               rng: Optional[random.Random] = None) -> 'Workspace':
        """
        Crea un workspace nuevo con mkdir exclusivo

        Raises:
            StagingFailed: Si no se puede crear el directorio
        """
        root = root or config.TEMP_DIR
        prefix = config.WORKSPACE_PREFIX if prefix is None else prefix

        try:
            os.makedirs(root, exist_ok=True)
        except OSError as e:
            raise StagingFailed(details={"root": root, "reason": str(e)}) from e

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            path = os.path.join(root, generate_workspace_name(prefix, rng))
            try:
                os.mkdir(path, 0o700)
            except FileExistsError:
                logger.warning(f"Colisión de nombre de workspace {path} (intento {attempt}/{MAX_CREATE_ATTEMPTS})")
                continue
            except OSError as e:
                raise StagingFailed(details={"workspace": path, "reason": str(e)}) from e
            _register(path)
            logger.debug(f"Workspace creado: {path}")
            return cls(path)

        raise StagingFailed(details={"root": root, "reason": "no unique workspace name available"})

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def path_for(self, name: str) -> str:
        """Ruta de un archivo del workspace. Solo se aceptan nombres simples."""
        if not name or os.path.basename(name) != name or name in (".", ".."):
            raise ValueError(f"Invalid workspace file name: {name!r}")
        return os.path.join(self.path, name)

    def stage(self, name: str, data: bytes) -> str:
        """
        Escribe bytes de entrada en el workspace

        Raises:
            StagingFailed: Si la escritura falla (disco lleno, cuota, permisos)
        """
        path = self.path_for(name)
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StagingFailed(details={"file": name, "reason": str(e)}) from e
        self.staged.append(name)
        logger.debug(f"Preparado {name} ({len(data)} bytes) en {self.path}")
        return path

    def read(self, name: str) -> bytes:
        with open(self.path_for(name), "rb") as f:
            return f.read()

    def destroy(self) -> bool:
        """
        Elimina el workspace completo, incluidos artefactos extra de FFmpeg

        Nunca lanza excepciones y nunca elimina dos veces.

        Returns:
            bool: True si el directorio ya no existe
        """
        if self._destroyed:
            return True
        self._destroyed = True
        # Liberado por su render: si el borrado falla, el sweeper lo recogerá
        _unregister(self.path)

        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            cleanup_error = CleanupFailed(details={"workspace": self.path, "reason": str(e)})
            error_id = capture_exception(cleanup_error, {"workspace": self.path, "staged": list(self.staged)})
            logger.error(f"No se pudo eliminar el workspace {self.path}: {e} (ID: {error_id})")
            return False

        logger.debug(f"Workspace eliminado: {self.path}")
        return True


@contextmanager
def open_workspace(inputs: Dict[str, bytes], root: Optional[str] = None,
                   prefix: Optional[str] = None,
                   rng: Optional[random.Random] = None) -> Iterator[Workspace]:
    """
    Adquisición con alcance de un workspace con sus entradas ya preparadas

    El workspace se destruye al salir del bloque en cualquier caso, incluido
    un fallo a mitad de la preparación.

    Args:
        inputs: Nombre de archivo -> bytes, escritos antes de ceder el control
        root: Directorio raíz (config.TEMP_DIR si es None)
        prefix: Prefijo del nombre (config.WORKSPACE_PREFIX si es None)
        rng: Generador para el sufijo aleatorio
    """
    workspace = Workspace.create(root=root, prefix=prefix, rng=rng)
    try:
        for name, data in inputs.items():
            workspace.stage(name, data)
        yield workspace
    finally:
        workspace.destroy()
