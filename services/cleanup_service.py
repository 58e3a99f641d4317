import os
import re
import shutil
import threading
import time
import logging
import psutil
from datetime import datetime
from typing import Dict, List, Optional, Any

from services.file_management import format_size
from services.workspace import is_active
from errors import CleanupFailed, capture_exception
import config

logger = logging.getLogger(__name__)

# Constantes para configuración
DEFAULT_SWEEP_INTERVAL = 30  # minutos
DEFAULT_MAX_WORKSPACE_AGE = 60  # minutos
DEFAULT_DISK_THRESHOLD = 90  # porcentaje
DEFAULT_EMERGENCY_THRESHOLD = 95  # porcentaje


class StorageStatus:
    """Estado del disco donde viven los workspaces"""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class SweepResult:
    """Resultado de una pasada del sweeper"""
    def __init__(self,
                 dirs_removed: int = 0,
                 bytes_freed: int = 0,
                 errors: Optional[List[str]] = None,
                 status: str = StorageStatus.NORMAL,
                 dirs_in_use: int = 0):
        self.dirs_removed = dirs_removed
        self.dirs_in_use = dirs_in_use
        self.bytes_freed = bytes_freed
        self.errors = errors or []
        self.status = status
        self.timestamp = datetime.now()

    def __str__(self) -> str:
        return (f"SweepResult: {self.dirs_removed} workspaces eliminados, "
                f"{format_size(self.bytes_freed)} liberados, "
                f"estado: {self.status}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dirs_removed': self.dirs_removed,
            'dirs_in_use': self.dirs_in_use,
            'bytes_freed': self.bytes_freed,
            'bytes_freed_formatted': format_size(self.bytes_freed),
            'errors': self.errors,
            'status': self.status,
            'timestamp': self.timestamp.isoformat()
        }


class WorkspaceSweeper:
    """
    Limpieza periódica de workspaces huérfanos

    Cada render elimina su propio workspace; aquí solo se recogen los que
    quedaron tras una muerte abrupta del proceso (SIGKILL, OOM).
    """
    def __init__(self, root: Optional[str] = None,
                 prefix: Optional[str] = None,
                 interval_minutes: int = DEFAULT_SWEEP_INTERVAL,
                 max_age_minutes: Optional[int] = None,
                 disk_threshold_percent: int = DEFAULT_DISK_THRESHOLD,
                 emergency_threshold_percent: int = DEFAULT_EMERGENCY_THRESHOLD):
        """
        Args:
            root: Directorio raíz de los workspaces (config.TEMP_DIR)
            prefix: Prefijo de los workspaces (config.WORKSPACE_PREFIX)
            interval_minutes: Intervalo entre pasadas
            max_age_minutes: Edad mínima para considerar huérfano un workspace
            disk_threshold_percent: Uso de disco a partir del cual se avisa
            emergency_threshold_percent: Uso de disco que fuerza edad mínima reducida
        """
        self.root = root or config.TEMP_DIR
        self.prefix = config.WORKSPACE_PREFIX if prefix is None else prefix
        self.interval = interval_minutes * 60
        self.max_age = (max_age_minutes if max_age_minutes is not None
                        else getattr(config, 'WORKSPACE_MAX_AGE_MINUTES', DEFAULT_MAX_WORKSPACE_AGE)) * 60
        self.disk_threshold = disk_threshold_percent
        self.emergency_threshold = emergency_threshold_percent
        self.name_pattern = re.compile(rf"^{re.escape(self.prefix)}\d+-[0-9a-z]+$")

        # Variables de control
        self.shutdown_flag = threading.Event()
        self.manual_trigger = threading.Event()
        self.thread = None

        # Métricas
        self.last_run_time = None
        self.last_result = None
        self.run_count = 0
        self.total_dirs_removed = 0
        self.total_bytes_freed = 0

    def start(self):
        """Iniciar el sweeper en un hilo separado"""
        if self.thread is not None:
            logger.warning("Sweeper de workspaces ya en ejecución")
            return

        self.thread = threading.Thread(target=self._run, name="workspace-sweeper", daemon=True)
        self.thread.start()
        logger.info(f"Sweeper de workspaces iniciado (intervalo: {self.interval/60} minutos)")

    def stop(self):
        """Detener el sweeper"""
        if self.thread is None:
            return

        logger.info("Deteniendo sweeper de workspaces...")
        self.shutdown_flag.set()
        self.manual_trigger.set()
        self.thread.join(timeout=30)

        if self.thread.is_alive():
            logger.warning("El sweeper de workspaces no terminó correctamente")
        else:
            self.thread = None
            self.shutdown_flag.clear()
            self.manual_trigger.clear()

    def request_sweep(self):
        """Solicitar una pasada inmediata"""
        self.manual_trigger.set()

    def _run(self):
        while not self.shutdown_flag.is_set():
            try:
                self.run_once()
            except Exception as e:
                capture_exception(e, {"context": "workspace_sweeper_cycle"})

            self.manual_trigger.wait(timeout=self.interval)
            self.manual_trigger.clear()

    def check_storage_status(self) -> str:
        """Estado del disco según psutil"""
        try:
            used_percent = psutil.disk_usage(self.root).percent
        except OSError as e:
            logger.error(f"Error verificando almacenamiento en {self.root}: {e}")
            return StorageStatus.WARNING

        if used_percent >= self.emergency_threshold:
            return StorageStatus.EMERGENCY
        if used_percent >= self.disk_threshold:
            return StorageStatus.CRITICAL
        if used_percent >= self.disk_threshold * 0.9:
            return StorageStatus.WARNING
        return StorageStatus.NORMAL

    def _is_workspace(self, entry: os.DirEntry) -> bool:
        return entry.is_dir(follow_symlinks=False) and bool(self.name_pattern.match(entry.name))

    def run_once(self, now: Optional[float] = None) -> SweepResult:
        """
        Elimina los workspaces huérfanos más antiguos que max_age

        En emergencia de disco la edad mínima se reduce a la cuarta parte; un
        workspace recién creado nunca se toca.

        Returns:
            SweepResult: Directorios eliminados, bytes liberados y errores
        """
        now = time.time() if now is None else now
        status = self.check_storage_status()
        max_age = self.max_age / 4 if status == StorageStatus.EMERGENCY else self.max_age
        result = SweepResult(status=status)

        if not os.path.isdir(self.root):
            logger.warning(f"Directorio de workspaces inexistente: {self.root}")
            return result

        with os.scandir(self.root) as entries:
            candidates = [entry for entry in entries if self._is_workspace(entry)]

        for entry in candidates:
            # Un render sin timeout puede superar max_age: su workspace sigue siendo suyo
            if is_active(entry.path):
                result.dirs_in_use += 1
                continue

            try:
                age = now - entry.stat(follow_symlinks=False).st_mtime
            except FileNotFoundError:
                continue
            if age <= max_age:
                continue

            size = self._get_directory_size(entry.path)
            try:
                shutil.rmtree(entry.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                capture_exception(CleanupFailed(details={"workspace": entry.path, "reason": str(e)}),
                                  {"context": "workspace_sweeper"})
                result.errors.append(f"{entry.name}: {e}")
                continue

            result.dirs_removed += 1
            result.bytes_freed += size
            logger.info(f"Workspace huérfano eliminado: {entry.path} (edad {age/60:.1f} min)")

        self.last_run_time = datetime.now()
        self.last_result = result
        self.run_count += 1
        self.total_dirs_removed += result.dirs_removed
        self.total_bytes_freed += result.bytes_freed

        if result.dirs_removed or result.errors:
            logger.info(str(result))
        return result

    def _get_directory_size(self, path: str) -> int:
        total = 0
        for root, _, files in os.walk(path):
            for name in files:
                try:
                    total += os.path.getsize(os.path.join(root, name))
                except OSError:
                    continue
        return total

    def get_stats(self) -> Dict[str, Any]:
        return {
            'root': self.root,
            'run_count': self.run_count,
            'total_dirs_removed': self.total_dirs_removed,
            'total_bytes_freed': self.total_bytes_freed,
            'total_freed_formatted': format_size(self.total_bytes_freed),
            'last_run': self.last_run_time.isoformat() if self.last_run_time else None,
            'last_result': self.last_result.to_dict() if self.last_result else None,
            'interval_minutes': self.interval / 60,
            'max_age_minutes': self.max_age / 60,
        }
