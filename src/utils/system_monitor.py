# src/utils/system_monitor.py
# Monitoramento periódico do processo e do disco onde os XMLs são armazenados.

import os
import threading
from typing import Optional, Dict, Any

import psutil

from .logger import logger

_monitor_thread: Optional[threading.Thread] = None
_stop_monitor = threading.Event()


def resource_snapshot(storage_path: Optional[str] = None) -> Dict[str, Any]:
    """Coleta memória, CPU e threads do processo e, se informado, o uso do disco de armazenamento."""
    process = psutil.Process(os.getpid())
    snapshot: Dict[str, Any] = {
        "memory_rss_mb": round(process.memory_info().rss / (1024 * 1024), 2),
        "cpu_percent": process.cpu_percent(interval=None),
        "threads": process.num_threads(),
    }
    if storage_path and os.path.isdir(storage_path):
        usage = psutil.disk_usage(storage_path)
        snapshot["storage_free_gb"] = round(usage.free / (1024 ** 3), 2)
        snapshot["storage_used_percent"] = usage.percent
    return snapshot


def log_system_resources(storage_path: Optional[str] = None):
    try:
        snap = resource_snapshot(storage_path)
        logger.info(f"Uso de Recursos - Memória (RSS): {snap['memory_rss_mb']:.2f} MB | "
                    f"CPU: {snap['cpu_percent']:.2f}% | Threads: {snap['threads']}")
        if "storage_used_percent" in snap:
            level = logger.warning if snap["storage_used_percent"] >= 90 else logger.info
            level(f"Armazenamento de XML - Uso: {snap['storage_used_percent']:.1f}% | Livre: {snap['storage_free_gb']:.2f} GB")
    except psutil.Error as e:
        logger.warning(f"Não foi possível obter informações do processo para monitoramento: {e}")
    except OSError as e:
        logger.warning(f"Não foi possível obter o uso de disco de '{storage_path}': {e}")


def _monitor_task(interval_seconds: int, storage_path: Optional[str]):
    logger.info(f"Iniciando monitoramento periódico de recursos (Intervalo: {interval_seconds}s)")
    while not _stop_monitor.is_set():
        log_system_resources(storage_path)
        _stop_monitor.wait(timeout=interval_seconds)
    logger.info("Monitoramento periódico de recursos finalizado.")


def start_resource_monitor(interval_seconds: int = 300, storage_path: Optional[str] = None):
    """Inicia a thread de monitoramento. Apenas um monitor por processo."""
    global _monitor_thread
    if _monitor_thread is None or not _monitor_thread.is_alive():
        _stop_monitor.clear()
        _monitor_thread = threading.Thread(target=_monitor_task, args=(interval_seconds, storage_path),
                                           name="resource-monitor", daemon=True)
        _monitor_thread.start()
    else:
        logger.debug("Thread de monitoramento de recursos já está em execução.")


def stop_resource_monitor():
    global _monitor_thread
    if _monitor_thread and _monitor_thread.is_alive():
        logger.info("Parando a thread de monitoramento de recursos...")
        _stop_monitor.set()
        _monitor_thread.join(timeout=5)
        if _monitor_thread.is_alive():
            logger.warning("A thread de monitoramento de recursos não parou corretamente.")
    _monitor_thread = None
