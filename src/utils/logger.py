import logging
import os
import sys
from concurrent_log_handler import ConcurrentRotatingFileHandler
from typing import Optional

# --- Configuração ---
LOG_DIRECTORY = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "logs")
LOG_FILENAME_BASE = "nfe_sync.log"
LOG_LEVEL_DEFAULT = "INFO"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s | %(filename)s:%(lineno)d] - %(message)s'
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 10

class Logger:
    """Singleton que configura o logger da aplicação (console + arquivo rotativo multi-processo)."""
    _instance = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._logger = None
        return cls._instance

    def __init__(self, name: str = "NfeSyncAPI", log_level: Optional[str] = None):
        level_str = self._resolve_level_name(log_level)
        numeric_level = getattr(logging, level_str)

        if self._logger is None:
            self._logger = logging.getLogger(name)
            self._logger.propagate = False
            self._attach_handlers()

        # Chamadas seguintes apenas reajustam o nível
        self._logger.setLevel(numeric_level)

    @staticmethod
    def _resolve_level_name(log_level: Optional[str]) -> str:
        level_str = log_level
        if level_str is None:
            try:
                from src.config import config  # Importação atrasada para evitar dependências circulares
                level_str = config.LOG_LEVEL
            except ImportError:
                level_str = LOG_LEVEL_DEFAULT
        level_str = level_str.upper()
        if not isinstance(getattr(logging, level_str, None), int):
            print(f"Aviso: Nível de log inválido '{level_str}'. Usando {LOG_LEVEL_DEFAULT}.", file=sys.stderr)
            level_str = LOG_LEVEL_DEFAULT
        return level_str

    def _attach_handlers(self):
        formatter = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self._logger.addHandler(console_handler)

        try:
            os.makedirs(LOG_DIRECTORY, exist_ok=True)
            log_file_path = os.path.join(LOG_DIRECTORY, LOG_FILENAME_BASE)
            file_handler = ConcurrentRotatingFileHandler(
                filename=log_file_path,
                mode='a',
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding='utf-8',
            )
            file_handler.setFormatter(formatter)
            self._logger.addHandler(file_handler)
        except OSError as e:
            print(f"Erro ao configurar log de arquivo: {e}", file=sys.stderr)

    def get_logger(self) -> logging.Logger:
        """Retorna a instância do logger configurado."""
        if not self._logger:
            raise RuntimeError("Logger não foi inicializado.")
        return self._logger

# Instância global do logger
logger_instance = Logger()
logger = logger_instance.get_logger()

def configure_logger(level: str):
    """Reconfigura o nível global do logger."""
    Logger(log_level=level)

def mask_key(access_key: Optional[str]) -> str:
    """Abrevia uma chave de acesso para os logs (apenas os 6 últimos dígitos)."""
    if not access_key:
        return "N/A"
    return f"...{str(access_key)[-6:]}"
