# src/config/settings.py
# Loads environment variables and defines the application configuration.

from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv
import os
import logging
import sys
from urllib.parse import quote_plus # Para senhas na URL

# Determine the project root directory dynamically
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
dotenv_path = os.path.join(PROJECT_ROOT, '.env')
load_dotenv(dotenv_path=dotenv_path)

VALID_AMBIENTES = ('homologacao', 'producao')
VALID_UFS = (
    'AC', 'AL', 'AM', 'AP', 'BA', 'CE', 'DF', 'ES', 'GO', 'MA', 'MG', 'MS', 'MT', 'PA',
    'PB', 'PE', 'PI', 'PR', 'RJ', 'RN', 'RO', 'RR', 'RS', 'SC', 'SE', 'SP', 'TO',
)

@dataclass
class Config:
    """
    Application configuration loaded from environment variables.
    Provides type hints and default values.
    """
    # Flask Settings
    SECRET_KEY: str = field(default_factory=lambda: os.environ.get('SECRET_KEY', 'default_secret_key_change_me_in_env'))
    APP_HOST: str = field(default_factory=lambda: os.environ.get('APP_HOST', '0.0.0.0'))
    APP_PORT: int = field(default_factory=lambda: int(os.environ.get('APP_PORT', 8080)))
    APP_DEBUG: bool = field(default_factory=lambda: os.environ.get('APP_DEBUG', 'False').lower() == 'true')
    LOG_LEVEL: str = field(default_factory=lambda: os.environ.get('LOG_LEVEL', 'INFO').upper())

    # --- Database Settings ---
    DB_TYPE: str = field(default_factory=lambda: os.environ.get('DB_TYPE', 'POSTGRES').upper())
    DB_MAX_CONNECTIONS: int = field(default_factory=lambda: int(os.environ.get('DB_MAX_CONNECTIONS', 25)))

    POSTGRES_HOST: str = field(default_factory=lambda: os.environ.get('POSTGRES_HOST', 'localhost'))
    POSTGRES_PORT: int = field(default_factory=lambda: int(os.environ.get('POSTGRES_PORT', 5432)))
    POSTGRES_USER: str = field(default_factory=lambda: os.environ.get('POSTGRES_USER', ''))
    POSTGRES_PASSWORD: str = field(default_factory=lambda: os.environ.get('POSTGRES_PASSWORD', ''))
    POSTGRES_DB: str = field(default_factory=lambda: os.environ.get('POSTGRES_DB', ''))

    # Constructed in __post_init__ from DB_TYPE
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # --- SEFAZ Settings ---
    SEFAZ_AMBIENTE: str = field(default_factory=lambda: os.environ.get('SEFAZ_AMBIENTE', 'homologacao').lower())
    SEFAZ_UF: str = field(default_factory=lambda: os.environ.get('SEFAZ_UF', 'SP').upper())
    SEFAZ_CNPJ: str = field(default_factory=lambda: os.environ.get('SEFAZ_CNPJ', ''))
    SEFAZ_COMPANY_NAME: str = field(default_factory=lambda: os.environ.get('SEFAZ_COMPANY_NAME', ''))
    SEFAZ_CERT_PATH: str = field(default_factory=lambda: os.environ.get('SEFAZ_CERT_PATH', ''))
    SEFAZ_CERT_PASSWORD: str = field(default_factory=lambda: os.environ.get('SEFAZ_CERT_PASSWORD', ''))
    SEFAZ_BASE_URL: str = field(default_factory=lambda: os.environ.get('SEFAZ_BASE_URL', 'https://hom1.nfe.fazenda.gov.br/sync-gateway'))
    SEFAZ_KEYS_ENDPOINT: str = field(default_factory=lambda: os.environ.get('SEFAZ_KEYS_ENDPOINT', '/nfe/keys/search'))
    SEFAZ_XML_ENDPOINT: str = field(default_factory=lambda: os.environ.get('SEFAZ_XML_ENDPOINT', '/nfe/xml'))
    SEFAZ_TIMEOUT_SECONDS: int = field(default_factory=lambda: int(os.environ.get('SEFAZ_TIMEOUT_SECONDS', 30)))
    SEFAZ_MAX_RETRIES: int = field(default_factory=lambda: int(os.environ.get('SEFAZ_MAX_RETRIES', 3)))
    SEFAZ_DEFAULT_LOOKBACK_DAYS: int = field(default_factory=lambda: int(os.environ.get('SEFAZ_DEFAULT_LOOKBACK_DAYS', 30)))

    # --- XML Storage ---
    XML_STORAGE_PATH: str = field(default_factory=lambda: os.environ.get('XML_STORAGE_PATH', './storage/xmls'))

    # --- Sync Scheduler ---
    SYNC_ENABLED: bool = field(default_factory=lambda: os.environ.get('SYNC_ENABLED', 'True').lower() == 'true')
    SYNC_INTERVAL_MINUTES: int = field(default_factory=lambda: int(os.environ.get('SYNC_INTERVAL_MINUTES', 60)))
    SYNC_INITIAL_DELAY_SECONDS: int = field(default_factory=lambda: int(os.environ.get('SYNC_INITIAL_DELAY_SECONDS', 30)))
    SYNC_MAX_WORKERS: int = field(default_factory=lambda: int(os.environ.get('SYNC_MAX_WORKERS', 4)))

    def __post_init__(self):
        # Validate log level
        valid_levels = list(logging._nameToLevel.keys())
        if self.LOG_LEVEL not in valid_levels:
             print(f"Warning: Invalid LOG_LEVEL '{self.LOG_LEVEL}'. Valid levels: {valid_levels}. Defaulting to INFO.", file=sys.stderr)
             self.LOG_LEVEL = 'INFO'

        # --- Build SQLAlchemy Database URI ---
        if self.DB_TYPE == 'POSTGRES':
            if not all([self.POSTGRES_HOST, self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_DB]):
                print("Warning: Missing PostgreSQL connection details in environment variables. Database connection will likely fail.", file=sys.stderr)
                self.SQLALCHEMY_DATABASE_URI = None
            else:
                 encoded_password = quote_plus(self.POSTGRES_PASSWORD)
                 self.SQLALCHEMY_DATABASE_URI = f"postgresql+psycopg://{self.POSTGRES_USER}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        elif self.DB_TYPE == 'SQLITE':
             db_path = os.environ.get('DATABASE_PATH')
             if db_path:
                  abs_path = os.path.join(PROJECT_ROOT, db_path) if not os.path.isabs(db_path) else db_path
                  os.makedirs(os.path.dirname(abs_path), exist_ok=True)
                  self.SQLALCHEMY_DATABASE_URI = f"sqlite:///{abs_path}"
             else:
                  print("Warning: DB_TYPE is SQLITE but DATABASE_PATH is not set.", file=sys.stderr)
                  self.SQLALCHEMY_DATABASE_URI = None
        else:
             print(f"Warning: Unsupported DB_TYPE '{self.DB_TYPE}'. No database URI configured.", file=sys.stderr)
             self.SQLALCHEMY_DATABASE_URI = None

        # XML storage is resolved against the project root like DATABASE_PATH
        if not os.path.isabs(self.XML_STORAGE_PATH):
            self.XML_STORAGE_PATH = os.path.normpath(os.path.join(PROJECT_ROOT, self.XML_STORAGE_PATH))

        self.SEFAZ_CNPJ = ''.join(ch for ch in self.SEFAZ_CNPJ if ch.isdigit())

        if self.SYNC_MAX_WORKERS < 1:
            print(f"Warning: SYNC_MAX_WORKERS ({self.SYNC_MAX_WORKERS}) is invalid. Setting to 1.", file=sys.stderr)
            self.SYNC_MAX_WORKERS = 1
        elif self.SYNC_MAX_WORKERS > 16:
            print(f"Warning: SYNC_MAX_WORKERS ({self.SYNC_MAX_WORKERS}) is too high. Clamping to 16.", file=sys.stderr)
            self.SYNC_MAX_WORKERS = 16

        if self.SYNC_INTERVAL_MINUTES < 1:
            print(f"Warning: SYNC_INTERVAL_MINUTES ({self.SYNC_INTERVAL_MINUTES}) is invalid. Setting to default 60.", file=sys.stderr)
            self.SYNC_INTERVAL_MINUTES = 60

        if self.SEFAZ_DEFAULT_LOOKBACK_DAYS < 1:
            print(f"Warning: SEFAZ_DEFAULT_LOOKBACK_DAYS ({self.SEFAZ_DEFAULT_LOOKBACK_DAYS}) is invalid. Setting to default 30.", file=sys.stderr)
            self.SEFAZ_DEFAULT_LOOKBACK_DAYS = 30

    def validate(self):
        """
        Checks the settings the sync service cannot run without.
        Raises ConfigurationError on the first problem found.
        """
        from src.api.errors import ConfigurationError

        if len(self.SEFAZ_CNPJ) != 14:
            raise ConfigurationError(f"SEFAZ_CNPJ deve conter 14 dígitos (recebido: '{self.SEFAZ_CNPJ}').")
        if self.SEFAZ_AMBIENTE not in VALID_AMBIENTES:
            raise ConfigurationError(f"SEFAZ_AMBIENTE inválido: '{self.SEFAZ_AMBIENTE}'. Use {VALID_AMBIENTES}.")
        if self.SEFAZ_UF not in VALID_UFS:
            raise ConfigurationError(f"SEFAZ_UF inválida: '{self.SEFAZ_UF}'.")
        if not self.XML_STORAGE_PATH:
            raise ConfigurationError("XML_STORAGE_PATH não está configurado.")

# Singleton instance, created by load_config
_config_instance: Optional[Config] = None

def load_config() -> Config:
    """Loads or returns the singleton Config instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
        print("--- Configuration Loaded ---")
        print(f"  APP_HOST: {_config_instance.APP_HOST}")
        print(f"  APP_PORT: {_config_instance.APP_PORT}")
        print(f"  APP_DEBUG: {_config_instance.APP_DEBUG}")
        print(f"  LOG_LEVEL: {_config_instance.LOG_LEVEL}")
        print(f"  DB_TYPE: {_config_instance.DB_TYPE}")
        db_uri_log = str(_config_instance.SQLALCHEMY_DATABASE_URI)
        if _config_instance.POSTGRES_PASSWORD:
             db_uri_log = db_uri_log.replace(quote_plus(_config_instance.POSTGRES_PASSWORD), '********')
        print(f"  SQLALCHEMY_DATABASE_URI: {db_uri_log}")
        print(f"  SEFAZ_AMBIENTE: {_config_instance.SEFAZ_AMBIENTE}")
        print(f"  SEFAZ_UF: {_config_instance.SEFAZ_UF}")
        print(f"  SEFAZ_CNPJ: {_config_instance.SEFAZ_CNPJ or 'Not Set'}")
        print(f"  SEFAZ_CERT_PATH: {_config_instance.SEFAZ_CERT_PATH or 'Not Set'}")
        print(f"  SEFAZ_CERT_PASSWORD: {'*' * 8 if _config_instance.SEFAZ_CERT_PASSWORD else 'Not Set'}")
        print(f"  XML_STORAGE_PATH: {_config_instance.XML_STORAGE_PATH}")
        print(f"  SYNC_ENABLED: {_config_instance.SYNC_ENABLED} (every {_config_instance.SYNC_INTERVAL_MINUTES} min, workers={_config_instance.SYNC_MAX_WORKERS})")
        print("--------------------------")
    return _config_instance

# Expose the singleton instance directly
config = load_config()

# Helper to get PROJECT_ROOT if needed elsewhere
def get_project_root() -> str:
    return PROJECT_ROOT
