# src/config/__init__.py
# Configuration package. Exposes the singleton and the dataclass.

from .settings import config, Config, load_config, get_project_root

__all__ = ["config", "Config", "load_config", "get_project_root"]
