# src/services/__init__.py
# Makes 'services' a package. Exports service classes.

from .nfe_service import NfeService
from .nfe_sync_service import NfeSyncService

__all__ = [
    "NfeService",
    "NfeSyncService",
]
