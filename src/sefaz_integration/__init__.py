# src/sefaz_integration/__init__.py
# Makes 'sefaz_integration' a package and exposes the SEFAZ client.

from .sefaz_client import SefazClient
from .nfe_describer import describe_nfe

__all__ = ["SefazClient", "describe_nfe"]
