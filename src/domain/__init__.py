# src/domain/__init__.py
# Makes 'domain' a package. Exports domain models and the ORM model (needed by Alembic).

from .nfe import (
    NFe,
    NFeStatus,
    NFeFilter,
    NFePage,
    NFeStats,
    Pagination,
    Period,
    SyncJob,
    SyncJobStatus,
    AccessKeyInfo,
    parse_access_key,
    is_valid_access_key,
    build_xml_path,
)
from .nfe_orm import NfeOrm

__all__ = [
    "NFe", "NFeStatus", "NFeFilter", "NFePage", "NFeStats", "Pagination", "Period",
    "SyncJob", "SyncJobStatus", "AccessKeyInfo",
    "parse_access_key", "is_valid_access_key", "build_xml_path",
    "NfeOrm",
]
