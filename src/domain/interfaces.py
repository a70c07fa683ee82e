# src/domain/interfaces.py
# Capability interfaces consumed by the sync and query services.
# Production classes satisfy them structurally; tests provide in-memory fakes.

from datetime import date
from typing import List, Optional, Protocol, Tuple

from src.domain.nfe import NFe, NFeFilter, NFeStats


class AuthorityClient(Protocol):
    def enumerate_keys(self, issuer_cnpj: str, start_date: Optional[date], end_date: Optional[date]) -> List[str]:
        """Access keys available at the authority for the issuer/window. None dates mean the authority default window."""
        ...

    def fetch_xml(self, access_key: str) -> bytes:
        ...


class DocumentStore(Protocol):
    def exists(self, access_key: str) -> bool: ...

    def insert(self, nfe: NFe) -> NFe:
        """Persists a new document. Raises DuplicateKeyError when the key is already stored."""
        ...

    def update(self, nfe: NFe) -> NFe: ...

    def find_by_key(self, access_key: str) -> NFe:
        """Raises NotFoundError when the key is unknown."""
        ...

    def find_by_filter(self, nfe_filter: NFeFilter) -> Tuple[List[NFe], int]: ...

    def stats(self, start_date: date, end_date: date) -> NFeStats: ...


class ArtifactStore(Protocol):
    def write(self, path: str, data: bytes) -> None:
        """Stores bytes at a relative path. An existing path is never overwritten."""
        ...

    def read(self, path: str) -> bytes: ...

    def exists(self, path: str) -> bool: ...
