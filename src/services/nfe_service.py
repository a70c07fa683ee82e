# src/services/nfe_service.py
# Contém a lógica de consulta de NFes: listagem paginada, detalhe, XML, estatísticas e atualização de status.

from datetime import date
from typing import Optional

from src.domain.interfaces import DocumentStore, ArtifactStore
from src.domain.nfe import (
    NFe, NFeFilter, NFePage, NFeStats, NFeStatus, Pagination, is_valid_access_key
)
from src.utils.logger import logger, mask_key
from src.api.errors import ValidationError, NotFoundError


class NfeService:
    """
    Service layer for reading the locally synchronized NFes.
    Input is validated here, before any call reaches the document store.
    """

    def __init__(self, store: DocumentStore, artifacts: ArtifactStore):
        self.store = store
        self.artifacts = artifacts
        logger.info("Serviço de consulta de NFe inicializado.")

    def list_nfes(self, nfe_filter: NFeFilter) -> NFePage:
        """
        Lists NFes most recent first.

        Raises:
            ValidationError: Unknown status or start_date after end_date.
        """
        normalized = nfe_filter.normalized()
        logger.debug(f"Listando NFes: {normalized}")
        items, total = self.store.find_by_filter(normalized)
        return NFePage(items=items, pagination=Pagination(page=normalized.page, page_size=normalized.page_size, total=total))

    def get_nfe(self, access_key: str) -> NFe:
        self._validate_key(access_key)
        return self.store.find_by_key(access_key)

    def get_xml(self, access_key: str) -> bytes:
        nfe = self.get_nfe(access_key)
        try:
            return self.artifacts.read(nfe.xml_path)
        except NotFoundError:
            logger.error(f"NFe {mask_key(access_key)} registrada mas XML ausente em '{nfe.xml_path}'.")
            raise NotFoundError(f"XML da NFe {access_key} não encontrado no armazenamento.")

    def get_stats(self, start_date: Optional[date], end_date: Optional[date]) -> NFeStats:
        if start_date is None or end_date is None:
            raise ValidationError("start_date e end_date são obrigatórios.")
        if start_date > end_date:
            raise ValidationError("start_date não pode ser posterior a end_date.")
        stats = self.store.stats(start_date, end_date)
        logger.debug(f"Estatísticas {start_date} a {end_date}: {stats.total_nfes} NFes, total {stats.total_value}.")
        return stats

    def update_status(self, access_key: str, status, reason: Optional[str] = None) -> NFe:
        """
        Applies a status reported by an external source (e.g. a cancellation event).
        Cancelling records canceled_at and the reason; the record itself is kept.
        A canceled NFe cannot move to any other status.
        """
        self._validate_key(access_key)
        new_status = NFeStatus.parse(status)
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("Campo 'reason' deve ser um texto.")
        reason = reason.strip() if reason else None
        if new_status == NFeStatus.CANCELED and not reason:
            raise ValidationError("Motivo do cancelamento é obrigatório para o status 'canceled'.")

        current = self.store.find_by_key(access_key)
        # Cancelamento de NF-e é definitivo
        if current.status == NFeStatus.CANCELED and new_status != NFeStatus.CANCELED:
            raise ValidationError(
                f"NFe {mask_key(access_key)} está cancelada; não é possível alterar o status para '{new_status.value}'."
            )
        updated = self.store.update(current.with_status(new_status, reason))
        logger.info(f"Status da NFe {mask_key(access_key)} alterado de '{current.status.value}' para '{updated.status.value}'.")
        return updated

    @staticmethod
    def _validate_key(access_key: str):
        if not is_valid_access_key(access_key):
            raise ValidationError("Formato de chave de acesso inválido. Deve conter 44 dígitos.")
