# src/database/nfe_repository.py
# Handles database operations for NFe documents using SQLAlchemy ORM.

from datetime import date
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from .base_repository import BaseRepository
from src.domain.nfe import (
    NFe, NFeFilter, NFeStats, NFeStatus, Period, start_of_day, end_of_day, to_money
)
from src.domain.nfe_orm import NfeOrm
from src.utils.logger import logger, mask_key
from src.api.errors import DatabaseError, DuplicateKeyError, NotFoundError


def _is_duplicate_key(error: IntegrityError) -> bool:
    """True when the violation is the access_key primary key, not some other constraint."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == "23505"
    message = str(orig)
    return "UNIQUE constraint failed: nfes.access_key" in message or "pk_nfes" in message


class NfeRepository(BaseRepository):
    """
    Document store for NFe records. Each public method is one unit of work
    with its own session; the primary key on access_key is the final arbiter
    of duplicates when two sync runs race on the same document.
    """

    def exists(self, access_key: str) -> bool:
        with self._session() as db:
            stmt = select(NfeOrm.access_key).where(NfeOrm.access_key == access_key).limit(1)
            return db.execute(stmt).scalar_one_or_none() is not None

    def insert(self, nfe: NFe) -> NFe:
        logger.debug(f"Inserting NFe {mask_key(nfe.access_key)} (issuer {nfe.issuer_cnpj}).")
        try:
            with self._session() as db:
                orm = NfeOrm.from_domain(nfe)
                db.add(orm)
                db.flush()
                return orm.to_domain()
        except IntegrityError as e:
            if not _is_duplicate_key(e):
                logger.error(f"Constraint violation inserting NFe {mask_key(nfe.access_key)}: {e.orig}")
                raise DatabaseError(f"Falha de integridade ao gravar NFe {nfe.access_key}: {e.orig}") from e
            logger.info(f"NFe {mask_key(nfe.access_key)} already stored (integrity violation on insert).")
            raise DuplicateKeyError(f"NFe {nfe.access_key} already exists.") from e

    def update(self, nfe: NFe) -> NFe:
        with self._session() as db:
            orm = db.get(NfeOrm, nfe.access_key)
            if orm is None:
                raise NotFoundError(f"NFe com chave {nfe.access_key} não encontrada.")
            orm.apply(nfe)
            db.flush()
            logger.debug(f"Updated NFe {mask_key(nfe.access_key)} -> status {orm.status}.")
            return orm.to_domain()

    def find_by_key(self, access_key: str) -> NFe:
        with self._session() as db:
            orm = db.get(NfeOrm, access_key)
            if orm is None:
                raise NotFoundError(f"NFe com chave {access_key} não encontrada.")
            return orm.to_domain()

    def find_by_filter(self, nfe_filter: NFeFilter) -> Tuple[List[NFe], int]:
        """
        Lists documents matching the (already normalized) filter.
        Returns the requested page and the total number of matching rows.
        """
        query = select(NfeOrm)
        applied_filters = []

        if nfe_filter.issuer_cnpj:
            query = query.where(NfeOrm.issuer_cnpj == nfe_filter.issuer_cnpj)
            applied_filters.append(f"issuer_cnpj == {nfe_filter.issuer_cnpj}")
        if nfe_filter.status:
            query = query.where(NfeOrm.status == NFeStatus.parse(nfe_filter.status).value)
            applied_filters.append(f"status == {NFeStatus.parse(nfe_filter.status).value}")
        if nfe_filter.start_date:
            query = query.where(NfeOrm.issued_at >= start_of_day(nfe_filter.start_date))
            applied_filters.append(f"issued_at >= {nfe_filter.start_date.isoformat()}")
        if nfe_filter.end_date:
            query = query.where(NfeOrm.issued_at <= end_of_day(nfe_filter.end_date))
            applied_filters.append(f"issued_at <= {nfe_filter.end_date.isoformat()}")

        if applied_filters:
            logger.debug(f"Filters applied: {'; '.join(applied_filters)}")

        with self._session() as db:
            # Contar depois dos filtros e antes da paginação
            count_query = select(func.count()).select_from(query.subquery())
            total_count = db.scalar(count_query) or 0

            query = query.order_by(NfeOrm.issued_at.desc(), NfeOrm.access_key.desc())
            query = query.limit(nfe_filter.page_size).offset(nfe_filter.offset)
            results = [orm.to_domain() for orm in db.scalars(query).all()]

        logger.debug(f"NFe search returned {len(results)} items (page {nfe_filter.page}, total {total_count}).")
        return results, total_count

    def stats(self, start_date: date, end_date: date) -> NFeStats:
        """
        Aggregates count and value per status for documents issued in the inclusive window.
        A single grouped SELECT, so the count and the sum come from the same snapshot.
        """
        stmt = (
            select(NfeOrm.status, func.count(NfeOrm.access_key), func.sum(NfeOrm.total_value))
            .where(NfeOrm.issued_at >= start_of_day(start_date))
            .where(NfeOrm.issued_at <= end_of_day(end_date))
            .group_by(NfeOrm.status)
        )
        by_status = {}
        total_count = 0
        total_value = Decimal("0.00")
        with self._session() as db:
            for status, count, value_sum in db.execute(stmt).all():
                by_status[NFeStatus(status)] = count
                total_count += count
                total_value += to_money(value_sum)

        return NFeStats(
            total_nfes=total_count,
            total_value=to_money(total_value),
            period=Period(start=start_date, end=end_date),
            by_status=by_status,
        )
