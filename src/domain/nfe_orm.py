# src/domain/nfe_orm.py
# Define o modelo ORM da tabela 'nfes' usando SQLAlchemy.

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Text, DateTime, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base
from src.domain.nfe import NFe, NFeStatus, ensure_utc, to_money


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NfeOrm(Base):
    __tablename__ = 'nfes'

    # Chave de acesso é a chave natural e a chave primária
    access_key: Mapped[str] = mapped_column(String(44), primary_key=True, comment="Chave de acesso da NFe (44 dígitos).")
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    series: Mapped[str] = mapped_column(String(10), nullable=False)
    issuer_cnpj: Mapped[str] = mapped_column(String(14), nullable=False, comment="CNPJ do emitente da nota fiscal.")
    issuer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, comment="Data e hora de emissão da NFe.")
    total_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, comment="Valor total da nota fiscal.")
    xml_path: Mapped[str] = mapped_column(String(500), nullable=False, comment="Caminho relativo do XML no armazenamento.")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NFeStatus.AUTHORIZED.value,
                                        server_default=NFeStatus.AUTHORIZED.value)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps locais
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    @classmethod
    def from_domain(cls, nfe: NFe) -> "NfeOrm":
        orm = cls(access_key=nfe.access_key)
        orm.apply(nfe)
        if nfe.created_at:
            orm.created_at = nfe.created_at
        return orm

    def apply(self, nfe: NFe):
        """Copies the mutable fields of the domain object onto this row."""
        self.number = nfe.number
        self.series = nfe.series
        self.issuer_cnpj = nfe.issuer_cnpj
        self.issuer_name = nfe.issuer_name
        self.issued_at = ensure_utc(nfe.issued_at)
        self.total_value = to_money(nfe.total_value)
        self.xml_path = nfe.xml_path
        self.status = NFeStatus.parse(nfe.status).value
        self.canceled_at = ensure_utc(nfe.canceled_at)
        self.cancellation_reason = nfe.cancellation_reason
        if nfe.updated_at:
            self.updated_at = ensure_utc(nfe.updated_at)

    def to_domain(self) -> NFe:
        return NFe(
            access_key=self.access_key,
            number=self.number,
            series=self.series,
            issuer_cnpj=self.issuer_cnpj,
            issuer_name=self.issuer_name,
            issued_at=ensure_utc(self.issued_at),
            total_value=to_money(self.total_value),
            xml_path=self.xml_path,
            status=NFeStatus(self.status),
            canceled_at=ensure_utc(self.canceled_at),
            cancellation_reason=self.cancellation_reason,
            created_at=ensure_utc(self.created_at),
            updated_at=ensure_utc(self.updated_at),
        )

    def __repr__(self):
        return f"<NfeOrm(key=...{self.access_key[-6:] if self.access_key else 'N/A'}, num={self.number}, status={self.status})>"


# --- Índices para as consultas de listagem e estatísticas ---
Index('ix_nfes_issuer_cnpj', NfeOrm.issuer_cnpj)
Index('ix_nfes_issued_at', NfeOrm.issued_at.desc())
Index('ix_nfes_status', NfeOrm.status)
Index('ix_nfes_created_at', NfeOrm.created_at.desc())
Index('ix_nfes_issuer_cnpj_issued_at', NfeOrm.issuer_cnpj, NfeOrm.issued_at.desc())
