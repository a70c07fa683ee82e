# src/domain/nfe.py
# Defines the NFe domain model: documents, filters, statistics and sync jobs.

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, date, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Dict, Any, List

from src.api.errors import ValidationError

ACCESS_KEY_LENGTH = 44
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MONEY_QUANTUM = Decimal("0.01")


class NFeStatus(str, Enum):
    AUTHORIZED = "authorized"
    CANCELED = "canceled"
    DENIED = "denied"
    REJECTED = "rejected"
    PROCESSING = "processing"

    @classmethod
    def parse(cls, value: Any) -> "NFeStatus":
        """Converts raw input into an NFeStatus, raising ValidationError for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValidationError(f"Invalid status '{value}'. Valid values: {valid}.")


class SyncJobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# --- Helpers ---

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Returns the datetime as UTC-aware. Naive values are assumed to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def to_money(value: Any) -> Decimal:
    """Converts a numeric value to a 2-place Decimal without passing through binary float formatting."""
    if value is None:
        return Decimal("0.00")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        return amount.quantize(MONEY_QUANTUM)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid monetary value '{value}'.") from e

def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)

def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)

def is_valid_access_key(access_key: Any) -> bool:
    return isinstance(access_key, str) and len(access_key) == ACCESS_KEY_LENGTH and access_key.isdigit()

def build_xml_path(issued_at: datetime, access_key: str) -> str:
    """
    Computes the relative storage path of an NFe XML: '{YYYY}/{MM}/{access_key}.xml'.
    Pure function of the issue date and the key, so the same document always maps to the same file.
    """
    issued_at = ensure_utc(issued_at)
    return f"{issued_at.year:04d}/{issued_at.month:02d}/{access_key}.xml"


@dataclass(frozen=True)
class AccessKeyInfo:
    """
    The fields encoded in a 44-digit NFe access key:
    cUF(2) AAMM(4) CNPJ(14) mod(2) serie(3) nNF(9) tpEmis(1) cNF(8) cDV(1).
    """
    uf_code: str
    year: int
    month: int
    issuer_cnpj: str
    model: str
    series: str
    number: str
    emission_type: str
    numeric_code: str
    check_digit: str

    @property
    def issue_month_start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

def parse_access_key(access_key: str) -> AccessKeyInfo:
    """Splits an access key into its fields. Raises ValidationError if the key is malformed."""
    if not is_valid_access_key(access_key):
        raise ValidationError("Formato de chave de acesso inválido. Deve conter 44 dígitos.")
    month = int(access_key[4:6])
    if not 1 <= month <= 12:
        raise ValidationError(f"Chave de acesso com mês de emissão inválido: {access_key[4:6]}.")
    return AccessKeyInfo(
        uf_code=access_key[0:2],
        year=2000 + int(access_key[2:4]),
        month=month,
        issuer_cnpj=access_key[6:20],
        model=access_key[20:22],
        series=str(int(access_key[22:25])),
        number=str(int(access_key[25:34])),
        emission_type=access_key[34:35],
        numeric_code=access_key[35:43],
        check_digit=access_key[43:44],
    )


# --- Document ---

@dataclass(frozen=True)
class NFe:
    """One fiscal document as stored locally. Immutable; changes go through dataclasses.replace."""
    access_key: str
    number: str
    series: str
    issuer_cnpj: str
    issuer_name: str
    issued_at: datetime
    total_value: Decimal
    xml_path: str
    status: NFeStatus = NFeStatus.AUTHORIZED
    canceled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_status(self, status: NFeStatus, reason: Optional[str] = None, now: Optional[datetime] = None) -> "NFe":
        """Returns a copy with the new status. Cancellation records when and why."""
        now = now or datetime.now(timezone.utc)
        if status == NFeStatus.CANCELED:
            return replace(self, status=status, canceled_at=self.canceled_at or now,
                           cancellation_reason=reason, updated_at=now)
        return replace(self, status=status, updated_at=now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_key": self.access_key,
            "number": self.number,
            "series": self.series,
            "issuer_cnpj": self.issuer_cnpj,
            "issuer_name": self.issuer_name,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "total_value": str(self.total_value),
            "xml_path": self.xml_path,
            "status": self.status.value,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# --- Query ---

@dataclass(frozen=True)
class NFeFilter:
    issuer_cnpj: Optional[str] = None
    status: Optional[NFeStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: Optional[int] = None
    page_size: Optional[int] = None

    def normalized(self) -> "NFeFilter":
        """
        Applies pagination defaults and validates the status.
        Page below 1 becomes 1; page size outside [1, 100] is reset to 20 (not clamped to 100).
        """
        page = self.page if self.page is not None and self.page >= 1 else DEFAULT_PAGE
        page_size = self.page_size
        if page_size is None or page_size < 1 or page_size > MAX_PAGE_SIZE:
            page_size = DEFAULT_PAGE_SIZE
        status = NFeStatus.parse(self.status) if self.status not in (None, "") else None
        issuer_cnpj = self.issuer_cnpj.strip() if self.issuer_cnpj and self.issuer_cnpj.strip() else None
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("start_date não pode ser posterior a end_date.")
        return replace(self, issuer_cnpj=issuer_cnpj, status=status, page=page, page_size=page_size)

    @property
    def offset(self) -> int:
        return ((self.page or DEFAULT_PAGE) - 1) * (self.page_size or DEFAULT_PAGE_SIZE)


@dataclass(frozen=True)
class Pagination:
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.page_size > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {"page": self.page, "limit": self.page_size, "total": self.total, "total_pages": self.total_pages}


@dataclass(frozen=True)
class NFePage:
    items: List[NFe]
    pagination: Pagination

    def to_dict(self) -> Dict[str, Any]:
        return {"data": [nfe.to_dict() for nfe in self.items], "pagination": self.pagination.to_dict()}


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class NFeStats:
    total_nfes: int
    total_value: Decimal
    period: Period
    by_status: Dict[NFeStatus, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_nfes": self.total_nfes,
            "total_value": str(self.total_value),
            "period": self.period.to_dict(),
            "by_status": {status.value: count for status, count in self.by_status.items()},
        }


# --- Sync Job ---

@dataclass(frozen=True)
class SyncJob:
    """
    Summary of one sync run. Owned by the run that created it; state changes return new copies.
    Per-document errors are only counted, the error text is reserved for a failed run.
    """
    id: uuid.UUID
    status: SyncJobStatus
    started_at: datetime
    issuer_cnpj: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    ended_at: Optional[datetime] = None
    nfes_found: int = 0
    nfes_error: int = 0
    error: Optional[str] = None

    @classmethod
    def start(cls, issuer_cnpj: Optional[str] = None, start_date: Optional[date] = None,
              end_date: Optional[date] = None) -> "SyncJob":
        return cls(id=uuid.uuid4(), status=SyncJobStatus.RUNNING, started_at=datetime.now(timezone.utc),
                   issuer_cnpj=issuer_cnpj, start_date=start_date, end_date=end_date)

    @property
    def is_terminal(self) -> bool:
        return self.status != SyncJobStatus.RUNNING

    def complete(self, found: int, errors: int) -> "SyncJob":
        self._ensure_running()
        return replace(self, status=SyncJobStatus.COMPLETED, ended_at=datetime.now(timezone.utc),
                       nfes_found=found, nfes_error=errors)

    def fail(self, error: str) -> "SyncJob":
        self._ensure_running()
        return replace(self, status=SyncJobStatus.FAILED, ended_at=datetime.now(timezone.utc), error=error)

    def _ensure_running(self):
        if self.is_terminal:
            raise ValueError(f"SyncJob {self.id} já está em estado terminal ({self.status.value}).")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": str(self.id),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "issuer_cnpj": self.issuer_cnpj,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "nfes_found": self.nfes_found,
            "nfes_error": self.nfes_error,
        }
        if self.error:
            data["error"] = self.error
        return data
