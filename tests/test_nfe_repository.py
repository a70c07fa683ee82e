# tests/test_nfe_repository.py
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from src.api.errors import DatabaseError, DuplicateKeyError, NotFoundError
from src.database.nfe_repository import NfeRepository
from src.domain.nfe import NFeFilter, NFeStatus
from conftest import make_nfe, make_key, ISSUER_CNPJ


@pytest.fixture
def repo(engine):
    return NfeRepository(engine)


def test_insert_and_find_by_key(repo):
    nfe = make_nfe(total="1234.56")
    stored = repo.insert(nfe)

    assert stored.created_at is not None
    assert stored.updated_at is not None
    assert repo.exists(nfe.access_key)

    loaded = repo.find_by_key(nfe.access_key)
    assert loaded.total_value == Decimal("1234.56")
    assert loaded.issued_at == nfe.issued_at
    assert loaded.issued_at.tzinfo is not None
    assert loaded.status == NFeStatus.AUTHORIZED
    assert loaded.xml_path == nfe.xml_path


def test_insert_duplicate_raises(repo):
    nfe = make_nfe()
    repo.insert(nfe)
    with pytest.raises(DuplicateKeyError):
        repo.insert(nfe)
    # The store stays usable after the rolled-back insert
    assert repo.exists(nfe.access_key)


def test_find_by_key_unknown(repo):
    assert not repo.exists(make_key(number=404))
    with pytest.raises(NotFoundError):
        repo.find_by_key(make_key(number=404))


def test_update_status(repo):
    nfe = make_nfe()
    repo.insert(nfe)
    now = datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)

    updated = repo.update(nfe.with_status(NFeStatus.CANCELED, "Erro no valor", now=now))

    assert updated.status == NFeStatus.CANCELED
    assert updated.canceled_at == now
    assert repo.find_by_key(nfe.access_key).cancellation_reason == "Erro no valor"


def test_update_unknown_raises(repo):
    with pytest.raises(NotFoundError):
        repo.update(make_nfe(number=77))


def test_list_is_ordered_by_issue_date_desc(repo):
    jan = make_nfe(number=1, issued_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    jun = make_nfe(number=2, issued_at=datetime(2024, 6, 1, tzinfo=timezone.utc))
    dec = make_nfe(number=3, issued_at=datetime(2024, 12, 1, tzinfo=timezone.utc))
    for nfe in (jun, dec, jan):
        repo.insert(nfe)

    items, total = repo.find_by_filter(NFeFilter().normalized())

    assert total == 3
    assert [n.issued_at.date() for n in items] == [date(2024, 12, 1), date(2024, 6, 1), date(2024, 1, 1)]


def test_list_filters_and_paginates(repo):
    other_cnpj = "98765432000110"
    for i in range(1, 8):
        repo.insert(make_nfe(number=i, issued_at=datetime(2024, 5, i, tzinfo=timezone.utc)))
    repo.insert(make_nfe(number=50, cnpj=other_cnpj))
    repo.insert(make_nfe(number=51, status=NFeStatus.CANCELED,
                         issued_at=datetime(2024, 5, 3, 12, tzinfo=timezone.utc)))

    items, total = repo.find_by_filter(
        NFeFilter(issuer_cnpj=ISSUER_CNPJ, start_date=date(2024, 5, 2), end_date=date(2024, 5, 6),
                  status="authorized", page=2, page_size=2).normalized()
    )

    # 2024-05-02 .. 2024-05-06 inclusive -> 5 authorized documents
    assert total == 5
    assert [n.issued_at.day for n in items] == [4, 3]
    assert all(n.issuer_cnpj == ISSUER_CNPJ for n in items)


def test_end_date_includes_whole_day(repo):
    late = make_nfe(number=1, issued_at=datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc))
    repo.insert(late)

    _, total = repo.find_by_filter(NFeFilter(end_date=date(2024, 3, 31)).normalized())

    assert total == 1


def test_stats_window(repo):
    repo.insert(make_nfe(number=1, issued_at=datetime(2024, 3, 1, tzinfo=timezone.utc), total="100.10"))
    repo.insert(make_nfe(number=2, issued_at=datetime(2024, 3, 20, tzinfo=timezone.utc), total="200.20",
                         status=NFeStatus.CANCELED))
    repo.insert(make_nfe(number=3, issued_at=datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc), total="0.30"))
    repo.insert(make_nfe(number=4, issued_at=datetime(2024, 4, 1, tzinfo=timezone.utc), total="999.99"))

    stats = repo.stats(date(2024, 3, 1), date(2024, 3, 31))

    assert stats.total_nfes == 3
    assert stats.total_value == Decimal("300.60")
    assert stats.by_status == {NFeStatus.AUTHORIZED: 2, NFeStatus.CANCELED: 1}
    assert stats.to_dict()["period"] == {"start": "2024-03-01", "end": "2024-03-31"}


def test_stats_empty_window(repo):
    stats = repo.stats(date(2020, 1, 1), date(2020, 1, 31))
    assert stats.total_nfes == 0
    assert stats.total_value == Decimal("0.00")
    assert stats.by_status == {}


def test_other_constraint_violations_are_not_duplicates(repo):
    nfe = replace(make_nfe(number=88), issuer_name=None)

    with pytest.raises(DatabaseError) as exc_info:
        repo.insert(nfe)

    assert not isinstance(exc_info.value, DuplicateKeyError)
    assert not repo.exists(nfe.access_key)
