# tests/conftest.py
# Shared fixtures: in-memory collaborators, a SQLite engine and a Flask test client.

import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from flask import Flask
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from src.api import register_blueprints
from src.api.errors import (
    DuplicateKeyError, NotFoundError, SefazIntegrationError, XmlStorageError, register_error_handlers
)
from src.database.schema_manager import SchemaManager
from src.domain.nfe import (
    NFe, NFeStats, NFeStatus, Period, build_xml_path, start_of_day, end_of_day, to_money
)
from src.services.nfe_service import NfeService
from src.services.nfe_sync_service import NfeSyncService

ISSUER_CNPJ = "12345678000195"
NFE_NS = "http://www.portalfiscal.inf.br/nfe"


def make_key(number=1, yymm="2401", cnpj=ISSUER_CNPJ, uf="35", series=1):
    """Builds a syntactically valid 44-digit access key."""
    key = f"{uf}{yymm}{cnpj}55{series:03d}{number:09d}1{number:08d}0"
    assert len(key) == 44
    return key


def make_xml(access_key, dh_emi="2024-01-15T10:30:00-03:00", issuer_name="Empresa Teste LTDA", total="1500.50"):
    return (
        f'<?xml version="1.0" encoding="UTF-8"?>'
        f'<nfeProc xmlns="{NFE_NS}" versao="4.00"><NFe><infNFe Id="NFe{access_key}" versao="4.00">'
        f'<ide><cUF>35</cUF><nNF>1</nNF><dhEmi>{dh_emi}</dhEmi></ide>'
        f'<emit><CNPJ>{ISSUER_CNPJ}</CNPJ><xNome>{issuer_name}</xNome></emit>'
        f'<total><ICMSTot><vProd>{total}</vProd><vNF>{total}</vNF></ICMSTot></total>'
        f'</infNFe></NFe></nfeProc>'
    ).encode("utf-8")


def make_nfe(number=1, issued_at=None, status=NFeStatus.AUTHORIZED, total="100.00", cnpj=ISSUER_CNPJ):
    issued_at = issued_at or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    key = make_key(number=number, yymm=issued_at.strftime("%y%m"), cnpj=cnpj)
    return NFe(
        access_key=key,
        number=str(number),
        series="1",
        issuer_cnpj=cnpj,
        issuer_name="Empresa Teste LTDA",
        issued_at=issued_at,
        total_value=Decimal(total),
        xml_path=build_xml_path(issued_at, key),
        status=status,
    )


class FakeAuthority:
    def __init__(self, keys=None, xmls=None, enumerate_error=None, failing_keys=()):
        self.keys = list(keys or [])
        self.xmls = dict(xmls or {})
        self.enumerate_error = enumerate_error
        self.failing_keys = set(failing_keys)
        self.enumerate_calls = []
        self.fetch_calls = []
        self._lock = threading.Lock()

    def enumerate_keys(self, issuer_cnpj, start_date, end_date):
        self.enumerate_calls.append((issuer_cnpj, start_date, end_date))
        if self.enumerate_error:
            raise self.enumerate_error
        return list(self.keys)

    def fetch_xml(self, access_key):
        with self._lock:
            self.fetch_calls.append(access_key)
        if access_key in self.failing_keys:
            raise SefazIntegrationError(f"timeout fetching {access_key}")
        return self.xmls.get(access_key) or make_xml(access_key)


class InMemoryDocumentStore:
    def __init__(self):
        self.records = {}
        self.calls = []
        self._lock = threading.Lock()

    def exists(self, access_key):
        self.calls.append("exists")
        with self._lock:
            return access_key in self.records

    def insert(self, nfe):
        self.calls.append("insert")
        with self._lock:
            if nfe.access_key in self.records:
                raise DuplicateKeyError(f"NFe {nfe.access_key} already exists.")
            now = datetime.now(timezone.utc)
            stored = replace(nfe, created_at=now, updated_at=now)
            self.records[nfe.access_key] = stored
            return stored

    def update(self, nfe):
        self.calls.append("update")
        with self._lock:
            if nfe.access_key not in self.records:
                raise NotFoundError(f"NFe {nfe.access_key} not found.")
            self.records[nfe.access_key] = nfe
            return nfe

    def find_by_key(self, access_key):
        self.calls.append("find_by_key")
        if access_key not in self.records:
            raise NotFoundError(f"NFe {access_key} not found.")
        return self.records[access_key]

    def _in_window(self, nfe, start, end):
        if start and nfe.issued_at < start_of_day(start):
            return False
        if end and nfe.issued_at > end_of_day(end):
            return False
        return True

    def find_by_filter(self, nfe_filter):
        self.calls.append("find_by_filter")
        items = [
            n for n in self.records.values()
            if (not nfe_filter.issuer_cnpj or n.issuer_cnpj == nfe_filter.issuer_cnpj)
            and (not nfe_filter.status or n.status == nfe_filter.status)
            and self._in_window(n, nfe_filter.start_date, nfe_filter.end_date)
        ]
        items.sort(key=lambda n: (n.issued_at, n.access_key), reverse=True)
        return items[nfe_filter.offset:nfe_filter.offset + nfe_filter.page_size], len(items)

    def stats(self, start_date, end_date):
        self.calls.append("stats")
        selected = [n for n in self.records.values() if self._in_window(n, start_date, end_date)]
        by_status = {}
        for n in selected:
            by_status[n.status] = by_status.get(n.status, 0) + 1
        return NFeStats(
            total_nfes=len(selected),
            total_value=to_money(sum((n.total_value for n in selected), Decimal("0"))),
            period=Period(start=start_date, end=end_date),
            by_status=by_status,
        )


class InMemoryArtifactStore:
    def __init__(self, failing_paths=()):
        self.files = {}
        self.failing_paths = set(failing_paths)
        self.write_calls = []

    def write(self, path, data):
        self.write_calls.append(path)
        if path in self.failing_paths:
            raise XmlStorageError(f"disk full writing {path}")
        self.files.setdefault(path, data)

    def read(self, path):
        if path not in self.files:
            raise NotFoundError(f"missing {path}")
        return self.files[path]

    def exists(self, path):
        return path in self.files


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def artifacts():
    return InMemoryArtifactStore()


@pytest.fixture
def authority():
    return FakeAuthority()


@pytest.fixture
def sync_service(authority, store, artifacts):
    return NfeSyncService(authority, store, artifacts, default_cnpj=ISSUER_CNPJ, max_workers=1)


@pytest.fixture
def nfe_service(store, artifacts):
    return NfeService(store, artifacts)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SchemaManager(eng).initialize_schema()
    yield eng
    eng.dispose()


@pytest.fixture
def app(nfe_service, sync_service):
    flask_app = Flask("nfe-sync-test")
    flask_app.config.update(TESTING=True, nfe_service=nfe_service, nfe_sync_service=sync_service)
    register_blueprints(flask_app)
    register_error_handlers(flask_app)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def window():
    return date(2024, 1, 1), date(2024, 12, 31)
