# tests/test_nfe_routes.py
from datetime import datetime, timezone

from src.api.errors import SefazIntegrationError
from src.domain.nfe import NFeStatus
from conftest import make_key, make_nfe, ISSUER_CNPJ


def _seed(store, artifacts, *nfes):
    for nfe in nfes:
        store.insert(nfe)
        artifacts.write(nfe.xml_path, f"<nfe>{nfe.access_key}</nfe>".encode())


def test_sync_returns_job(client, authority, store):
    authority.keys = [make_key(number=1), make_key(number=2)]

    response = client.post("/api/v1/nfe/sync", json={"start_date": "2024-01-01", "end_date": "2024-01-31"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "completed"
    assert body["nfes_found"] == 2
    assert body["nfes_error"] == 0
    assert body["issuer_cnpj"] == ISSUER_CNPJ
    assert len(store.records) == 2


def test_sync_failure_is_still_200(client, authority):
    authority.enumerate_error = SefazIntegrationError("certificado expirado")

    response = client.post("/api/v1/nfe/sync")

    assert response.status_code == 200
    assert response.get_json()["status"] == "failed"


def test_sync_rejects_bad_input(client, authority):
    assert client.post("/api/v1/nfe/sync", json={"cnpj": "123"}).status_code == 400
    assert client.post("/api/v1/nfe/sync", json={"start_date": "01/02/2024"}).status_code == 400
    assert authority.enumerate_calls == []


def test_list_with_filters(client, store, artifacts):
    _seed(store, artifacts,
          make_nfe(number=1, issued_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
          make_nfe(number=2, issued_at=datetime(2024, 6, 1, tzinfo=timezone.utc), status=NFeStatus.CANCELED),
          make_nfe(number=3, issued_at=datetime(2024, 12, 1, tzinfo=timezone.utc)))

    response = client.get("/api/v1/nfe/?status=authorized&limit=500")

    assert response.status_code == 200
    body = response.get_json()
    assert [item["number"] for item in body["data"]] == ["3", "1"]
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "total_pages": 1}


def test_list_invalid_status_is_400(client):
    response = client.get("/api/v1/nfe/?status=pending")
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_list_invalid_page_is_400(client):
    assert client.get("/api/v1/nfe/?page=abc").status_code == 400


def test_get_nfe(client, store, artifacts):
    nfe = make_nfe(total="10.00")
    _seed(store, artifacts, nfe)

    response = client.get(f"/api/v1/nfe/{nfe.access_key}")

    assert response.status_code == 200
    assert response.get_json()["total_value"] == "10.00"


def test_get_nfe_errors(client):
    assert client.get("/api/v1/nfe/123").status_code == 400
    assert client.get(f"/api/v1/nfe/{make_key(number=999)}").status_code == 404


def test_download_xml(client, store, artifacts):
    nfe = make_nfe()
    _seed(store, artifacts, nfe)

    response = client.get(f"/api/v1/nfe/{nfe.access_key}/xml")

    assert response.status_code == 200
    assert response.mimetype == "application/xml"
    assert response.data == f"<nfe>{nfe.access_key}</nfe>".encode()
    assert f'filename="{nfe.access_key}.xml"' in response.headers["Content-Disposition"]


def test_stats(client, store, artifacts):
    _seed(store, artifacts,
          make_nfe(number=1, issued_at=datetime(2024, 3, 5, tzinfo=timezone.utc), total="10.10"),
          make_nfe(number=2, issued_at=datetime(2024, 3, 6, tzinfo=timezone.utc), total="20.20",
                   status=NFeStatus.CANCELED))

    response = client.get("/api/v1/nfe/stats?start_date=2024-03-01&end_date=2024-03-31")

    assert response.status_code == 200
    assert response.get_json() == {
        "total_nfes": 2,
        "total_value": "30.30",
        "period": {"start": "2024-03-01", "end": "2024-03-31"},
        "by_status": {"authorized": 1, "canceled": 1},
    }


def test_stats_requires_window(client):
    assert client.get("/api/v1/nfe/stats?start_date=2024-03-01").status_code == 400


def test_update_status(client, store, artifacts):
    nfe = make_nfe()
    _seed(store, artifacts, nfe)

    response = client.post(f"/api/v1/nfe/{nfe.access_key}/status",
                           json={"status": "canceled", "reason": "Erro de emissão"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "canceled"
    assert body["cancellation_reason"] == "Erro de emissão"
    assert body["canceled_at"] is not None


def test_update_status_validation(client, store, artifacts):
    nfe = make_nfe()
    _seed(store, artifacts, nfe)

    assert client.post(f"/api/v1/nfe/{nfe.access_key}/status", json={}).status_code == 400
    assert client.post(f"/api/v1/nfe/{nfe.access_key}/status", json={"status": "foo"}).status_code == 400
    assert client.post(f"/api/v1/nfe/{make_key(number=555)}/status",
                       json={"status": "denied"}).status_code == 404


def test_update_status_rejects_non_text_reason(client, store, artifacts):
    nfe = make_nfe()
    _seed(store, artifacts, nfe)

    response = client.post(f"/api/v1/nfe/{nfe.access_key}/status", json={"status": "canceled", "reason": 123})

    assert response.status_code == 400
    assert store.records[nfe.access_key].status == NFeStatus.AUTHORIZED


def test_canceled_nfe_stays_canceled(client, store, artifacts):
    nfe = make_nfe()
    _seed(store, artifacts, nfe)
    client.post(f"/api/v1/nfe/{nfe.access_key}/status", json={"status": "canceled", "reason": "erro"})

    response = client.post(f"/api/v1/nfe/{nfe.access_key}/status", json={"status": "authorized"})

    assert response.status_code == 400
    assert store.records[nfe.access_key].status == NFeStatus.CANCELED


def test_list_accepts_issuer_cnpj_param(client, store, artifacts):
    _seed(store, artifacts, make_nfe(number=1), make_nfe(number=2, cnpj="98765432000110"))

    for param in ("issuer_cnpj", "cnpj_emitente"):
        body = client.get(f"/api/v1/nfe/?{param}=98765432000110").get_json()
        assert [item["issuer_cnpj"] for item in body["data"]] == ["98765432000110"]
