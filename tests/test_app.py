# tests/test_app.py
import pytest

from src.api.errors import ConfigurationError
from src.app import create_app
from src.config import Config
from src.database import dispose_sqlalchemy_engine
from conftest import ISSUER_CNPJ


@pytest.fixture
def app_config(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("APP_DEBUG", "True")
    monkeypatch.setenv("DB_TYPE", "SQLITE")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "db" / "nfe.sqlite"))
    monkeypatch.setenv("XML_STORAGE_PATH", str(tmp_path / "xmls"))
    monkeypatch.setenv("SEFAZ_CNPJ", "12.345.678/0001-95")
    monkeypatch.setenv("SYNC_ENABLED", "False")
    monkeypatch.delenv("WERKZEUG_RUN_MAIN", raising=False)
    yield Config()
    dispose_sqlalchemy_engine()


def test_config_normalizes_cnpj(app_config):
    assert app_config.SEFAZ_CNPJ == ISSUER_CNPJ
    assert app_config.SQLALCHEMY_DATABASE_URI.startswith("sqlite:///")


def test_health_reports_database_and_resources(app_config):
    app = create_app(app_config)

    response = app.test_client().get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["active_sync_runs"] == 0
    assert "memory_rss_mb" in body["resources"]
    assert app.config["nfe_service"] is not None


def test_invalid_cnpj_is_a_configuration_error(app_config):
    app_config.SEFAZ_CNPJ = "123"
    with pytest.raises(ConfigurationError):
        create_app(app_config)
