# src/sefaz_integration/sefaz_client.py
# Client for the SEFAZ distribution gateway: lists access keys for an issuer and downloads XMLs.

import os
import time
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

import requests
from requests_pkcs12 import Pkcs12Adapter

from src.domain.nfe import is_valid_access_key
from src.utils.logger import logger, mask_key
from src.api.errors import SefazIntegrationError, SefazNotFoundError, ConfigurationError

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class SefazClient:
    """
    Talks to the SEFAZ gateway over mutual TLS (A1 certificate in PKCS#12).
    Retries network failures and 5xx responses; a 404 is final and raised as SefazNotFoundError.
    """

    def __init__(self, base_url: str, keys_endpoint: str, xml_endpoint: str,
                 cert_path: Optional[str] = None, cert_password: Optional[str] = None,
                 ambiente: str = "homologacao", uf: str = "SP",
                 timeout: int = 30, max_retries: int = 3, default_lookback_days: int = 30,
                 retry_backoff_seconds: float = 1.0,
                 session: Optional[requests.Session] = None):
        if not base_url:
            raise ConfigurationError("SEFAZ_BASE_URL não configurada.")
        self.base_url = base_url.rstrip('/')
        self.keys_url = f"{self.base_url}{keys_endpoint}"
        self.xml_url_template = f"{self.base_url}{xml_endpoint}/{{accessKey}}"
        self.ambiente = ambiente
        self.uf = uf
        self.timeout = timeout
        self.max_retries = max_retries
        self.default_lookback_days = default_lookback_days
        self.retry_backoff_seconds = retry_backoff_seconds
        self.session = session or self._build_session(cert_path, cert_password)
        logger.info(f"SefazClient initialized (ambiente={ambiente}, uf={uf}, base_url={self.base_url}).")

    @classmethod
    def from_config(cls, cfg) -> "SefazClient":
        return cls(
            base_url=cfg.SEFAZ_BASE_URL,
            keys_endpoint=cfg.SEFAZ_KEYS_ENDPOINT,
            xml_endpoint=cfg.SEFAZ_XML_ENDPOINT,
            cert_path=cfg.SEFAZ_CERT_PATH,
            cert_password=cfg.SEFAZ_CERT_PASSWORD,
            ambiente=cfg.SEFAZ_AMBIENTE,
            uf=cfg.SEFAZ_UF,
            timeout=cfg.SEFAZ_TIMEOUT_SECONDS,
            max_retries=cfg.SEFAZ_MAX_RETRIES,
            default_lookback_days=cfg.SEFAZ_DEFAULT_LOOKBACK_DAYS,
        )

    @staticmethod
    def _build_session(cert_path: Optional[str], cert_password: Optional[str]) -> requests.Session:
        sess = requests.Session()
        if cert_path:
            if not os.path.isfile(cert_path):
                raise ConfigurationError(f"Certificado digital não encontrado em '{cert_path}'.")
            sess.mount('https://', Pkcs12Adapter(pkcs12_filename=cert_path, pkcs12_password=cert_password or ''))
            logger.info("Certificado A1 (PKCS#12) carregado para a sessão SEFAZ.")
        else:
            logger.warning("SEFAZ_CERT_PATH não configurado. Requisições à SEFAZ serão feitas sem certificado cliente.")
        return sess

    def resolve_window(self, start_date: Optional[date], end_date: Optional[date]) -> tuple:
        """Fills missing bounds with the default lookback window ending today."""
        end = end_date or date.today()
        start = start_date or (end - timedelta(days=self.default_lookback_days))
        return start, end

    def _make_request(self, url: str, params: Optional[Dict[str, Any]] = None, accept: str = "application/json") -> requests.Response:
        attempt = 0
        last_exception: Optional[Exception] = None

        while attempt <= self.max_retries:
            attempt += 1
            logger.debug(f"Attempt {attempt}/{self.max_retries + 1} to call SEFAZ: GET {url}")
            try:
                response = self.session.get(url, params=params, headers={"Accept": accept}, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                logger.warning(f"Network error calling SEFAZ (GET {url}, attempt {attempt}): {e}")
                last_exception = e
            else:
                status_code = response.status_code
                if status_code == 404:
                    raise SefazNotFoundError(f"Recurso não encontrado na SEFAZ: {url}")
                if status_code in RETRYABLE_STATUS_CODES:
                    logger.warning(f"SEFAZ returned {status_code} for GET {url} (attempt {attempt}).")
                    last_exception = SefazIntegrationError(f"SEFAZ returned HTTP {status_code}.")
                elif status_code >= 400:
                    snippet = (response.text or "")[:500]
                    logger.error(f"SEFAZ request failed with status {status_code} (GET {url}): {snippet}")
                    raise SefazIntegrationError(f"SEFAZ request failed with status {status_code}: {snippet}")
                else:
                    return response

            if attempt <= self.max_retries and self.retry_backoff_seconds > 0:
                time.sleep(self.retry_backoff_seconds * attempt)

        logger.error(f"SEFAZ request failed after {self.max_retries + 1} attempts (GET {url}): {last_exception}")
        raise SefazIntegrationError(f"Falha ao comunicar com a SEFAZ após {self.max_retries + 1} tentativas: {last_exception}")

    def enumerate_keys(self, issuer_cnpj: str, start_date: Optional[date] = None,
                       end_date: Optional[date] = None) -> List[str]:
        start, end = self.resolve_window(start_date, end_date)
        params = {
            "cnpj": issuer_cnpj,
            "dataInicio": start.isoformat(),
            "dataFim": end.isoformat(),
            "ambiente": self.ambiente,
            "uf": self.uf,
        }
        logger.info(f"Consultando chaves na SEFAZ para CNPJ {issuer_cnpj} entre {start} e {end}.")
        response = self._make_request(self.keys_url, params=params)

        try:
            payload = response.json()
        except ValueError as e:
            raise SefazIntegrationError(f"Resposta inválida da SEFAZ ao listar chaves: {e}") from e

        raw_keys = payload.get("keys", payload.get("chaves", [])) if isinstance(payload, dict) else payload
        if not isinstance(raw_keys, list):
            raise SefazIntegrationError("Resposta inesperada da SEFAZ: lista de chaves ausente.")

        keys: List[str] = []
        seen = set()
        for raw in raw_keys:
            key = str(raw).strip()
            if not is_valid_access_key(key):
                logger.warning(f"Chave de acesso inválida recebida da SEFAZ ignorada: '{key}'")
                continue
            if key not in seen:
                seen.add(key)
                keys.append(key)
        logger.info(f"SEFAZ retornou {len(keys)} chave(s) para o CNPJ {issuer_cnpj}.")
        return keys

    def fetch_xml(self, access_key: str) -> bytes:
        url = self.xml_url_template.format(accessKey=access_key)
        response = self._make_request(url, accept="application/xml")
        content = response.content
        if not content:
            raise SefazIntegrationError(f"SEFAZ retornou XML vazio para a chave {mask_key(access_key)}.")
        logger.debug(f"XML da chave {mask_key(access_key)} baixado ({len(content)} bytes).")
        return content
