# src/services/nfe_sync_service.py
# Orquestra a sincronização de NFes: lista chaves na SEFAZ, baixa os XMLs novos e registra no banco.

import atexit
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from enum import Enum
from typing import Optional, Iterable

from src.domain.interfaces import AuthorityClient, DocumentStore, ArtifactStore
from src.domain.nfe import SyncJob
from src.sefaz_integration.nfe_describer import describe_nfe
from src.utils.logger import logger, mask_key
from src.api.errors import DuplicateKeyError
from src.config import config

# --- Variáveis de Controle do Agendador ---
_sync_thread: Optional[threading.Thread] = None
_stop_sync_event = threading.Event()
_scheduler_started = False
_scheduler_init_lock = threading.Lock()


class SyncOutcome(str, Enum):
    STORED = "stored"
    SKIPPED = "skipped"
    FAILED = "failed"


class NfeSyncService:
    """
    Runs sync jobs. Runs may overlap (scheduler + manual trigger); the document
    store's unique key decides which run stores a given NFe, the loser counts it as skipped.
    """

    def __init__(self, authority: AuthorityClient, store: DocumentStore, artifacts: ArtifactStore,
                 default_cnpj: Optional[str] = None, company_name: Optional[str] = None,
                 max_workers: int = 4):
        self.authority = authority
        self.store = store
        self.artifacts = artifacts
        self.default_cnpj = default_cnpj
        self.company_name = company_name or None
        self.max_workers = max(1, max_workers)
        self._active_runs = 0
        self._active_lock = threading.Lock()
        logger.info(f"Serviço de sincronização de NFe inicializado (workers={self.max_workers}).")

    def active_runs(self) -> int:
        with self._active_lock:
            return self._active_runs

    def run_sync(self, issuer_cnpj: Optional[str] = None, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> SyncJob:
        """
        Executes one sync run and returns its terminal SyncJob.
        Only a failure to list the candidate keys fails the run; per-document
        failures are counted in nfes_error and the run still completes.
        """
        cnpj = issuer_cnpj or self.default_cnpj
        job = SyncJob.start(issuer_cnpj=cnpj, start_date=start_date, end_date=end_date)

        with self._active_lock:
            self._active_runs += 1
        start_time = time.monotonic()
        logger.info(f"[SYNC {job.id}] Iniciando sincronização (CNPJ={cnpj}, período={start_date or 'padrão'} a {end_date or 'padrão'}).")
        try:
            if not cnpj:
                job = job.fail("CNPJ do emitente não informado e SEFAZ_CNPJ não configurado.")
                logger.error(f"[SYNC {job.id}] {job.error}")
                return job

            try:
                keys = self.authority.enumerate_keys(cnpj, start_date, end_date)
            except Exception as e:
                job = job.fail(f"Falha ao consultar chaves na SEFAZ: {type(e).__name__}: {e}")
                logger.error(f"[SYNC {job.id}] {job.error}", exc_info=True)
                return job

            logger.info(f"[SYNC {job.id}] {len(keys)} chave(s) candidata(s) encontrada(s).")
            found, skipped, errors = self._fold(self._process_all(keys))
            job = job.complete(found=found, errors=errors)

            elapsed_str = self._format_time_duration(time.monotonic() - start_time)
            logger.info(f"[SYNC {job.id}] Sincronização concluída em {elapsed_str}. "
                        f"Novas: {found}, já sincronizadas: {skipped}, erros: {errors}.")
            return job
        finally:
            with self._active_lock:
                self._active_runs -= 1

    def _process_all(self, keys: list) -> Iterable[SyncOutcome]:
        if self.max_workers == 1 or len(keys) <= 1:
            return [self._process_candidate(key) for key in keys]
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="nfe-sync") as executor:
            return list(executor.map(self._process_candidate, keys))

    @staticmethod
    def _fold(outcomes: Iterable[SyncOutcome]) -> tuple:
        found = skipped = errors = 0
        for outcome in outcomes:
            if outcome == SyncOutcome.STORED:
                found += 1
            elif outcome == SyncOutcome.SKIPPED:
                skipped += 1
            else:
                errors += 1
        return found, skipped, errors

    def _process_candidate(self, access_key: str) -> SyncOutcome:
        """Processes one key and reports the outcome; never raises."""
        try:
            if self.store.exists(access_key):
                logger.debug(f"NFe {mask_key(access_key)} já sincronizada, ignorando.")
                return SyncOutcome.SKIPPED

            xml_bytes = self.authority.fetch_xml(access_key)
            nfe = describe_nfe(access_key, xml_bytes, fallback_issuer_name=self.company_name)
            # O XML é gravado antes do registro; um registro nunca aponta para um arquivo inexistente
            self.artifacts.write(nfe.xml_path, xml_bytes)
            try:
                self.store.insert(nfe)
            except DuplicateKeyError:
                logger.info(f"NFe {mask_key(access_key)} inserida por outra execução concorrente, ignorando.")
                return SyncOutcome.SKIPPED

            logger.debug(f"NFe {mask_key(access_key)} sincronizada ({nfe.xml_path}).")
            return SyncOutcome.STORED
        except Exception as e:
            logger.warning(f"Erro ao sincronizar NFe {mask_key(access_key)}: {type(e).__name__}: {e}")
            return SyncOutcome.FAILED

    def _format_time_duration(self, seconds: float) -> str:
        """Formata duração de tempo em formato legível."""
        if seconds < 60:
            return f"{seconds:.2f} segundos"
        elif seconds < 3600:
            minutes = seconds / 60
            return f"{minutes:.2f} minutos ({seconds:.2f} segundos)"
        else:
            hours = seconds / 3600
            minutes = (seconds % 3600) / 60
            return f"{hours:.2f} horas ({minutes:.2f} minutos)"


# --- Controle do Agendador em Background ---

def _nfe_sync_task(sync_service: NfeSyncService, initial_delay_sec: int, interval_min: int):
    """A função executada pela thread em background."""
    logger.info(f"Tarefa de sincronização de NFe em background iniciada. Atraso inicial: {initial_delay_sec}s, Intervalo: {interval_min}min.")
    wait_time = initial_delay_sec
    while not _stop_sync_event.is_set():
        interrupted = _stop_sync_event.wait(timeout=wait_time)
        if interrupted:
            logger.info("Tarefa de sincronização de NFe interrompida pelo evento de parada durante espera.")
            break
        wait_time = interval_min * 60

        try:
            job = sync_service.run_sync()
            logger.info(f"Ciclo agendado finalizado com status '{job.status.value}'. Próximo em {interval_min} min.")
        except Exception as e:
            logger.error(f"Erro não tratado durante ciclo de sincronização agendado: {e}", exc_info=True)

    logger.info("Tarefa de sincronização de NFe em background finalizada.")


def start_nfe_sync_scheduler(sync_service: NfeSyncService, initial_delay_sec: int = 30, interval_min: int = 60):
    """Inicia a thread de sincronização se não estiver rodando."""
    global _sync_thread, _scheduler_started

    with _scheduler_init_lock:
        if _scheduler_started or (_sync_thread and _sync_thread.is_alive()):
            logger.info("Agendador de sincronização de NFe já iniciado neste processo.")
            return

        # Com o reloader do Werkzeug apenas o processo filho inicia o agendador
        if config.APP_DEBUG and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
            logger.info(f"Modo Debug: Processo {os.getpid()} não é o principal (WERKZEUG_RUN_MAIN != 'true'). Não iniciando agendador.")
            return

        _stop_sync_event.clear()
        _sync_thread = threading.Thread(
            target=_nfe_sync_task,
            args=(sync_service, initial_delay_sec, interval_min),
            name="nfe-sync-scheduler",
            daemon=True,
        )
        _sync_thread.start()
        _scheduler_started = True
        logger.info(f"Thread do agendador de sincronização de NFe iniciada pelo PID {os.getpid()}.")
        atexit.register(stop_nfe_sync_scheduler)


def stop_nfe_sync_scheduler():
    """Para a thread de sincronização."""
    global _sync_thread, _scheduler_started

    _stop_sync_event.set()
    if _sync_thread and _sync_thread.is_alive():
        logger.info("Aguardando a thread do agendador de sincronização de NFe terminar...")
        _sync_thread.join(timeout=15)
        if _sync_thread.is_alive():
            logger.warning("Thread do agendador de sincronização de NFe não parou em 15s.")
        else:
            logger.info("Thread do agendador de sincronização de NFe parada com sucesso.")
    _sync_thread = None
    _scheduler_started = False
