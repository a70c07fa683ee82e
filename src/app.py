# src/app.py
import atexit
import os
import sys

from flask import Flask, jsonify
from flask_cors import CORS

from src.config import Config
from src.api import register_blueprints
from src.api.errors import register_error_handlers, ConfigurationError, DatabaseError
from src.database import init_sqlalchemy, dispose_sqlalchemy_engine, check_database
from src.database.nfe_repository import NfeRepository
from src.database.xml_storage import FileSystemXmlStorage
from src.sefaz_integration import SefazClient
from src.services import NfeService, NfeSyncService
from src.services.nfe_sync_service import start_nfe_sync_scheduler, stop_nfe_sync_scheduler
from src.utils.logger import logger, configure_logger
from src.utils.system_monitor import start_resource_monitor, stop_resource_monitor, resource_snapshot


def create_app(config_object: Config) -> Flask:
    """
    Factory function to create and configure the Flask application.

    Args:
        config_object: The configuration object for the application.

    Returns:
        The configured Flask application instance.
    """
    app = Flask("NFe-Sync-API")
    app.config.from_object(config_object)

    # --- Logging ---
    configure_logger(config_object.LOG_LEVEL)
    logger.info("Iniciando a aplicação Flask para o serviço de sincronização de NFe.")
    logger.info(f"Modo de depuração: {config_object.APP_DEBUG} | Ambiente SEFAZ: {config_object.SEFAZ_AMBIENTE}")

    # --- Secret Key Check ---
    if not config_object.SECRET_KEY or config_object.SECRET_KEY == 'default_secret_key_change_me_in_env':
        logger.critical("ALERTA DE SEGURANÇA: SECRET_KEY não está definida ou está usando o valor padrão!")
        if not config_object.APP_DEBUG:
            raise ConfigurationError("SECRET_KEY deve ser configurada com um valor seguro e único em produção.")
        logger.warning("Usando SECRET_KEY padrão/insegura no modo de depuração.")

    config_object.validate()

    # --- CORS Configuration ---
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # --- Database Initialization (SQLAlchemy) ---
    try:
        db_uri = config_object.SQLALCHEMY_DATABASE_URI
        if not db_uri:
            raise ConfigurationError("SQLALCHEMY_DATABASE_URI não está configurado.")
        pool_size = max(1, config_object.DB_MAX_CONNECTIONS // 2)
        db_engine = init_sqlalchemy(db_uri, pool_size=pool_size, max_overflow=config_object.DB_MAX_CONNECTIONS - pool_size)
        atexit.register(dispose_sqlalchemy_engine)
    except (DatabaseError, ConfigurationError) as db_init_err:
        logger.critical(f"Falha ao inicializar o banco de dados: {db_init_err}", exc_info=True)
        sys.exit(1)

    # --- Dependency Injection (Service Instantiation) ---
    logger.info("Instanciando serviços...")
    nfe_repo = NfeRepository(db_engine)
    xml_storage = FileSystemXmlStorage(config_object.XML_STORAGE_PATH)
    sefaz_client = SefazClient.from_config(config_object)

    nfe_svc = NfeService(nfe_repo, xml_storage)
    nfe_sync_svc = NfeSyncService(
        authority=sefaz_client,
        store=nfe_repo,
        artifacts=xml_storage,
        default_cnpj=config_object.SEFAZ_CNPJ,
        company_name=config_object.SEFAZ_COMPANY_NAME,
        max_workers=config_object.SYNC_MAX_WORKERS,
    )

    app.config['db_engine'] = db_engine
    app.config['nfe_repository'] = nfe_repo
    app.config['xml_storage'] = xml_storage
    app.config['nfe_service'] = nfe_svc
    app.config['nfe_sync_service'] = nfe_sync_svc
    logger.info("Serviços instanciados e adicionados à configuração do aplicativo.")

    # --- Register Blueprints (API Routes) ---
    register_blueprints(app)

    # --- Register Error Handlers ---
    register_error_handlers(app)

    # --- Background threads (apenas no processo principal do reloader) ---
    if not config_object.APP_DEBUG or os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        start_resource_monitor(interval_seconds=300, storage_path=config_object.XML_STORAGE_PATH)
        atexit.register(stop_resource_monitor)

        if config_object.SYNC_ENABLED:
            start_nfe_sync_scheduler(
                nfe_sync_svc,
                initial_delay_sec=config_object.SYNC_INITIAL_DELAY_SECONDS,
                interval_min=config_object.SYNC_INTERVAL_MINUTES,
            )
        else:
            logger.info("Sincronização agendada desabilitada (SYNC_ENABLED=False).")

    # --- Health Check Endpoint ---
    @app.route('/health', methods=['GET'])
    def health_check():
        db_ok = check_database(db_engine)
        return jsonify({
            "status": "ok" if db_ok else "degraded",
            "database": "ok" if db_ok else "error",
            "active_sync_runs": nfe_sync_svc.active_runs(),
            "resources": resource_snapshot(config_object.XML_STORAGE_PATH),
        }), 200 if db_ok else 503

    logger.info("Aplicação de sincronização de NFe configurada com sucesso.")
    return app
