# run.py
# Entry point: loads configuration, builds the app and serves the NFe sync API.
import sys

from src.app import create_app
from src.utils.logger import logger
from src.config.settings import load_config


def main() -> int:
    config = load_config()
    try:
        app = create_app(config)
    except Exception as e:
        logger.critical(f"Não foi possível criar a aplicação: {e}", exc_info=True)
        return 1

    logger.info(f"Servidor de sincronização de NFe em {config.APP_HOST}:{config.APP_PORT} "
                f"(XMLs em {config.XML_STORAGE_PATH})")
    # Em produção, servir com waitress ou gunicorn apontando para create_app
    app.run(host=config.APP_HOST, port=config.APP_PORT, debug=config.APP_DEBUG)
    return 0


if __name__ == '__main__':
    sys.exit(main())
