# src/api/__init__.py
# Initializes the API layer and registers blueprints.

from flask import Flask

from src.utils.logger import logger


def _blueprints():
    # Importação atrasada: os modelos de domínio importam src.api.errors
    from .routes.nfe import nfe_bp
    return [
        (nfe_bp, '/api/v1/nfe'),
    ]

def register_blueprints(app: Flask):
    """
    Registers all defined blueprints with the Flask application.

    Args:
        app: The Flask application instance.
    """
    logger.info("Registering API blueprints...")
    for bp, prefix in _blueprints():
        app.register_blueprint(bp, url_prefix=prefix)
        logger.debug(f"Blueprint '{bp.name}' registered with prefix '{prefix}'.")
    logger.info("All API blueprints registered.")

__all__ = ["register_blueprints"]
