"""Logging setup and Logfire cloud observability."""

import logging
from logging.config import dictConfig
import logfire

from doomsettle import __version__
from doomsettle.config import Settings

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Install the console handler used by the API, workers and CLI."""
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"level": level.upper(), "handlers": ["console"]},
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )


def initialize_logfire(
    settings: Settings,
    service_name: str = "doomsettle-api",
    app=None,
    engine=None,
) -> bool:
    """
    Initialize Logfire and instrument the settlement stack.

    Must be called once per process at startup. Instruments:
    - FastAPI (when an app is given)
    - SQLAlchemy (when an engine is given)
    - Celery task execution
    - HTTPX clients (notification webhook)
    - Python logging (bridged to Logfire)

    Args:
        settings: Application settings containing the Logfire token
        service_name: Service name reported to Logfire
        app: Optional FastAPI application
        engine: Optional SQLAlchemy async engine

    Returns:
        True when Logfire was configured.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name=service_name,
            service_version=__version__,
            environment=settings.environment,
            console=False,
        )

        if app is not None:
            logfire.instrument_fastapi(app)
        if engine is not None:
            logfire.instrument_sqlalchemy(engine=engine.sync_engine)
        logfire.instrument_celery()
        logfire.instrument_httpx()

        # Bridge Python logging to Logfire
        logging.getLogger().addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
        return False

