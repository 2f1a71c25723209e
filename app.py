"""WSGI entry point: logging, database, catalog services and routes."""

import logging
import logging.config
import os
from pathlib import Path
from typing import Any

from flask import Flask

from config import (
    APP_SECRET_KEY,
    DB_CONNECT_TIMEOUT_SECONDS,
    DB_DSN,
    LOG_FILE,
    validate_igdb_credentials,
)
from catalog.schema import create_schema
from db import utils as db_utils
from web.app_factory import build_services, create_app

logger = logging.getLogger(__name__)

_DEBUG_FLAGS = {'1', 'true', 'yes', 'on'}


def _log_level(flask_app: Flask) -> int:
    debug_env = os.environ.get('FLASK_DEBUG', '').strip().lower() in _DEBUG_FLAGS
    return logging.DEBUG if flask_app.debug or debug_env else logging.INFO


def _logging_config(level: int, log_file: Path) -> dict[str, Any]:
    """Console plus a rotating file; catalog and IGDB loggers follow ``level``."""
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(asctime)s %(levelname)-7s %(name)s: %(message)s',
                'datefmt': '%Y-%m-%dT%H:%M:%S',
            }
        },
        'handlers': {
            'stdout': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'level': level,
                'stream': 'ext://sys.stdout',
            },
            'logfile': {
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'plain',
                'level': logging.DEBUG,
                'filename': os.fspath(log_file),
                'maxBytes': 5 * 1024 * 1024,
                'backupCount': 3,
                'encoding': 'utf-8',
            },
        },
        'loggers': {
            name: {'level': level}
            for name in ('igdb', 'catalog', 'collection', 'routes', 'scripts')
        },
        'root': {'level': level, 'handlers': ['stdout', 'logfile']},
    }


def _configure_logging(flask_app: Flask) -> None:
    level = _log_level(flask_app)
    log_file = Path(LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Flask's default handler would duplicate every record on the root handlers.
    flask_app.logger.handlers.clear()
    logging.config.dictConfig(_logging_config(level, log_file))
    flask_app.logger.setLevel(level)


def _open_database() -> db_utils.DatabaseEngine:
    return db_utils.build_engine_from_dsn(DB_DSN, timeout=DB_CONNECT_TIMEOUT_SECONDS)


app = Flask(__name__)
app.secret_key = APP_SECRET_KEY
_configure_logging(app)

if not validate_igdb_credentials():
    logger.warning('IGDB requests will fail until IGDB_CLIENT_ID and IGDB_CLIENT_SECRET are set')

database = db_utils.get_db(_open_database)
create_schema(database.engine)
services = build_services(database)
logger.info('Catalog database ready (%s)', database.dialect)

app = create_app(app, services=services)


if __name__ == '__main__':
    app.run(debug=True)
