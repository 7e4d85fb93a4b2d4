"""Logging configuration

Configured once at startup through ``dictConfig``. ``LOG_JSON`` switches
the console handler to python-json-logger output for log shippers.
"""
import logging
import logging.config
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from infrastructure.config import Settings, get_settings


class JsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always carries level, logger and environment"""

    def __init__(self, *args, environment: str = "development", **kwargs):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord,
                   message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['environment'] = self.environment


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            },
            'json': {
                '()': JsonFormatter,
                'fmt': '%(asctime)s %(levelname)s %(name)s %(message)s',
                'environment': settings.ENVIRONMENT,
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'json' if settings.LOG_JSON else 'standard',
            },
        },
        'loggers': {
            'sqlalchemy.engine': {
                'level': 'INFO' if settings.DATABASE_ECHO else 'WARNING',
            },
        },
        'root': {
            'level': settings.LOG_LEVEL.upper(),
            'handlers': ['console'],
        },
    }


def setup_logging(settings: Settings = None) -> None:
    logging.config.dictConfig(build_logging_config(settings or get_settings()))
