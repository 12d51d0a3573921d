import logging
import os
from logging.config import dictConfig

from config import settings

LOG_FILE_NAME = 'leetstack.log'


def build_logging_config(log_dir=None, debug=None):
    """
    Build the dictConfig for the 'leetstack' logger.

    Warnings and errors go to stderr so that JSON printed on stdout stays
    parseable. Everything at the configured level goes to a rotating file.
    """
    log_dir = settings.LOG_DIR if log_dir is None else log_dir
    debug = settings.DEBUG_MODE if debug is None else debug

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'brief': {
                'format': '%(levelname)s: %(message)s'
            },
        },
        'handlers': {
            'console': {
                'level': 'WARNING',
                'class': 'logging.StreamHandler',
                'formatter': 'brief',
                'stream': 'ext://sys.stderr',
            },
            'file': {
                'level': 'DEBUG',
                'class': 'logging.handlers.RotatingFileHandler',
                'filename': os.path.join(log_dir, LOG_FILE_NAME),
                'maxBytes': 10485760,  # 10 MB
                'backupCount': 5,
                'formatter': 'standard',
                'encoding': 'utf-8',
            },
        },
        'loggers': {
            'leetstack': {
                'handlers': ['console', 'file'],
                'level': 'DEBUG' if debug else 'INFO',
                'propagate': False
            },
        },
        'root': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
    }


def setup_logging(log_dir=None, debug=None):
    """Configure logging for the application"""
    config = build_logging_config(log_dir, debug)
    os.makedirs(os.path.dirname(config['handlers']['file']['filename']) or '.', exist_ok=True)
    dictConfig(config)

    logger = logging.getLogger('leetstack')
    logger.debug('Logging configured successfully')
    return logger
