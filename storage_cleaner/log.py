import logging
from logging.config import dictConfig

PACKAGE_LOGGER = "storage_cleaner"

def configure_logging(level: str = "INFO") -> None:
    """
    Console logging for applications embedding the cleaner
    """
    dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            }
        },
        'handlers': {
            'default': {
                'class': 'logging.StreamHandler',
                'formatter': 'default'
            }
        },
        'loggers': {
            PACKAGE_LOGGER: {
                'level': level,
                'handlers': ['default'],
                'propagate': False,
            }
        }
    })

def set_debug(enabled: bool) -> None:
    """
    `debug=True` in the config turns on per-key logging for the whole package
    """
    if enabled:
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)
