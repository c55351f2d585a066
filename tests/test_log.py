import logging

import pytest

from storage_cleaner.log import PACKAGE_LOGGER, configure_logging, set_debug


#-------------FIXTURES----------------
@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    level, handlers, propagate = logger.level, list(logger.handlers), logger.propagate
    yield logger
    logger.setLevel(level)
    logger.handlers[:] = handlers
    logger.propagate = propagate


def test_configure_logging(package_logger):
    configure_logging("WARNING")
    assert package_logger.level == logging.WARNING
    assert not package_logger.propagate

    handler = package_logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    assert handler.formatter._fmt == '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def test_child_loggers_use_package_handler(package_logger):
    configure_logging("INFO")
    child = logging.getLogger("storage_cleaner.eviction.manager")
    assert child.getEffectiveLevel() == logging.INFO
    assert not child.disabled

def test_set_debug_only_raises_verbosity(package_logger):
    package_logger.setLevel(logging.INFO)
    set_debug(False)
    assert package_logger.level == logging.INFO
    set_debug(True)
    assert package_logger.level == logging.DEBUG
