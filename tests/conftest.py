import logging
import os
from unittest.mock import patch

import pytest

from catalog_sync.logging_config import LOGGER_NAME

CREDENTIAL_VARS = ('OPENAI_API_KEY', 'OPENAI_BASE_URL', 'MODEL_NAME', 'TRANSLATOR_CONFIG_FILE')


@pytest.fixture(scope="session", autouse=True)
def isolated_environment():
    """
    Session-scoped, autouse fixture that hides credentials and config locations
    of the developer machine, so no test can reach a real translation service.
    """
    environment = {key: value for key, value in os.environ.items() if key not in CREDENTIAL_VARS}
    with patch.dict(os.environ, environment, clear=True):
        yield


@pytest.fixture(autouse=True)
def restore_package_logger():
    """The CLI reconfigures the package logger; put it back after every test."""
    package_logger = logging.getLogger(LOGGER_NAME)
    handlers = list(package_logger.handlers)
    level = package_logger.level
    propagate = package_logger.propagate

    yield

    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
