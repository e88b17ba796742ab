import logging
from logging.handlers import RotatingFileHandler

import pytest

from bankapi.logging_config import setup_logging


@pytest.fixture
def bankapi_logger():
    logger = logging.getLogger("bankapi")
    yield logger
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)


def test_setup_logging_writes_to_log_dir(tmp_path, bankapi_logger):
    logger = setup_logging(log_dir=tmp_path, level="debug")

    assert logger is bankapi_logger
    assert logger.level == logging.DEBUG
    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()
    assert "hello" in (tmp_path / "bankapi.log").read_text(encoding="utf-8")


def test_repeated_setup_closes_previous_handlers(tmp_path, bankapi_logger):
    setup_logging(log_dir=tmp_path)
    first_file_handler = next(
        h for h in bankapi_logger.handlers if isinstance(h, RotatingFileHandler)
    )

    setup_logging(log_dir=tmp_path)

    assert first_file_handler not in bankapi_logger.handlers
    assert first_file_handler.stream is None
    assert len(bankapi_logger.handlers) == 2
