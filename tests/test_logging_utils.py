import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from polymarket_mirror.logging_utils import ROOT_LOGGER_NAME, setup_logging


def test_setup_logging_routes_package_loggers_through_rich():
    buffer = io.StringIO()
    previous_level = logging.getLogger().level
    setup_logging("DEBUG", console=Console(file=buffer, width=200))
    try:
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], RichHandler)
        assert root.level == logging.DEBUG

        logging.getLogger(f"{ROOT_LOGGER_NAME}.ingest").info("pass finished")
        assert "pass finished" in buffer.getvalue()
    finally:
        logging.getLogger().handlers.clear()
        logging.getLogger().setLevel(previous_level)
