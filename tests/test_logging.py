"""Tests for package logging setup."""

import io
import logging

from diagram_sync.logging import setup_logging


def test_setup_logging_writes_package_records():
    stream = io.StringIO()
    setup_logging("DEBUG", format="%(levelname)s %(name)s %(message)s", stream=stream)

    logging.getLogger("diagram_sync.sync").debug("hello")
    logging.getLogger("other").warning("not ours")

    assert stream.getvalue() == "DEBUG diagram_sync.sync hello\n"


def test_setup_logging_replaces_handlers(tmp_path):
    log_file = tmp_path / "sync.log"
    setup_logging("INFO", stream=io.StringIO())
    setup_logging("WARNING", stream=io.StringIO(), file=str(log_file))

    package_logger = logging.getLogger("diagram_sync")
    assert len(package_logger.handlers) == 2
    assert package_logger.level == logging.WARNING

    logging.getLogger("diagram_sync.parser").warning("to file")
    for handler in package_logger.handlers:
        handler.flush()
    assert "to file" in log_file.read_text()

    for handler in package_logger.handlers:
        handler.close()
