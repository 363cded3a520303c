import logging

from aicounsel.utils.logging import LOG_FILENAME, PACKAGE_LOGGER, get_logger, log_dir


def test_module_loggers_share_the_package_handlers():
    first = get_logger("aicounsel.core.chat")
    second = get_logger("aicounsel.memory.repository")
    get_logger("aicounsel.core.chat")

    package = logging.getLogger(PACKAGE_LOGGER)
    assert first.propagate and second.propagate
    assert first.handlers == [] and second.handlers == []
    assert len(package.handlers) == 2


def test_foreign_names_are_nested():
    assert get_logger("scripts").name == "aicounsel.scripts"
    assert get_logger().name == PACKAGE_LOGGER


def test_records_reach_the_log_file():
    logger = get_logger("aicounsel.tests.logging")
    logger.info("written to file")
    for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
        handler.flush()

    assert "written to file" in (log_dir() / LOG_FILENAME).read_text(encoding="utf-8")
