from __future__ import annotations

import logging

from org_import.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


def test_setup_logging_creates_logger_with_labeled_formatter():
    logger = setup_logging()
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_labeled_prefixes(capsys):
    logger = setup_logging()
    logger.info("reading file")
    logger.warning("two roots")
    logger.error("import blocked")
    log_summary("total=1")
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines == [
        "INFO reading file",
        "WARN two roots",
        "ERROR import blocked",
        "SUMMARY total=1",
    ]


def test_module_loggers_share_the_handler(capsys):
    setup_logging()
    logging.getLogger("org_import.services.pipeline").info("planned %d item(s)", 3)
    assert capsys.readouterr().out.strip() == "INFO planned 3 item(s)"


def test_debug_is_hidden_by_default(capsys):
    logger = setup_logging()
    logger.debug("noise")
    assert capsys.readouterr().out == ""


def test_debug_mode_shows_debug_and_tracebacks(capsys):
    logger = setup_logging(debug=True)
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        logger.debug("failed", exc_info=True)
    out = capsys.readouterr().out
    assert out.startswith("DEBUG failed")
    assert "RuntimeError: boom" in out


def test_setup_logging_idempotent_adjusts_level():
    first = setup_logging()
    second = setup_logging(debug=True)
    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    assert setup_logging().level == logging.INFO


def test_get_logger_configures_on_first_use():
    reset_logging()
    logger = get_logger()
    assert logger.name == LOGGER_NAME
    assert get_logger() is logger


def test_summary_level_name():
    setup_logging()
    assert SUMMARY_LEVEL == 25
    assert logging.getLevelName(SUMMARY_LEVEL) == "SUMMARY"
