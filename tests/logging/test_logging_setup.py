import logging

import pytest

from shortcraft.utils.logging_setup import (
    ContextFilter,
    LOG_ACCOUNT_ID,
    LOG_FORMAT,
    LOG_PROJECT_ID,
    LOG_STAGE,
    configure_logging,
    log_context,
)


def _record():
    return logging.LogRecord("test.logger", logging.INFO, __file__, 1, "hello", (), None)


def test_context_filter_defaults():
    record = _record()
    ContextFilter().filter(record)
    assert record.account_id == "-"
    assert record.project_id == "-"
    assert record.stage == "-"


def test_context_filter_injects_values():
    account_token = LOG_ACCOUNT_ID.set("account_1")
    project_token = LOG_PROJECT_ID.set("project_1")
    stage_token = LOG_STAGE.set("hooks")
    try:
        record = _record()
        ContextFilter().filter(record)
        assert record.account_id == "account_1"
        assert record.project_id == "project_1"
        assert record.stage == "hooks"
    finally:
        LOG_STAGE.reset(stage_token)
        LOG_PROJECT_ID.reset(project_token)
        LOG_ACCOUNT_ID.reset(account_token)


def test_log_context_sets_and_restores():
    with log_context(account_id="a1", project_id="p1", stage="storyboard"):
        record = _record()
        ContextFilter().filter(record)
        assert (record.account_id, record.project_id, record.stage) == ("a1", "p1", "storyboard")
        with log_context(stage="editing_script"):
            inner = _record()
            ContextFilter().filter(inner)
            assert inner.stage == "editing_script"
            assert inner.project_id == "p1"
    record = _record()
    ContextFilter().filter(record)
    assert (record.account_id, record.project_id, record.stage) == ("-", "-", "-")


def test_formatting_uses_expected_fields():
    record = _record()
    ContextFilter().filter(record)
    formatted = logging.Formatter(LOG_FORMAT).format(record)
    assert "test.logger" in formatted
    assert "hello" in formatted
    assert "|" in formatted


def test_configure_logging_writes_context_to_file(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    saved_flag = getattr(root, "_shortcraft_logging_configured", False)
    try:
        configure_logging(log_file=str(log_file), level=logging.INFO, force=True)
        with log_context(account_id="acct", project_id="proj", stage="hooks"):
            logging.getLogger("shortcraft.test").info("persisted")
        for handler in root.handlers:
            handler.flush()
        text = log_file.read_text(encoding="utf-8")
        assert "acct | proj | hooks | persisted" in text
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        root._shortcraft_logging_configured = saved_flag


def test_log_context_rejects_unknown_fields():
    with pytest.raises(TypeError):
        with log_context(user="someone"):
            pass


def test_configure_logging_accepts_level_names(tmp_path):
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    saved_flag = getattr(root, "_shortcraft_logging_configured", False)
    try:
        configure_logging(log_file=str(tmp_path / "app.log"), level="warning", force=True)
        assert root.level == logging.WARNING
        configure_logging(log_file=str(tmp_path / "app.log"), level="chatty", force=True)
        assert root.level == logging.INFO
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        root._shortcraft_logging_configured = saved_flag
