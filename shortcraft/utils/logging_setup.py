from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

LOG_ACCOUNT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_account_id", default=None)
LOG_PROJECT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_project_id", default=None)
LOG_STAGE: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_stage", default=None)

# record attribute -> context variable; order is the order in LOG_FORMAT
CONTEXT_FIELDS: Dict[str, contextvars.ContextVar[Optional[str]]] = {
    "account_id": LOG_ACCOUNT_ID,
    "project_id": LOG_PROJECT_ID,
    "stage": LOG_STAGE,
}

LOG_FORMAT = " | ".join(
    ["%(asctime)s", "%(levelname)s", "%(name)s"] + [f"%({name})s" for name in CONTEXT_FIELDS] + ["%(message)s"]
)
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED_FLAG = "_shortcraft_logging_configured"


class ContextFilter(logging.Filter):
    """Stamps the current account/project/stage onto every record ("-" when unset)."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in CONTEXT_FIELDS.items():
            setattr(record, name, var.get() or "-")
        return True


@contextmanager
def log_context(**fields: Optional[str]) -> Iterator[None]:
    """
    Bind context fields for the duration of the block; nested blocks only
    override what they pass. Accepts account_id, project_id and stage.
    """
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")

    tokens = [
        (CONTEXT_FIELDS[name], CONTEXT_FIELDS[name].set(value))
        for name, value in fields.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    log_file: Optional[str] = "logs/shortcraft.log",
    level: Union[int, str] = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    handlers: list[logging.Handler] = []
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if enable_console or not log_file:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    context_filter = ContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        # Root-logger filters are skipped for records propagated from children.
        handler.addFilter(context_filter)
        root.addHandler(handler)

    root.setLevel(_level(level))
    logging.captureWarnings(True)
    setattr(root, _CONFIGURED_FLAG, True)
    return root


def setup_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not any(isinstance(f, ContextFilter) for f in logger.filters):
        logger.addFilter(ContextFilter())
    return logger
