"""Log file and level management driven by the assistant settings.

Handlers are attached to the ``inkwell`` package logger, never the root
logger, so the host application keeps control of its own logging. The
level follows ``Settings.debug_logging`` (or ``INKWELL_LOG_LEVEL``) and
is re-applied whenever the settings change.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from ..services.settings import Settings, redact_secret

__all__ = ["SecretFilter", "configure_logging", "log_level_for", "shutdown_logging"]

PACKAGE_LOGGER = "inkwell"
LOG_FILE_NAME = "inkwell.log"

_DEFAULT_LOG_DIR = Path.home() / ".inkwell" / "logs"
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SecretFilter(logging.Filter):
    """Mask the configured API key wherever it appears in a log message."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: tuple[str, ...] = ()

    def update(self, *secrets: str) -> None:
        self._secrets = tuple(secret.strip() for secret in secrets if secret and secret.strip())

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, redact_secret(secret))
        if masked != message:
            record.msg = masked
            record.args = None
        return True


@dataclass(slots=True)
class _LoggingState:
    log_path: Path
    handlers: list[logging.Handler] = field(default_factory=list)
    secret_filter: SecretFilter = field(default_factory=SecretFilter)


_STATE: _LoggingState | None = None


def log_level_for(settings: Settings, environ: Mapping[str, str] | None = None) -> int:
    """``INKWELL_LOG_LEVEL`` when it names a level, else DEBUG or INFO per ``debug_logging``."""

    env = os.environ if environ is None else environ
    override = (env.get("INKWELL_LOG_LEVEL") or "").strip().upper()
    if override:
        level = logging.getLevelName(override)
        if isinstance(level, int):
            return level
        logging.getLogger(__name__).warning("Ignoring unknown INKWELL_LOG_LEVEL=%s", override)
    return logging.DEBUG if settings.debug_logging else logging.INFO


def configure_logging(
    settings: Settings,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    environ: Mapping[str, str] | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Attach a rotating log file (and console output) to the package logger.

    The first call creates the handlers; later calls only re-apply the level
    and the masked secret from ``settings``. Returns the log file path.
    """

    global _STATE
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _STATE is None:
        target_dir = _resolve_log_dir(log_dir, environ)
        target_dir.mkdir(parents=True, exist_ok=True)
        state = _LoggingState(log_path=target_dir / LOG_FILE_NAME)
        formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
        file_handler = logging.handlers.RotatingFileHandler(
            state.log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        state.handlers.append(file_handler)
        if console:
            state.handlers.append(logging.StreamHandler())
        for handler in state.handlers:
            handler.setFormatter(formatter)
            handler.addFilter(state.secret_filter)
            package_logger.addHandler(handler)
        package_logger.propagate = False
        _STATE = state

    level = log_level_for(settings, environ)
    package_logger.setLevel(level)
    for handler in _STATE.handlers:
        handler.setLevel(level)
    _STATE.secret_filter.update(settings.api_key)
    _tune_external_loggers(level)
    return _STATE.log_path


def shutdown_logging() -> None:
    """Detach and close the handlers added by :func:`configure_logging`."""

    global _STATE
    if _STATE is None:
        return
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in _STATE.handlers:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
    _STATE = None


def _resolve_log_dir(log_dir: Path | str | None, environ: Mapping[str, str] | None) -> Path:
    env = os.environ if environ is None else environ
    return Path(log_dir or env.get("INKWELL_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()


def _tune_external_loggers(level: int) -> None:
    quiet_level = logging.WARNING if level < logging.WARNING else level
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
