"""Tests for settings-driven logging setup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from inkwell.services.settings import Settings
from inkwell.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    logging_utils.shutdown_logging()
    yield
    logging_utils.shutdown_logging()


def _flush() -> None:
    for handler in logging.getLogger("inkwell").handlers:
        handler.flush()


def test_writes_package_log_file_without_touching_root(tmp_path: Path) -> None:
    root_handlers = list(logging.getLogger().handlers)

    path = logging_utils.configure_logging(Settings(), log_dir=tmp_path, console=False, environ={})
    logging.getLogger("inkwell.tests").info("hello from the test")
    _flush()

    assert path == tmp_path / "inkwell.log"
    assert "hello from the test" in path.read_text(encoding="utf-8")
    assert logging.getLogger().handlers == root_handlers
    assert logging.getLogger("inkwell").propagate is False
    assert logging.getLogger("httpx").level == logging.WARNING


def test_debug_flag_controls_level_and_can_be_reapplied(tmp_path: Path) -> None:
    logging_utils.configure_logging(Settings(), log_dir=tmp_path, console=False, environ={})
    package_logger = logging.getLogger("inkwell")

    assert package_logger.level == logging.INFO

    path = logging_utils.configure_logging(Settings(debug_logging=True), log_dir=tmp_path / "ignored", environ={})

    assert package_logger.level == logging.DEBUG
    assert path == tmp_path / "inkwell.log"
    assert len(package_logger.handlers) == 1


def test_api_key_is_masked(tmp_path: Path) -> None:
    secret = "sk-live-abcdef123456"
    path = logging_utils.configure_logging(
        Settings(api_key=secret), log_dir=tmp_path, console=False, environ={}
    )

    logging.getLogger("inkwell.ai.client").warning("Request failed with key %s", secret)
    _flush()

    contents = path.read_text(encoding="utf-8")
    assert secret not in contents
    assert "sk****************56" in contents


def test_environment_sets_directory_and_level(tmp_path: Path) -> None:
    environ = {"INKWELL_LOG_DIR": str(tmp_path / "env-logs"), "INKWELL_LOG_LEVEL": "warning"}

    path = logging_utils.configure_logging(Settings(debug_logging=True), console=False, environ=environ)

    assert path == tmp_path / "env-logs" / "inkwell.log"
    assert logging.getLogger("inkwell").level == logging.WARNING


def test_unknown_level_falls_back_to_settings() -> None:
    level = logging_utils.log_level_for(Settings(debug_logging=True), {"INKWELL_LOG_LEVEL": "chatty"})

    assert level == logging.DEBUG


def test_shutdown_detaches_handlers(tmp_path: Path) -> None:
    logging_utils.configure_logging(Settings(), log_dir=tmp_path, console=False, environ={})

    logging_utils.shutdown_logging()

    package_logger = logging.getLogger("inkwell")
    assert package_logger.handlers == []
    assert package_logger.propagate is True
