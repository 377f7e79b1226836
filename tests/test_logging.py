"""Tests for virald logging setup."""

import logging
from collections.abc import Iterator

import pytest

from virald._logging import (
    LIBRARY_LOGGER_NAME,
    ContextFormatter,
    _QueuedConsoleHandler,
    configure_logging,
    level_from_env,
)


@pytest.fixture
def library_logger() -> Iterator[logging.Logger]:
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    level = lib_logger.level
    handlers = list(lib_logger.handlers)
    yield lib_logger
    for handler in lib_logger.handlers:
        if handler not in handlers:
            lib_logger.removeHandler(handler)
            handler.close()
    lib_logger.setLevel(level)


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("virald.providers.docker", logging.INFO, __file__, 1, "VM created", None, None)
    record.__dict__.update(extra)
    return record


class TestLevelFromEnv:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("DEBUG", logging.DEBUG), (" warning ", logging.WARNING), ("", None), (None, None), ("LOUD", None)],
    )
    def test_parse(self, value: str | None, expected: int | None) -> None:
        assert level_from_env(value) == expected

    def test_notset_is_unset(self) -> None:
        assert level_from_env("NOTSET") is None


class TestContextFormatter:
    """extra= fields are appended as key=value pairs."""

    def test_appends_context(self) -> None:
        line = ContextFormatter().format(_record(vm_id="vm-1a2b3c4d", port=8006))
        assert line.endswith("virald.providers.docker - VM created vm_id=vm-1a2b3c4d port=8006")

    def test_skips_none_values(self) -> None:
        line = ContextFormatter().format(_record(vm_id="vm-1", provider=None))
        assert line.endswith("VM created vm_id=vm-1")

    def test_plain_record(self) -> None:
        assert ContextFormatter().format(_record()).endswith("VM created")


class TestConfigureLogging:
    def test_idempotent(self, library_logger: logging.Logger) -> None:
        configure_logging(level="DEBUG")
        configure_logging(level="DEBUG")
        assert sum(isinstance(h, _QueuedConsoleHandler) for h in library_logger.handlers) == 1
        assert library_logger.level == logging.DEBUG

    def test_quiet_wins(self, library_logger: logging.Logger) -> None:
        configure_logging(level="DEBUG", quiet=True)
        assert library_logger.level == logging.ERROR
