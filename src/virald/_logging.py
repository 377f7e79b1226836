"""Logging setup shared by the virald library and its entry points.

The library only ever attaches a NullHandler to the ``virald`` logger.
Handlers are installed by configure_logging(), which the CLI and the
node server call once at startup.  VIRALD_LOG_LEVEL sets the initial
level (e.g. ``VIRALD_LOG_LEVEL=DEBUG virald list``).

Modules log structured context through ``extra={...}``; the console
formatter appends those fields to the line:

    INFO [2026-02-25 10:02:54] virald.providers.docker - VM created vm_id=vm-1a2b3c4d port=8006

Console records go through a bounded queue drained by a listener
thread, so a provider coroutine never waits on a slow stderr.  Records
are dropped when the queue is full.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "virald"
LOG_LEVEL_ENV_VAR: str = "VIRALD_LOG_LEVEL"

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
# Bounded so a burst of concurrent VM operations cannot grow memory unchecked
_QUEUE_CAPACITY = 4096

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


def level_from_env(value: str | None) -> int | None:
    """Translate a VIRALD_LOG_LEVEL value to a logging level, None if unset or invalid."""
    if not value:
        return None
    level = logging.getLevelNamesMapping().get(value.strip().upper())
    return level or None  # NOTSET means "unset" here


_library_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
_library_logger.addHandler(logging.NullHandler())
if (_env_level := level_from_env(os.environ.get(LOG_LEVEL_ENV_VAR))) is not None:
    _library_logger.setLevel(_env_level)


class ContextFormatter(logging.Formatter):
    """Formatter that renders ``extra=`` fields as trailing ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(fmt=_FMT, datefmt=_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        if not pairs:
            return line
        # Tracebacks stay at the end
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr with click (dimmed on a TTY).

    Runs on the QueueListener thread, never on the logging coroutine.
    """

    def __init__(self) -> None:
        super().__init__()
        self.setFormatter(ContextFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except BlockingIOError:
            pass  # stderr full, drop the record
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _QueuedConsoleHandler(logging.handlers.QueueHandler):
    """Enqueues records for a listener thread that owns the click handler.

    put_nowait() into a bounded FIFO; a QueueListener daemon thread drains
    it to _ClickHandler.  Records are dropped when the queue is full.
    """

    def __init__(self) -> None:
        records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(records)
        # Level filtering already happened on the library logger
        self._listener = logging.handlers.QueueListener(records, _ClickHandler())
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Same process: hand the record over as is so extra= fields survive
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Module logger under the ``virald`` hierarchy."""
    return logging.getLogger(name)


def configure_logging(*, level: int | str | None = None, quiet: bool = False) -> None:
    """Install the console handler (once) and set the library log level.

    Args:
        level: Level name or number; overrides VIRALD_LOG_LEVEL
        quiet: Only show errors; wins over level
    """
    # One console handler per process; callers with their own handlers are unaffected
    if not any(isinstance(h, _QueuedConsoleHandler) for h in _library_logger.handlers):
        _library_logger.addHandler(_QueuedConsoleHandler())

    if quiet:
        _library_logger.setLevel(logging.ERROR)
    elif level is not None:
        # Unknown level names raise ValueError from setLevel()
        _library_logger.setLevel(level)
