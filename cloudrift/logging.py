"""loguru setup for cloudrift.

cloudrift is a library, so its records are disabled on import. Applications
opt in with ``setup_logging`` (and undo it with ``teardown_logging``), or
scope it with ``logging_enabled``:

    from cloudrift.logging import LogConfig, logging_enabled

    with logging_enabled(LogConfig(level="DEBUG", file="cloudrift.log")):
        asyncio.run(main())

Modules log through ``logger.bind(component=...)``; the lifecycle
controller also binds ``instance_id``, which the formats below render when
present.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

PACKAGE = "cloudrift"

logger.disable(PACKAGE)

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan>{extra[instance]} - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} [{extra[component]}]{extra[instance]} - {message}"
)


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where cloudrift logs go.

    Attributes:
        level: Minimum level for the console sink.
        file: Optional log file; it always receives DEBUG and above.
        console: Log to stderr.
        rotation: File rotation policy (e.g. "50 MB", "1 day").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def _with_defaults(record: Any) -> bool:
    name = record["name"] or ""
    if not name.startswith(PACKAGE):
        return False
    extra = record["extra"]
    extra.setdefault("component", name.removeprefix(f"{PACKAGE}."))
    instance_id = extra.get("instance_id")
    extra["instance"] = f" {instance_id}" if instance_id else ""
    return True


def _console_sink(config: LogConfig) -> int:
    return logger.add(
        sys.stderr,
        level=config.level,
        format=CONSOLE_FORMAT,
        colorize=True,
        filter=_with_defaults,
    )


def _file_sink(config: LogConfig, path: str) -> int:
    return logger.add(
        path,
        level="DEBUG",
        format=FILE_FORMAT,
        rotation=config.rotation,
        retention=config.retention,
        compression="zip",
        # tracebacks would otherwise render local variables, API token included
        diagnose=False,
        enqueue=True,
        filter=_with_defaults,
    )


def setup_logging(config: LogConfig | None = None) -> list[int]:
    """Enable cloudrift records and return the ids of the sinks added."""
    config = config or LogConfig()
    logger.enable(PACKAGE)
    handler_ids: list[int] = []
    if config.console:
        handler_ids.append(_console_sink(config))
    if config.file:
        handler_ids.append(_file_sink(config, config.file))
    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable(PACKAGE)


@contextmanager
def logging_enabled(config: LogConfig | None = None) -> Iterator[list[int]]:
    handler_ids = setup_logging(config)
    try:
        yield handler_ids
    finally:
        teardown_logging(handler_ids)
