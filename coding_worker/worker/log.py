"""Logging configuration using loguru.

loguru is the only sink.  Records from stdlib loggers (uvicorn, httpx,
botocore, ...) are forwarded into it, and every line carries the id of the
job being served (``-`` outside a job, see ``job_context``).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>job={extra[job_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "botocore", "boto3", "s3transfer", "urllib3")


class _StdlibBridge(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so the call-site is the caller's.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, json: bool = False) -> None:
    """Route all logging through loguru on stderr.

    With ``json`` set, each record is written as one JSON object per line
    (loguru's ``serialize`` format), which log collectors in the container
    runtime can parse directly.
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"job_id": "-"})
    if json:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_FORMAT)

    logging.basicConfig(handlers=[_StdlibBridge()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging ready (level={}, json={})", level, json)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Tag every record logged inside the block (and tasks it spawns) with *job_id*."""
    with logger.contextualize(job_id=job_id):
        yield
