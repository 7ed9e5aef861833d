"""
Optional process-wide pipeline holder.

For applications that want one shared pipeline without passing it around.
Library code never reads this holder; it only exists behind explicit
``init()`` / ``close()`` calls.

Usage:
    from logflux import logger as logflux

    await logflux.init()
    await logflux.info("Service started")
    await logflux.close()
"""

import threading
from datetime import datetime
from typing import Any, Optional

import structlog

from .config import Settings, get_settings
from .core.pipeline import LogPipeline
from .log_config import configure_logging
from .models.log_entry import LogLevel

logger = structlog.get_logger(__name__)

_lock = threading.Lock()
_pipeline: Optional[LogPipeline] = None


async def init(settings: Optional[Settings] = None, configure_log: bool = True, **kwargs: Any) -> LogPipeline:
    """
    Start a pipeline and install it, closing any previous one.

    Unless ``configure_log`` is False, structlog is set up at
    ``settings.log_level`` first.
    """
    settings = settings or get_settings()
    if configure_log:
        configure_logging(settings.log_level)

    pipeline = await LogPipeline(settings, **kwargs).start()
    previous = _swap(pipeline)
    if previous is not None:
        logger.info("Replacing global log pipeline")
        await previous.close()
    return pipeline


async def close() -> None:
    """Close and uninstall the global pipeline, if any."""
    previous = _swap(None)
    if previous is not None:
        await previous.close()


def get_pipeline() -> LogPipeline:
    pipeline = _pipeline
    if pipeline is None:
        raise RuntimeError("LogFlux not initialized. Call init() first.")
    return pipeline


def is_initialized() -> bool:
    return _pipeline is not None


def _swap(pipeline: Optional[LogPipeline]) -> Optional[LogPipeline]:
    global _pipeline
    with _lock:
        previous, _pipeline = _pipeline, pipeline
    return previous


async def log(message: str, level: LogLevel = LogLevel.INFO, timestamp: Optional[datetime] = None) -> bool:
    return await get_pipeline().submit(message, level, timestamp)


async def debug(message: str) -> bool:
    return await get_pipeline().debug(message)


async def info(message: str) -> bool:
    return await get_pipeline().info(message)


async def warn(message: str) -> bool:
    return await get_pipeline().warn(message)


async def error(message: str) -> bool:
    return await get_pipeline().error(message)


async def fatal(message: str) -> bool:
    return await get_pipeline().fatal(message)


async def flush(timeout: float = 10.0) -> bool:
    return await get_pipeline().flush(timeout)
