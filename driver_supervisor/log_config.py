"""
Logging Configuration

Loguru-based console and file logging for the supervisor.

Usage:
    from driver_supervisor.log_config import setup_logging

    logger = setup_logging(level="DEBUG", log_file="logs/supervisor.log")
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger


class LogLevel(str, Enum):
    """Log level enumeration"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogConfig:
    """
    Logging configuration dataclass

    Attributes:
        level: Minimum log level
        log_file: Optional file sink
        console_output: Enable stderr logging
        rotation: File size for rotation (e.g., "50 MB")
        retention: How long to keep old logs (e.g., "7 days")
        colorize: Enable colored console output
        enqueue: Thread-safe logging
    """
    level: LogLevel = LogLevel.INFO
    log_file: Optional[Path] = None
    console_output: bool = True
    rotation: str = "50 MB"
    retention: str = "7 days"
    colorize: bool = True
    enqueue: bool = False

    console_format: str = field(default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>")
    file_format: str = field(default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}")

    def __post_init__(self):
        if isinstance(self.level, str):
            self.level = LogLevel(self.level.upper())
        if self.log_file is not None and not isinstance(self.log_file, Path):
            self.log_file = Path(self.log_file)


_handler_ids: List[int] = []


def setup_logging(
    level: Union[str, LogLevel] = LogLevel.INFO,
    log_file: Optional[Union[str, Path]] = None,
    config: Optional[LogConfig] = None,
):
    """
    Configure loguru sinks for the supervisor

    Replaces any sinks previously added by this function; sinks added
    elsewhere are left alone.

    Args:
        level: Minimum log level
        log_file: Optional log file path (rotated)
        config: Full LogConfig, overrides level/log_file

    Returns:
        Configured logger instance
    """
    if config is None:
        config = LogConfig(level=level, log_file=log_file)

    shutdown_logging()

    if config.console_output:
        # Replaces loguru's default stderr sink (id 0)
        try:
            logger.remove(0)
        except ValueError:
            pass
        _handler_ids.append(logger.add(
            sys.stderr,
            level=config.level.value,
            format=config.console_format,
            colorize=config.colorize,
            enqueue=config.enqueue,
        ))

    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        _handler_ids.append(logger.add(
            str(config.log_file),
            level=config.level.value,
            format=config.file_format,
            rotation=config.rotation,
            retention=config.retention,
            enqueue=config.enqueue,
        ))

    logger.debug(f"Logging configured (level={config.level.value}, file={config.log_file})")
    return logger


def shutdown_logging() -> None:
    """Remove the sinks added by setup_logging"""
    while _handler_ids:
        handler_id = _handler_ids.pop()
        try:
            logger.remove(handler_id)
        except ValueError:
            # Already removed elsewhere (e.g. logger.remove())
            continue
