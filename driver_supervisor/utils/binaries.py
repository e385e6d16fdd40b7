"""Driver binary detection utilities"""

import os
import platform
import shutil
from typing import Optional

from loguru import logger

from ..exceptions import DriverBinaryNotFoundError


def is_windows() -> bool:
    return platform.system() == "Windows"


def executable_name(name: str) -> str:
    """Add the platform executable suffix to a bare binary name"""
    if is_windows() and not name.lower().endswith(".exe"):
        return f"{name}.exe"
    return name


def find_binary(name: str, override: Optional[str] = None) -> str:
    """
    Locate a driver executable

    Args:
        name: Bare binary name (e.g. "chromedriver")
        override: Explicit path or name from configuration

    Returns:
        Absolute path to the executable

    Raises:
        DriverBinaryNotFoundError: If it cannot be found or is not executable
    """
    candidate = override or executable_name(name)

    if os.path.sep in candidate or (os.path.altsep and os.path.altsep in candidate):
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return os.path.abspath(candidate)
        raise DriverBinaryNotFoundError(f"Driver binary not executable: {candidate}")

    resolved = shutil.which(candidate)
    if resolved is None:
        raise DriverBinaryNotFoundError(f"Command not found: {candidate}")

    logger.debug(f"Resolved {name} -> {resolved}")
    return resolved


def has_binary(name: str) -> bool:
    """Check if a driver binary is on PATH"""
    return shutil.which(executable_name(name)) is not None

