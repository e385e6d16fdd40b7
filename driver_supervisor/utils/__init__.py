"""Utilities - port allocation, driver binary detection"""

from .ports import ANY_PORT, get_new_port, is_any_port, is_port_in_use
from .binaries import find_binary, has_binary

__all__ = [
    "ANY_PORT",
    "get_new_port",
    "is_any_port",
    "is_port_in_use",
    "find_binary",
    "has_binary",
]
