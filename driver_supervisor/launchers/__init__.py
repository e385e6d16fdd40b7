"""Process launchers - WebDriver servers and the browsers they drive"""

from .base import BaseLauncher
from .browser import BrowserHandle, BrowserLauncher
from .drivers import DRIVER_SPECS, DriverSpec, get_driver_spec
from .webdriver import WebDriverHandle, WebDriverLauncher

__all__ = [
    "BaseLauncher",
    "BrowserHandle",
    "BrowserLauncher",
    "DRIVER_SPECS",
    "DriverSpec",
    "get_driver_spec",
    "WebDriverHandle",
    "WebDriverLauncher",
]
