"""
driver-supervisor - WebDriver/browser process supervision
Launches driver/browser pairs, allocates ports and cleans up orphans
"""

from .config import BrowserConfig, BrowserName, Pairing, PairingState, Role, SweepResult, WebDriverConfig, WindowSize
from .handle import ExitReason, ProcessHandle
from .launchers import BrowserHandle, WebDriverHandle
from .manager import (
    DriverSupervisor,
    get_new_port,
    get_supervisor,
    kill_orphans,
    reset_supervisor,
    start_browser,
    start_webdriver,
)
from .monitoring import OrphanCleaner, ProcessRegistry
from .exceptions import (
    BrowserLaunchError,
    DriverBinaryNotFoundError,
    DriverSupervisorError,
    LaunchError,
    OrphanSweepError,
    PairingNotFoundError,
    PortAllocationError,
    PortAlreadyRegisteredError,
    ProcessTerminationError,
    UnsupportedBrowserError,
    WebDriverLaunchError,
)

__version__ = "0.1.0"

__all__ = [
    "get_new_port",
    "start_webdriver",
    "start_browser",
    "kill_orphans",
    "get_supervisor",
    "reset_supervisor",
    "DriverSupervisor",
    "ProcessRegistry",
    "OrphanCleaner",
    "ProcessHandle",
    "WebDriverHandle",
    "BrowserHandle",
    "ExitReason",
    "BrowserConfig",
    "BrowserName",
    "Pairing",
    "PairingState",
    "Role",
    "SweepResult",
    "WebDriverConfig",
    "WindowSize",
    "DriverSupervisorError",
    "LaunchError",
    "WebDriverLaunchError",
    "DriverBinaryNotFoundError",
    "BrowserLaunchError",
    "UnsupportedBrowserError",
    "ProcessTerminationError",
    "OrphanSweepError",
    "PortAllocationError",
    "PortAlreadyRegisteredError",
    "PairingNotFoundError",
]
