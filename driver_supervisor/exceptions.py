"""Custom exceptions for driver/browser process supervision"""

from typing import Dict


class DriverSupervisorError(Exception):
    """Base exception for driver supervision errors"""
    pass


class LaunchError(DriverSupervisorError):
    """Raised when a supervised process fails to start"""
    pass


class WebDriverLaunchError(LaunchError):
    """Raised when a WebDriver server fails to start or become ready"""
    pass


class DriverBinaryNotFoundError(WebDriverLaunchError):
    """Raised when the driver executable cannot be located"""
    pass


class BrowserLaunchError(LaunchError):
    """Raised when a browser session cannot be created"""
    pass


class UnsupportedBrowserError(DriverSupervisorError, ValueError):
    """Raised when a browser name has no known driver"""
    pass


class ProcessTerminationError(DriverSupervisorError):
    """Raised when a process refuses to die after SIGTERM and SIGKILL"""
    pass


class OrphanSweepError(DriverSupervisorError):
    """Raised when one or more orphans could not be terminated during a sweep"""

    def __init__(self, failures: Dict[str, str], result=None):
        self.failures = failures
        self.result = result
        details = ", ".join(f"{pairing_id}: {reason}" for pairing_id, reason in failures.items())
        super().__init__(f"Failed to terminate {len(failures)} process(es): {details}")


class PortAllocationError(DriverSupervisorError):
    """Raised when no ephemeral port could be obtained"""
    pass


class PortAlreadyRegisteredError(DriverSupervisorError):
    """Raised when a second active WebDriver is registered on the same port"""
    pass


class PairingNotFoundError(DriverSupervisorError):
    """Raised when a pairing id is not in the registry"""
    pass
