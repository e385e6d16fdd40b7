"""DriverSupervisor - High-level API for driver/browser supervision"""

from typing import Optional, Union

from loguru import logger

from .config import BrowserConfig, SweepResult, WebDriverConfig
from .launchers import BrowserHandle, BrowserLauncher, WebDriverHandle, WebDriverLauncher
from .log_config import setup_logging
from .monitoring import OrphanCleaner, ProcessRegistry
from .settings import SupervisorSettings, get_settings
from .utils.ports import PortRequest
from .utils.ports import get_new_port as _get_new_port


class DriverSupervisor:
    """
    High-level supervisor
    Combines port allocation, launching and orphan cleanup over one registry
    """

    def __init__(
        self,
        settings: Optional[SupervisorSettings] = None,
        registry: Optional[ProcessRegistry] = None,
    ):
        """
        Initialize supervisor

        Args:
            settings: Settings (global settings when None)
            registry: Registry to share (a fresh one when None)
        """
        self.settings = settings or get_settings()
        if self.settings.configure_logging:
            setup_logging(level=self.settings.log_level, log_file=self.settings.log_file)

        self.registry = registry if registry is not None else ProcessRegistry()

        self.orphan_cleaner = OrphanCleaner(
            self.registry,
            terminate_timeout=self.settings.terminate_timeout,
            kill_timeout=self.settings.kill_timeout,
            auto_cleanup=self.settings.auto_cleanup,
            check_interval=self.settings.monitoring_interval,
        )
        self.webdriver_launcher = WebDriverLauncher(self.registry, self.settings)
        self.browser_launcher = BrowserLauncher(self.registry, self.settings)

        logger.info(
            f"DriverSupervisor initialized "
            f"(host={self.settings.host}, auto_cleanup={self.settings.auto_cleanup})"
        )

    async def get_new_port(self, requested: PortRequest = None) -> str:
        """Resolve a requested port; falsy/"0" gives an OS-assigned one"""
        return await _get_new_port(
            requested,
            host=self.settings.host,
            max_attempts=self.settings.port_bind_attempts,
        )

    async def start_webdriver(
        self,
        browser: Union[str, WebDriverConfig] = "chrome",
        port: PortRequest = "0",
        **options,
    ) -> WebDriverHandle:
        """
        Start a WebDriver server

        Args:
            browser: Browser name, or a complete WebDriverConfig
            port: Port to bind; "0" picks a free one
            **options: Other WebDriverConfig fields

        Returns:
            Registered WebDriverHandle
        """
        config = browser if isinstance(browser, WebDriverConfig) else WebDriverConfig(
            browser=browser, port=port, **options
        )
        return await self.webdriver_launcher.launch(config)

    async def start_browser(
        self,
        browser: Union[str, BrowserConfig] = "chrome",
        size=None,
        webdriver: Optional[WebDriverHandle] = None,
        **options,
    ) -> BrowserHandle:
        """
        Start a browser through a WebDriver server

        Args:
            browser: Browser name, or a complete BrowserConfig
            size: Window size; None keeps the browser default
            webdriver: Controlling server (latest unpaired one when None)
            **options: Other BrowserConfig fields

        Returns:
            Registered BrowserHandle
        """
        config = browser if isinstance(browser, BrowserConfig) else BrowserConfig(
            browser=browser, size=size, **options
        )
        return await self.browser_launcher.launch(config, webdriver=webdriver)

    async def kill_orphans(self) -> SweepResult:
        """Terminate every tracked process and wait until each exit is confirmed"""
        return await self.orphan_cleaner.kill_orphans()

    async def start_monitoring(self, interval: Optional[float] = None) -> None:
        """
        Start periodic sweeps for crashed pairs

        Args:
            interval: Seconds between sweeps (settings.monitoring_interval when None)
        """
        if interval is not None:
            self.orphan_cleaner.check_interval = interval
        await self.orphan_cleaner.start()

    async def stop_monitoring(self) -> None:
        await self.orphan_cleaner.stop()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager: stop monitoring and sweep everything"""
        await self.stop_monitoring()
        await self.kill_orphans()
        return False


_supervisor: Optional[DriverSupervisor] = None


def get_supervisor() -> DriverSupervisor:
    """Get the process-wide supervisor, creating it on first use"""
    global _supervisor
    if _supervisor is None:
        _supervisor = DriverSupervisor()
    return _supervisor


def reset_supervisor() -> None:
    """Forget the process-wide supervisor (its processes are not touched)"""
    global _supervisor
    _supervisor = None


async def get_new_port(requested: PortRequest = None) -> str:
    return await get_supervisor().get_new_port(requested)


async def start_webdriver(
    browser: Union[str, WebDriverConfig] = "chrome",
    port: PortRequest = "0",
    **options,
) -> WebDriverHandle:
    return await get_supervisor().start_webdriver(browser, port=port, **options)


async def start_browser(
    browser: Union[str, BrowserConfig] = "chrome",
    size=None,
    webdriver: Optional[WebDriverHandle] = None,
    **options,
) -> BrowserHandle:
    return await get_supervisor().start_browser(browser, size=size, webdriver=webdriver, **options)


async def kill_orphans() -> SweepResult:
    return await get_supervisor().kill_orphans()
