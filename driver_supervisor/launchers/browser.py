"""Browser launcher - opens a browser through a running WebDriver server"""

import asyncio
import errno
from typing import Any, Dict, Optional, Set

import aiohttp
import psutil
from loguru import logger

from .base import BaseLauncher
from .drivers import DriverSpec, get_driver_spec
from .webdriver import WebDriverHandle
from ..config import BrowserConfig, BrowserName, Role, WindowSize
from ..exceptions import BrowserLaunchError
from ..handle import ProcessHandle


def _is_connection_refused(error: aiohttp.ClientConnectorError) -> bool:
    os_error = getattr(error, "os_error", None)
    if isinstance(os_error, ConnectionRefusedError):
        return True
    return getattr(os_error, "errno", None) == errno.ECONNREFUSED


class BrowserHandle(ProcessHandle):
    """Handle of a driven browser process with a liveness probe"""

    def __init__(
        self,
        pid: int,
        browser: BrowserName,
        session_id: str,
        webdriver_url: str,
        status_timeout: float = 2.0,
        poll_interval: float = 0.1,
    ):
        super().__init__(pid, name=f"{browser.value}:{session_id[:8]}", poll_interval=poll_interval)
        self.browser = browser
        self.session_id = session_id
        self.webdriver_url = webdriver_url
        self.status_timeout = status_timeout
        self.pairing_id: Optional[str] = None

    async def check_status(self) -> Dict[str, Any]:
        """
        Probe the remote endpoint once

        Returns:
            The "value" object of GET /status

        Raises:
            ConnectionRefusedError: Nothing is listening any more (browser gone)
            aiohttp.ClientError, asyncio.TimeoutError: Any other failure, as-is
        """
        timeout = aiohttp.ClientTimeout(total=self.status_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.webdriver_url}/status") as resp:
                    resp.raise_for_status()
                    body = await resp.json(content_type=None)
        except aiohttp.ClientConnectorError as e:
            if _is_connection_refused(e):
                raise ConnectionRefusedError(
                    errno.ECONNREFUSED, f"{self.webdriver_url} refused the connection"
                ) from e
            raise

        if isinstance(body, dict) and isinstance(body.get("value"), dict):
            return body["value"]
        return {}


class BrowserLauncher(BaseLauncher):
    """
    Start browsers by creating a WebDriver session

    The browser is paired with the WebDriver that spawned it so a crash of
    either side can be cleaned up.
    """

    async def launch(
        self,
        config: BrowserConfig,
        webdriver: Optional[WebDriverHandle] = None,
    ) -> BrowserHandle:
        """
        Launch a browser through a WebDriver server

        Args:
            config: Browser configuration (size None = browser default)
            webdriver: Controlling server; defaults to the latest registered
                WebDriver for the same browser that has no browser yet

        Returns:
            Registered BrowserHandle

        Raises:
            BrowserLaunchError: If no usable WebDriver exists, the session
                cannot be created or the browser PID cannot be identified
        """
        spec = get_driver_spec(config.browser)
        webdriver = self._resolve_webdriver(spec, webdriver)
        size = WindowSize.coerce(config.size)
        headless = self.settings.headless if config.headless is None else config.headless
        payload = spec.capabilities(headless, size, config.capabilities)

        logger.info(f"Starting {spec.browser.value} via {webdriver.url}")
        children_before = self._child_pids(webdriver.pid)

        timeout = aiohttp.ClientTimeout(total=self.settings.startup_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            value = await self._request(session, "POST", f"{webdriver.url}/session", json=payload)
            session_id = value.get("sessionId")
            if not session_id:
                raise BrowserLaunchError(f"{webdriver.url} returned no sessionId")

            try:
                if size is not None:
                    await self._request(
                        session, "POST",
                        f"{webdriver.url}/session/{session_id}/window/rect",
                        json=size.to_dict(),
                    )
                pid = self._find_browser_pid(
                    spec, webdriver.pid, children_before, value.get("capabilities") or {}
                )
            except BaseException:
                await self._delete_session(session, webdriver.url, session_id)
                raise

        handle = BrowserHandle(
            pid,
            browser=spec.browser,
            session_id=session_id,
            webdriver_url=webdriver.url,
            status_timeout=self.settings.status_timeout,
            poll_interval=self.settings.exit_poll_interval,
        )
        partner = webdriver.pairing_id if webdriver.pairing_id in self.registry else None
        pairing = self.registry.register(handle, Role.BROWSER, spec.browser, partner=partner)
        handle.pairing_id = pairing.id

        logger.info(f"✅ {handle.name} launched with PID {handle.pid}")
        return handle

    def get_launcher_type(self) -> str:
        return "browser"

    def _resolve_webdriver(
        self, spec: DriverSpec, webdriver: Optional[WebDriverHandle]
    ) -> WebDriverHandle:
        if webdriver is None:
            pairing = self.registry.find_unpaired_webdriver(spec.browser)
            if pairing is None:
                raise BrowserLaunchError(
                    f"No running {spec.browser.value} WebDriver; start one first"
                )
            webdriver = pairing.handle

        if webdriver.browser is not spec.browser:
            raise BrowserLaunchError(
                f"{webdriver.name} drives {webdriver.browser.value}, not {spec.browser.value}"
            )
        if webdriver.has_exited:
            raise BrowserLaunchError(f"{webdriver.name} has already exited")
        return webdriver

    async def _request(
        self, session: aiohttp.ClientSession, method: str, url: str, **kwargs
    ) -> Dict[str, Any]:
        try:
            async with session.request(method, url, **kwargs) as resp:
                status = resp.status
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise BrowserLaunchError(f"{method} {url} failed: {e}") from e

        value = body.get("value") if isinstance(body, dict) else None
        if status >= 400:
            message = value.get("message") if isinstance(value, dict) else body
            raise BrowserLaunchError(f"{method} {url} returned {status}: {message}")
        return value if isinstance(value, dict) else {}

    async def _delete_session(self, session: aiohttp.ClientSession, url: str, session_id: str) -> None:
        try:
            await self._request(session, "DELETE", f"{url}/session/{session_id}")
        except BrowserLaunchError as e:
            logger.warning(f"⚠️  Could not delete session {session_id}: {e}")

    @staticmethod
    def _child_pids(pid: int) -> Set[int]:
        try:
            return {child.pid for child in psutil.Process(pid).children()}
        except psutil.NoSuchProcess:
            return set()

    def _find_browser_pid(
        self,
        spec: DriverSpec,
        driver_pid: int,
        children_before: Set[int],
        capabilities: Dict[str, Any],
    ) -> int:
        """
        Identify the browser process of a new session

        geckodriver reports moz:processID; otherwise pick the driver child
        that appeared while the session was created, preferring known browser
        executable names and then the oldest.
        """
        reported = capabilities.get("moz:processID")
        if isinstance(reported, int) and psutil.pid_exists(reported):
            return reported

        try:
            children = psutil.Process(driver_pid).children()
        except psutil.NoSuchProcess:
            raise BrowserLaunchError(f"WebDriver PID {driver_pid} exited during session creation")

        new_children = []
        for child in children:
            if child.pid in children_before:
                continue
            try:
                new_children.append((not spec.matches_process(child.name()), child.create_time(), child.pid))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue

        if not new_children:
            raise BrowserLaunchError(
                f"Could not identify the {spec.browser.value} process started by PID {driver_pid}"
            )
        return min(new_children)[2]
