"""WebDriver server launcher - spawns chromedriver/geckodriver/msedgedriver"""

import asyncio
import os
from typing import List, Optional

import aiohttp
from loguru import logger

from .base import BaseLauncher
from .drivers import DriverSpec, get_driver_spec
from ..config import BrowserName, Role, WebDriverConfig
from ..exceptions import (
    DriverBinaryNotFoundError,
    ProcessTerminationError,
    WebDriverLaunchError,
)
from ..handle import ProcessHandle
from ..utils.binaries import find_binary
from ..utils.ports import get_new_port


class WebDriverHandle(ProcessHandle):
    """Handle of a running WebDriver server plus its connection metadata"""

    def __init__(
        self,
        pid: int,
        browser: BrowserName,
        host: str,
        port: str,
        process: Optional[asyncio.subprocess.Process] = None,
        poll_interval: float = 0.1,
        name: Optional[str] = None,
    ):
        super().__init__(
            pid,
            name=name or f"{browser.value}-webdriver:{port}",
            process=process,
            poll_interval=poll_interval,
        )
        self.browser = browser
        self.host = host
        self.port = str(port)
        self.pairing_id: Optional[str] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class WebDriverLauncher(BaseLauncher):
    """
    Launch WebDriver servers as asyncio subprocesses

    A launch is complete once the server answers GET /status; only then is
    the handle registered under role WebDriver.
    """

    async def launch(self, config: WebDriverConfig) -> WebDriverHandle:
        """
        Launch a WebDriver server

        Args:
            config: WebDriver configuration ("0" port means any free port)

        Returns:
            Handle of the running, registered server

        Raises:
            UnsupportedBrowserError: If the browser has no known driver
            DriverBinaryNotFoundError: If the driver binary is missing
            WebDriverLaunchError: If spawn fails or the server never gets ready
        """
        spec = get_driver_spec(config.browser)
        host = config.host or self.settings.host
        port = await get_new_port(config.port, host=host, max_attempts=self.settings.port_bind_attempts)
        command = self._build_command(spec, config, port)

        logger.info(f"Launching {spec.binary} for {spec.browser.value} on {host}:{port}")
        logger.debug(f"Command: {' '.join(command)}")

        process = await self._spawn(command, config)
        handle = WebDriverHandle(
            process.pid,
            browser=spec.browser,
            host=host,
            port=port,
            process=process,
            poll_interval=self.settings.exit_poll_interval,
        )

        timeout = config.startup_timeout or self.settings.startup_timeout
        try:
            await self._wait_until_ready(handle, timeout)
            pairing = self.registry.register(handle, Role.WEBDRIVER, spec.browser, port=int(port))
        except BaseException:
            # Also on cancellation: an unregistered driver is invisible to sweeps
            await self._discard(handle)
            raise

        handle.pairing_id = pairing.id
        logger.info(f"✅ {handle.name} launched with PID {handle.pid}")
        return handle

    def get_launcher_type(self) -> str:
        return "webdriver"

    def _build_command(self, spec: DriverSpec, config: WebDriverConfig, port: str) -> List[str]:
        if config.command:
            prefix = list(config.command)
        else:
            override = config.binary or self.settings.driver_path_override(spec.browser.value)
            prefix = [find_binary(spec.binary, override)]
        return prefix + spec.port_args(port) + list(config.args)

    async def _spawn(self, command: List[str], config: WebDriverConfig) -> asyncio.subprocess.Process:
        env = None
        if config.env:
            env = os.environ.copy()
            env.update(config.env)

        log_file = open(config.log_path, "ab") if config.log_path else None
        sink = log_file if log_file is not None else asyncio.subprocess.DEVNULL
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=sink,
                stderr=sink,
                env=env,
            )
        except FileNotFoundError:
            raise DriverBinaryNotFoundError(f"Command not found: {command[0]}")
        except PermissionError as e:
            raise WebDriverLaunchError(f"Permission denied launching {command[0]}: {e}")
        except OSError as e:
            raise WebDriverLaunchError(f"Failed to launch {command[0]}: {e}")
        finally:
            # The child holds its own descriptor
            if log_file is not None:
                log_file.close()

    async def _wait_until_ready(self, handle: WebDriverHandle, timeout: float) -> None:
        """
        Poll GET /status until the server answers

        Starts with a short delay and backs off to 0.5s so fast drivers are
        picked up quickly without hammering slow ones.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        delay = 0.05
        attempt = 0
        http_timeout = aiohttp.ClientTimeout(total=self.settings.status_timeout)

        async with aiohttp.ClientSession(timeout=http_timeout) as session:
            while True:
                if handle.has_exited:
                    raise WebDriverLaunchError(
                        f"{handle.name} died during startup ({handle.exit_reason})"
                    )

                attempt += 1
                try:
                    async with session.get(f"{handle.url}/status") as resp:
                        if resp.status == 200:
                            logger.debug(f"{handle.name} ready after {attempt} attempts")
                            return
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.debug(f"{handle.name} not ready yet (attempt {attempt}): {e}")

                if loop.time() >= deadline:
                    raise WebDriverLaunchError(
                        f"{handle.name} did not become ready within {timeout}s"
                    )
                await asyncio.sleep(delay)
                delay = min(delay * 2, 0.5)

    async def _discard(self, handle: WebDriverHandle) -> None:
        try:
            await handle.terminate(self.settings.terminate_timeout, self.settings.kill_timeout)
        except ProcessTerminationError as e:
            logger.error(f"❌ Could not stop failed launch {handle.name}: {e}")
