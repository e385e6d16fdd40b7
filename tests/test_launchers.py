"""Launcher tests against the fake WebDriver server"""

import asyncio
import socket
import sys

import psutil
import pytest

from conftest import wait_for_browser_exit
from driver_supervisor import (
    BrowserLaunchError,
    DriverBinaryNotFoundError,
    PairingState,
    Role,
    UnsupportedBrowserError,
    WebDriverConfig,
    WebDriverLaunchError,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="fake driver relies on POSIX process trees")


def free_port() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return str(sock.getsockname()[1])


def never_ready_drivers():
    """Live fake drivers started with --never-ready under this test process"""
    found = []
    for child in psutil.Process().children(recursive=True):
        try:
            if child.status() != psutil.STATUS_ZOMBIE and "--never-ready" in child.cmdline():
                found.append(child.pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return found


class TestWebDriverLauncher:

    async def test_any_port_gives_concrete_port(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("chrome", port="0", command=fake_driver_command)

        assert webdriver.port.isdigit()
        assert int(webdriver.port) > 0
        assert webdriver.url == f"http://127.0.0.1:{webdriver.port}"
        assert webdriver.is_running()

        pairing = supervisor.registry.get(webdriver.pairing_id)
        assert pairing.role is Role.WEBDRIVER
        assert pairing.port == int(webdriver.port)
        assert supervisor.registry.webdriver_for_port(webdriver.port) is pairing

    async def test_requested_port_is_used(self, supervisor, fake_driver_command):
        port = free_port()

        webdriver = await supervisor.start_webdriver("firefox", port=port, command=fake_driver_command)

        assert webdriver.port == port

    async def test_accepts_config_object(self, supervisor, fake_driver_command):
        config = WebDriverConfig(browser="edge", command=fake_driver_command)

        webdriver = await supervisor.start_webdriver(config)

        assert webdriver.browser.value == "edge"

    async def test_missing_binary(self, supervisor):
        with pytest.raises(DriverBinaryNotFoundError):
            await supervisor.start_webdriver("chrome", binary="/nonexistent/chromedriver")
        assert len(supervisor.registry) == 0

    async def test_missing_command(self, supervisor):
        with pytest.raises(DriverBinaryNotFoundError):
            await supervisor.start_webdriver("chrome", command=["no-such-webdriver-binary"])
        assert len(supervisor.registry) == 0

    async def test_unsupported_browser(self, supervisor, fake_driver_command):
        with pytest.raises(UnsupportedBrowserError):
            await supervisor.start_webdriver("netscape", command=fake_driver_command)

    async def test_driver_dying_at_startup(self, supervisor, fake_driver_command):
        with pytest.raises(WebDriverLaunchError, match="died during startup"):
            await supervisor.start_webdriver(
                "chrome", command=fake_driver_command, args=["--exit-immediately"]
            )
        assert len(supervisor.registry) == 0

    async def test_driver_never_ready(self, supervisor, fake_driver_command):
        with pytest.raises(WebDriverLaunchError, match="did not become ready"):
            await supervisor.start_webdriver(
                "chrome", command=fake_driver_command, args=["--never-ready"], startup_timeout=0.5
            )
        assert len(supervisor.registry) == 0
        assert never_ready_drivers() == []

    async def test_cancelled_launch_stops_driver(self, supervisor, fake_driver_command):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                supervisor.start_webdriver(
                    "chrome", command=fake_driver_command, args=["--never-ready"], startup_timeout=30
                ),
                timeout=1.0,
            )

        assert len(supervisor.registry) == 0
        assert never_ready_drivers() == []

    async def test_driver_output_goes_to_log_file(self, supervisor, fake_driver_command, tmp_path):
        log_path = tmp_path / "driver.log"

        await supervisor.start_webdriver("chrome", command=fake_driver_command, log_path=str(log_path))

        assert log_path.exists()


class TestBrowserLauncher:

    async def test_chrome_browser_found_among_driver_children(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("chrome", command=fake_driver_command)

        browser = await supervisor.start_browser("chrome", size=None)

        assert browser.pid != webdriver.pid
        assert browser.pid in {c.pid for c in psutil.Process(webdriver.pid).children()}
        assert browser.webdriver_url == webdriver.url

        pairing = supervisor.registry.get(browser.pairing_id)
        assert supervisor.registry.partner_of(pairing).handle is webdriver
        assert supervisor.registry.partner_of(supervisor.registry.get(webdriver.pairing_id)) is pairing

    async def test_firefox_reports_process_id(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("firefox", command=fake_driver_command)

        browser = await supervisor.start_browser("firefox", webdriver=webdriver)

        assert browser.pid in {c.pid for c in psutil.Process(webdriver.pid).children()}

    async def test_window_size(self, supervisor, fake_driver_command):
        await supervisor.start_webdriver("chrome", command=fake_driver_command)

        browser = await supervisor.start_browser("chrome", size=(1024, 768))

        assert browser.is_running()

    async def test_check_status(self, supervisor, fake_driver_command):
        await supervisor.start_webdriver("chrome", command=fake_driver_command)
        browser = await supervisor.start_browser("chrome")

        status = await browser.check_status()

        assert status["ready"] is True

    async def test_without_webdriver(self, supervisor):
        with pytest.raises(BrowserLaunchError, match="No running chrome WebDriver"):
            await supervisor.start_browser("chrome")

    async def test_webdriver_for_other_browser(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("firefox", command=fake_driver_command)

        with pytest.raises(BrowserLaunchError):
            await supervisor.start_browser("chrome", webdriver=webdriver)

    async def test_session_refused(self, supervisor, fake_driver_command):
        await supervisor.start_webdriver("chrome", command=fake_driver_command, args=["--fail-sessions"])

        with pytest.raises(BrowserLaunchError, match="fake failure"):
            await supervisor.start_browser("chrome")
        assert [p.role for p in supervisor.registry.snapshot()] == [Role.WEBDRIVER]


class TestCrashCleanup:

    async def test_killed_driver_takes_browser_down(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("chrome", port="0", command=fake_driver_command)
        browser = await supervisor.start_browser("chrome", size=None)
        exits = []
        webdriver.on_exit(lambda reason: exits.append("webdriver"))
        browser.on_exit(lambda reason: exits.append("browser"))

        webdriver.kill()

        await asyncio.wait_for(
            asyncio.gather(webdriver.wait_for_exit(), browser.wait_for_exit()), timeout=10
        )
        await wait_for_browser_exit(browser)
        with pytest.raises(ConnectionRefusedError):
            await browser.check_status()

        await supervisor.stop_monitoring()
        assert sorted(exits) == ["browser", "webdriver"]
        assert len(supervisor.registry) == 0

    async def test_port_released_after_exit(self, supervisor, fake_driver_command):
        webdriver = await supervisor.start_webdriver("chrome", command=fake_driver_command)

        webdriver.kill()
        await webdriver.wait_for_exit(5)

        assert supervisor.registry.webdriver_for_port(webdriver.port) is None


class TestKillOrphans:

    async def test_sweeps_every_pair(self, supervisor, fake_driver_command):
        handles = []
        for name in ("chrome", "firefox"):
            webdriver = await supervisor.start_webdriver(name, command=fake_driver_command)
            browser = await supervisor.start_browser(name, webdriver=webdriver)
            handles.extend([webdriver, browser])
        pairings = [supervisor.registry.get(h.pairing_id) for h in handles]

        result = await supervisor.kill_orphans()

        assert set(result.reaped) == {p.id for p in pairings}
        assert all(h.has_exited for h in handles)
        assert all(p.state is PairingState.REAPED for p in pairings)
        assert not any(h.is_running() for h in handles)

        again = await supervisor.kill_orphans()
        assert again.is_noop

    @pytest.mark.parametrize("name", ["chrome", "firefox"])
    async def test_sweeps_lone_webdriver(self, supervisor, fake_driver_command, name):
        webdriver = await supervisor.start_webdriver(name, port="0", command=fake_driver_command)

        result = await supervisor.kill_orphans()

        assert result.terminated == [webdriver.pairing_id]
        assert webdriver.has_exited
