"""
Pytest configuration and shared fixtures for driver-supervisor tests
"""

import asyncio
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import pytest

from driver_supervisor import (
    DriverSupervisor,
    ExitReason,
    OrphanCleaner,
    ProcessHandle,
    ProcessRegistry,
    ProcessTerminationError,
)
from driver_supervisor.settings import SupervisorSettings

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_WEBDRIVER = FIXTURES_DIR / "fake_webdriver.py"

SLEEP_CODE = "import time; time.sleep(60)"
IGNORE_SIGTERM_CODE = (
    "import signal, sys, time; "
    "signal.signal(signal.SIGTERM, signal.SIG_IGN); "
    "print('ready', flush=True); "
    "time.sleep(60)"
)


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def settings():
    """Settings with short timeouts so failures surface quickly"""
    return SupervisorSettings(
        startup_timeout=10.0,
        terminate_timeout=2.0,
        kill_timeout=2.0,
        status_timeout=1.0,
        exit_poll_interval=0.05,
        monitoring_interval=0.1,
        auto_cleanup=True,
        headless=True,
    )


# ============================================================================
# Registry and cleaner
# ============================================================================

@pytest.fixture
async def registry():
    return ProcessRegistry()


@pytest.fixture
async def cleaner(registry):
    cleaner = OrphanCleaner(registry, terminate_timeout=1.0, kill_timeout=1.0, check_interval=0.05)
    yield cleaner
    await cleaner.stop()


@pytest.fixture
async def manual_cleaner(registry):
    """Cleaner without auto cleanup: exits are only handled by sweeps"""
    cleaner = OrphanCleaner(
        registry, terminate_timeout=1.0, kill_timeout=1.0, auto_cleanup=False, check_interval=0.05
    )
    yield cleaner
    await cleaner.stop()


# ============================================================================
# Test doubles
# ============================================================================

class StubHandle:
    """
    In-memory stand-in for ProcessHandle

    Records the signals a terminate() would send. A stubborn handle
    survives SIGKILL and makes terminate() raise ProcessTerminationError.
    """

    _next_pid = 50000

    def __init__(self, name: Optional[str] = None, stubborn: bool = False, signal_log: Optional[list] = None):
        StubHandle._next_pid += 1
        self.pid = StubHandle._next_pid
        self.name = name or f"stub-{self.pid}"
        self.stubborn = stubborn
        self.exit_reason: Optional[ExitReason] = None
        self.signals: List[str] = []
        self.signal_log = signal_log if signal_log is not None else []
        self._listeners = []

    @property
    def has_exited(self) -> bool:
        return self.exit_reason is not None

    def on_exit(self, callback) -> None:
        if self.has_exited:
            callback(self.exit_reason)
        else:
            self._listeners.append(callback)

    def finish(self, reason: ExitReason = ExitReason(returncode=0)) -> None:
        """Simulate the process exiting on its own"""
        if self.has_exited:
            return
        self.exit_reason = reason
        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            callback(reason)

    async def terminate(self, timeout: float = 5.0, kill_timeout: float = 5.0) -> bool:
        if self.has_exited:
            return False
        self.signals.append("SIGTERM")
        self.signal_log.append(self.name)
        await asyncio.sleep(0)

        if self.stubborn:
            self.signals.append("SIGKILL")
            raise ProcessTerminationError(f"Failed to kill {self.name} (PID {self.pid})")

        self.finish(ExitReason(returncode=-15, signal=15))
        return True


@pytest.fixture
def make_stub():
    """Factory for StubHandle objects"""
    def _make(name: Optional[str] = None, stubborn: bool = False, signal_log: Optional[list] = None):
        return StubHandle(name=name, stubborn=stubborn, signal_log=signal_log)
    return _make


# ============================================================================
# Real processes
# ============================================================================

@pytest.fixture
async def spawn_sleeper():
    """
    Factory spawning short-lived Python processes wrapped in ProcessHandle

    Leftover processes are killed at teardown.
    """
    handles: List[ProcessHandle] = []

    async def _spawn(code: str = SLEEP_CODE, name: Optional[str] = None) -> ProcessHandle:
        process = await asyncio.create_subprocess_exec(
            sys.executable, "-c", code,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        if code == IGNORE_SIGTERM_CODE:
            # Handler must be installed before the test signals it
            await process.stdout.readline()

        handle = ProcessHandle(process.pid, name=name, process=process, poll_interval=0.05)
        handles.append(handle)
        return handle

    yield _spawn

    for handle in handles:
        if not handle.has_exited:
            handle.kill()
            await handle.wait_for_exit(5)


@pytest.fixture
def popen_sleeper():
    """A process started with subprocess.Popen, outside asyncio's watcher"""
    process = subprocess.Popen([sys.executable, "-c", SLEEP_CODE])
    yield process
    if process.poll() is None:
        process.kill()
    process.wait()


# ============================================================================
# Fake WebDriver
# ============================================================================

@pytest.fixture
def fake_driver_command():
    """Command prefix running the fake WebDriver server"""
    return [sys.executable, str(FAKE_WEBDRIVER)]


@pytest.fixture
async def supervisor(settings):
    """Supervisor with its own registry; everything it started is swept at teardown"""
    supervisor = DriverSupervisor(settings=settings)
    yield supervisor
    await supervisor.stop_monitoring()
    await supervisor.kill_orphans()


async def wait_for_browser_exit(browser, timeout: float = 10.0) -> None:
    """Poll check_status until the endpoint refuses connections"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        try:
            await browser.check_status()
        except ConnectionRefusedError:
            return
        if loop.time() >= deadline:
            raise AssertionError(f"{browser.name} still answering after {timeout}s")
        await asyncio.sleep(0.1)
