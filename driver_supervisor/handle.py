"""Process handle - one OS process with a broadcast exit signal"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import psutil
from loguru import logger

from .exceptions import ProcessTerminationError


@dataclass(frozen=True)
class ExitReason:
    """Why a process exited; both fields are None for foreign processes"""

    returncode: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: Optional[int]) -> "ExitReason":
        """asyncio reports death-by-signal as a negative return code"""
        if returncode is None:
            return cls()
        if returncode < 0:
            return cls(returncode=returncode, signal=-returncode)
        return cls(returncode=returncode)

    def to_dict(self) -> dict:
        return {"returncode": self.returncode, "signal": self.signal}

    def __str__(self) -> str:
        if self.signal is not None:
            return f"signal {self.signal}"
        if self.returncode is not None:
            return f"exit code {self.returncode}"
        return "unknown"


ExitCallback = Callable[[ExitReason], None]


class ProcessHandle:
    """
    Uniform wrapper around a spawned process

    The exit signal fires exactly once and is broadcast: any number of
    callers may await wait_for_exit() or register on_exit() listeners and
    all of them observe the same ExitReason.

    Must be created inside a running event loop. Direct asyncio children
    are watched with Process.wait(); any other PID is polled with psutil.
    """

    def __init__(
        self,
        pid: int,
        name: Optional[str] = None,
        process: Optional[asyncio.subprocess.Process] = None,
        poll_interval: float = 0.1,
    ):
        self._pid = pid
        self.name = name or f"pid-{pid}"
        self._process = process
        self._poll_interval = poll_interval

        self._loop = asyncio.get_running_loop()
        self._exited: asyncio.Future = self._loop.create_future()
        self._listeners: List[ExitCallback] = []
        self._termination: Optional[asyncio.Task] = None

        try:
            self._psutil: Optional[psutil.Process] = psutil.Process(pid)
        except psutil.NoSuchProcess:
            self._psutil = None

        self._watcher = self._loop.create_task(self._watch())

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def has_exited(self) -> bool:
        return self._exited.done()

    @property
    def exited(self) -> Awaitable[ExitReason]:
        """Exit signal; awaiting it never consumes it"""
        return asyncio.shield(self._exited)

    @property
    def exit_reason(self) -> Optional[ExitReason]:
        return self._exited.result() if self._exited.done() else None

    def is_running(self) -> bool:
        """Check if the process is still alive"""
        return not self.has_exited and self._is_alive()

    def on_exit(self, callback: ExitCallback) -> None:
        """
        Call `callback(reason)` once when the process exits

        If the process already exited the callback is scheduled on the loop.
        """
        if self._exited.done():
            self._loop.call_soon(self._run_listener, callback, self._exited.result())
        else:
            self._listeners.append(callback)

    async def wait_for_exit(self, timeout: Optional[float] = None) -> ExitReason:
        """
        Wait for the process to exit

        Args:
            timeout: Seconds to wait, None waits forever

        Raises:
            asyncio.TimeoutError: If the process is still running after timeout
        """
        if timeout is None:
            return await asyncio.shield(self._exited)
        return await asyncio.wait_for(asyncio.shield(self._exited), timeout)

    async def terminate(self, timeout: float = 5.0, kill_timeout: float = 5.0) -> bool:
        """
        Stop the process: SIGTERM, wait, then SIGKILL, wait

        Concurrent callers share one in-flight termination.

        Args:
            timeout: Grace period after SIGTERM
            kill_timeout: Wait after SIGKILL

        Returns:
            True if this termination delivered a signal, False if the
            process had already exited

        Raises:
            ProcessTerminationError: If the process survives SIGKILL
        """
        if self.has_exited:
            return False

        if self._termination is None or self._termination.done():
            self._termination = self._loop.create_task(self._terminate(timeout, kill_timeout))
        return await asyncio.shield(self._termination)

    def kill(self) -> bool:
        """Send SIGKILL without waiting; False if the process is already gone"""
        if self.has_exited:
            return False
        try:
            return self._send_signal(kill=True)
        except psutil.AccessDenied as e:
            raise ProcessTerminationError(
                f"Access denied killing {self.name} (PID {self.pid})"
            ) from e

    async def _terminate(self, timeout: float, kill_timeout: float) -> bool:
        logger.info(f"Stopping {self.name} (PID: {self.pid})")

        try:
            sent = self._send_signal(kill=False)
        except psutil.AccessDenied as e:
            raise ProcessTerminationError(
                f"Access denied terminating {self.name} (PID {self.pid})"
            ) from e

        try:
            await self.wait_for_exit(timeout)
            logger.info(f"✅ {self.name} stopped gracefully")
            return sent
        except asyncio.TimeoutError:
            logger.warning(f"⚠️  {self.name} didn't stop, force killing")

        try:
            self._send_signal(kill=True)
        except psutil.AccessDenied as e:
            raise ProcessTerminationError(
                f"Access denied killing {self.name} (PID {self.pid})"
            ) from e

        try:
            await self.wait_for_exit(kill_timeout)
        except asyncio.TimeoutError:
            raise ProcessTerminationError(
                f"Failed to kill {self.name} (PID {self.pid}) within {kill_timeout}s"
            )

        logger.info(f"✅ {self.name} force killed")
        return True

    def _send_signal(self, kill: bool) -> bool:
        if self._psutil is None:
            return False
        try:
            if kill:
                self._psutil.kill()
            else:
                self._psutil.terminate()
            return True
        except psutil.NoSuchProcess:
            logger.debug(f"{self.name} (PID {self.pid}) already gone")
            return False

    async def _watch(self) -> None:
        if self._process is not None:
            returncode = await self._process.wait()
            self._set_exited(ExitReason.from_returncode(returncode))
            return

        while self._is_alive():
            await asyncio.sleep(self._poll_interval)
        self._set_exited(ExitReason())

    def _is_alive(self) -> bool:
        if self._psutil is None:
            return False
        try:
            return self._psutil.is_running() and self._psutil.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # status() can be denied for foreign processes; is_running() cannot
            return self._psutil.is_running()

    def _set_exited(self, reason: ExitReason) -> None:
        if self._exited.done():
            return
        self._exited.set_result(reason)
        logger.debug(f"{self.name} (PID {self.pid}) exited: {reason}")

        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            self._run_listener(callback, reason)

    def _run_listener(self, callback: ExitCallback, reason: ExitReason) -> None:
        try:
            callback(reason)
        except Exception:
            logger.exception(f"Exit listener for {self.name} failed")

    def __repr__(self) -> str:
        state = f"exited ({self.exit_reason})" if self.has_exited else "running"
        return f"<{type(self).__name__} {self.name} pid={self.pid} {state}>"
