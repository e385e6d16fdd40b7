"""Orphan detection and cleanup for driver/browser pairs"""

import asyncio
from typing import List, Optional, Set, Tuple

from loguru import logger

from ..config import Pairing, PairingState, Role, SweepResult
from ..exceptions import OrphanSweepError, ProcessTerminationError
from .registry import ProcessRegistry


class OrphanCleaner:
    """
    Detect and terminate orphaned halves of driver/browser pairs

    Two mechanisms:
    - auto cleanup: when a registered process exits while its partner is
      still running, the partner is terminated in the background and both
      entries are reaped
    - kill_orphans(): an explicit sweep over a snapshot of the registry,
      typically run after each test or periodically by the monitor loop
    """

    def __init__(
        self,
        registry: ProcessRegistry,
        terminate_timeout: float = 5.0,
        kill_timeout: float = 5.0,
        auto_cleanup: bool = True,
        check_interval: float = 5.0,
    ):
        """
        Initialize orphan cleaner

        Args:
            registry: Registry to watch and sweep
            terminate_timeout: Grace period after SIGTERM
            kill_timeout: Wait after SIGKILL before reporting failure
            auto_cleanup: Terminate the partner as soon as one half exits
            check_interval: Monitor loop interval in seconds
        """
        self.registry = registry
        self.terminate_timeout = terminate_timeout
        self.kill_timeout = kill_timeout
        self.auto_cleanup = auto_cleanup
        self.check_interval = check_interval

        self._sweep_lock = asyncio.Lock()
        self._cleanups: Set[asyncio.Task] = set()
        self._sweeping: Set[str] = set()  # targets of the sweep in progress
        self.task: Optional[asyncio.Task] = None
        self._running = False

        if auto_cleanup:
            registry.add_exit_listener(self._on_member_exit)

        logger.info(
            f"OrphanCleaner initialized "
            f"(auto_cleanup={auto_cleanup}, terminate_timeout={terminate_timeout}s)"
        )

    async def kill_orphans(
        self,
        include_live_pairs: bool = True,
        include_unpaired: bool = True,
    ) -> SweepResult:
        """
        Sweep the registry and terminate orphans

        A pairing is terminated when its partner has exited (always), when
        it has no resolvable partner (include_unpaired), or when its
        partner is alive too (include_live_pairs). Browsers go before
        drivers and every termination is confirmed before the entry is
        reaped. Processes that already exited are only reaped.

        Args:
            include_live_pairs: Also terminate pairs where both halves run
            include_unpaired: Also terminate entries with no partner

        Returns:
            SweepResult with the signalled and reaped pairing ids

        Raises:
            OrphanSweepError: If a process survived SIGKILL; its entry is
                kept, all others are still reaped
        """
        async with self._sweep_lock:
            result = SweepResult()
            await self._wait_for_cleanups()
            snapshot = self.registry.snapshot()
            if not snapshot:
                logger.debug("No tracked processes, nothing to sweep")
                return result

            targets = self._select_targets(snapshot, include_live_pairs, include_unpaired)
            if targets:
                logger.warning(f"Found {len(targets)} orphan process(es)")

            self._sweeping = {p.id for p, _ in targets}
            try:
                await self._terminate_targets(targets, result)
                await self._wait_for_cleanups()
            finally:
                self._sweeping = set()

            for pairing in snapshot:
                if pairing.id in result.failed:
                    continue
                if pairing.handle.has_exited:
                    self.registry.reap(pairing.id)
                if pairing.state is PairingState.REAPED:
                    result.reaped.append(pairing.id)

            if result.failed:
                raise OrphanSweepError(result.failed, result=result)

            if result.terminated:
                logger.info(f"✅ Terminated {len(result.terminated)} orphan processes")
            return result

    async def _terminate_targets(self, targets: List[Tuple[Pairing, str]], result: SweepResult) -> None:
        """Terminate browsers first, then drivers, recording outcomes in result"""
        for role in (Role.BROWSER, Role.WEBDRIVER):
            group = [(p, why) for p, why in targets if p.role is role]
            if not group:
                continue
            for pairing, why in group:
                logger.warning(f"Terminating {pairing.id} ({pairing.handle.name}, PID {pairing.pid}): {why}")

            outcomes = await asyncio.gather(
                *(self._terminate(pairing) for pairing, _ in group),
                return_exceptions=True,
            )
            for (pairing, _), outcome in zip(group, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"❌ Failed to terminate {pairing.id}: {outcome}")
                    result.failed[pairing.id] = str(outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                elif outcome:
                    result.terminated.append(pairing.id)

    def find_orphans(
        self,
        include_live_pairs: bool = False,
        include_unpaired: bool = False,
    ) -> List[Pairing]:
        """
        List running pairings a sweep would terminate, without signalling

        Defaults report only the strict orphans: live processes whose
        partner has exited or was already reaped.
        """
        return [p for p, _ in self._select_targets(
            self.registry.snapshot(), include_live_pairs, include_unpaired
        )]

    async def start(self) -> None:
        """Start periodic sweeps for strict orphans"""
        if self._running:
            logger.warning("OrphanCleaner monitor already running")
            return

        self._running = True
        self.task = asyncio.create_task(self._monitor_loop())
        logger.info("✅ OrphanCleaner monitor started")

    async def stop(self) -> None:
        """Stop periodic sweeps and wait for background cleanups"""
        if self._running:
            self._running = False
            if self.task:
                self.task.cancel()
                try:
                    await self.task
                except asyncio.CancelledError:
                    pass
            logger.info("OrphanCleaner monitor stopped")

        await self._wait_for_cleanups()

    async def _monitor_loop(self) -> None:
        """Main monitoring loop"""
        while self._running:
            try:
                await self.kill_orphans(include_live_pairs=False, include_unpaired=False)
            except OrphanSweepError as e:
                logger.error(f"Error in orphan monitor loop: {e}")
            except Exception:
                logger.exception("Unexpected error in orphan monitor loop")

            await asyncio.sleep(self.check_interval)

    def _select_targets(
        self,
        snapshot: List[Pairing],
        include_live_pairs: bool,
        include_unpaired: bool,
    ) -> List[Tuple[Pairing, str]]:
        targets = []
        for pairing in snapshot:
            if not pairing.is_active or pairing.handle.has_exited:
                continue

            if pairing.partner_id is None:
                if include_unpaired:
                    targets.append((pairing, "no partner"))
                continue

            # A partner id that no longer resolves was already reaped
            partner = self.registry.partner_of(pairing)
            if partner is None or not partner.is_active or partner.handle.has_exited:
                targets.append((pairing, f"partner {pairing.partner_id} exited"))
            elif include_live_pairs:
                targets.append((pairing, "end of sweep"))
        return targets

    async def _terminate(self, pairing: Pairing) -> bool:
        return await pairing.handle.terminate(self.terminate_timeout, self.kill_timeout)

    def _on_member_exit(self, pairing: Pairing) -> None:
        partner = self.registry.partner_of(pairing)
        task = asyncio.get_running_loop().create_task(self._cleanup_after_exit(pairing, partner))
        self._cleanups.add(task)
        task.add_done_callback(self._cleanups.discard)

    async def _cleanup_after_exit(self, pairing: Pairing, partner: Optional[Pairing]) -> None:
        if partner is not None and partner.id in self._sweeping:
            # The running sweep terminates and reaps the partner itself
            self.registry.reap(pairing.id)
            return

        if partner is not None and partner.is_active and not partner.handle.has_exited:
            logger.warning(
                f"⚠️  {pairing.id} exited, terminating orphaned {partner.id} (PID {partner.pid})"
            )
            try:
                await self._terminate(partner)
            except ProcessTerminationError as e:
                # Entry stays registered so the next sweep reports it
                logger.error(f"❌ Failed to terminate orphan {partner.id}: {e}")
                self.registry.reap(pairing.id)
                return

        if partner is not None and partner.handle.has_exited:
            self.registry.reap(partner.id)
        self.registry.reap(pairing.id)

    async def _wait_for_cleanups(self) -> None:
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._cleanups if t is not current and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
