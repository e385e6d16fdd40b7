"""Process Registry - in-memory tracking of driver/browser pairings"""

import itertools
from typing import Callable, Dict, List, Optional, Union

from loguru import logger

from ..config import BrowserName, Pairing, PairingState, Role
from ..exceptions import PairingNotFoundError, PortAlreadyRegisteredError
from ..handle import ExitReason, ProcessHandle

ExitListener = Callable[[Pairing], None]


class ProcessRegistry:
    """
    Process-wide map of pairing id -> Pairing

    Mutations are plain synchronous methods, so under asyncio they never
    interleave. Each registered handle's exit moves its entry from ACTIVE to
    EXIT_OBSERVED and releases any port held by a WebDriver; entries are
    removed by reap() once their process is known to be gone.
    """

    def __init__(self):
        self._pairings: Dict[str, Pairing] = {}
        self._ports: Dict[int, str] = {}  # port -> webdriver pairing id
        self._exit_listeners: List[ExitListener] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._pairings)

    def __contains__(self, pairing_id: object) -> bool:
        return pairing_id in self._pairings

    def register(
        self,
        handle: ProcessHandle,
        role: Role,
        browser: Union[str, BrowserName],
        port: Optional[int] = None,
        partner: Optional[Union[str, Pairing]] = None,
    ) -> Pairing:
        """
        Register a launched process

        Args:
            handle: Handle of the running process
            role: WebDriver or Browser
            browser: Browser the process belongs to
            port: Port bound by a WebDriver
            partner: Pairing (or id) of the opposite role to pair with

        Returns:
            The new Pairing

        Raises:
            PortAlreadyRegisteredError: If an active WebDriver already holds the port
            PairingNotFoundError: If the partner id is unknown
            ValueError: If the partner has the same role
        """
        browser = BrowserName.parse(browser)

        if role is Role.WEBDRIVER and port is not None and port in self._ports:
            holder = self._pairings.get(self._ports[port])
            raise PortAlreadyRegisteredError(
                f"Port {port} is already held by {holder.handle.name if holder else self._ports[port]}"
            )

        partner_pairing = None
        if partner is not None:
            partner_id = partner.id if isinstance(partner, Pairing) else partner
            partner_pairing = self._pairings.get(partner_id)
            if partner_pairing is None:
                raise PairingNotFoundError(f"Partner {partner_id} not in registry")
            if partner_pairing.role is not role.opposite:
                raise ValueError(f"Cannot pair two {role.value} entries")

        pairing = Pairing(
            id=f"{role.value}-{next(self._ids)}",
            role=role,
            browser=browser,
            handle=handle,
            partner_id=partner_pairing.id if partner_pairing else None,
            port=port if role is Role.WEBDRIVER else None,
        )
        self._pairings[pairing.id] = pairing
        if pairing.port is not None:
            self._ports[pairing.port] = pairing.id
        if partner_pairing is not None:
            current = self.partner_of(partner_pairing)
            if current is None or not current.is_active:
                partner_pairing.partner_id = pairing.id

        logger.info(f"✅ Registered {pairing.id} ({handle.name}, PID: {handle.pid})")

        # Registered last: a handle that already exited calls back on the next loop tick
        handle.on_exit(lambda reason: self._mark_exited(pairing.id, reason))
        return pairing

    def add_exit_listener(self, listener: ExitListener) -> None:
        """Call `listener(pairing)` whenever a registered process exits"""
        self._exit_listeners.append(listener)

    def remove_exit_listener(self, listener: ExitListener) -> None:
        if listener in self._exit_listeners:
            self._exit_listeners.remove(listener)

    def get(self, pairing_id: str) -> Pairing:
        """
        Get a pairing by id

        Raises:
            PairingNotFoundError: If not registered (or already reaped)
        """
        try:
            return self._pairings[pairing_id]
        except KeyError:
            raise PairingNotFoundError(f"Pairing {pairing_id} not in registry")

    def partner_of(self, pairing: Pairing) -> Optional[Pairing]:
        """Resolve a partner; a dangling reference means "already gone" and gives None"""
        if pairing.partner_id is None:
            return None
        return self._pairings.get(pairing.partner_id)

    def snapshot(self) -> List[Pairing]:
        """Current entries, in registration order"""
        return list(self._pairings.values())

    def active(self) -> List[Pairing]:
        return [p for p in self._pairings.values() if p.is_active]

    def find_unpaired_webdriver(self, browser: Union[str, BrowserName]) -> Optional[Pairing]:
        """Most recently registered active WebDriver for a browser with no live browser partner"""
        browser = BrowserName.parse(browser)
        for pairing in reversed(self.snapshot()):
            if pairing.role is not Role.WEBDRIVER or pairing.browser is not browser:
                continue
            if not pairing.is_active:
                continue
            partner = self.partner_of(pairing)
            if partner is None or not partner.is_active:
                return pairing
        return None

    def webdriver_for_port(self, port: Union[str, int]) -> Optional[Pairing]:
        pairing_id = self._ports.get(int(port))
        return self._pairings.get(pairing_id) if pairing_id else None

    def reap(self, pairing_id: str) -> bool:
        """
        Remove an entry whose process has exited

        Returns:
            True if removed; False if unknown or the process is still running
        """
        pairing = self._pairings.get(pairing_id)
        if pairing is None:
            return False
        if not pairing.handle.has_exited:
            logger.warning(f"Refusing to reap {pairing_id}: PID {pairing.pid} still running")
            return False

        del self._pairings[pairing_id]
        self._release_port(pairing)
        pairing.state = PairingState.REAPED
        pairing.exit_reason = pairing.exit_reason or pairing.handle.exit_reason
        logger.info(f"Reaped {pairing_id} (PID: {pairing.pid})")
        return True

    def _mark_exited(self, pairing_id: str, reason: ExitReason) -> None:
        pairing = self._pairings.get(pairing_id)
        if pairing is None or pairing.state is not PairingState.ACTIVE:
            return

        pairing.state = PairingState.EXIT_OBSERVED
        pairing.exit_reason = reason
        self._release_port(pairing)
        logger.info(f"{pairing_id} ({pairing.handle.name}) exited: {reason}")

        for listener in list(self._exit_listeners):
            try:
                listener(pairing)
            except Exception:
                logger.exception(f"Exit listener failed for {pairing_id}")

    def _release_port(self, pairing: Pairing) -> None:
        if pairing.port is not None and self._ports.get(pairing.port) == pairing.id:
            del self._ports[pairing.port]
            logger.debug(f"🔌 Released port {pairing.port}")
