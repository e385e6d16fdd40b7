"""Configuration and state classes for driver supervision"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Union

from .exceptions import UnsupportedBrowserError

if TYPE_CHECKING:
    from .handle import ExitReason, ProcessHandle


class BrowserName(str, Enum):
    """Browsers with a known WebDriver server"""
    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"

    @classmethod
    def parse(cls, value: Union[str, "BrowserName"]) -> "BrowserName":
        """Normalize a browser name, raising UnsupportedBrowserError if unknown"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(b.value for b in cls)
            raise UnsupportedBrowserError(
                f"Unsupported browser {value!r} (supported: {supported})"
            )


class Role(str, Enum):
    """Role of a registry entry"""
    WEBDRIVER = "webdriver"
    BROWSER = "browser"

    @property
    def opposite(self) -> "Role":
        return Role.BROWSER if self is Role.WEBDRIVER else Role.WEBDRIVER


class PairingState(str, Enum):
    """Lifecycle of a registry entry"""
    ACTIVE = "active"
    EXIT_OBSERVED = "exit_observed"
    REAPED = "reaped"


@dataclass(frozen=True)
class WindowSize:
    """Browser window size in CSS pixels"""

    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Window size must be positive, got {self.width}x{self.height}")

    @classmethod
    def coerce(
        cls, value: Union["WindowSize", Sequence[int], Mapping[str, int], str, None]
    ) -> Optional["WindowSize"]:
        """
        Accept a WindowSize, (width, height), {"width":..,"height":..} or "WxH"

        None means "use the browser default".
        """
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, str):
            width, _, height = value.lower().partition("x")
            return cls(int(width), int(height))
        if isinstance(value, Mapping):
            return cls(int(value["width"]), int(value["height"]))
        width, height = value
        return cls(int(width), int(height))

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass
class WebDriverConfig:
    """Configuration for a WebDriver server launch"""

    # Required
    browser: Union[str, BrowserName]

    # "0" (or None) asks the port allocator for a free port
    port: Optional[Union[str, int]] = "0"
    host: Optional[str] = None

    # Command prefix overriding binary resolution entirely (e.g. [python, script])
    command: Optional[List[str]] = None
    binary: Optional[str] = None
    args: List[str] = field(default_factory=list)

    # Environment
    env: Optional[Dict[str, str]] = None
    log_path: Optional[str] = None

    # Seconds to wait for GET /status to answer; settings default when None
    startup_timeout: Optional[float] = None


@dataclass
class BrowserConfig:
    """Configuration for a browser session launch"""

    browser: Union[str, BrowserName]

    # None means the browser's default window size
    size: Optional[Union[WindowSize, Sequence[int], Mapping[str, int], str]] = None
    headless: Optional[bool] = None

    # Merged into alwaysMatch
    capabilities: Optional[Dict[str, Any]] = None


@dataclass
class Pairing:
    """A registry entry: one supervised process and its optional partner"""

    id: str
    role: Role
    browser: BrowserName
    handle: "ProcessHandle"
    partner_id: Optional[str] = None
    port: Optional[int] = None
    state: PairingState = PairingState.ACTIVE
    registered_at: datetime = field(default_factory=datetime.now)
    exit_reason: Optional["ExitReason"] = None

    @property
    def pid(self) -> int:
        return self.handle.pid

    @property
    def is_active(self) -> bool:
        return self.state is PairingState.ACTIVE

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "role": self.role.value,
            "browser": self.browser.value,
            "pid": self.pid,
            "partner_id": self.partner_id,
            "port": self.port,
            "state": self.state.value,
            "registered_at": self.registered_at.isoformat(),
            "exit_reason": self.exit_reason.to_dict() if self.exit_reason else None,
        }


@dataclass
class SweepResult:
    """Outcome of one orphan sweep"""

    terminated: List[str] = field(default_factory=list)  # pairing ids signalled
    reaped: List[str] = field(default_factory=list)  # pairing ids removed
    failed: Dict[str, str] = field(default_factory=dict)  # pairing id -> error

    @property
    def is_noop(self) -> bool:
        return not (self.terminated or self.reaped or self.failed)

    def to_dict(self) -> dict:
        return {
            "terminated": list(self.terminated),
            "reaped": list(self.reaped),
            "failed": dict(self.failed),
        }
