"""
Supervisor Settings

Type-safe configuration loaded from environment variables and .env.

Priority: defaults < .env < DRIVER_SUPERVISOR_* env vars

Usage:
    from driver_supervisor.settings import get_settings

    settings = get_settings()
    print(settings.terminate_timeout)
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .log_config import LogLevel


class SupervisorSettings(BaseSettings):
    """Settings shared by the launchers, registry and orphan cleaner"""

    model_config = SettingsConfigDict(
        env_prefix="DRIVER_SUPERVISOR_",
        env_file=".env",
        extra="ignore",
    )

    # Network
    host: str = Field("127.0.0.1", description="Interface drivers bind to and probes connect to")
    port_bind_attempts: int = Field(5, ge=1, le=50, description="Ephemeral bind retries")

    # Driver binaries (PATH lookup when unset)
    chromedriver_path: Optional[str] = None
    geckodriver_path: Optional[str] = None
    msedgedriver_path: Optional[str] = None

    # Timeouts (seconds)
    startup_timeout: float = Field(10.0, gt=0, le=300, description="Wait for driver /status")
    terminate_timeout: float = Field(5.0, gt=0, le=120, description="Grace period after SIGTERM")
    kill_timeout: float = Field(5.0, gt=0, le=120, description="Wait after SIGKILL")
    status_timeout: float = Field(2.0, gt=0, le=60, description="Single /status probe")
    exit_poll_interval: float = Field(0.1, gt=0, le=10, description="psutil polling for foreign PIDs")

    # Behaviour
    headless: bool = True
    auto_cleanup: bool = Field(True, description="Terminate the partner when one half of a pair exits")
    monitoring_interval: float = Field(5.0, gt=0, le=3600)

    # Logging
    configure_logging: bool = Field(False, description="Let DriverSupervisor install loguru sinks")
    log_level: str = Field("INFO", description="DEBUG, INFO, WARNING, ERROR, CRITICAL")
    log_file: Optional[str] = Field(None, description="Rotated log file, console only when unset")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        try:
            return LogLevel(v.upper()).value
        except ValueError:
            raise ValueError(f"Invalid log level: {v}")

    def driver_path_override(self, browser: str) -> Optional[str]:
        """Configured driver binary for a browser name, if any"""
        return {
            "chrome": self.chromedriver_path,
            "firefox": self.geckodriver_path,
            "edge": self.msedgedriver_path,
        }.get(browser)


@lru_cache()
def get_settings() -> SupervisorSettings:
    """Get the cached settings singleton"""
    load_dotenv()
    return SupervisorSettings()


def reload_settings() -> SupervisorSettings:
    """Drop the cached settings and read the environment again"""
    get_settings.cache_clear()
    return get_settings()
