"""Base launcher interface"""

from abc import ABC, abstractmethod
from typing import Optional

from ..handle import ProcessHandle
from ..monitoring.registry import ProcessRegistry
from ..settings import SupervisorSettings, get_settings


class BaseLauncher(ABC):
    """Abstract base class for process launchers"""

    def __init__(self, registry: ProcessRegistry, settings: Optional[SupervisorSettings] = None):
        """
        Args:
            registry: Registry every launched handle is recorded in
            settings: Timeouts and defaults (global settings when None)
        """
        self.registry = registry
        self.settings = settings or get_settings()

    @abstractmethod
    async def launch(self, config, *args, **kwargs) -> ProcessHandle:
        """
        Launch a process and register it

        Args:
            config: Launch configuration

        Returns:
            Handle of the launched process

        Raises:
            LaunchError: If launch fails; nothing is registered in that case
        """
        pass

    @abstractmethod
    def get_launcher_type(self) -> str:
        """
        Get launcher type identifier

        Returns:
            'webdriver' or 'browser'
        """
        pass
