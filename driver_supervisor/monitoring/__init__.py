"""Process monitoring - pairing registry, orphan sweeps"""

from .registry import ProcessRegistry
from .orphan_cleaner import OrphanCleaner

__all__ = ["ProcessRegistry", "OrphanCleaner"]
