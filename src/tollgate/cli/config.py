"""
CLI Configuration

Process-wide flags set once by the global callback in tollgate.main.
"""

import os
from pathlib import Path
from typing import Optional


class CLIConfig:
    """Configuration for CLI commands"""

    # Machine mode (agent-friendly output)
    _machine_mode: Optional[bool] = None
    _config_path: Optional[Path] = None

    @classmethod
    def set_machine_mode(cls, enabled: bool) -> None:
        """Set machine mode (pure data output, no presentation)"""
        cls._machine_mode = enabled

    @classmethod
    def is_machine_mode(cls) -> bool:
        """
        Check if machine mode is active.

        Machine mode is the default. Returns False only if human mode is
        explicitly requested (--human or TOLLGATE_HUMAN_MODE).
        """
        if cls._machine_mode is not None:
            return cls._machine_mode
        if os.getenv("TOLLGATE_HUMAN_MODE", "").lower() in ("1", "true", "yes"):
            return False
        return True

    @classmethod
    def set_config_path(cls, path: Optional[Path]) -> None:
        cls._config_path = path

    @classmethod
    def config_path(cls) -> Optional[Path]:
        return cls._config_path

    @classmethod
    def reset(cls) -> None:
        """Forget all flags (tests)."""
        cls._machine_mode = None
        cls._config_path = None
