"""Configuration management for nest-scope.

Loads environment variables (optionally from a workspace .env file) and
provides centralized config access.
"""
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

__version__ = "1.0.0"

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, workspace_root: Optional[str | Path] = None):
        """Initialize config by loading the workspace .env file.

        Args:
            workspace_root: Directory holding an optional .env file.
                            Defaults to the current working directory.

        Raises:
            ValueError: If any configured value is malformed
        """
        root = Path(workspace_root) if workspace_root else Path.cwd()
        env_path = root / ".env"
        if env_path.is_file():
            # Real environment variables win over the file
            load_dotenv(env_path, override=False)

        self._validate()

    def _validate(self):
        """Read every option once so bad values fail at load time.

        Raises:
            ValueError: If a value cannot be parsed or is out of range
        """
        if self.cache_size < 1:
            raise ValueError(
                f"NEST_SCOPE_CACHE_SIZE must be at least 1, got {self.cache_size}"
            )
        if self.max_inline_usages < 0:
            raise ValueError(
                f"NEST_SCOPE_MAX_INLINE_USAGES must not be negative, got {self.max_inline_usages}"
            )
        if self.debounce_ms < 0:
            raise ValueError(
                f"NEST_SCOPE_DEBOUNCE_MS must not be negative, got {self.debounce_ms}"
            )
        # Booleans raise on their own when malformed
        self.enable_module_scoping
        self.verbose

    @staticmethod
    def _get_int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from None

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        value = raw.strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ValueError(f"{name} must be a boolean, got {raw!r}")

    @property
    def max_inline_usages(self) -> int:
        """Number of usages a hover card lists before "show all".

        Display-layer option; the analyzer never reads it.
        """
        return self._get_int("NEST_SCOPE_MAX_INLINE_USAGES", 5)

    @property
    def enable_module_scoping(self) -> bool:
        """Restrict usage search to the files the module can see."""
        return self._get_bool("NEST_SCOPE_ENABLE_MODULE_SCOPING", True)

    @property
    def cache_size(self) -> int:
        """Capacity of the query result cache.

        Fixed when the analyzer is constructed.
        """
        return self._get_int("NEST_SCOPE_CACHE_SIZE", 100)

    @property
    def debounce_ms(self) -> int:
        """Delay before a file change is acted upon."""
        return self._get_int("NEST_SCOPE_DEBOUNCE_MS", 300)

    @property
    def verbose(self) -> bool:
        """Echo the output log to stderr."""
        return self._get_bool("NEST_SCOPE_VERBOSE", False)


# Singleton instance
_config = None


def get_config(workspace_root: Optional[str | Path] = None) -> Config:
    """Get or create singleton Config instance.

    Args:
        workspace_root: Used only when the instance is first created

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config(workspace_root)
    return _config


def reset_config():
    """Drop the singleton so the next get_config() reloads the environment."""
    global _config
    _config = None
