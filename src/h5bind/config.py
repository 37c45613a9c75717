"""
h5bind Config - Runtime Configuration

Provides the global configuration of the binding layer. Defaults come from
environment variables; any field can be overridden for the current thread
within a context manager.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from typing import Iterator, Optional


__all__ = ["BindConfig", "get_config", "ENV_PREFIX"]

ENV_PREFIX = "H5BIND_"

_TRUE = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE


# =============================================================================
# Configuration Values
# =============================================================================

@dataclass(frozen=True)
class Settings:
    """One immutable set of configuration values."""
    library_path: Optional[str] = None
    writer_exclusive: bool = True      # refuse a second in-process writer
    log_native_errors: bool = False    # log every drained frame at DEBUG
    default_charset: str = "utf-8"     # charset of new VarString types

    @classmethod
    def from_environment(cls) -> "Settings":
        return cls(
            library_path=os.environ.get(ENV_PREFIX + "LIBRARY_PATH") or None,
            writer_exclusive=_env_flag("WRITER_EXCLUSIVE", True),
            log_native_errors=_env_flag("LOG_NATIVE_ERRORS", False),
            default_charset=os.environ.get(ENV_PREFIX + "DEFAULT_CHARSET", "utf-8").lower(),
        )


# =============================================================================
# Global Configuration Manager
# =============================================================================

class BindConfig:
    """
    Global configuration manager for h5bind.

    Example:
        # Global configuration
        h5bind.get_config().update(writer_exclusive=False)

        # Local configuration (context manager, current thread only)
        with h5bind.get_config().local(log_native_errors=True):
            ...
    """

    def __init__(self):
        self._global = Settings.from_environment()
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def settings(self) -> Settings:
        override = getattr(self._local, "settings", None)
        return override if override is not None else self._global

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.settings, name)

    def update(self, **changes) -> None:
        """Change global values."""
        _check_names(changes)
        with self._lock:
            self._global = replace(self._global, **changes)

    def reset(self) -> None:
        """Reload global values from the environment."""
        with self._lock:
            self._global = Settings.from_environment()

    @contextmanager
    def local(self, **changes) -> Iterator[Settings]:
        """Override values for the current thread within a ``with`` block."""
        _check_names(changes)
        previous = getattr(self._local, "settings", None)
        self._local.settings = replace(self.settings, **changes)
        try:
            yield self._local.settings
        finally:
            self._local.settings = previous


def _check_names(changes) -> None:
    known = {f.name for f in fields(Settings)}
    unknown = set(changes) - known
    if unknown:
        raise ValueError(f"Unknown configuration field(s): {', '.join(sorted(unknown))}")


# Global config instance
_config = BindConfig()


def get_config() -> BindConfig:
    """Get global configuration instance."""
    return _config
