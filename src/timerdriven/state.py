"""Shared runtime state for the timerdriven HTTP surface.

Exposes the active TimerDrivenRuntime so that request handlers can reach it
without importing `app` directly, avoiding circular imports during startup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .runtime import TimerDrivenRuntime

# Mutable module level reference to the running runtime.
_runtime: Optional["TimerDrivenRuntime"] = None


def get_runtime() -> Optional["TimerDrivenRuntime"]:
    """Return the active TimerDrivenRuntime instance, if available."""

    return _runtime


def set_runtime(instance: Optional["TimerDrivenRuntime"]) -> None:
    """Update the shared runtime reference."""

    global _runtime
    _runtime = instance


__all__ = ["get_runtime", "set_runtime"]
