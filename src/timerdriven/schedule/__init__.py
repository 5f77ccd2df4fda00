"""Scheduling package public API.

Primary entrypoint:
- RotatingTaskScheduler: Round-robin delegation to timer-driven modules.

Utilities:
- TimingStrategy, FixedDelayTimingStrategy, AdaptiveTimingStrategy: Tick spacing.
- NEVER_RUN, UNKNOWN: Sentinel durations passed to timing strategies.
- ModuleRegistry, RotationCursor: Ordered module storage & rotation.
- SchedulerState: Scheduler lifecycle states.
"""

from .registry import ModuleRegistry, RotationCursor
from .scheduler import RotatingTaskScheduler
from .timing import (
    NEVER_RUN,
    UNKNOWN,
    AdaptiveTimingStrategy,
    FixedDelayTimingStrategy,
    TimingStrategy,
)
from .types import SchedulerState

__all__ = [
    "RotatingTaskScheduler",
    "ModuleRegistry",
    "RotationCursor",
    "TimingStrategy",
    "FixedDelayTimingStrategy",
    "AdaptiveTimingStrategy",
    "NEVER_RUN",
    "UNKNOWN",
    "SchedulerState",
]
