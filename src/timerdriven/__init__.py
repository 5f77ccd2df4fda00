"""timerdriven: 定时驱动模块的轮转调度运行时

包含：
- TimerDrivenModule / TimerDrivenModuleContext: 模块与上下文基类
- RotatingTaskScheduler: 单线程轮转调度器
- TimingStrategy 及其实现: tick 间隔策略
- TimerDrivenRuntime: 组装配置、数据库、元数据仓库与调度器
"""

from .errors import (
    IllegalLifecycleState,
    ResourceUnavailable,
    ShutdownTimeout,
    TaskExecutionError,
    TimerDrivenError,
    UnitOfWorkRolledBack,
)
from .models.database import Database
from .modules.base import TimerDrivenModule, TimerDrivenModuleContext
from .runtime import TimerDrivenRuntime, create_timing_strategy
from .schedule import (
    NEVER_RUN,
    UNKNOWN,
    AdaptiveTimingStrategy,
    FixedDelayTimingStrategy,
    RotatingTaskScheduler,
    SchedulerState,
    TimingStrategy,
)

__all__ = [
    "TimerDrivenError",
    "IllegalLifecycleState",
    "ResourceUnavailable",
    "ShutdownTimeout",
    "TaskExecutionError",
    "UnitOfWorkRolledBack",
    "Database",
    "TimerDrivenModule",
    "TimerDrivenModuleContext",
    "TimerDrivenRuntime",
    "create_timing_strategy",
    "RotatingTaskScheduler",
    "SchedulerState",
    "TimingStrategy",
    "FixedDelayTimingStrategy",
    "AdaptiveTimingStrategy",
    "NEVER_RUN",
    "UNKNOWN",
]
