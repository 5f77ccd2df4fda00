"""调度时间策略

TimingStrategy 根据上一次任务的耗时计算下一次 tick 之前的等待时间。
所有时间单位均为秒（float）。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.database import Database

# 哨兵值：还没有任何任务运行过
NEVER_RUN = -1.0
# 哨兵值：上一次任务失败，耗时未知
UNKNOWN = -2.0


class TimingStrategy(ABC):
    """调度时间策略抽象基类"""

    def initialize(self, database: "Database") -> None:
        """在调度第一个 tick 之前调用一次，默认什么也不做"""

    @abstractmethod
    def next_delay(self, last_task_duration: float) -> float:
        """计算下一次 tick 之前的等待时间

        Args:
            last_task_duration: 上一次任务耗时（秒），或 NEVER_RUN / UNKNOWN

        Returns:
            非负的等待秒数
        """
        raise NotImplementedError


@dataclass(frozen=True)
class FixedDelayTimingStrategy(TimingStrategy):
    """固定间隔调度策略

    首次调度使用 `initial_delay`，之后（包括任务失败后）一律使用 `delay`。
    """

    initial_delay: float = 1.0
    delay: float = 0.2

    def __post_init__(self):
        if self.initial_delay < 0 or self.delay < 0:
            raise ValueError(
                f"延迟不能为负数: initial_delay={self.initial_delay}, delay={self.delay}"
            )

    @classmethod
    def default(cls) -> "FixedDelayTimingStrategy":
        return cls(initial_delay=1.0, delay=0.2)

    def with_initial_delay(self, initial_delay: float) -> "FixedDelayTimingStrategy":
        return replace(self, initial_delay=initial_delay)

    def with_delay(self, delay: float) -> "FixedDelayTimingStrategy":
        return replace(self, delay=delay)

    def next_delay(self, last_task_duration: float) -> float:
        if last_task_duration == NEVER_RUN:
            return self.initial_delay
        return self.delay


@dataclass(frozen=True)
class AdaptiveTimingStrategy(TimingStrategy):
    """按任务耗时自适应的调度策略

    让工作线程的忙碌比例不超过 `max_utilization`：
    耗时 d 之后等待 d * (1 - u) / u 秒，并限制在 [min_delay, max_delay] 之间。
    任务失败（UNKNOWN）后退避到 `max_delay`。
    """

    initial_delay: float = 1.0
    min_delay: float = 0.2
    max_delay: float = 5.0
    max_utilization: float = 0.5

    def __post_init__(self):
        if self.initial_delay < 0 or self.min_delay < 0:
            raise ValueError("延迟不能为负数")
        if self.min_delay > self.max_delay:
            raise ValueError(
                f"min_delay ({self.min_delay}) 不能大于 max_delay ({self.max_delay})"
            )
        if not 0 < self.max_utilization <= 1:
            raise ValueError(
                f"max_utilization 必须在 (0, 1] 之间，实际为 {self.max_utilization}"
            )

    def next_delay(self, last_task_duration: float) -> float:
        if last_task_duration == NEVER_RUN:
            return self.initial_delay
        if last_task_duration == UNKNOWN or last_task_duration < 0:
            return self.max_delay

        u = self.max_utilization
        wanted = last_task_duration * (1 - u) / u
        return min(self.max_delay, max(self.min_delay, wanted))
