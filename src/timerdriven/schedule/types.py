from __future__ import annotations

from enum import Enum


class SchedulerState(str, Enum):
    """调度器生命周期状态。

    - created: 已创建，唯一允许注册模块的状态
    - running: 已启动
    - stopped: 已停止（终态）
    """

    Created = "created"
    Running = "running"
    Stopped = "stopped"


# 调度器 tick 任务在 APScheduler 中的名称
TICK_JOB_NAME = "timerdriven-tick"
