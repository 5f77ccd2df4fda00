"""RotatingTaskScheduler: 轮转式定时任务调度器

按模块注册顺序轮流把工作委派给各个定时驱动模块：
- 所有 tick 都在同一个后台工作线程上顺序执行，任意时刻最多一个模块在运行
- 每个 tick 最多执行一个已就绪的模块，未就绪的模块会被跳过
- 每个 tick 结束后由 TimingStrategy 根据耗时决定下一个 tick 的延迟
- 任务失败只会被记录，不会中断轮转
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from ..errors import (
    IllegalLifecycleState,
    ResourceUnavailable,
    ShutdownTimeout,
    TaskExecutionError,
)
from ..metadata.repository import ModuleMetadataRepository
from ..models.database import Database
from ..modules.base import TimerDrivenModule, TimerDrivenModuleContext
from .registry import ModuleRegistry
from .timing import NEVER_RUN, UNKNOWN, TimingStrategy
from .types import TICK_JOB_NAME, SchedulerState

logger = logging.getLogger("timerdriven.scheduler")

DEFAULT_SHUTDOWN_GRACE_SECONDS = 5.0
# 时间策略自身出错时使用的 tick 间隔
FALLBACK_DELAY_SECONDS = 1.0


class RotatingTaskScheduler:
    """轮转式任务调度器

    Attributes:
        _registry: 模块注册表，仅由调度器持有
        _scheduler: APScheduler 后台调度器，只配置一个工作线程
        _idle: tick 空闲标记，停止时用于等待正在执行的 tick
        _tick_lock: 保证任意时刻最多只有一个 tick（后台或手动调用）在执行
    """

    def __init__(
        self,
        database: Database,
        repository: ModuleMetadataRepository,
        timing_strategy: TimingStrategy,
        *,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """初始化调度器

        Args:
            database: 模块共享的数据库资源
            repository: 模块元数据持久化仓库
            timing_strategy: 调度时间策略
            shutdown_grace_seconds: 停止时等待正在执行 tick 的最长秒数
            clock: 返回当前 Unix 时间的函数，用于判断模块是否就绪
        """
        self._database = database
        self._repository = repository
        self._timing_strategy = timing_strategy
        self._shutdown_grace_seconds = max(0.0, shutdown_grace_seconds)
        self._clock = clock

        self._registry = ModuleRegistry()
        self._state = SchedulerState.Created
        self._lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._tick_lock = threading.Lock()

        # 单线程执行器保证 tick 严格串行
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": None,  # 无论延迟多久都要执行，否则轮转会中断
            },
            timezone=timezone.utc,
        )

        self._last_failure: Optional[TaskExecutionError] = None
        self._stats: Dict[str, Any] = {
            "ticks": 0,
            "tasks_completed": 0,
            "tasks_failed": 0,
            "idle_ticks": 0,
            "skipped_ticks": 0,
            "last_task_duration": None,
            "next_delay": None,
        }

    def register_module_and_context(
        self,
        module: TimerDrivenModule,
        context: Optional[TimerDrivenModuleContext],
    ) -> None:
        """注册模块及其上下文，只能在启动前调用

        Raises:
            IllegalLifecycleState: 调度器已启动或已停止
        """
        with self._lock:
            if self._state is not SchedulerState.Created:
                raise IllegalLifecycleState(
                    f"调度器处于 {self._state.value} 状态，不能再注册模块 {module.id}"
                )
            logger.info("注册定时驱动模块 module=%s", module.id)
            self._registry.register(module, context)

    def start(self) -> None:
        """启动调度器（重复调用只记录警告）"""
        with self._lock:
            if self._state is not SchedulerState.Created:
                logger.warning("调度器处于 %s 状态，忽略 start()", self._state.value)
                return

            total = len(self._registry)
            if total == 0:
                self._state = SchedulerState.Running
                logger.info("没有注册任何定时驱动模块，不调度任务")
                return

            logger.info("共有 %d 个定时驱动模块，开始调度第一个 tick", total)

            self._registry.cursor()
            self._timing_strategy.initialize(self._database)
            self._scheduler.start()
            self._state = SchedulerState.Running

            self._schedule_next_task(NEVER_RUN)

    def stop(self) -> None:
        """停止调度器

        不再接受新的 tick，最多等待宽限期让正在执行的 tick 结束；
        超时后记录警告并放弃等待，stop() 总会返回。
        """
        with self._lock:
            previous = self._state
            self._state = SchedulerState.Stopped

        if previous is SchedulerState.Stopped:
            logger.warning("调度器已经停止")
            return
        if previous is SchedulerState.Created:
            logger.info("调度器在启动前被停止")
            return

        logger.info("正在停止调度器...")
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        try:
            self._await_termination(self._shutdown_grace_seconds)
        except ShutdownTimeout as e:
            logger.warning("%s，放弃等待工作线程", e)
        else:
            logger.info("调度器已停止")
        finally:
            self._registry.discard_cursor()

    def _await_termination(self, grace_seconds: float) -> None:
        if not self._idle.wait(grace_seconds):
            raise ShutdownTimeout(grace_seconds)

    def _next_delay(self, last_task_duration: float) -> float:
        try:
            next_delay = self._timing_strategy.next_delay(last_task_duration)
        except Exception as e:
            logger.error(
                "时间策略计算延迟失败，使用 %.1f 秒: %s",
                FALLBACK_DELAY_SECONDS,
                e,
                exc_info=True,
            )
            return FALLBACK_DELAY_SECONDS

        if next_delay < 0:
            logger.warning("时间策略返回了负的延迟 %.3f，按 0 处理", next_delay)
            return 0.0
        return next_delay

    def _schedule_next_task(self, last_task_duration: float) -> None:
        """调度下一个 tick

        Args:
            last_task_duration: 上一次任务耗时（秒），或 NEVER_RUN / UNKNOWN
        """
        next_delay = self._next_delay(last_task_duration)

        with self._lock:
            if self._state is not SchedulerState.Running:
                logger.debug("调度器未运行，不再调度下一个 tick")
                return

            self._stats["last_task_duration"] = (
                last_task_duration if last_task_duration >= 0 else None
            )
            self._stats["next_delay"] = next_delay

            logger.debug("下一个 tick 将在 %.3f 秒后执行", next_delay)
            self._scheduler.add_job(
                self._run_scheduled_task,
                trigger=DateTrigger(
                    run_date=datetime.now(timezone.utc) + timedelta(seconds=next_delay)
                ),
                name=TICK_JOB_NAME,
            )

    def _run_scheduled_task(self) -> None:
        """后台线程执行的 tick，结束时总会调度下一个 tick"""
        with self._lock:
            if self._state is not SchedulerState.Running:
                return
            self._idle.clear()

        total_time = UNKNOWN
        try:
            start_time = time.perf_counter()

            self.run_next_task()

            total_time = time.perf_counter() - start_time
            logger.debug("tick 完成，耗时 %.3f 秒", total_time)
        except Exception as e:
            logger.warning("tick 执行失败: %s", e, exc_info=True)
        finally:
            try:
                self._schedule_next_task(total_time)
            finally:
                self._idle.set()

    def run_next_task(self) -> Optional[TimerDrivenModule]:
        """执行一次 tick 的工作部分

        选出下一个已就绪的模块，在一个工作单元中执行它并持久化新上下文。
        与后台 tick 共用同一把锁，手动调用会等待正在执行的 tick 结束。

        Returns:
            本次执行的模块；数据库不可用或没有模块就绪时返回 None

        Raises:
            TaskExecutionError: 模块执行、持久化或提交失败
        """
        with self._tick_lock:
            return self._run_next_task_locked()

    def _run_next_task_locked(self) -> Optional[TimerDrivenModule]:
        self._stats["ticks"] += 1

        if not self._database.is_available(0):
            logger.warning("数据库不可用，可能正在关闭，跳过本次 tick")
            self._stats["skipped_ticks"] += 1
            return None

        picked = self._registry.cursor().find_ready(self._clock())
        if picked is None:
            logger.debug("本次 tick 没有就绪的模块")
            self._stats["idle_ticks"] += 1
            return None

        module, context = picked
        try:
            with self._database.unit_of_work():
                new_context = module.do_some_work(context, self._database)
                self._repository.persist(module, new_context)
        except ResourceUnavailable as e:
            logger.warning("数据库不可用，跳过模块 module=%s: %s", module.id, e)
            self._stats["skipped_ticks"] += 1
            return None
        except Exception as e:
            failure = TaskExecutionError(module.id, e)
            self._last_failure = failure
            self._stats["tasks_failed"] += 1
            raise failure from e

        # 工作单元提交成功后才更新内存中的上下文
        self._registry.put(module, new_context)
        self._stats["tasks_completed"] += 1
        logger.debug("模块完成本次工作 module=%s", module.id)
        return module

    @property
    def state(self) -> SchedulerState:
        return self._state

    def is_running(self) -> bool:
        return self._state is SchedulerState.Running

    @property
    def last_failure(self) -> Optional[TaskExecutionError]:
        return self._last_failure

    def get_context(
        self, module: TimerDrivenModule
    ) -> Optional[TimerDrivenModuleContext]:
        return self._registry.get(module)

    def find_module(self, module_id: str) -> Optional[TimerDrivenModule]:
        return self._registry.find(module_id)

    def get_module_count(self) -> int:
        return len(self._registry)

    def get_modules_snapshot(self) -> List[Dict[str, Any]]:
        """返回按轮转顺序排列的模块快照"""
        return self._registry.snapshot()

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)
