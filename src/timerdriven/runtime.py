"""TimerDrivenRuntime: 定时驱动模块运行时

负责把配置、数据库、元数据仓库、调度时间策略和调度器组装在一起：
- 注册模块时优先恢复已持久化的上下文，没有则由模块创建初始上下文
- 启动前可按配置清理过期的元数据
- 停止时依次关闭调度器、各模块和数据库
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .config.settings import Settings, TimingConfig, get_settings
from .metadata.repository import ModuleMetadataRepository, SqlModuleMetadataRepository
from .models.database import Database
from .modules.base import TimerDrivenModule, TimerDrivenModuleContext
from .schedule.scheduler import RotatingTaskScheduler
from .schedule.timing import (
    AdaptiveTimingStrategy,
    FixedDelayTimingStrategy,
    TimingStrategy,
)

logger = logging.getLogger("timerdriven.runtime")


def create_timing_strategy(config: TimingConfig) -> TimingStrategy:
    """根据配置创建调度时间策略"""
    if config.strategy == "adaptive":
        return AdaptiveTimingStrategy(
            initial_delay=config.initial_delay_seconds,
            min_delay=config.min_delay_seconds,
            max_delay=config.max_delay_seconds,
            max_utilization=config.max_utilization,
        )
    return FixedDelayTimingStrategy(
        initial_delay=config.initial_delay_seconds,
        delay=config.delay_seconds,
    )


class TimerDrivenRuntime:
    """定时驱动模块运行时

    Attributes:
        settings: 运行时配置
        database: 共享数据库资源
        repository: 模块元数据仓库
        timing_strategy: 调度时间策略
        scheduler: 轮转式任务调度器
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        database: Optional[Database] = None,
        repository: Optional[ModuleMetadataRepository] = None,
        timing_strategy: Optional[TimingStrategy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.database = database or Database(self.settings.storage.db_path)
        self.repository = repository or SqlModuleMetadataRepository(self.database)
        self.timing_strategy = timing_strategy or create_timing_strategy(
            self.settings.timing
        )
        self.scheduler = RotatingTaskScheduler(
            self.database,
            self.repository,
            self.timing_strategy,
            shutdown_grace_seconds=self.settings.shutdown_grace_seconds,
            clock=clock,
        )
        self._modules: Dict[str, TimerDrivenModule] = {}

        logger.info(
            "运行时初始化完成 db_path=%s timing=%r",
            self.database.db_path,
            self.timing_strategy,
        )

    def register_module(self, module: TimerDrivenModule) -> None:
        """注册模块，恢复其上次持久化的上下文

        Raises:
            IllegalLifecycleState: 运行时已启动
        """
        context = self.repository.load(module)
        if context is not None:
            logger.info("恢复模块上下文 module=%s", module.id)
        else:
            context = module.create_initial_context(self.database)
            logger.info("模块使用初始上下文 module=%s", module.id)

        self.scheduler.register_module_and_context(module, context)
        self._modules[module.id] = module

    def start(self) -> None:
        state_management = self.settings.storage.state_management
        if state_management.cleanup_stale_metadata and isinstance(
            self.repository, SqlModuleMetadataRepository
        ):
            self.repository.cleanup_stale(state_management.metadata_retention_days)

        self.scheduler.start()
        logger.info("运行时已启动，模块数: %d", len(self._modules))

    def stop(self) -> None:
        self.scheduler.stop()

        for module in self._modules.values():
            try:
                module.shutdown()
            except Exception as e:
                logger.error("模块关闭失败 module=%s error=%s", module.id, e)

        self.database.shutdown()
        logger.info("运行时已停止")

    def list_modules(self) -> List[TimerDrivenModule]:
        return list(self._modules.values())

    def get_module(self, module_id: str) -> Optional[TimerDrivenModule]:
        return self._modules.get(module_id)

    def get_context(self, module_id: str) -> Optional[TimerDrivenModuleContext]:
        module = self._modules.get(module_id)
        if module is None:
            raise KeyError(module_id)
        return self.scheduler.get_context(module)

    def get_status(self) -> Dict[str, Any]:
        """汇总运行时状态，供 API 使用"""
        failure = self.scheduler.last_failure
        return {
            "state": self.scheduler.state.value,
            "module_count": self.scheduler.get_module_count(),
            "timing_strategy": repr(self.timing_strategy),
            "stats": self.scheduler.get_stats(),
            "last_failure": (
                {"module_id": failure.module_id, "error": str(failure.cause)}
                if failure is not None
                else None
            ),
        }
