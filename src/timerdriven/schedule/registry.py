"""ModuleRegistry / RotationCursor: 模块注册表与轮转游标

注册表按插入顺序保存 (模块, 上下文)，插入顺序即轮转顺序。
游标在注册表上循环前进；游标一旦创建（调度器已启动），注册表不再接受新模块。

两者都只由调度器的单个工作线程读写，因此不加锁。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import IllegalLifecycleState
from ..modules.base import TimerDrivenModule, TimerDrivenModuleContext

logger = logging.getLogger("timerdriven.scheduler.registry")

ModuleAndContext = Tuple[TimerDrivenModule, Optional[TimerDrivenModuleContext]]


class ModuleRegistry:
    """模块注册表

    Attributes:
        _contexts: Key 为模块实例，value 为其最新上下文（dict 保持插入顺序）
    """

    def __init__(self):
        self._contexts: Dict[TimerDrivenModule, Optional[TimerDrivenModuleContext]] = {}
        self._ids: Dict[str, TimerDrivenModule] = {}
        self._cursor: Optional[RotationCursor] = None

    def register(
        self,
        module: TimerDrivenModule,
        context: Optional[TimerDrivenModuleContext],
    ) -> None:
        """注册模块及其初始上下文

        Raises:
            IllegalLifecycleState: 游标已创建（调度器已启动）
            ValueError: 模块 ID 已存在
        """
        if self.has_cursor():
            raise IllegalLifecycleState("轮转已开始，注册表不再接受新模块")
        if module.id in self._ids:
            raise ValueError(f"模块 ID '{module.id}' 已注册")

        self._contexts[module] = context
        self._ids[module.id] = module

    def get(self, module: TimerDrivenModule) -> Optional[TimerDrivenModuleContext]:
        return self._contexts[module]

    def put(
        self,
        module: TimerDrivenModule,
        context: Optional[TimerDrivenModuleContext],
    ) -> None:
        """替换已注册模块的上下文，不改变迭代顺序

        Raises:
            KeyError: 模块未注册
        """
        if module not in self._contexts:
            raise KeyError(module.id)
        self._contexts[module] = context

    def find(self, module_id: str) -> Optional[TimerDrivenModule]:
        return self._ids.get(module_id)

    def modules(self) -> List[TimerDrivenModule]:
        """按注册顺序返回所有模块"""
        return list(self._contexts)

    def snapshot(self) -> List[Dict[str, Any]]:
        """返回 (模块, 上下文) 的只读快照，方便对外暴露"""
        return [
            {
                "module_id": module.id,
                "context_type": type(context).__name__ if context is not None else None,
                "context": context.model_dump(mode="json") if context is not None else None,
                "earliest_next_call": (
                    context.earliest_next_call() if context is not None else None
                ),
            }
            for module, context in list(self._contexts.items())
        ]

    def cursor(self) -> "RotationCursor":
        """获取轮转游标，首次调用时创建"""
        if self._cursor is None:
            self._cursor = RotationCursor(self)
        return self._cursor

    def has_cursor(self) -> bool:
        return self._cursor is not None

    def discard_cursor(self) -> None:
        self._cursor = None

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, module: TimerDrivenModule) -> bool:
        return module in self._contexts


class RotationCursor:
    """轮转游标

    按注册顺序逐个前进，到达末尾后回到开头。
    每次回到开头时根据注册表当前内容重新生成迭代。
    """

    def __init__(self, registry: ModuleRegistry):
        self._registry = registry
        self._iterator: Optional[Iterator[TimerDrivenModule]] = None

    def advance(self) -> ModuleAndContext:
        """前进一步，返回轮到的模块及其当前上下文"""
        module = None
        if self._iterator is not None:
            module = next(self._iterator, None)
        if module is None:
            self._iterator = iter(self._registry.modules())
            module = next(self._iterator)
        return module, self._registry.get(module)

    def find_ready(self, now: float) -> Optional[ModuleAndContext]:
        """寻找下一个已就绪的模块

        最多检查 N 个候选（N 为注册表当前大小），避免没有模块就绪时死循环。
        都不就绪时返回 None，游标停留在扫描结束的位置，下一次从这里继续。

        Args:
            now: 当前时间（Unix 秒）
        """
        total = len(self._registry)
        for _ in range(total):
            module, context = self.advance()
            if context is None or context.earliest_next_call() <= now:
                return module, context
            logger.debug(
                "模块未就绪，跳过 module=%s earliest_next_call=%.3f",
                module.id,
                context.earliest_next_call(),
            )
        return None
