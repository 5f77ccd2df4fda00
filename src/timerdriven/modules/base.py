"""TimerDrivenModule: 定时驱动模块基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..models.database import Database


class TimerDrivenModuleContext(BaseModel):
    """模块上下文

    保存模块恢复工作所需的状态（例如游标、高水位线），由模块自行定义字段。
    唯一必需的信号是 `earliest_next_call()`：在该时间戳之前不应调用模块。
    """

    model_config = ConfigDict(frozen=True)

    earliest_next_call_at: float = Field(
        default=0.0, description="最早下次调用时间（Unix 秒），0 表示随时可调用"
    )

    def earliest_next_call(self) -> float:
        return self.earliest_next_call_at


C = TypeVar("C", bound=TimerDrivenModuleContext)


class TimerDrivenModule(ABC, Generic[C]):
    """定时驱动模块基类

    调度器按注册顺序轮流调用各模块的 `do_some_work`，每次传入上一次返回的上下文。
    子类通过 `context_type` 声明自己的上下文类型，用于从数据库恢复上下文。

    Attributes:
        id: 模块唯一标识符
    """

    context_type: ClassVar[Type[TimerDrivenModuleContext]] = TimerDrivenModuleContext

    def __init__(self, module_id: str):
        """初始化模块

        Args:
            module_id: 模块唯一标识符
        """
        self.id = module_id

    def create_initial_context(self, database: "Database") -> Optional[C]:
        """没有已持久化的上下文时，为模块创建初始上下文

        返回 None 表示模块随时可以被调用。
        """
        return None

    @abstractmethod
    def do_some_work(self, last_context: Optional[C], database: "Database") -> C:
        """执行一小段有界的工作

        Args:
            last_context: 上一次返回的上下文，首次运行可能为 None
            database: 共享数据库资源，当前线程已开启工作单元

        Returns:
            更新后的上下文
        """
        raise NotImplementedError

    def shutdown(self) -> None:
        """运行时停止时调用，默认什么也不做"""

    def __str__(self) -> str:
        return f"TimerDrivenModule(id={self.id})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id='{self.id}')"
