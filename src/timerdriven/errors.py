"""timerdriven 异常定义

调度器对外只抛出 IllegalLifecycleState；其余异常都在单次 tick 内部被捕获并记录。
"""

from __future__ import annotations


class TimerDrivenError(Exception):
    """timerdriven 基础异常类"""

    pass


class IllegalLifecycleState(TimerDrivenError, RuntimeError):
    """在错误的生命周期阶段调用了操作（例如调度器启动后再注册模块）。

    属于编程错误，调用方不应吞掉该异常。
    """

    pass


class ResourceUnavailable(TimerDrivenError):
    """共享资源（数据库）暂不可用，通常是正在关闭。

    调度器把它当作一次空转 tick，而不是任务失败。
    """

    pass


class TaskExecutionError(TimerDrivenError):
    """模块执行、元数据持久化或提交事务时出现的异常。

    Attributes:
        module_id: 出错模块的 ID
        cause: 原始异常
    """

    def __init__(self, module_id: str, cause: BaseException):
        self.module_id = module_id
        self.cause = cause
        super().__init__(
            f"模块 {module_id} 执行失败: {type(cause).__name__}: {cause}"
        )


class ShutdownTimeout(TimerDrivenError):
    """停止调度器时，正在执行的 tick 没能在宽限期内结束。"""

    def __init__(self, grace_seconds: float):
        self.grace_seconds = grace_seconds
        super().__init__(
            f"未能在 {grace_seconds:g} 秒内完成所有任务"
        )


class UnitOfWorkRolledBack(TimerDrivenError):
    """嵌套的工作单元失败，外层工作单元只能回滚，不能提交。"""

    pass
