"""API 响应模型定义

本模块定义了运行时状态 API 的响应模型，使用 Pydantic 实现数据验证和序列化。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SchedulerStats(BaseModel):
    """调度器统计信息"""
    ticks: int = Field(0, description="已执行的 tick 数")
    tasks_completed: int = Field(0, description="成功完成的模块任务数")
    tasks_failed: int = Field(0, description="失败的模块任务数")
    idle_ticks: int = Field(0, description="没有模块就绪的 tick 数")
    skipped_ticks: int = Field(0, description="因数据库不可用而跳过的 tick 数")
    last_task_duration: Optional[float] = Field(None, description="上一次任务耗时（秒）")
    next_delay: Optional[float] = Field(None, description="下一次 tick 的延迟（秒）")


class FailureInfo(BaseModel):
    """最近一次任务失败"""
    module_id: str = Field(..., description="失败模块ID")
    error: str = Field(..., description="错误信息")


class RuntimeStatusResponse(BaseModel):
    """运行时状态响应模型"""
    state: str = Field(..., description="调度器状态：created/running/stopped")
    module_count: int = Field(..., description="已注册模块数")
    timing_strategy: str = Field(..., description="调度时间策略")
    stats: SchedulerStats = Field(..., description="调度器统计")
    last_failure: Optional[FailureInfo] = Field(None, description="最近一次任务失败")


class ModuleStatus(BaseModel):
    """模块状态模型"""
    module_id: str = Field(..., description="模块ID")
    context_type: Optional[str] = Field(None, description="上下文类型")
    context: Optional[Dict[str, Any]] = Field(None, description="当前上下文")
    earliest_next_call: Optional[float] = Field(None, description="最早下次调用时间（Unix 秒）")
    ready: bool = Field(..., description="当前是否就绪")


class ModulesResponse(BaseModel):
    """模块列表响应模型（按轮转顺序）"""
    data: List[ModuleStatus] = Field(..., description="模块列表")
    total: int = Field(..., description="模块总数")
