"""API v1 路由定义。

此模块包含运行时状态查询的 FastAPI 路由端点。
"""

from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ...runtime import TimerDrivenRuntime
from ...state import get_runtime
from ..schemas import ModulesResponse, ModuleStatus, RuntimeStatusResponse

router = APIRouter(prefix="/api/v1", tags=["runtime"])


def get_active_runtime() -> TimerDrivenRuntime:
    """依赖注入：获取当前运行时，未启动时返回 503"""

    runtime = get_runtime()
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="运行时未启动",
        )
    return runtime


def _to_module_status(entry: Dict[str, Any], now: float) -> ModuleStatus:
    earliest = entry["earliest_next_call"]
    return ModuleStatus(
        module_id=entry["module_id"],
        context_type=entry["context_type"],
        context=entry["context"],
        earliest_next_call=earliest,
        ready=earliest is None or earliest <= now,
    )


@router.get(
    "/status",
    response_model=RuntimeStatusResponse,
    summary="获取运行时状态",
)
async def get_status(runtime: TimerDrivenRuntime = Depends(get_active_runtime)):
    return runtime.get_status()


@router.get(
    "/modules",
    response_model=ModulesResponse,
    summary="按轮转顺序列出模块",
)
async def list_modules(runtime: TimerDrivenRuntime = Depends(get_active_runtime)):
    now = time.time()
    entries = runtime.scheduler.get_modules_snapshot()
    return ModulesResponse(
        data=[_to_module_status(entry, now) for entry in entries],
        total=len(entries),
    )


@router.get(
    "/modules/{module_id}",
    response_model=ModuleStatus,
    summary="获取单个模块状态",
)
async def get_module(
    module_id: str, runtime: TimerDrivenRuntime = Depends(get_active_runtime)
):
    if runtime.get_module(module_id) is None:
        raise HTTPException(status_code=404, detail=f"模块 {module_id} 不存在")

    now = time.time()
    entry = next(
        e for e in runtime.scheduler.get_modules_snapshot() if e["module_id"] == module_id
    )
    return _to_module_status(entry, now)
