"""timerdriven HTTP 服务入口

- FastAPI 实例
- TimerDrivenRuntime 生命周期集成（应用启动/关闭）
- 运行时状态查询接口
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

from fastapi import FastAPI

from .api.v1 import router as api_v1_router
from .config.settings import Settings, get_settings
from .modules.base import TimerDrivenModule
from .runtime import TimerDrivenRuntime
from .state import get_runtime, set_runtime
from .utils.logging import setup_logging


def create_app(
    modules: Iterable[TimerDrivenModule] = (),
    settings: Optional[Settings] = None,
) -> FastAPI:
    """创建 FastAPI 应用

    Args:
        modules: 要注册的定时驱动模块，注册顺序即轮转顺序
        settings: 运行时配置，默认使用全局配置
    """
    settings = settings or get_settings()
    logger = setup_logging(settings.log_level)
    modules = list(modules)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: D401 (fastapi 兼容)
        """应用生命周期：启动运行时 & 关闭清理。"""
        logger.info("应用启动中...")

        runtime = TimerDrivenRuntime(settings)
        try:
            for module in modules:
                runtime.register_module(module)
            runtime.start()
        except Exception as exc:
            logger.exception("运行时初始化失败: %s", exc)
            runtime.database.shutdown()
            raise

        set_runtime(runtime)
        logger.info("应用已启动，模块数: %d", len(modules))

        try:
            yield
        finally:
            logger.info("应用关闭中...")
            runtime.stop()
            set_runtime(None)

    app = FastAPI(
        title="timerdriven",
        description="定时驱动模块轮转调度运行时",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(api_v1_router)

    @app.get("/", summary="健康检查 / Hello")
    async def root() -> dict[str, Any]:
        runtime = get_runtime()
        return {
            "message": "timerdriven runtime",
            "running": runtime.scheduler.is_running() if runtime else False,
        }

    return app


# 可选：uvicorn 直接运行入口（不注册任何模块，仅用于查看运行时状态）
if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
