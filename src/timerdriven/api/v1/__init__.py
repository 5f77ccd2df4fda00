"""运行时状态 API（v1）"""

from __future__ import annotations

from .routes import router

__all__ = ["router"]
