"""模块元数据模型

本模块定义用于持久化定时驱动模块上下文的数据模型，使用 SQLAlchemy ORM 实现。
每个模块一行，保存其最近一次执行后返回的上下文（JSON 格式）。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import JSON, Float, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLAlchemy 基类（Typed Declarative）
class Base(DeclarativeBase):
    pass


class ModuleMetadata(Base):
    """定时驱动模块元数据表

    字段说明：
    - module_id: 模块唯一标识
    - context_type: 上下文类型的全限定名，仅用于排查问题
    - context: 上下文内容（JSON），模块首次运行前可能为空
    - created_at / updated_at: Unix 时间戳
    - persist_count: 持久化次数统计
    """

    __tablename__ = "timer_driven_module_metadata"

    module_id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="模块唯一标识"
    )
    context_type: Mapped[str] = mapped_column(
        String, nullable=False, default="", comment="上下文类型全限定名"
    )
    context: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True, comment="模块上下文（JSON格式）"
    )

    created_at: Mapped[float] = mapped_column(
        Float, nullable=False, comment="创建时间戳"
    )
    updated_at: Mapped[float] = mapped_column(
        Float, nullable=False, index=True, comment="更新时间戳"
    )

    persist_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="持久化次数统计"
    )

    def __repr__(self) -> str:
        return (
            f"<ModuleMetadata("
            f"module_id={self.module_id}, "
            f"context_type={self.context_type}, "
            f"persist_count={self.persist_count})>"
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "module_id": self.module_id,
            "context_type": self.context_type,
            "context": self.context,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "persist_count": self.persist_count,
        }
