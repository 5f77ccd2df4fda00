"""模块元数据仓库

负责持久化每个定时驱动模块的最新上下文，调度器重启后据此恢复模块进度。
SQL 实现在调用方已开启的工作单元中写入，不自行提交，失败时直接抛出异常。
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import ValidationError

from ..models.database import Database
from ..models.module_metadata import ModuleMetadata
from ..modules.base import TimerDrivenModule, TimerDrivenModuleContext

logger = logging.getLogger("timerdriven.metadata")


class ModuleMetadataRepository(ABC):
    """模块元数据仓库抽象基类"""

    @abstractmethod
    def persist(
        self,
        module: TimerDrivenModule,
        context: Optional[TimerDrivenModuleContext],
    ) -> None:
        """持久化模块上下文，无法写入时必须抛出异常"""
        raise NotImplementedError

    @abstractmethod
    def load(self, module: TimerDrivenModule) -> Optional[TimerDrivenModuleContext]:
        """读取模块上下文，不存在时返回 None"""
        raise NotImplementedError

    @abstractmethod
    def remove(self, module_id: str) -> bool:
        """删除模块元数据，记录存在时返回 True"""
        raise NotImplementedError

    @abstractmethod
    def module_ids(self) -> List[str]:
        raise NotImplementedError


def _qualified_name(obj: object) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


class SqlModuleMetadataRepository(ModuleMetadataRepository):
    """基于 SQLAlchemy 的模块元数据仓库

    `persist` 使用当前线程的会话（即调度器开启的工作单元），由工作单元负责提交或回滚。
    其余只读/维护操作使用独立会话。
    """

    def __init__(self, database: Database):
        self.database = database

    def persist(
        self,
        module: TimerDrivenModule,
        context: Optional[TimerDrivenModuleContext],
    ) -> None:
        timestamp = time.time()
        payload = context.model_dump(mode="json") if context is not None else None
        context_type = _qualified_name(context) if context is not None else ""

        session = self.database.session
        record = session.get(ModuleMetadata, module.id)
        if record is not None:
            record.context = payload
            record.context_type = context_type
            record.updated_at = timestamp
            record.persist_count += 1
            logger.debug(
                "更新模块元数据 module=%s count=%d", module.id, record.persist_count
            )
        else:
            session.add(
                ModuleMetadata(
                    module_id=module.id,
                    context_type=context_type,
                    context=payload,
                    created_at=timestamp,
                    updated_at=timestamp,
                    persist_count=1,
                )
            )
            logger.debug("创建模块元数据 module=%s", module.id)

        session.flush()

    def load(self, module: TimerDrivenModule) -> Optional[TimerDrivenModuleContext]:
        with self.database.unit_of_work() as session:
            record = session.get(ModuleMetadata, module.id)
            payload = record.context if record is not None else None

        if payload is None:
            logger.debug("模块没有已持久化的上下文 module=%s", module.id)
            return None

        try:
            return module.context_type.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                "已持久化的上下文无法恢复，将重新开始 module=%s error=%s",
                module.id,
                e,
            )
            return None

    def remove(self, module_id: str) -> bool:
        with self.database.unit_of_work() as session:
            deleted = (
                session.query(ModuleMetadata)
                .filter(ModuleMetadata.module_id == module_id)
                .delete()
            )
        if deleted:
            logger.info("删除模块元数据 module=%s", module_id)
        return bool(deleted)

    def module_ids(self) -> List[str]:
        with self.database.unit_of_work() as session:
            return [
                row.module_id
                for row in session.query(ModuleMetadata.module_id).order_by(
                    ModuleMetadata.module_id
                )
            ]

    def get_record(self, module_id: str) -> Optional[dict]:
        """获取模块元数据原始记录（字典形式）"""
        with self.database.unit_of_work() as session:
            record = session.get(ModuleMetadata, module_id)
            return record.to_dict() if record is not None else None

    def cleanup_stale(self, retention_days: int = 30) -> int:
        """清理长时间未更新的元数据记录

        Args:
            retention_days: 保留天数

        Returns:
            清理的记录数量
        """
        cutoff_time = time.time() - (retention_days * 24 * 60 * 60)

        with self.database.unit_of_work() as session:
            deleted_count = (
                session.query(ModuleMetadata)
                .filter(ModuleMetadata.updated_at < cutoff_time)
                .delete()
            )

        if deleted_count > 0:
            logger.info("清理了 %d 条过期模块元数据", deleted_count)
        return deleted_count
