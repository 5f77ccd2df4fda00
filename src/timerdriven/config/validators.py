"""配置验证器模块

在 pydantic 字段约束之外，检查配置之间的一致性并给出警告。
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

from .settings import Settings, StorageConfig, TimingConfig

logger = logging.getLogger("timerdriven.config.validators")


@dataclass
class ValidationResult:
    """验证结果

    包含验证是否通过、错误信息和警告信息。
    """

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: "ValidationResult"):
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class ConfigValidator(ABC):
    """配置验证器抽象基类"""

    @abstractmethod
    def validate(self, config: Any) -> ValidationResult:
        raise NotImplementedError


class TimingConfigValidator(ConfigValidator):
    """调度时间配置验证器"""

    def validate(self, config: TimingConfig) -> ValidationResult:
        result = ValidationResult()

        if config.strategy == "fixed":
            if config.delay_seconds == 0:
                result.add_warning("tick 间隔为 0，工作线程将持续忙碌")
            elif config.delay_seconds > 3600:
                result.add_warning("tick 间隔超过 1 小时，模块进度可能过慢")
        else:
            if config.min_delay_seconds > config.max_delay_seconds:
                result.add_error(
                    f"min_delay_seconds ({config.min_delay_seconds}) "
                    f"不能大于 max_delay_seconds ({config.max_delay_seconds})"
                )
            if config.max_utilization == 1 and config.min_delay_seconds == 0:
                result.add_warning("max_utilization=1 且最小间隔为 0，工作线程可能持续忙碌")

        return result


class StorageConfigValidator(ConfigValidator):
    """存储配置验证器"""

    def validate(self, config: StorageConfig) -> ValidationResult:
        result = ValidationResult()
        result.merge(self._validate_db_path(config.db_path))

        retention = config.state_management.metadata_retention_days
        if config.state_management.cleanup_stale_metadata and retention < 7:
            result.add_warning(
                f"元数据保留 {retention} 天过短，暂停较久的模块会丢失进度"
            )

        return result

    def _validate_db_path(self, db_path: str) -> ValidationResult:
        result = ValidationResult()

        if not db_path or not db_path.strip():
            result.add_error("数据库路径不能为空")
            return result

        path = Path(db_path)

        parent_dir = path.parent
        if not parent_dir.exists():
            try:
                parent_dir.mkdir(parents=True, exist_ok=True)
                result.add_warning(f"创建数据库目录: {parent_dir}")
            except OSError as e:
                result.add_error(f"无法创建数据库目录 {parent_dir}: {e}")

        if path.exists():
            if not path.is_file():
                result.add_error(f"数据库路径不是文件: {db_path}")
            elif not os.access(path, os.R_OK | os.W_OK):
                result.add_error(f"数据库文件无读写权限: {db_path}")

        return result


class ShutdownConfigValidator(ConfigValidator):
    """停止宽限期验证器"""

    def validate(self, config: Settings) -> ValidationResult:
        result = ValidationResult()

        if config.shutdown_grace_seconds == 0:
            result.add_warning("停止宽限期为 0，正在执行的任务不会被等待")
        elif config.shutdown_grace_seconds > 60:
            result.add_warning("停止宽限期超过 60 秒，关闭可能很慢")

        return result


class CompositeConfigValidator(ConfigValidator):
    """组合配置验证器"""

    def __init__(self):
        self.timing_validator = TimingConfigValidator()
        self.storage_validator = StorageConfigValidator()
        self.shutdown_validator = ShutdownConfigValidator()

    def validate(self, config: Settings) -> ValidationResult:
        result = ValidationResult()

        result.merge(self.timing_validator.validate(config.timing))
        result.merge(self.storage_validator.validate(config.storage))
        result.merge(self.shutdown_validator.validate(config))

        if result.errors:
            logger.error("配置验证发现 %d 个错误", len(result.errors))
            for error in result.errors:
                logger.error("  - %s", error)

        if result.warnings:
            logger.warning("配置验证发现 %d 个警告", len(result.warnings))
            for warning in result.warnings:
                logger.warning("  - %s", warning)

        if result.is_valid and not result.warnings:
            logger.info("配置验证通过")

        return result


def validate_settings(settings: Settings) -> ValidationResult:
    """验证设置配置的便捷函数"""
    validator = CompositeConfigValidator()
    return validator.validate(settings)
