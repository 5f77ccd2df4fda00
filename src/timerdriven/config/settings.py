from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("timerdriven.config")

CONFIG_FILE_NAME = "timerdriven.yaml"


class TimingConfig(BaseModel):
    strategy: Literal["fixed", "adaptive"] = Field(default="fixed")
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    delay_seconds: float = Field(default=0.2, ge=0)
    # 以下仅用于 adaptive 策略
    min_delay_seconds: float = Field(default=0.2, ge=0)
    max_delay_seconds: float = Field(default=5.0, ge=0)
    max_utilization: float = Field(default=0.5, gt=0, le=1)


class StateManagementConfig(BaseModel):
    cleanup_stale_metadata: bool = Field(default=False)
    metadata_retention_days: int = Field(default=30, ge=1, le=3650)


class StorageConfig(BaseModel):
    db_path: str = Field(default="./data/timerdriven.db")
    state_management: StateManagementConfig = Field(
        default_factory=StateManagementConfig
    )

    def __init__(self, **data):
        super().__init__(**data)
        # 支持环境变量覆盖数据库路径
        if "TIMERDRIVEN_DB_PATH" in os.environ:
            self.db_path = os.environ["TIMERDRIVEN_DB_PATH"]


class Settings(BaseModel):
    timing: TimingConfig = Field(default_factory=TimingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)
    log_level: str = Field(default="INFO")

    @staticmethod
    def from_yaml(path: Optional[Path | str] = None) -> "Settings":
        """从 YAML 文件加载配置（不合并环境变量）"""
        from .loaders import ConfigParser, YamlConfigLoader

        return ConfigParser.parse(YamlConfigLoader(path).load())


_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例

    按优先级合并：默认配置 < YAML 文件 < 环境变量
    """
    global _settings
    if _settings is None:
        from .loaders import ConfigParser, create_default_config_loader

        _settings = ConfigParser.parse(create_default_config_loader().load())
    return _settings


def reset_settings() -> None:
    """清除缓存的全局配置（主要用于测试）"""
    global _settings
    _settings = None
