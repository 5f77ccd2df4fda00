"""timerdriven 配置来源

分离默认值、YAML 文件、环境变量等不同配置源的加载逻辑，
按优先级合并后统一解析为 Settings 对象。
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from .settings import CONFIG_FILE_NAME, Settings, StorageConfig, TimingConfig

logger = logging.getLogger("timerdriven.config.loaders")


class ConfigLoader(ABC):
    """配置加载器抽象基类"""

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """加载配置数据

        Returns:
            配置数据字典
        """
        raise NotImplementedError

    @abstractmethod
    def is_available(self) -> bool:
        """检查配置源是否可用"""
        raise NotImplementedError


class YamlConfigLoader(ConfigLoader):
    """YAML配置文件加载器"""

    def __init__(self, file_path: Path | str | None = None):
        """file_path 为空时从当前工作目录向上查找配置文件"""
        self.file_path = Path(file_path) if file_path else self._discover_config_path()
        logger.debug("YAML配置文件路径: %s", self.file_path)

    def _discover_config_path(self) -> Path:
        """从当前工作目录开始向上查找 timerdriven.yaml"""
        start = Path.cwd().resolve()
        for parent in (start, *start.parents):
            candidate = parent / CONFIG_FILE_NAME
            if candidate.exists():
                logger.info("发现配置文件: %s", candidate)
                return candidate

        fallback_path = start / CONFIG_FILE_NAME
        logger.debug("未找到配置文件，使用默认路径: %s", fallback_path)
        return fallback_path

    def is_available(self) -> bool:
        return self.file_path.exists()

    def load(self) -> Dict[str, Any]:
        if not self.is_available():
            logger.warning("配置文件不存在: %s", self.file_path)
            return {}

        try:
            content = self.file_path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("加载配置文件失败: %s", e)
            return {}

        if not isinstance(data, dict):
            logger.error("配置文件顶层必须是映射: %s", self.file_path)
            return {}

        logger.info("成功加载配置文件: %s", self.file_path)
        return data


class EnvironmentConfigLoader(ConfigLoader):
    """环境变量配置加载器"""

    # 环境变量（去掉前缀、小写后）到配置路径的映射
    KEY_MAPPING = {
        "db_path": ("storage", "db_path"),
        "timing_strategy": ("timing", "strategy"),
        "initial_delay_seconds": ("timing", "initial_delay_seconds"),
        "delay_seconds": ("timing", "delay_seconds"),
        "min_delay_seconds": ("timing", "min_delay_seconds"),
        "max_delay_seconds": ("timing", "max_delay_seconds"),
        "max_utilization": ("timing", "max_utilization"),
        "shutdown_grace_seconds": ("shutdown_grace_seconds",),
        "log_level": ("log_level",),
    }

    def __init__(self, prefix: str = "TIMERDRIVEN_"):
        self.prefix = prefix

    def is_available(self) -> bool:
        return any(key.startswith(self.prefix) for key in os.environ)

    def load(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.prefix):
                continue

            config_key = key[len(self.prefix):].lower()
            path = self.KEY_MAPPING.get(config_key)
            if path is None:
                logger.debug("忽略未知的环境变量: %s", key)
                continue

            target = config
            for part in path[:-1]:
                target = target.setdefault(part, {})
            target[path[-1]] = value

        if config:
            logger.info("从环境变量加载了 %d 个配置项", len(config))

        return config


class DefaultConfigLoader(ConfigLoader):
    """默认配置加载器"""

    def is_available(self) -> bool:
        return True

    def load(self) -> Dict[str, Any]:
        return Settings().model_dump()


class CompositeConfigLoader(ConfigLoader):
    """按优先级合并多个配置源

    后加载的配置源覆盖先加载的同名字段，嵌套字典逐层合并。
    """

    def __init__(self, loaders: List[ConfigLoader]):
        """初始化组合加载器

        Args:
            loaders: 配置加载器列表，按优先级从低到高排序
        """
        self.loaders = loaders

    def is_available(self) -> bool:
        return any(loader.is_available() for loader in self.loaders)

    def load(self) -> Dict[str, Any]:
        merged_config: Dict[str, Any] = {}

        for loader in self.loaders:
            if loader.is_available():
                merged_config = self._deep_merge(merged_config, loader.load())
                logger.debug("合并配置: %s", type(loader).__name__)

        return merged_config

    def _deep_merge(
        self, base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


class ConfigParser:
    """配置解析器

    将原始配置数据转换为 Settings 对象。某一部分无效时该部分回退到默认值，
    其余部分照常生效。
    """

    @staticmethod
    def parse(config_data: Dict[str, Any]) -> Settings:
        timing = ConfigParser._parse_timing_config(config_data.get("timing") or {})
        storage = ConfigParser._parse_storage_config(config_data.get("storage") or {})

        top_level = {
            key: config_data[key]
            for key in ("shutdown_grace_seconds", "log_level")
            if key in config_data
        }
        try:
            settings = Settings(timing=timing, storage=storage, **top_level)
        except ValidationError as e:
            logger.error("配置解析失败，使用默认顶层配置: %s", e)
            settings = Settings(timing=timing, storage=storage)

        from .validators import validate_settings

        validation_result = validate_settings(settings)
        if not validation_result.is_valid:
            logger.error("配置验证失败，但仍将使用该配置")

        return settings

    @staticmethod
    def _parse_timing_config(timing_data: Dict[str, Any]) -> TimingConfig:
        try:
            return TimingConfig(**timing_data)
        except (ValidationError, TypeError) as e:
            logger.warning("调度时间配置解析失败，使用默认配置: %s", e)
            return TimingConfig()

    @staticmethod
    def _parse_storage_config(storage_data: Dict[str, Any]) -> StorageConfig:
        try:
            return StorageConfig(**storage_data)
        except (ValidationError, TypeError) as e:
            logger.warning("存储配置解析失败，使用默认配置: %s", e)
            return StorageConfig()


def create_default_config_loader() -> CompositeConfigLoader:
    """创建默认的配置加载器

    按优先级顺序：默认配置 < YAML文件 < 环境变量
    """
    loaders = [
        DefaultConfigLoader(),  # 最低优先级
        YamlConfigLoader(),  # 中等优先级
        EnvironmentConfigLoader(),  # 最高优先级
    ]

    return CompositeConfigLoader(loaders)
