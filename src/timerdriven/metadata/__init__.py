"""模块元数据持久化"""

from .repository import ModuleMetadataRepository, SqlModuleMetadataRepository

__all__ = ["ModuleMetadataRepository", "SqlModuleMetadataRepository"]
