"""数据模型与共享数据库资源"""

from .database import Database
from .module_metadata import Base, ModuleMetadata

__all__ = ["Base", "Database", "ModuleMetadata"]
