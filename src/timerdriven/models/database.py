"""共享数据库资源

所有定时驱动模块共享同一个 Database 实例。调度器通过它检查可用性，
并为每次模块调用开启一个工作单元（提交或回滚）。
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from ..errors import ResourceUnavailable, UnitOfWorkRolledBack
from .module_metadata import Base

logger = logging.getLogger("timerdriven.database")

_AVAILABILITY_POLL_SECONDS = 0.05


class Database:
    """数据库资源句柄

    - 使用线程本地的 scoped_session：同一线程内，工作单元与元数据仓库拿到的是同一个会话
    - 关闭后 `is_available` 返回 False，`unit_of_work` 抛出 ResourceUnavailable

    Attributes:
        db_path: SQLite 数据库文件路径
        engine: SQLAlchemy 引擎
        Session: 线程本地会话注册表
    """

    def __init__(self, db_path: str = "timerdriven.db", echo: bool = False):
        """初始化数据库资源

        Args:
            db_path: SQLite 数据库文件路径
            echo: 是否打印 SQL 语句
        """
        self.db_path = db_path
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        Base.metadata.create_all(self.engine, checkfirst=True)
        self.Session = scoped_session(sessionmaker(bind=self.engine))
        self._shut_down = threading.Event()
        # 每个线程的工作单元嵌套深度与回滚标记
        self._scope = threading.local()

        logger.info("数据库初始化完成: %s", db_path)

    @property
    def session(self) -> Session:
        """当前线程的会话（在工作单元内即为该工作单元的会话）"""
        return self.Session()

    def is_available(self, timeout: float = 0) -> bool:
        """检查数据库是否可用

        Args:
            timeout: 最多等待的秒数，0 表示只检查一次

        Returns:
            数据库是否可用；关闭后立即返回 False
        """
        deadline = time.monotonic() + max(0.0, timeout)
        while not self._shut_down.is_set():
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                return True
            except SQLAlchemyError as e:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("数据库不可用: %s", e)
                    return False
                self._shut_down.wait(min(_AVAILABILITY_POLL_SECONDS, remaining))
        return False

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """开启一个工作单元

        正常退出时提交，出现异常时回滚并重新抛出。
        同一线程内可以嵌套：内层与外层共用同一个会话，只有最外层负责提交、回滚和释放会话；
        内层失败后外层只能回滚。

        Raises:
            ResourceUnavailable: 数据库已关闭
            UnitOfWorkRolledBack: 内层工作单元失败，外层正常退出时回滚
        """
        if self._shut_down.is_set():
            raise ResourceUnavailable(f"数据库已关闭: {self.db_path}")

        scope = self._scope
        session = self.Session()
        if getattr(scope, "depth", 0) > 0:
            scope.depth += 1
            try:
                yield session
            except Exception:
                scope.rollback_only = True
                raise
            finally:
                scope.depth -= 1
            return

        scope.depth = 1
        scope.rollback_only = False
        try:
            yield session
            if scope.rollback_only:
                raise UnitOfWorkRolledBack("内层工作单元失败，事务已回滚")
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            scope.depth = 0
            scope.rollback_only = False
            self.Session.remove()

    def is_shut_down(self) -> bool:
        return self._shut_down.is_set()

    def shutdown(self) -> None:
        """关闭数据库资源（幂等）"""
        if self._shut_down.is_set():
            return
        self._shut_down.set()
        self.Session.remove()
        self.engine.dispose()
        logger.info("数据库已关闭: %s", self.db_path)
