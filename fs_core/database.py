"""
数据库引擎与会话

SqlDocumentStore 只需要两种会话：只读查询，以及一次提交的写事务
（SELECT ... FOR UPDATE + 版本号检查 + UPDATE）。
"""
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fs_core.config import Settings, get_settings
from fs_core.models.base import Base
from fs_core.utils.logger import get_logger

logger = get_logger(__name__)

MAX_LOGGED_STATEMENT = 500


def watch_slow_queries(engine: Engine, threshold_ms: int) -> None:
    """超过阈值的语句记一条 warning（不记录参数，里面是文档内容）"""

    @event.listens_for(engine, "before_cursor_execute")
    def _started(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("fs_query_started", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _finished(conn, cursor, statement, parameters, context, executemany):
        started = conn.info.get("fs_query_started")
        if not started:
            return
        duration_ms = (time.perf_counter() - started.pop()) * 1000
        if duration_ms >= threshold_ms:
            logger.warning(
                "Slow query",
                duration_ms=round(duration_ms, 1),
                statement=" ".join(statement.split())[:MAX_LOGGED_STATEMENT],
            )


class DatabaseManager:
    """documents 表所在数据库的连接管理"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.settings.database_url,
                pool_size=self.settings.db_pool_size,
                max_overflow=self.settings.db_max_overflow,
                pool_pre_ping=True,
                echo=self.settings.db_echo,
            )
            watch_slow_queries(self._engine.sync_engine, self.settings.db_slow_query_ms)
            logger.info(
                "Database engine created",
                host=self.settings.db_host,
                database=self.settings.db_name,
            )
        return self._engine

    @property
    def sessions(self) -> async_sessionmaker:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._sessions

    @asynccontextmanager
    async def read_session(self) -> AsyncGenerator[AsyncSession, None]:
        """只读会话，不提交"""
        async with self.sessions() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """写事务：正常退出时提交，异常时回滚"""
        async with self.sessions() as session:
            async with session.begin():
                yield session

    async def create_tables(self) -> None:
        """建表（测试用，生产环境走 alembic）"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def check_connection(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Database is not reachable", host=self.settings.db_host, err=str(e))
            return False
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """获取数据库管理器单例"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager
