"""
FleetStock Configuration Management
遵循约束：环境变量前缀 FS__
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, validator
from functools import lru_cache


class Settings(BaseSettings):
    """全局配置类"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FS__",
        case_sensitive=False
    )

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="fleetstock")
    db_user: str = Field(default="fleetstock")
    db_password: str = Field(default="")
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_echo: bool = Field(default=False)
    db_slow_query_ms: int = Field(default=100)

    # Redis（事件总线）
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)
    event_bus_enabled: bool = Field(default=False)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/fs/v1")
    api_title: str = Field(default="FleetStock API")
    api_version: str = Field(default="1.0.0")
    api_debug: bool = Field(default=False)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])

    # Monitoring
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text
    log_pii_masking: bool = Field(default=True)

    # 文档存储
    document_store: str = Field(default="sql")  # sql or memory
    inventory_collection: str = Field(default="inventory")
    incidents_collection: str = Field(default="incidents")

    # 恢复入库遇到版本冲突时的自动重试次数
    restore_conflict_retries: int = Field(default=1)

    @validator("api_prefix")
    def validate_api_prefix(cls, v):
        """确保 API 前缀符合规范"""
        if not v.startswith("/api/fs/"):
            raise ValueError("API prefix must start with /api/fs/")
        return v

    @validator("document_store")
    def validate_document_store(cls, v):
        if v not in ("sql", "memory"):
            raise ValueError("document_store must be 'sql' or 'memory'")
        return v

    @validator("restore_conflict_retries")
    def validate_restore_conflict_retries(cls, v):
        if v < 0:
            raise ValueError("restore_conflict_retries cannot be negative")
        return v

    @property
    def database_url(self) -> str:
        """构建数据库连接字符串"""
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def sync_database_url(self) -> str:
        """构建同步数据库连接字符串（用于 Alembic）"""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url(self) -> str:
        """构建 Redis 连接字符串"""
        password = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{password}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
