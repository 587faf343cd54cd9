"""
Database configuration settings.

Connection parameters for the PostgreSQL database holding the job store,
the content store and the read-only catalog tables.

Dependencies: pydantic, pydantic_settings, sqlalchemy
System role: Store connection configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict
from sqlalchemy.engine import URL

from batchgen.configs.base import BaseSettings


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection and pool configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="POSTGRES_",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL user")
    password: str = Field(default="postgres", description="PostgreSQL password")
    db: str = Field(default="batchgen", description="Database name")
    ssl: bool = Field(default=False, description="Require TLS (asyncpg ssl=require)")

    url: str | None = Field(
        default=None,
        description="Complete SQLAlchemy async URL; wins over the discrete fields",
    )

    pool_size: int = Field(default=10, description="Persistent pool connections")
    max_overflow: int = Field(default=20, description="Connections allowed above pool_size")
    pool_timeout: int = Field(default=30, description="Seconds to wait for a free connection")
    pool_recycle_seconds: int = Field(
        default=1800,
        description="Recycle connections older than this",
    )
    echo_sql: bool = Field(default=False, description="Log every SQL statement")

    @property
    def async_database_url(self) -> str:
        """SQLAlchemy URL for the asyncpg driver (or the configured override)."""
        if self.url:
            return self.url
        return URL.create(
            "postgresql+asyncpg",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.db,
            query={"ssl": "require"} if self.ssl else {},
        ).render_as_string(hide_password=False)
