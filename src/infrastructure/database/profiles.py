"""Connection profiles describing which store a pool connects to.

A profile is either a networked server (PostgreSQL through asyncpg) or a
local embedded file (SQLite through aiosqlite). Profiles are immutable; a
pool is built from exactly one profile and never reconfigured.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import URL

NETWORK_DRIVER = "postgresql+asyncpg"
LOCAL_DRIVER = "sqlite+aiosqlite"


class NetworkProfile(BaseModel):
    """Connection details for a networked database server."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(min_length=1)
    username: str
    password: str = Field(default="", repr=False)

    def url(self) -> URL:
        """Build the SQLAlchemy URL for this server."""
        return URL.create(
            NETWORK_DRIVER,
            username=self.username,
            password=self.password or None,
            host=self.address,
            port=self.port,
            database=self.database,
        )


class LocalProfile(BaseModel):
    """Location of a local embedded database file."""

    model_config = ConfigDict(frozen=True)

    file_path: Path

    def url(self) -> URL:
        """Build the SQLAlchemy URL for this file."""
        return URL.create(LOCAL_DRIVER, database=str(self.file_path))


type ConnectionProfile = NetworkProfile | LocalProfile
