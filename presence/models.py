from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class TZDatetime(TypeDecorator):
    """Custom DateTime type that ensures timezone-aware datetimes."""

    impl = DateTime(timezone=True)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            raise ValueError(
                "Naive datetime is not allowed. Please provide a timezone-aware datetime."
            )
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            # Assume UTC if no timezone info is present
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


class DynamicConfig(Base):
    """Dynamic configuration table for runtime-mutable settings."""

    __tablename__ = "dynamic_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    module_name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    config_data: Mapped[dict] = mapped_column(JSON)
    config_schema_version: Mapped[str] = mapped_column(String(50))
    updated_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=lambda: datetime.now(timezone.utc)
    )


class Player(Base):
    """One record per player identity. Never deleted.

    ``active_session_started_at`` is non-null iff the player is online.
    """

    __tablename__ = "player"
    __table_args__ = (
        Index("idx_player_display_name", "display_name"),
        Index("idx_player_last_seen", "last_seen_at"),
        Index("idx_player_cumulative_online", "cumulative_online_ms"),
    )

    uuid: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(16))
    first_seen_at: Mapped[datetime] = mapped_column(TZDatetime())
    last_seen_at: Mapped[datetime] = mapped_column(TZDatetime())
    cumulative_online_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    active_session_started_at: Mapped[Optional[datetime]] = mapped_column(
        TZDatetime(), nullable=True
    )

    @property
    def is_online(self) -> bool:
        return self.active_session_started_at is not None


# Pydantic models for response serialization
class PlayerPublic(BaseModel):
    """Player record as exposed over the API."""

    uuid: str
    display_name: str
    first_seen_at: datetime
    last_seen_at: datetime
    cumulative_online_ms: int
    session_count: int
    active_session_started_at: Optional[datetime] = None
    is_online: bool
    formatted_playtime: str
    avatar_url: str
