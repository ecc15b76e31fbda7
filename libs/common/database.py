# Copyright (c) 2024 Video Catalog Platform
# Licensed under the MIT License

"""Database models, connection management, and schema utilities."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict

import click
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

logger = logging.getLogger(__name__)

Base = declarative_base()


# Association between videos and tags
video_tags = Table(
    "video_tags",
    Base.metadata,
    Column("video_id", Integer, ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_video_tags_tag", "tag_id"),
)


# Database Models
class Video(Base):
    """Canonical video metadata record"""

    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Content
    title = Column(String(255), nullable=False)
    description = Column(Text)
    url = Column(String(1000), nullable=False)
    thumbnail_url = Column(String(1000))

    # Metadata
    duration = Column(Integer, nullable=False)  # seconds
    category = Column(String(100), nullable=False)
    upload_date = Column(DateTime, nullable=False, default=func.now())
    uploader_name = Column(String(200), nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    file_size = Column(BigInteger, default=0, nullable=False)  # bytes
    resolution = Column(String(20), nullable=False)  # 720p, 1080p, 4k

    # Timestamps
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    tags = relationship("Tag", secondary=video_tags, back_populates="videos", order_by="Tag.name")

    __table_args__ = (
        Index("idx_videos_category", "category"),
        Index("idx_videos_upload_date", "upload_date"),
        Index("idx_videos_duration", "duration"),
        Index("idx_videos_view_count", "view_count"),
    )

    @property
    def tag_names(self) -> list:
        return [tag.name for tag in self.tags]


class Tag(Base):
    """Free-form label attached to videos"""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)

    videos = relationship("Video", secondary=video_tags, back_populates="tags")


class SearchHistory(Base):
    """One row per executed search, append-only"""

    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query = Column(String(500), nullable=False, default="")
    filters = Column(JSON)  # SearchFilterBlob
    result_count = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Float, nullable=False, default=0.0)
    fallback = Column(Boolean, nullable=False, default=False)
    from_cache = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        Index("idx_search_history_query", "query"),
        Index("idx_search_history_created", "created_at"),
    )


class SavedSearch(Base):
    """Named snapshot of a query and its filters"""

    __tablename__ = "saved_searches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    query = Column(String(500), nullable=False, default="")
    filters = Column(JSON)  # SearchFilterBlob

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_saved_searches_name", "name"),
        Index("idx_saved_searches_updated", "updated_at"),
    )


# Database Connection Management
class DatabaseManager:
    """Manages database connections and sessions"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if self.is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url:
                # Every session must see the same in-memory database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(
                pool_size=20,
                max_overflow=30,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session context manager that rolls back on error"""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session (FastAPI dependency style)"""
        async with self.session() as session:
            yield session

    async def create_tables(self) -> None:
        """Create all database tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all database tables"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """Close database connections"""
        await self.engine.dispose()


# CLI Commands
@click.group()
def cli():
    """Database management commands"""
    pass


@cli.command("create-tables")
@click.option("--database-url", required=True, help="Database URL")
def create_tables(database_url: str):
    """Create all database tables"""
    async def _create():
        manager = DatabaseManager(database_url)
        await manager.create_tables()
        await manager.close()
        click.echo("Tables created successfully")

    asyncio.run(_create())


@cli.command("drop-tables")
@click.option("--database-url", required=True, help="Database URL")
@click.confirmation_option(prompt="Drop every table, including search history?")
def drop_tables(database_url: str):
    """Drop all database tables"""
    async def _drop():
        manager = DatabaseManager(database_url)
        await manager.drop_tables()
        await manager.close()
        click.echo("Tables dropped successfully")

    asyncio.run(_drop())


if __name__ == "__main__":
    cli()
