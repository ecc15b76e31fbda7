#!/usr/bin/env python3
"""
Seed the database with sample videos and sync them into the search index.
"""

import asyncio
import logging
from datetime import datetime, timedelta

import click

from libs.common.config import get_settings
from libs.common.database import DatabaseManager
from libs.search.errors import IndexUnavailableError
from libs.search.index import ENGINE_ERRORS, VideoIndex
from libs.search.store import VideoStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_VIDEOS = [
    {
        "title": "React Tutorial for Beginners",
        "description": "Learn React from scratch: components, props, state and hooks.",
        "url": "https://videos.example.com/react-beginners.mp4",
        "duration": 1500,
        "category": "education",
        "uploader_name": "Code Academy",
        "view_count": 15420,
        "file_size": 524288000,
        "resolution": "1080p",
        "days_ago": 30,
        "tags": ["react", "javascript", "frontend"],
    },
    {
        "title": "Advanced React Patterns with TypeScript",
        "description": "Compound components, render props and typed hooks in a React tutorial for experienced developers.",
        "url": "https://videos.example.com/react-typescript-patterns.mp4",
        "duration": 2400,
        "category": "education",
        "uploader_name": "Typed Dev",
        "view_count": 8210,
        "file_size": 838860800,
        "resolution": "4k",
        "days_ago": 5,
        "tags": ["react", "typescript", "patterns"],
    },
    {
        "title": "TypeScript in 10 Minutes",
        "description": "A quick tour of the TypeScript type system.",
        "url": "https://videos.example.com/typescript-10-min.mp4",
        "duration": 600,
        "category": "education",
        "uploader_name": "Typed Dev",
        "view_count": 30110,
        "file_size": 157286400,
        "resolution": "720p",
        "days_ago": 60,
        "tags": ["typescript"],
    },
    {
        "title": "Street Food Tour of Bangkok",
        "description": "Eating our way through night markets.",
        "url": "https://videos.example.com/bangkok-food.mp4",
        "duration": 1320,
        "category": "travel",
        "uploader_name": "Wander Eats",
        "view_count": 99002,
        "file_size": 734003200,
        "resolution": "4k",
        "days_ago": 12,
        "tags": ["food", "thailand", "travel"],
    },
    {
        "title": "Five Minute Morning Stretch",
        "description": "A short routine to start the day.",
        "url": "https://videos.example.com/morning-stretch.mp4",
        "duration": 290,
        "category": "fitness",
        "uploader_name": "Move Daily",
        "view_count": 4500,
        "file_size": 52428800,
        "resolution": "1080p",
        "days_ago": 2,
        "tags": ["yoga", "morning"],
    },
]


async def seed(database_url: str, with_index: bool) -> None:
    db_manager = DatabaseManager(database_url)
    await db_manager.create_tables()
    store = VideoStore(db_manager)
    index = VideoIndex.from_settings(get_settings()) if with_index else None

    try:
        now = datetime.utcnow()
        for sample in SAMPLE_VIDEOS:
            data = dict(sample)
            data["upload_date"] = now - timedelta(days=data.pop("days_ago"))
            video = await store.create(data)
            logger.info(f"Inserted video {video.id}: {video.title}")

            if index is not None:
                try:
                    await index.index_document(video)
                except ENGINE_ERRORS as e:
                    logger.warning(f"Could not index video {video.id}: {e}")
    finally:
        if index is not None:
            await index.close()
        await db_manager.close()


async def reindex(database_url: str) -> int:
    """Push every database video into the index"""

    db_manager = DatabaseManager(database_url)
    store = VideoStore(db_manager)
    index = VideoIndex.from_settings(get_settings())
    count = 0

    try:
        await index.ensure_index()
        async for batch in store.iter_all():
            for video in batch:
                await index.index_document(video, refresh="false")
                count += 1
            logger.info(f"Indexed {count} videos so far")
    except ENGINE_ERRORS as e:
        raise IndexUnavailableError(f"Reindex stopped after {count} videos: {e}") from e
    finally:
        await index.close()
        await db_manager.close()

    return count


@click.group()
def cli():
    """Sample data and index maintenance"""
    pass


@cli.command("seed")
@click.option("--database-url", default=None, help="Database URL (defaults to settings)")
@click.option("--index/--no-index", "with_index", default=True, help="Also index the seeded videos")
def seed_command(database_url, with_index):
    """Insert the sample videos"""
    asyncio.run(seed(database_url or get_settings().database.url, with_index))
    click.echo(f"Seeded {len(SAMPLE_VIDEOS)} videos")


@cli.command("reindex")
@click.option("--database-url", default=None, help="Database URL (defaults to settings)")
def reindex_command(database_url):
    """Rebuild the search index from the database"""
    count = asyncio.run(reindex(database_url or get_settings().database.url))
    click.echo(f"Indexed {count} videos")


if __name__ == "__main__":
    cli()
