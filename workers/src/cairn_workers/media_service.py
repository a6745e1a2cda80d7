"""Media persistence gateway used by the import pipeline's media path."""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .catalog_client import CatalogClient
from .errors import ExternalResolutionError, NotFoundError
from .media_contract import (
    ChangeCollectionToEntityInput,
    CreateOrUpdateCollectionInput,
    MediaDetails,
    MediaLot,
    MetadataSource,
    PostReviewInput,
    ProgressUpdateInput,
)

logger = logging.getLogger(__name__)


class MediaService(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[Any]: ...

    async def resolve_or_create(
        self, lot: MediaLot, source: MetadataSource, identifier: str
    ) -> int: ...

    async def commit_known(self, details: MediaDetails) -> int: ...

    async def create_or_update_collection(
        self, user_id: int, collection: CreateOrUpdateCollectionInput
    ) -> int: ...

    async def add_entity_to_collection(
        self, user_id: int, change: ChangeCollectionToEntityInput
    ) -> None: ...

    async def progress_update(self, user_id: int, update: ProgressUpdateInput) -> None: ...

    async def post_review(self, user_id: int, review: PostReviewInput) -> None: ...


class PostgresMediaService:
    """MediaService over the job connection; provider lookups go through the catalog."""

    def __init__(
        self,
        conn: psycopg.AsyncConnection[Any],
        catalog: CatalogClient | None = None,
    ) -> None:
        self.conn = conn
        self.catalog = catalog

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        # A savepoint inside the job transaction; a failed statement only
        # poisons its own item.
        return self.conn.transaction()

    async def _find_metadata(
        self, lot: str, source: str, identifier: str
    ) -> int | None:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id
                FROM metadata
                WHERE lot = %s
                  AND source = %s
                  AND identifier = %s
                """,
                (lot, source, identifier),
            )
            row = await cur.fetchone()
        return int(row["id"]) if row is not None else None

    async def resolve_or_create(
        self, lot: MediaLot, source: MetadataSource, identifier: str
    ) -> int:
        existing = await self._find_metadata(lot, source, identifier)
        if existing is not None:
            return existing
        if self.catalog is None:
            raise ExternalResolutionError(
                f"No catalog configured to resolve {source}:{identifier}",
                field="identifier",
                docs_hint="Set CAIRN_CATALOG_URL to enable provider lookups.",
            )
        details = await self.catalog.fetch_details(lot, source, identifier)
        return await self.commit_known(details)

    async def commit_known(self, details: MediaDetails) -> int:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO metadata (
                    lot, source, identifier, title, description, publish_year, extra
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (lot, source, identifier) DO UPDATE
                SET title = EXCLUDED.title,
                    description = COALESCE(EXCLUDED.description, metadata.description),
                    publish_year = COALESCE(EXCLUDED.publish_year, metadata.publish_year),
                    extra = metadata.extra || EXCLUDED.extra
                RETURNING id
                """,
                (
                    details.lot,
                    details.source,
                    details.identifier,
                    details.title,
                    details.description,
                    details.publish_year,
                    Json(details.extra),
                ),
            )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError(f"metadata upsert returned no row for {details.identifier}")
        return int(row["id"])

    async def create_or_update_collection(
        self, user_id: int, collection: CreateOrUpdateCollectionInput
    ) -> int:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO collections (user_id, name, description)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, name) DO UPDATE
                SET description = COALESCE(EXCLUDED.description, collections.description)
                RETURNING id
                """,
                (user_id, collection.name, collection.description),
            )
            row = await cur.fetchone()
        if row is None:
            raise RuntimeError(f"collection upsert returned no row for {collection.name!r}")
        return int(row["id"])

    async def add_entity_to_collection(
        self, user_id: int, change: ChangeCollectionToEntityInput
    ) -> None:
        async with self.conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                "SELECT id FROM collections WHERE user_id = %s AND name = %s",
                (user_id, change.collection_name),
            )
            row = await cur.fetchone()
            if row is None:
                raise NotFoundError(
                    f"Collection {change.collection_name!r} not found",
                    field="collection_name",
                )
            await cur.execute(
                """
                INSERT INTO collection_to_entity (collection_id, metadata_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """,
                (row["id"], change.metadata_id),
            )

    async def progress_update(self, user_id: int, update: ProgressUpdateInput) -> None:
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO seen (
                    user_id, metadata_id, progress, finished_on,
                    show_season_number, show_episode_number, podcast_episode_number
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    user_id,
                    update.metadata_id,
                    update.progress,
                    update.finished_on,
                    update.show_season_number,
                    update.show_episode_number,
                    update.podcast_episode_number,
                ),
            )

    async def post_review(self, user_id: int, review: PostReviewInput) -> None:
        async with self.conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO reviews (
                    user_id, metadata_id, rating, text, spoiler, posted_on,
                    show_season_number, show_episode_number, podcast_episode_number
                )
                VALUES (%s, %s, %s, %s, COALESCE(%s, FALSE), COALESCE(%s, NOW()), %s, %s, %s)
                """,
                (
                    user_id,
                    review.metadata_id,
                    review.rating,
                    review.text,
                    review.spoiler,
                    review.date,
                    review.show_season_number,
                    review.show_episode_number,
                    review.podcast_episode_number,
                ),
            )
