"""Media item, review and collection contracts used by importers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

MediaLot = Literal[
    "AudioBook",
    "Anime",
    "Book",
    "Podcast",
    "Manga",
    "Movie",
    "Show",
    "VideoGame",
    "VisualNovel",
]
MetadataSource = Literal[
    "Anilist",
    "Audible",
    "Custom",
    "GoogleBooks",
    "Igdb",
    "Itunes",
    "Listennotes",
    "Mal",
    "MangaUpdates",
    "Openlibrary",
    "Tmdb",
    "Vndb",
]


class MediaDetails(BaseModel):
    """Fully resolved metadata that can be committed without a provider lookup."""

    identifier: str
    lot: MediaLot
    source: MetadataSource
    title: str
    description: str | None = None
    publish_year: int | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("identifier", "title")
    @classmethod
    def validate_non_empty(cls, value: str, info: Any) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(f"{info.field_name} must not be empty")
        return cleaned


class NeedsDetails(BaseModel):
    kind: Literal["needs_details"] = "needs_details"
    identifier: str


class AlreadyFilled(BaseModel):
    kind: Literal["already_filled"] = "already_filled"
    details: MediaDetails


ItemIdentifier = Annotated[NeedsDetails | AlreadyFilled, Field(discriminator="kind")]


class ImportOrExportMediaItemSeen(BaseModel):
    progress: int | None = Field(default=None, ge=0, le=100)
    started_on: datetime | None = None
    ended_on: datetime | None = None
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None


class ImportOrExportItemReview(BaseModel):
    date: datetime | None = None
    spoiler: bool | None = None
    text: str | None = None


class ImportOrExportItemRating(BaseModel):
    review: ImportOrExportItemReview | None = None
    # Always on the 0-100 scale; converted to the user's scale on import.
    rating: Decimal | None = Field(default=None, ge=0, le=100)
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None


class ImportOrExportMediaItem(BaseModel):
    source_id: str
    lot: MediaLot
    source: MetadataSource
    internal_identifier: ItemIdentifier
    seen_history: list[ImportOrExportMediaItemSeen] = Field(default_factory=list)
    reviews: list[ImportOrExportItemRating] = Field(default_factory=list)
    collections: list[str] = Field(default_factory=list)

    @property
    def richness(self) -> int:
        return len(self.seen_history) + len(self.reviews) + len(self.collections)


class CreateOrUpdateCollectionInput(BaseModel):
    name: str
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("collection name must not be empty")
        return cleaned


class ChangeCollectionToEntityInput(BaseModel):
    collection_name: str
    metadata_id: int


class ProgressUpdateInput(BaseModel):
    metadata_id: int
    progress: int = Field(default=100, ge=0, le=100)
    finished_on: date | None = None
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None


class PostReviewInput(BaseModel):
    metadata_id: int
    rating: Decimal | None = None
    text: str | None = None
    spoiler: bool | None = None
    date: datetime | None = None
    show_season_number: int | None = None
    show_episode_number: int | None = None
    podcast_episode_number: int | None = None
