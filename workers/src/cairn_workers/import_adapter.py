"""Source adapter interface and the canonical import result.

An adapter turns one provider's export payload into an ImportResult. It is
a pure transform: the only outside data it sees is the read-only lookup in
ImportContext. A payload that cannot be decoded at all raises ParseError;
items that decode badly are reported in ``failed_items`` instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Protocol

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .fitness_contract import WorkoutInput
from .media_contract import CreateOrUpdateCollectionInput, ImportOrExportMediaItem, MediaLot

ImportSource = Literal["strong_app", "media_json"]

ImportFailStep = Literal[
    # Failed to get details from the source export itself
    "ItemDetailsFromSource",
    # Failed to get metadata from the catalog provider
    "MediaDetailsFromProvider",
    # Failed to transform the data into the required format
    "InputTransformation",
    "SeenHistoryConversion",
    "ReviewConversion",
    # Replaying an imported workout through the commit engine failed
    "WorkoutCommit",
]

WORKOUT_SOURCES: frozenset[str] = frozenset({"strong_app"})


class StrongAppImportMapping(BaseModel):
    source_name: str
    target_name: str

    @field_validator("source_name", "target_name")
    @classmethod
    def strip_names(cls, value: str, info: Any) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(f"{info.field_name} must not be empty")
        return cleaned


class StrongAppImportInput(BaseModel):
    source: Literal["strong_app"] = "strong_app"
    # CSV contents of the export file.
    export: str
    mapping: list[StrongAppImportMapping] = Field(default_factory=list)


class MediaJsonImportInput(BaseModel):
    source: Literal["media_json"] = "media_json"
    # JSON contents of the export file.
    export: str


DeployImportJobInput = Annotated[
    StrongAppImportInput | MediaJsonImportInput,
    Field(discriminator="source"),
]

_deploy_input_adapter: TypeAdapter[Any] = TypeAdapter(DeployImportJobInput)


def parse_deploy_input(raw: Mapping[str, Any]) -> StrongAppImportInput | MediaJsonImportInput:
    """Validate a raw job payload into its source-specific variant."""
    return _deploy_input_adapter.validate_python(dict(raw))


class ImportFailedItem(BaseModel):
    lot: MediaLot | None = None
    step: ImportFailStep
    identifier: str
    error: str | None = None


class ImportResult(BaseModel):
    collections: list[CreateOrUpdateCollectionInput] = Field(default_factory=list)
    media: list[ImportOrExportMediaItem] = Field(default_factory=list)
    failed_items: list[ImportFailedItem] = Field(default_factory=list)
    workouts: list[WorkoutInput] = Field(default_factory=list)


class ImportDetails(BaseModel):
    total: int = 0


class ImportResultResponse(BaseModel):
    import_details: ImportDetails = Field(default_factory=ImportDetails)
    failed_items: list[ImportFailedItem] = Field(default_factory=list)
    error: dict[str, Any] | None = None


class ImportReport(BaseModel):
    id: int
    user_id: int
    source: ImportSource
    started_on: datetime
    finished_on: datetime | None = None
    success: bool | None = None
    details: ImportResultResponse | None = None


@dataclass(frozen=True)
class ImportContext:
    """Read-only catalog data an adapter may consult."""

    exercise_ids_by_name: Mapping[str, int] = field(default_factory=dict)


class ImportAdapter(Protocol):
    """Stable source adapter interface."""

    source: ImportSource

    def adapt(self, job_input: BaseModel, context: ImportContext) -> ImportResult: ...


class BaseImportAdapter(ABC):
    """Base adapter that checks the job input variant before mapping."""

    source: ImportSource
    input_model: type[BaseModel]

    def adapt(self, job_input: BaseModel, context: ImportContext) -> ImportResult:
        if not isinstance(job_input, self.input_model):
            raise TypeError(
                f"{type(self).__name__} expects {self.input_model.__name__}, "
                f"got {type(job_input).__name__}"
            )
        return self.map_export(job_input, context)

    @abstractmethod
    def map_export(self, job_input: Any, context: ImportContext) -> ImportResult:
        """Map the provider export into the canonical import result."""
