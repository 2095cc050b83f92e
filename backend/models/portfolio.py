"""Portfolio request and response models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from engine.kernel.types import Mode


class CreatePortfolioRequest(BaseModel):
    """What the client sends to create a portfolio."""

    model_config = {"extra": "forbid"}

    prompt: str | None = Field(default=None, max_length=2000)
    title: str | None = Field(default=None, max_length=200)
    template_id: str | None = Field(default=None, max_length=100)
    mode: Mode | None = None


class PortfolioSummary(BaseModel):
    """One row of the portfolio list."""

    id: str
    title: str
    mode: str
    template_id: str
    updated_at: int

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> PortfolioSummary:
        return cls(
            id=doc["id"],
            title=doc["title"],
            mode=doc["mode"],
            template_id=doc["templateId"],
            updated_at=doc["updatedAt"],
        )


class EditorResponse(BaseModel):
    """A hydrated document plus where the editor should be addressed."""

    document: dict[str, Any]
    owner: Literal["self", "other", "guest"]
    canonical_path: str | None = None


class UpdateRequest(BaseModel):
    """Top-level partial merge."""

    model_config = {"extra": "forbid"}

    fields: dict[str, Any] = Field(min_length=1)


class SetFieldRequest(BaseModel):
    """Nested assignment, e.g. path="projects.p2.thumbnailUrl"."""

    model_config = {"extra": "forbid"}

    path: str = Field(min_length=1, max_length=300)
    value: Any = None


class EntryOperationRequest(BaseModel):
    """Insert, update, replace, remove or move one entry of a list section."""

    model_config = {"extra": "forbid"}

    op: Literal["insert", "update", "replace", "remove", "move"]
    list_path: str = Field(min_length=1, max_length=200)
    entry_id: str | None = None
    fields: dict[str, Any] | None = None
    entry: dict[str, Any] | None = None
    index: int | None = None


class ThemeImportRequest(BaseModel):
    """Borrow the theme of another of the caller's documents."""

    model_config = {"extra": "forbid"}

    source_id: str


class ThemeImportResponse(BaseModel):
    descriptor: dict[str, Any]
    summary: str
    document: dict[str, Any]


class UploadAssetRequest(BaseModel):
    """Image upload. data is the file, base64-encoded."""

    model_config = {"extra": "forbid"}

    path: str = Field(min_length=1, max_length=300)
    filename: str = Field(min_length=1, max_length=255)
    content_type: str | None = None
    data: str = Field(min_length=1)


class LibraryAssetRequest(BaseModel):
    model_config = {"extra": "forbid"}

    path: str = Field(min_length=1, max_length=300)
    url: str = Field(min_length=1, max_length=2000)


class GenerateImageRequest(BaseModel):
    model_config = {"extra": "forbid"}

    path: str = Field(min_length=1, max_length=300)
    prompt: str = Field(min_length=1, max_length=2000)
    source_image: str | None = None


class AssetResponse(BaseModel):
    path: str
    reference: str | None
    document: dict[str, Any]


class MigrationResponse(BaseModel):
    migrated: dict[str, str]
    failed: list[str]
