"""
Pydantic models for Folio.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.portfolio import (
    AssetResponse,
    CreatePortfolioRequest,
    EditorResponse,
    EntryOperationRequest,
    GenerateImageRequest,
    LibraryAssetRequest,
    MigrationResponse,
    PortfolioSummary,
    SetFieldRequest,
    ThemeImportRequest,
    ThemeImportResponse,
    UpdateRequest,
    UploadAssetRequest,
)
from backend.models.user import AIUsagePublic, User, UserPublic

__all__ = [
    # User models
    "User",
    "UserPublic",
    "AIUsagePublic",
    # Portfolio models
    "CreatePortfolioRequest",
    "PortfolioSummary",
    "EditorResponse",
    "UpdateRequest",
    "SetFieldRequest",
    "EntryOperationRequest",
    "ThemeImportRequest",
    "ThemeImportResponse",
    "UploadAssetRequest",
    "LibraryAssetRequest",
    "GenerateImageRequest",
    "AssetResponse",
    "MigrationResponse",
]
