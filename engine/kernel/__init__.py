"""
Folio Kernel — portfolio document editing and synchronization.

Pure pieces:
  hydrator        — raw record → complete document (idempotent)
  lenses          — nested edits → single top-level partials
  theme_transfer  — theme descriptor extraction / application
  generator       — starter documents

Coordinating pieces (IO only through engine.kernel.storage interfaces):
  session         — optimistic edits + live subscription, or guest snapshots
  identity        — owner resolution and editor routes
  guest_store     — client-local guest snapshots
  migration       — guest snapshots → account documents
  assets          — upload / library / AI image into one field
"""

from engine.kernel.assets import AssetPipelineCoordinator, asset_key
from engine.kernel.generator import new_document
from engine.kernel.guest_store import GuestSessionStore
from engine.kernel.hydrator import hydrate, infer_mode
from engine.kernel.identity import IdentityResolver, canonical_editor_path, parse_editor_path
from engine.kernel.migration import MigrationAgent, MigrationReport
from engine.kernel.session import EditorSession
from engine.kernel.theme_transfer import apply_theme, extract_theme, theme_summary
from engine.kernel.types import GUEST_OWNER, AIUsage, Identity, Mode, OwnerRef

__all__ = [
    "hydrate",
    "infer_mode",
    "new_document",
    "EditorSession",
    "GuestSessionStore",
    "IdentityResolver",
    "parse_editor_path",
    "canonical_editor_path",
    "MigrationAgent",
    "MigrationReport",
    "AssetPipelineCoordinator",
    "asset_key",
    "extract_theme",
    "apply_theme",
    "theme_summary",
    "GUEST_OWNER",
    "AIUsage",
    "Identity",
    "Mode",
    "OwnerRef",
]
