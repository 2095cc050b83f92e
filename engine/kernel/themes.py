"""
Folio Kernel — Link-in-bio visual themes

Registry of the visual themes a link-in-bio page can select through
`linkInBio.themeId` (or, on older records, directly through `templateId`).
Only the fields the kernel needs are kept here: identity, colors and fonts.
The rendering layer owns the rest of each theme's definition.
"""

from __future__ import annotations

from dataclasses import dataclass

# Structural link-in-bio layouts. A record whose templateId is one of these
# is a link-in-bio page even if it never stored a mode.
LINK_IN_BIO_TEMPLATE_IDS: frozenset[str] = frozenset(
    {
        "linktree_minimal",
        "linktree_visual",
        "linktree_corporate",
        "linktree_bento",
    }
)


@dataclass(frozen=True)
class LinkTheme:
    id: str
    name: str
    category: str
    background: str  # CSS background: color, gradient or url()
    text: str
    subtext: str
    accent: str
    button_text: str | None = None
    heading_font: str = "Inter, sans-serif"
    body_font: str = "Inter, sans-serif"

    @property
    def solid_background(self) -> str | None:
        """The background as a plain color, or None for gradients/images."""
        return self.background if is_solid_color(self.background) else None


def is_solid_color(value: str | None) -> bool:
    """True for a plain CSS color; False for gradients and url() images."""
    if not value:
        return False
    lowered = value.lower()
    return "gradient" not in lowered and "url(" not in lowered


_THEMES: tuple[LinkTheme, ...] = (
    # standard
    LinkTheme("air", "Air", "minimal", "#ffffff", "#1a1a1a", "#666666", "#000000", "#ffffff"),
    LinkTheme(
        "mineral", "Mineral", "minimal", "#F3F4F6", "#374151", "#6B7280", "#059669", "#374151",
        heading_font="Georgia, serif",
    ),
    LinkTheme(
        "twilight", "Twilight", "gradient", "linear-gradient(to bottom, #2e1065, #1e1b4b)",
        "#ffffff", "#c4b5fd", "#a78bfa",
    ),
    LinkTheme(
        "abstract_fluid", "Abstract Fluid", "abstract", "linear-gradient(45deg, #4f46e5, #ec4899)",
        "#ffffff", "#fce7f3", "#f472b6",
    ),
    LinkTheme("wavy_bakery", "Wavy Bakery", "image", "#92400e", "#fff7ed", "#fed7aa", "#b45309"),
    LinkTheme("beach_sunset", "Beach Sunset", "image", "#f97316", "#ffffff", "#ffedd5", "#ea580c"),
    LinkTheme("mountain_peak", "Mountain Peak", "image", "#1f2937", "#ffffff", "#d1d5db", "#3b82f6"),
    LinkTheme("forest_mist", "Forest Mist", "image", "#14532d", "#f0fdf4", "#bbf7d0", "#22c55e"),
    LinkTheme("ocean_depth", "Ocean Depth", "image", "#0c4a6e", "#ffffff", "#bae6fd", "#0ea5e9"),
    LinkTheme("botanic_green", "Botanic Garden", "minimal", "#f0fdf4", "#166534", "#15803d", "#22c55e"),
    LinkTheme("aurora_mesh", "Aurora", "dark", "#000000", "#ffffff", "#a5b4fc", "#818cf8"),
    # creative
    LinkTheme("neo_pop", "Neo Pop", "abstract", "#fef08a", "#000000", "#1f2937", "#000000", "#ffffff"),
    LinkTheme("brutal_blueprint", "Blueprint", "abstract", "#2563eb", "#ffffff", "#dbeafe", "#ffffff", "#2563eb"),
    LinkTheme("stark_bw", "Stark B&W", "minimal", "#ffffff", "#000000", "#404040", "#000000", "#ffffff"),
    LinkTheme(
        "retro_term", "Terminal", "dark", "#0c0c0c", "#22c55e", "#16a34a", "#4ade80",
        heading_font="'Courier New', monospace", body_font="'Courier New', monospace",
    ),
    LinkTheme("paper_cut", "Paper Cut", "minimal", "#f3f4f6", "#1f2937", "#4b5563", "#ef4444"),
    LinkTheme("cyber_grid", "Cyber Grid", "dark", "#0f172a", "#22d3ee", "#67e8f9", "#f472b6"),
    # landing
    LinkTheme("grainy_lavender", "Lavender Dreams", "gradient", "#6366f1", "#ffffff", "#e0e7ff", "#a855f7"),
    LinkTheme("brutal_pink", "Bold Pink", "abstract", "#f472b6", "#000000", "#1f2937", "#000000"),
    LinkTheme("cosmic_purple", "Cosmic Night", "dark", "#1e1b4b", "#ffffff", "#c7d2fe", "#a78bfa"),
    LinkTheme("clean_air", "Clean Slate", "minimal", "#ffffff", "#1a1a1a", "#666666", "#000000"),
    # seasonal
    LinkTheme("neo_xmas", "Neo Xmas", "gradient", "#6366f1", "#ffffff", "#e0e7ff", "#a855f7"),
    LinkTheme("xmas_snow", "Winter Snow", "minimal", "#f0f9ff", "#0c4a6e", "#0369a1", "#0284c7"),
    # games
    LinkTheme("game_invaders", "Cosmic Invaders", "dark", "#0f172a", "#e2e8f0", "#94a3b8", "#00f0ff"),
    LinkTheme(
        "game_stacker", "Zen Stacker", "gradient", "linear-gradient(to bottom, #eef2ff, #c7d2fe)",
        "#1e1b4b", "#4338ca", "#6366f1",
    ),
)

THEMES: dict[str, LinkTheme] = {theme.id: theme for theme in _THEMES}


def get_theme(theme_id: str | None) -> LinkTheme | None:
    if not theme_id:
        return None
    return THEMES.get(theme_id)


def is_registered_theme(theme_id: str | None) -> bool:
    return bool(theme_id) and theme_id in THEMES
