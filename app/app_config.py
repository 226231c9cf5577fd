from __future__ import annotations

from pydantic_settings import BaseSettings


class ContentSettings(BaseSettings):
    """Limits and rendering options for user-authored content."""

    # Enforced by callers before rendering; the renderer accepts any length.
    MAX_COMMENT_LENGTH: int = 5_000
    MAX_POST_CONTENT_SIZE: int = 100_000
    MAX_TITLE_LENGTH: int = 200

    # Pygments style names for the two co-present code renderings.
    HIGHLIGHT_LIGHT_STYLE: str = "default"
    HIGHLIGHT_DARK_STYLE: str = "github-dark"

    # Trusted (admin) content is emitted unsanitized unless this is on.
    SANITIZE_TRUSTED_CONTENT: bool = False

    HIDDEN_COMMENT_PLACEHOLDER: str = "[removed]"

    LOG_LEVEL: str = "INFO"

    class Config:
        case_sensitive = False


content_settings = ContentSettings()
