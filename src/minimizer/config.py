"""
Configuration management using pydantic-settings.

Loads configuration from MINIMIZER_* environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional (all prefixed with MINIMIZER_):
        REPO_PATH: Git repository holding the published site
        BRANCH: Branch whose tree is transformed
        OUTPUT_DIR: Directory the transformed tree is checked out to
        STATE_DIR: Directory for the cache file and run manifests
        CACHE_FILE: Cache file location (defaults to STATE_DIR/cache.tsv); the
            transform options fingerprint is appended to its stem
        JOBS: Number of worker threads for document transforms
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_prefix="MINIMIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Source
    REPO_PATH: Path = Field(default=Path("."), description="Git repository path")
    BRANCH: str = Field(default="gh-pages", description="Branch to transform")

    # Directories
    OUTPUT_DIR: Path | None = Field(
        default=None, description="Checkout destination (replaced on every run)"
    )
    STATE_DIR: Path = Field(
        default=Path(".minimizer"), description="Cache and run manifest directory"
    )
    CACHE_FILE: Path | None = Field(default=None, description="Cache file path")

    # Execution
    JOBS: int = Field(
        default=1, ge=1, le=64, description="Worker threads for document transforms"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # Tree policy
    EXCLUDED_ROOT_DIRS: list[str] = Field(
        default_factory=lambda: ["theme"],
        description="Directory names (fnmatch patterns) dropped at the root only",
    )
    IMAGE_EXTENSIONS: list[str] = Field(
        default_factory=lambda: [".png", ".jpg", ".jpeg", ".gif", ".webp"],
        description="Raster image extensions passed through unchanged",
    )
    HTML_EXTENSION: str = Field(default=".html", description="Document extension")

    # Document transform
    LICENSE_COMMENT: str | None = Field(
        default=None,
        description="HTML comment inserted after LICENSE_ANCHOR in every document",
    )
    LICENSE_ANCHOR: str = Field(default="<head>", description="Tag to insert after")
    GZIP_LEVEL: int = Field(default=9, ge=1, le=9, description="gzip level")
    BROTLI_QUALITY: int = Field(default=11, ge=0, le=11, description="brotli quality")

    @property
    def cache_path(self) -> Path:
        """Get the cache file for the document transform these settings configure.

        The file name carries a fingerprint of the transform options, so a
        change to any of them starts a separate cache instead of serving
        outputs computed under the old options.
        """
        from minimizer.transform.document import TransformOptions

        return self.cache_path_for(TransformOptions.from_settings(self).fingerprint())

    def cache_path_for(self, fingerprint: str) -> Path:
        """Get the cache file for transform options with the given fingerprint."""
        base = self.CACHE_FILE if self.CACHE_FILE is not None else self.STATE_DIR / "cache.tsv"
        return base.with_name(f"{base.stem}-{fingerprint}{base.suffix}")

    @field_validator("IMAGE_EXTENSIONS", "HTML_EXTENSION", mode="after")
    @classmethod
    def normalize_extensions(cls, v: list[str] | str) -> list[str] | str:
        """Lowercase extensions and make sure they start with a dot."""

        def norm(ext: str) -> str:
            ext = ext.strip().lower()
            if not ext:
                raise ValueError("Extensions must not be empty")
            return ext if ext.startswith(".") else f".{ext}"

        if isinstance(v, str):
            return norm(v)
        return [norm(ext) for ext in v]

    @model_validator(mode="after")
    def validate_license_comment(self) -> Settings:
        """Ensure the license comment is a single well-formed HTML comment."""
        comment = self.LICENSE_COMMENT
        if not comment:
            self.LICENSE_COMMENT = None
            return self
        if not (comment.startswith("<!--") and comment.endswith("-->")):
            raise ValueError("LICENSE_COMMENT must be an HTML comment (<!-- ... -->)")
        if "-->" in comment[4:-3]:
            raise ValueError("LICENSE_COMMENT must not contain a nested comment end")
        return self

    def ensure_directories(self) -> None:
        """Create the state directory if it doesn't exist."""
        self.STATE_DIR.mkdir(parents=True, exist_ok=True)

    def get_run_state_dir(self, run_id: str) -> Path:
        """Get the directory for a specific run's manifest and log."""
        run_dir = self.STATE_DIR / "runs" / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return run_dir

    def redacted_display(self) -> dict[str, str | int | None]:
        """Return settings for display."""
        return {
            "REPO_PATH": str(self.REPO_PATH),
            "BRANCH": self.BRANCH,
            "OUTPUT_DIR": str(self.OUTPUT_DIR) if self.OUTPUT_DIR else None,
            "STATE_DIR": str(self.STATE_DIR),
            "CACHE_FILE": str(self.cache_path),
            "JOBS": self.JOBS,
            "LOG_LEVEL": self.LOG_LEVEL,
            "EXCLUDED_ROOT_DIRS": ", ".join(self.EXCLUDED_ROOT_DIRS),
            "IMAGE_EXTENSIONS": ", ".join(self.IMAGE_EXTENSIONS),
            "HTML_EXTENSION": self.HTML_EXTENSION,
            "LICENSE_COMMENT": self.LICENSE_COMMENT,
            "LICENSE_ANCHOR": self.LICENSE_ANCHOR,
            "GZIP_LEVEL": self.GZIP_LEVEL,
            "BROTLI_QUALITY": self.BROTLI_QUALITY,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
