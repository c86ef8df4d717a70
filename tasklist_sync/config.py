"""Environment configuration for tasklist-sync."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from .connectivity import DEFAULT_PROBE_URL

load_dotenv()

DEFAULT_HOME = Path.home() / ".tasklist-sync"


class Settings:
    """Settings loaded from environment variables (and a .env file)."""

    def __init__(self) -> None:
        self.FIRESTORE_PROJECT_ID: str = os.getenv("FIRESTORE_PROJECT_ID", "")
        self.FIRESTORE_DATABASE: str = os.getenv("FIRESTORE_DATABASE", "(default)")
        self.FIRESTORE_EMULATOR_HOST: str | None = os.getenv("FIRESTORE_EMULATOR_HOST") or None
        self.FIRESTORE_TOKEN: str | None = os.getenv("FIRESTORE_TOKEN") or None
        self.CACHE_FILE: Path = Path(
            os.getenv("TASKLIST_CACHE_FILE", str(DEFAULT_HOME / "cache.json"))
        ).expanduser()
        self.DRAFT_FILE: Path = Path(
            os.getenv("TASKLIST_DRAFT_FILE", str(DEFAULT_HOME / "drafts.json"))
        ).expanduser()
        self.PAGE_SIZE: int = int(os.getenv("TASKLIST_PAGE_SIZE", "10"))
        self.PROBE_URL: str = os.getenv("TASKLIST_PROBE_URL", DEFAULT_PROBE_URL)
        self.HTTP_TIMEOUT: float = float(os.getenv("TASKLIST_HTTP_TIMEOUT", "30.0"))

    def validate(self) -> None:
        """Validate that required environment variables are set."""
        if not self.FIRESTORE_PROJECT_ID:
            raise ValueError("FIRESTORE_PROJECT_ID environment variable is required")
        if self.PAGE_SIZE < 1:
            raise ValueError("TASKLIST_PAGE_SIZE must be at least 1")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
