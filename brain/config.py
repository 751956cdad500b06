"""Configuration loading for brain.

Config sources (in priority order):
1. Explicit arguments passed to constructors
2. Environment variables (BRAIN_STORAGE_PATH, OPENAI_API_KEY, etc.)
3. .env file in current directory

User-editable settings (model, commit depth, AI toggle) live in the
storage directory's config.json and are handled by brain.storage.store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_STORAGE_PATH = Path.home() / ".config" / "brain"
DEFAULT_AI_MODEL = "gpt-4"
DEFAULT_MAX_COMMITS = 10


@dataclass
class Config:
    storage_path: Path = DEFAULT_STORAGE_PATH
    openai_api_key: str = ""  # fallback when config.json has no key
    openai_base_url: str = ""  # empty means the SDK default endpoint

    @classmethod
    def load(cls) -> Config:
        return cls(
            storage_path=Path(
                os.getenv("BRAIN_STORAGE_PATH", str(DEFAULT_STORAGE_PATH))
            ).expanduser(),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_base_url=os.getenv("BRAIN_OPENAI_BASE_URL", ""),
        )

    def validate(self) -> list[str]:
        """Return a list of config issues."""
        issues = []
        if not str(self.storage_path).strip():
            issues.append("Storage path is empty (BRAIN_STORAGE_PATH)")
        if self.storage_path.exists() and not self.storage_path.is_dir():
            issues.append(f"Storage path is not a directory: {self.storage_path}")
        return issues
