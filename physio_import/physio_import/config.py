from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field


# Best candidate at or above this confidence is reused without operator input.
AUTO_REUSE_CONFIDENCE = 0.8
# Review screen splits suggested matches into confident / uncertain at this value.
CONFIDENT_MATCH_THRESHOLD = 0.7
DEFAULT_EXERCISE_SETS = 3
MAX_FILE_SIZE_MB = 10
SUPPORTED_EXTENSIONS: Tuple[str, ...] = ("pdf", "xlsx", "xls", "csv", "txt", "md")
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def load_dotenv(env_file: str | Path = ".env.local") -> None:
    """Load environment variables from a .env.local file without overriding the environment."""
    path = Path(env_file)
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


class Settings(BaseModel):
    api_url: str = ""
    api_token: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    reuse_threshold: float = Field(AUTO_REUSE_CONFIDENCE, ge=0.0, le=1.0)
    confident_threshold: float = Field(CONFIDENT_MATCH_THRESHOLD, ge=0.0, le=1.0)
    default_sets: int = Field(DEFAULT_EXERCISE_SETS, ge=1)
    max_file_size_mb: float = Field(MAX_FILE_SIZE_MB, gt=0)
    supported_extensions: Tuple[str, ...] = SUPPORTED_EXTENSIONS
    timeout: float = Field(60.0, gt=0)

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env.local") -> "Settings":
        if env_file is not None:
            load_dotenv(env_file)
        env = os.environ
        values: dict = {
            "api_url": env.get("PHYSIO_IMPORT_API_URL", "").rstrip("/"),
            "api_token": env.get("PHYSIO_IMPORT_TOKEN") or None,
            "openai_api_key": env.get("OPENAI_API_KEY") or None,
            "openai_model": env.get("PHYSIO_IMPORT_OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        }
        numeric = {
            "reuse_threshold": "PHYSIO_IMPORT_REUSE_THRESHOLD",
            "default_sets": "PHYSIO_IMPORT_DEFAULT_SETS",
            "max_file_size_mb": "PHYSIO_IMPORT_MAX_FILE_MB",
            "timeout": "PHYSIO_IMPORT_TIMEOUT",
        }
        for field, var in numeric.items():
            raw = env.get(var)
            if raw:
                values[field] = raw
        return cls(**values)
