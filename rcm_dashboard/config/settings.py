"""
Application Settings
Environment-driven configuration loaded from .env.
"""
# rcm_dashboard/config/settings.py

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass
class Settings:
    data_root: Path = PROJECT_ROOT / "data"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    openai_api_key: str = ""
    chat_model: str = "gpt-4o-mini"
    chat_log_path: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    max_sessions: int = 50


@lru_cache
def get_settings() -> Settings:
    """Build settings from the environment (cached for the process)."""
    data_root = os.getenv("DATA_ROOT")
    if data_root:
        # Relative paths resolve against the project root
        data_root_path = Path(data_root)
        if not data_root_path.is_absolute():
            data_root_path = (PROJECT_ROOT / data_root_path).resolve()
    else:
        data_root_path = PROJECT_ROOT / "data"

    return Settings(
        data_root=data_root_path,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        chat_model=os.getenv("CHAT_MODEL", "gpt-4o-mini"),
        chat_log_path=os.getenv("CHAT_LOG_PATH") or None,
        cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "*")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "50")),
    )
