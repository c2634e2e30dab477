from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

env_path = Path(__file__).parent / ".env"

METADATA_BACKENDS = ("json", "sql")

class Settings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    STORAGE_BASE_PATH: Path = Path("uploads")
    METADATA_BACKEND: str = "json"
    METADATA_JSON_PATH: Path = Path("data/files.json")
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/files.db"
    PUBLIC_BASE_URL: Optional[str] = None
    MAX_FILE_SIZE_MB: int = 700
    SHARE_LINK_MAX_ATTEMPTS: int = 5
    RECENT_UPLOADS_LIMIT: int = 10
    SUBSCRIBER_QUEUE_SIZE: int = 100
    ALLOW_ANONYMOUS_UPLOADS: bool = False
    GATEWAY_SECRET: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=env_path, extra='ignore')

    @field_validator('METADATA_BACKEND')
    @classmethod
    def check_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in METADATA_BACKENDS:
            raise ValueError(f"METADATA_BACKEND must be one of {METADATA_BACKENDS}, got '{v}'")
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

settings = Settings()
