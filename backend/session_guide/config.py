import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    data_dir: Optional[str] = Field(None, alias="GUIDE_DATA_DIR")
    tick_interval_seconds: int = Field(60, ge=1, alias="GUIDE_TICK_INTERVAL_SECONDS")
    notifications_default: bool = Field(False, alias="GUIDE_NOTIFICATIONS_DEFAULT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="GUIDE_CORS_ORIGINS")
    host: str = Field("127.0.0.1", alias="GUIDE_HOST")
    port: int = Field(8000, ge=1, le=65535, alias="GUIDE_PORT")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    def resolved_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return DEFAULT_DATA_DIR


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid session guide configuration: {exc}") from exc
