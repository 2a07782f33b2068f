"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file."""

    # Database
    sqlite_db_path: Path = Path("./data/novelkeep.db")

    # Revision chain
    snapshot_interval: int = 10          # every Nth save stores full content
    auto_save_keep_count: int = 20       # auto-saves retained per chapter
    auto_save_interval: int = 30         # seconds between editor auto-saves
    reconstruction_timeout: float = 30.0

    # Diff engine
    diff_timeout: float = 0.0            # 0 = no deadline, always optimal
    similarity_threshold: float = 0.7
    similar_chunk_min_length: int = 10

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("snapshot_interval", "auto_save_interval")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("interval must be >= 1")
        return v

    @field_validator("auto_save_keep_count", "similar_chunk_min_length")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("count must be non-negative")
        return v

    @field_validator("diff_timeout")
    @classmethod
    def validate_diff_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError("diff_timeout must be >= 0")
        return v

    @field_validator("reconstruction_timeout")
    @classmethod
    def validate_reconstruction_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reconstruction_timeout must be > 0")
        return v

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
