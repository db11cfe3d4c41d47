"""Application configuration via pydantic-settings."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbhash.algorithms import HashAlgorithm
from dbhash.content_hash import BLOCK_SIZE


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Dropbox access tokens: one for every authority, and/or per authority
    dropbox_token: str = ""
    dropbox_tokens: dict[str, str] = {}

    # Dropbox API v2 hosts
    dropbox_api_url: str = "https://api.dropboxapi.com/2"
    dropbox_content_url: str = "https://content.dropboxapi.com/2"
    dropbox_timeout: float = 300.0

    # Hashing
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    read_chunk_size: int = BLOCK_SIZE

    @field_validator("hash_algorithm", mode="before")
    @classmethod
    def _normalize_algorithm(cls, value: object) -> object:
        if isinstance(value, str):
            return HashAlgorithm.from_name(value)
        return value

    @field_validator("read_chunk_size")
    @classmethod
    def _positive_chunk_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("read_chunk_size must be positive")
        return value


def get_settings(**overrides: object) -> Settings:
    """Create a Settings instance, allowing overrides for testing."""
    return Settings(**overrides)  # type: ignore[arg-type]
