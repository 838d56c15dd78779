from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: Any, field: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Iterable):
        return [str(item).strip() for item in value if str(item).strip()]
    raise TypeError(f"{field} must be a comma separated string or list")


class AppSettings(BaseSettings):
    """Environment-driven configuration for the inventory core."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "itam"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent / "data")
    TZ: str = "UTC"

    DB_URL: str = Field(
        default="",
        validation_alias=AliasChoices("DATABASE_URL", "DB_URL"),
    )
    DB_ECHO: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Order matters: it is the preference order used when stock has to be
    # drawn from a condition other than the one requested.
    INVENTORY_CONDITIONS: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["Working", "Used", "Defective", "Unknown"]
    )
    DEFAULT_INSTALL_CONDITION: str = "Working"

    ISSUANCE_PREFIX: str = "ISS"
    ISSUANCE_SEQUENCE_WIDTH: int = 4

    HOSTNAME_DOMAINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("INVENTORY_CONDITIONS", mode="before")
    @classmethod
    def parse_conditions(cls, value: Any) -> list[str]:
        conditions = _split_csv(value, "INVENTORY_CONDITIONS")
        if not conditions:
            raise ValueError("INVENTORY_CONDITIONS must name at least one condition")
        return conditions

    @field_validator("HOSTNAME_DOMAINS", mode="before")
    @classmethod
    def parse_domains(cls, value: Any) -> list[str]:
        return [item.lstrip(".").lower() for item in _split_csv(value, "HOSTNAME_DOMAINS")]

    @field_validator("LOG_LEVEL")
    @classmethod
    def upper_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @property
    def is_sqlite(self) -> bool:
        return self.DB_URL.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'itam.db'}"
    if settings.is_sqlite:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
