"""Configuration for the sources registry."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourcesConfig(BaseSettings):
    """Settings for source storage and seeding."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCES_",
        case_sensitive=False,
        extra="ignore",
    )

    seed_on_init: bool = Field(
        default=True,
        description="Automatically seed from JSON on first load if the table is empty",
    )
    fallback_to_defaults: bool = Field(
        default=True,
        description="Show the built-in sources in memory when the store cannot be read",
    )
