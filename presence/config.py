import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("PRESENCE_CONFIG", "config.toml")
_ENV_PATH = os.getenv("PRESENCE_ENV", ".env")


class RconSettings(BaseModel):
    host: str = "localhost"
    port: int = 25575
    password: str = ""
    timeout_seconds: float = 5.0


class IdentitySettings(BaseModel):
    api_url: str = "https://api.mojang.com/users/profiles/minecraft"
    timeout_seconds: float = 5.0
    cache_ttl_seconds: float = 300.0


class StoreSettings(BaseModel):
    write_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = 0.2


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
    )

    database_url: str = "sqlite:///presence.db"
    rcon: RconSettings = Field(default_factory=RconSettings)
    identity: IdentitySettings = Field(default_factory=IdentitySettings)
    store: StoreSettings = Field(default_factory=StoreSettings)

    host: str = "0.0.0.0"
    port: int = 8000
    logs_dir: Path = Field(default=Path("logs"))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
