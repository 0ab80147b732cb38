from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from glean.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_FUZZ_FACTOR,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_NEW_CARD_CAP,
    DEFAULT_REQUEUE_OFFSET,
    MASTERY_MAX_LAPSES,
    MASTERY_MIN_INTERVAL_DAYS,
)


def config_files() -> list[Path]:
    """Candidate config files, highest priority first."""
    return [
        Path.home() / ".config/glean/config.toml",
        Path.home() / ".glean.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for glean.
    Supports loading from:
    1. Environment variables (GLEAN_*)
    2. Config file (~/.config/glean/config.toml or ~/.glean.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="GLEAN_",
        extra="ignore",
    )

    # Storage
    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: Path = Field(default_factory=lambda: Path.home() / ".local/share/glean/glean.db")
    timezone: str = "UTC"

    # Queue policy
    new_card_cap: int = Field(default=DEFAULT_NEW_CARD_CAP, ge=0)
    requeue_offset: int = Field(default=DEFAULT_REQUEUE_OFFSET, ge=1)

    # Scheduling
    desired_retention: float = Field(default=DEFAULT_DESIRED_RETENTION, gt=0.0, lt=1.0)
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    enable_fuzzing: bool = True
    fuzz_factor: float = Field(default=DEFAULT_FUZZ_FACTOR, ge=0.0, lt=1.0)
    fuzz_seed: int | None = None

    # Mastery
    mastery_min_interval_days: float = Field(default=MASTERY_MIN_INTERVAL_DAYS, ge=0)
    mastery_max_lapses: int = Field(default=MASTERY_MAX_LAPSES, ge=0)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins; init (CLI) beats env beats file
        toml_file = next((f for f in config_files() if f.exists()), None)
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        from glean.application.utils.time import resolve_timezone

        try:
            resolve_timezone(v)
        except (KeyError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/glean/config.toml (if exists)
    3. Environment variables (GLEAN_*)
    4. cli_overrides (passed from Typer); None values are dropped
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
