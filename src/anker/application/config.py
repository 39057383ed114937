import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from anker.domain.constants import (
    DEFAULT_DESIRED_RETENTION,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    FSRS5_WEIGHT_COUNT,
    FSRS6_WEIGHT_COUNT,
    REVIEW_LOG_FILENAME,
)
from anker.domain.errors import ConfigurationError

_STEP_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhd])$")
_STEP_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

CONFIG_FILES = [
    Path.home() / ".config/anker/config.toml",
    Path.home() / ".anker.toml",
]

DueHorizon = Literal["instant", "end_of_day"]


def parse_step(value: Any) -> timedelta:
    """Parse a learning step such as "30s", "1m", "2h" or "1d". Bare numbers are minutes."""
    if isinstance(value, timedelta):
        step = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        step = timedelta(minutes=value)
    else:
        match = _STEP_RE.match(str(value).strip().lower())
        if not match:
            raise ValueError(f"Invalid step '{value}'. Use a number with s, m, h or d, e.g. '10m'.")
        amount, unit = match.groups()
        step = timedelta(**{_STEP_UNITS[unit]: float(amount)})
    if step <= timedelta(0):
        raise ValueError(f"Step '{value}' must be positive")
    return step


class SchedulingConfig(BaseModel):
    """
    Immutable scheduling parameters consumed by the memory model.

    `weights` may be empty (library defaults), 19 values (FSRS-5, fitted
    without short-term data) or 21 values (FSRS-6).
    """

    model_config = ConfigDict(frozen=True)

    desired_retention: float = Field(default=DEFAULT_DESIRED_RETENTION, gt=0.0, lt=1.0)
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    enable_fuzz: bool = False
    enable_short_term: bool = True
    learning_steps: tuple[timedelta, ...] = tuple(parse_step(s) for s in DEFAULT_LEARNING_STEPS)
    relearning_steps: tuple[timedelta, ...] = tuple(
        parse_step(s) for s in DEFAULT_RELEARNING_STEPS
    )
    weights: tuple[float, ...] = ()

    @field_validator("learning_steps", "relearning_steps", mode="before")
    @classmethod
    def parse_steps(cls, v: Any) -> tuple[timedelta, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [part for part in re.split(r"[,\s]+", v) if part]
        return tuple(parse_step(s) for s in v)

    @field_validator("weights")
    @classmethod
    def check_weight_count(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if v and len(v) not in (FSRS5_WEIGHT_COUNT, FSRS6_WEIGHT_COUNT):
            raise ValueError(
                f"Expected {FSRS5_WEIGHT_COUNT} or {FSRS6_WEIGHT_COUNT} weights, got {len(v)}"
            )
        return v

    @property
    def effective_learning_steps(self) -> tuple[timedelta, ...]:
        return self.learning_steps if self.enable_short_term else ()

    @property
    def effective_relearning_steps(self) -> tuple[timedelta, ...]:
        return self.relearning_steps if self.enable_short_term else ()


class AppConfig(BaseSettings):
    """
    Configuration model for anker.
    Supports loading from:
    1. Environment variables (ANKER_*)
    2. Config file (~/.config/anker/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="ANKER_",
        toml_file=CONFIG_FILES,
        extra="ignore",
    )

    # Paths
    vault_root: Path | None = None
    history_file: Path | None = None

    # Scheduling
    desired_retention: float = DEFAULT_DESIRED_RETENTION
    maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL
    enable_fuzz: bool = False
    enable_short_term: bool = True
    learning_steps: list[str] = Field(default_factory=lambda: list(DEFAULT_LEARNING_STEPS))
    relearning_steps: list[str] = Field(default_factory=lambda: list(DEFAULT_RELEARNING_STEPS))
    weights: list[float] = Field(default_factory=list)

    # Sessions
    due_horizon: DueHorizon = Field(
        default="instant",
        description=(
            "'instant': a rated card stays in the session only if due again at once;"
            " with learning steps (1m, 10m) Again ends its session too."
            " 'end_of_day': cards due later today stay for same-day relearning."
        ),
    )

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

        # First existing config file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Earlier sources take priority: CLI overrides, then env, then TOML
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("vault_root", "history_file", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    def scheduling(self) -> SchedulingConfig:
        """Build the immutable scheduling configuration for the memory model."""
        try:
            return SchedulingConfig(
                desired_retention=self.desired_retention,
                maximum_interval=self.maximum_interval,
                enable_fuzz=self.enable_fuzz,
                enable_short_term=self.enable_short_term,
                learning_steps=self.learning_steps,
                relearning_steps=self.relearning_steps,
                weights=tuple(self.weights),
            )
        except PydanticValidationError as e:
            raise ConfigurationError(str(e)) from e


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/anker/config.toml (if exists)
    3. Environment variables (ANKER_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.vault_root is None:
        config.vault_root = Path.cwd()

    if config.history_file is None:
        config.history_file = config.vault_root / ".anker" / REVIEW_LOG_FILENAME

    return config
