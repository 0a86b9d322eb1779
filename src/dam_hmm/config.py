"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "DAM_HMM_SETTINGS_FILE"


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "dam_hmm"
    env: str = "dev"


class PathsConfig(BaseModel):
    """Filesystem paths for run artifacts and logs."""

    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class ParquetConfig(BaseModel):
    """Parquet write settings."""

    compression: Literal["zstd", "snappy", "gzip", "brotli", "lz4", "uncompressed"] = "zstd"
    compression_level: int | None = 3
    statistics: bool = True


class InputColumnsConfig(BaseModel):
    """Column names of the prepared per-minute activity table."""

    individual_id: str = "id"
    day: str = "day"
    time_offset: str = "t"
    normalized_activity: str = "normact"
    genotype: str = "genotype"
    raw_activity: str = "activity"


class HMMConfig(BaseModel):
    """Constrained Gaussian HMM fitting and retry settings."""

    n_states: Literal[4] = 4
    transition_epsilon: float = Field(default=1e-5, gt=0.0, lt=0.25)
    zero_floor_max: float = Field(default=1e-3, gt=0.0)
    zero_floor_fraction: float = Field(default=0.01, gt=0.0, le=1.0)
    em_max_iter: int = Field(default=100, ge=1)
    em_tol: float = Field(default=1e-3, gt=0.0)
    min_covar: float = Field(default=1e-3, gt=0.0)
    max_inner_attempts: int = Field(default=1000, ge=1)
    min_iterations: int = Field(default=100, ge=1)
    iterations_default: int = Field(default=100, ge=1)
    random_seed: int | None = Field(default=None, ge=0)


class QualityConfig(BaseModel):
    """Exclusion thresholds for consensus profiles."""

    full_day_points: int = Field(default=1440, ge=1)
    max_single_state_share: float = Field(default=0.99, gt=0.0, lt=1.0)


class PhaseConfig(BaseModel):
    """Light/dark phase labelling."""

    light_phase_hours: float = Field(default=12.0, gt=0.0, le=24.0)


class ParallelConfig(BaseModel):
    """Worker-pool settings for per-individual dispatch."""

    worker_count: int = Field(default=4, ge=1)
    start_method: Literal["spawn", "fork", "forkserver"] = "spawn"


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    parquet: ParquetConfig = Field(default_factory=ParquetConfig)
    input_columns: InputColumnsConfig = Field(default_factory=InputColumnsConfig)
    hmm: HMMConfig = Field(default_factory=HMMConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    phase: PhaseConfig = Field(default_factory=PhaseConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)

    model_config = SettingsConfigDict(
        env_prefix="DAM_HMM_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
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
        """Init kwargs, then env and `.env`, then the YAML file."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Walk upward from ``start`` (or the cwd) to the first directory holding the settings file."""

    origin = (start or Path.cwd()).resolve()
    return next(
        (candidate for candidate in (origin, *origin.parents) if (candidate / DEFAULT_SETTINGS_FILE).is_file()),
        origin,
    )


def resolve_settings_file(override: Path | None = None) -> Path:
    """Pick the settings YAML: explicit path, then ``DAM_HMM_SETTINGS_FILE``, then the default."""

    env_value = os.getenv(SETTINGS_FILE_ENV)
    chosen = override or (Path(env_value) if env_value else DEFAULT_SETTINGS_FILE)
    if chosen.is_absolute():
        return chosen
    return (find_project_root() / chosen).resolve()


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment overrides.

    Relative ``paths`` entries resolve against the directory above ``configs/``.
    An explicitly requested settings file must exist.
    """

    settings_file = resolve_settings_file(config_file)
    if config_file is not None and not settings_file.is_file():
        raise FileNotFoundError(f"Settings file not found: {settings_file}")

    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    project_root = settings_file.parent.parent.resolve()
    return settings.model_copy(update={"paths": settings.paths.resolved(project_root=project_root)})
