"""Centralized analysis configuration: defaults, pyproject, YAML file, environment."""

from __future__ import annotations

from functools import lru_cache
import logging
import os
from pathlib import Path
import tomllib
from typing import Any, Literal

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config/sprint_mechanics.yaml"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DetectionSettings(BaseModel):
    """Gap filling and event-search bounds."""

    max_gap_search_frames: int = Field(default=20, ge=1)
    interpolated_confidence_factor: float = Field(default=0.9, gt=0, le=1)
    one_sided_confidence_factor: float = Field(default=0.7, gt=0, le=1)
    contact_window_frames: int = Field(default=90, ge=8)
    toe_off_window_frames: int = Field(default=60, ge=8)
    max_iterations: int = Field(default=100, ge=1)


class StepSettings(BaseModel):
    """Step metric policy."""

    standing_start: bool = False


class MergeSettings(BaseModel):
    """Multi-segment merge thresholds in metres."""

    duplicate_distance_m: float = Field(default=0.5, ge=0)
    interpolation_gap_m: float = Field(default=2.0, gt=0)
    min_plausible_stride_m: float = Field(default=0.6, gt=0)
    max_plausible_stride_m: float = Field(default=2.2, gt=0)

    @model_validator(mode="after")
    def _ordered_stride_bounds(self) -> MergeSettings:
        if self.min_plausible_stride_m >= self.max_plausible_stride_m:
            raise ValueError("min_plausible_stride_m must be below max_plausible_stride_m")
        return self


class ProfileSettings(BaseModel):
    """Force-velocity regression settings."""

    regression: Literal["ols", "huber"] = "ols"
    remove_outliers: bool = False
    outlier_sigma: float = Field(default=3.5, gt=0)
    min_samples_warning: int = Field(default=8, ge=2)
    min_distance_warning_m: float = Field(default=20.0, ge=0)

    @field_validator("regression", mode="before")
    @classmethod
    def _normalize_regression(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class RuntimeSettings(BaseModel):
    """Runtime behavior controls for the CLI."""

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(_LOG_LEVELS)}")
        return level


class SprintMechanicsConfig(BaseModel):
    """Typed configuration model for analysis behavior."""

    model_config = ConfigDict(extra="ignore")
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    steps: StepSettings = Field(default_factory=StepSettings)
    merge: MergeSettings = Field(default_factory=MergeSettings)
    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


def find_project_root(start: Path | None = None) -> Path:
    """Find the project root by locating `pyproject.toml`."""
    env_root = os.getenv("SPRINT_MECHANICS_PROJECT_ROOT")
    if env_root:
        return _resolve_path(Path(env_root), Path.cwd())

    cursor = (start or Path.cwd()).resolve()
    for candidate in (cursor, *cursor.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate

    raise FileNotFoundError("Could not find project root containing pyproject.toml")


@lru_cache(maxsize=1)
def default_project_config() -> SprintMechanicsConfig:
    """Load config with OmegaConf merge + Pydantic validation."""
    try:
        project_root: Path | None = find_project_root()
    except FileNotFoundError:
        logger.debug("No pyproject.toml found; using built-in defaults")
        project_root = None
    return load_config(project_root)


def load_config(project_root: Path | None) -> SprintMechanicsConfig:
    """Validate the merged configuration for an explicit project root."""
    merged = _load_merged_config(project_root)
    try:
        return SprintMechanicsConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid sprint_mechanics config: {exc}") from exc


def clear_config_cache() -> None:
    """Clear cached config; useful for tests or env-var changes."""
    default_project_config.cache_clear()


def _load_merged_config(project_root: Path | None) -> dict[str, Any]:
    base_cfg = SprintMechanicsConfig().model_dump()
    pyproject_cfg = _load_pyproject_config(project_root) if project_root is not None else {}

    merged = OmegaConf.merge(
        base_cfg,
        pyproject_cfg,
        _load_file_config(project_root),
        _load_env_overrides(),
    )
    raw = OmegaConf.to_container(merged, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_file_config(project_root: Path | None) -> dict[str, Any]:
    base_dir = project_root or Path.cwd()
    env_path = os.getenv("SPRINT_MECHANICS_CONFIG_FILE")
    if env_path:
        cfg_path = _resolve_path(Path(env_path), base_dir)
        if not cfg_path.exists():
            raise FileNotFoundError(
                f"SPRINT_MECHANICS_CONFIG_FILE points to missing file: {cfg_path}"
            )
    else:
        if project_root is None:
            return {}
        cfg_path = project_root / DEFAULT_CONFIG_FILE
        if not cfg_path.exists():
            return {}

    loaded = OmegaConf.load(cfg_path)
    raw = OmegaConf.to_container(loaded, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_env_overrides() -> dict[str, Any]:
    profile: dict[str, Any] = {}
    if env_regression := os.getenv("SPRINT_MECHANICS_REGRESSION"):
        profile["regression"] = env_regression.strip().lower()
    if env_outliers := os.getenv("SPRINT_MECHANICS_REMOVE_OUTLIERS"):
        profile["remove_outliers"] = _parse_env_bool(env_outliers, "SPRINT_MECHANICS_REMOVE_OUTLIERS")

    steps: dict[str, Any] = {}
    if env_standing := os.getenv("SPRINT_MECHANICS_STANDING_START"):
        steps["standing_start"] = _parse_env_bool(env_standing, "SPRINT_MECHANICS_STANDING_START")

    runtime: dict[str, Any] = {}
    if env_level := os.getenv("SPRINT_MECHANICS_LOG_LEVEL"):
        runtime["log_level"] = env_level

    overrides: dict[str, Any] = {}
    if profile:
        overrides["profile"] = profile
    if steps:
        overrides["steps"] = steps
    if runtime:
        overrides["runtime"] = runtime
    return overrides


def _resolve_path(path: Path, base_dir: Path) -> Path:
    if path.is_absolute():
        return path.expanduser().resolve()
    return (base_dir / path).resolve()


def _parse_env_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be one of: 1,true,yes,on,0,false,no,off")


def _load_pyproject_config(project_root: Path) -> dict[str, Any]:
    pyproject_path = project_root / "pyproject.toml"
    if not pyproject_path.exists():
        return {}

    with pyproject_path.open("rb") as handle:
        pyproject = tomllib.load(handle)

    tool_cfg = pyproject.get("tool", {})
    section = tool_cfg.get("sprint_mechanics", {})
    return section if isinstance(section, dict) else {}
