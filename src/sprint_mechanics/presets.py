"""Analysis presets for repeatable threshold choices."""

from __future__ import annotations

from dataclasses import dataclass

from .config import SprintMechanicsConfig
from .detection import DetectionConfig
from .landmarks import GapFillConfig
from .merge import MergeConfig
from .profile import ProfileConfig
from .steps import StepMetricsConfig


@dataclass(frozen=True)
class AnalysisPreset:
    """Single source of truth for threshold choices."""

    name: str
    rationale: str
    detection: DetectionConfig
    steps: StepMetricsConfig
    merge: MergeConfig
    profile: ProfileConfig


def preferred_sprint_model() -> AnalysisPreset:
    """Preferred acceleration-sprint model for video step analysis."""
    return AnalysisPreset(
        name="Range-Scaled Sprint Step Model v1",
        rationale=(
            "Detection thresholds scale with toe-signal amplitude, merged steps are "
            "checked against a 0.6-2.2 m stride range, and the force-velocity fit uses "
            "plain least squares so every step counts equally."
        ),
        detection=DetectionConfig(
            contact_window_frames=90,
            toe_off_window_frames=60,
            max_iterations=100,
            gap_fill=GapFillConfig(
                max_search_frames=20,
                interpolated_confidence_factor=0.9,
                one_sided_confidence_factor=0.7,
            ),
        ),
        steps=StepMetricsConfig(standing_start=False),
        merge=MergeConfig(
            duplicate_distance_m=0.5,
            interpolation_gap_m=2.0,
            min_plausible_stride_m=0.6,
            max_plausible_stride_m=2.2,
        ),
        profile=ProfileConfig(regression="ols", remove_outliers=False, outlier_sigma=3.5),
    )


def preset_from_config(config: SprintMechanicsConfig) -> AnalysisPreset:
    """Preset carrying the validated project settings."""
    detection = config.detection
    profile = config.profile
    return AnalysisPreset(
        name="Project Config",
        rationale="Thresholds loaded from defaults, pyproject, config file and environment.",
        detection=DetectionConfig(
            contact_window_frames=detection.contact_window_frames,
            toe_off_window_frames=detection.toe_off_window_frames,
            max_iterations=detection.max_iterations,
            gap_fill=GapFillConfig(
                max_search_frames=detection.max_gap_search_frames,
                interpolated_confidence_factor=detection.interpolated_confidence_factor,
                one_sided_confidence_factor=detection.one_sided_confidence_factor,
            ),
        ),
        steps=StepMetricsConfig(standing_start=config.steps.standing_start),
        merge=MergeConfig(
            duplicate_distance_m=config.merge.duplicate_distance_m,
            interpolation_gap_m=config.merge.interpolation_gap_m,
            min_plausible_stride_m=config.merge.min_plausible_stride_m,
            max_plausible_stride_m=config.merge.max_plausible_stride_m,
        ),
        profile=ProfileConfig(
            regression=profile.regression,
            remove_outliers=profile.remove_outliers,
            outlier_sigma=profile.outlier_sigma,
            min_samples_warning=profile.min_samples_warning,
            min_distance_warning_m=profile.min_distance_warning_m,
        ),
    )
