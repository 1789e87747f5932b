from __future__ import annotations

from sprint_mechanics.config import SprintMechanicsConfig
from sprint_mechanics.presets import AnalysisPreset, preferred_sprint_model, preset_from_config


def test_preferred_model_structure() -> None:
    model = preferred_sprint_model()

    assert isinstance(model, AnalysisPreset)
    assert model.detection.contact_window_frames == 90
    assert model.detection.toe_off_window_frames == 60
    assert model.detection.max_iterations == 100
    assert model.detection.gap_fill.max_search_frames == 20
    assert model.merge.duplicate_distance_m == 0.5
    assert model.merge.interpolation_gap_m == 2.0
    assert (model.merge.min_plausible_stride_m, model.merge.max_plausible_stride_m) == (0.6, 2.2)
    assert model.profile.outlier_sigma == 3.5
    assert model.steps.standing_start is False


def test_default_config_matches_preferred_model_thresholds() -> None:
    from_config = preset_from_config(SprintMechanicsConfig())
    preferred = preferred_sprint_model()

    assert from_config.detection == preferred.detection
    assert from_config.merge == preferred.merge
    assert from_config.steps == preferred.steps
    assert from_config.profile == preferred.profile


def test_preset_from_config_carries_overrides() -> None:
    config = SprintMechanicsConfig.model_validate(
        {
            "steps": {"standing_start": True},
            "profile": {"regression": "huber", "remove_outliers": True},
            "detection": {"max_iterations": 25, "max_gap_search_frames": 10},
        }
    )
    model = preset_from_config(config)

    assert model.steps.standing_start is True
    assert model.profile.regression == "huber"
    assert model.profile.remove_outliers is True
    assert model.detection.max_iterations == 25
    assert model.detection.gap_fill.max_search_frames == 10
