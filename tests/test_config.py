from __future__ import annotations

from pathlib import Path

import pytest

from sprint_mechanics.config import (
    SprintMechanicsConfig,
    clear_config_cache,
    default_project_config,
    find_project_root,
    load_config,
)


@pytest.fixture
def isolated_root(monkeypatch, tmp_path: Path) -> Path:
    for name in (
        "SPRINT_MECHANICS_CONFIG_FILE",
        "SPRINT_MECHANICS_REGRESSION",
        "SPRINT_MECHANICS_REMOVE_OUTLIERS",
        "SPRINT_MECHANICS_STANDING_START",
        "SPRINT_MECHANICS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")
    monkeypatch.setenv("SPRINT_MECHANICS_PROJECT_ROOT", str(tmp_path))
    clear_config_cache()
    yield tmp_path
    clear_config_cache()


def test_defaults_without_overrides(isolated_root: Path) -> None:
    config = default_project_config()

    assert config == SprintMechanicsConfig()
    assert config.merge.duplicate_distance_m == 0.5
    assert config.profile.regression == "ols"
    assert config.detection.max_iterations == 100


def test_find_project_root_honours_env(isolated_root: Path) -> None:
    assert find_project_root() == isolated_root.resolve()


def test_pyproject_tool_section_is_merged(isolated_root: Path) -> None:
    (isolated_root / "pyproject.toml").write_text(
        "\n".join(
            [
                "[tool.sprint_mechanics.merge]",
                "interpolation_gap_m = 2.5",
                "[tool.sprint_mechanics.profile]",
                "regression = 'huber'",
            ]
        ),
        encoding="utf-8",
    )
    clear_config_cache()

    config = default_project_config()
    assert config.merge.interpolation_gap_m == 2.5
    assert config.merge.duplicate_distance_m == 0.5
    assert config.profile.regression == "huber"


def test_default_yaml_file_overrides_pyproject(isolated_root: Path) -> None:
    (isolated_root / "config").mkdir()
    (isolated_root / "config" / "sprint_mechanics.yaml").write_text(
        "steps:\n  standing_start: true\nprofile:\n  outlier_sigma: 3.0\n",
        encoding="utf-8",
    )
    clear_config_cache()

    config = default_project_config()
    assert config.steps.standing_start is True
    assert config.profile.outlier_sigma == 3.0


def test_external_yaml_config_file_override(monkeypatch, isolated_root: Path, tmp_path: Path) -> None:
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("merge:\n  duplicate_distance_m: 0.4\n", encoding="utf-8")
    monkeypatch.setenv("SPRINT_MECHANICS_CONFIG_FILE", str(cfg))
    clear_config_cache()

    assert default_project_config().merge.duplicate_distance_m == 0.4


def test_missing_explicit_config_file_is_an_error(monkeypatch, isolated_root: Path) -> None:
    monkeypatch.setenv("SPRINT_MECHANICS_CONFIG_FILE", str(isolated_root / "nope.yaml"))
    clear_config_cache()

    with pytest.raises(FileNotFoundError):
        default_project_config()


def test_env_overrides_take_precedence(monkeypatch, isolated_root: Path) -> None:
    monkeypatch.setenv("SPRINT_MECHANICS_REGRESSION", "HUBER")
    monkeypatch.setenv("SPRINT_MECHANICS_REMOVE_OUTLIERS", "yes")
    monkeypatch.setenv("SPRINT_MECHANICS_STANDING_START", "1")
    monkeypatch.setenv("SPRINT_MECHANICS_LOG_LEVEL", "debug")
    clear_config_cache()

    config = default_project_config()
    assert config.profile.regression == "huber"
    assert config.profile.remove_outliers is True
    assert config.steps.standing_start is True
    assert config.runtime.log_level == "DEBUG"


def test_invalid_env_bool_is_rejected(monkeypatch, isolated_root: Path) -> None:
    monkeypatch.setenv("SPRINT_MECHANICS_STANDING_START", "maybe")
    clear_config_cache()

    with pytest.raises(ValueError, match="SPRINT_MECHANICS_STANDING_START"):
        default_project_config()


def test_invalid_values_raise_value_error(isolated_root: Path) -> None:
    (isolated_root / "pyproject.toml").write_text(
        "[tool.sprint_mechanics.merge]\nmin_plausible_stride_m = 3.0\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid sprint_mechanics config"):
        load_config(isolated_root)


def test_no_project_root_uses_defaults(isolated_root: Path) -> None:
    assert load_config(None) == SprintMechanicsConfig()
