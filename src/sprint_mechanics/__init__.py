"""Sprint video biomechanics: gait events, step metrics and force-velocity profiling."""

from .calibration import (
    CoordinateMapper,
    HomographyCalibration,
    LinearCalibration,
    calibration_from_dict,
    fit_homography,
)
from .config import (
    SprintMechanicsConfig,
    clear_config_cache,
    default_project_config,
    find_project_root,
    load_config,
)
from .constants import ASSUMED_THIGH_LENGTH_CM, DEFAULT_LANE_WIDTH_M, GRAVITY_M_S2, LANDMARK_COUNT
from .detection import (
    DetectionConfig,
    DetectionResult,
    GaitEvent,
    GaitEventDetector,
    GaitEventKind,
    pair_events,
    validate_events,
)
from .errors import (
    CalibrationDegenerateError,
    DetectionFailure,
    InsufficientSignalError,
    SprintAnalysisError,
)
from .landmarks import (
    CaptureMode,
    GapFillConfig,
    Landmark,
    ToeSignal,
    build_toe_signal,
    fill_landmark_gaps,
    parse_landmark_frames,
)
from .angles import JointAngles, joint_angle_table, joint_angles, stance_phase_angles
from .merge import MergeConfig, MergeResult, SegmentSteps, merge_segments, merge_step_records
from .presets import AnalysisPreset, preferred_sprint_model, preset_from_config
from .profile import (
    ForceVelocityProfile,
    ProfileConfig,
    fit_line,
    fit_profile_from_splits,
    fit_profile_from_steps,
    position_fit_r2,
)
from .session import (
    AnalysisSession,
    SegmentInput,
    SessionAnalysisResults,
    analyze_segment,
    load_session_file,
    run_session_analysis,
    session_from_dict,
    session_results_to_dict,
)
from .steps import (
    StepMetricsConfig,
    StepRecord,
    build_step_records,
    center_of_mass_velocity,
    impulse_ratios,
    steps_table,
    summarize_steps,
)

__all__ = [
    "ASSUMED_THIGH_LENGTH_CM",
    "DEFAULT_LANE_WIDTH_M",
    "GRAVITY_M_S2",
    "LANDMARK_COUNT",
    "AnalysisPreset",
    "AnalysisSession",
    "CalibrationDegenerateError",
    "CaptureMode",
    "CoordinateMapper",
    "DetectionConfig",
    "DetectionFailure",
    "DetectionResult",
    "ForceVelocityProfile",
    "GaitEvent",
    "GaitEventDetector",
    "GaitEventKind",
    "GapFillConfig",
    "HomographyCalibration",
    "InsufficientSignalError",
    "JointAngles",
    "Landmark",
    "LinearCalibration",
    "MergeConfig",
    "MergeResult",
    "ProfileConfig",
    "SegmentInput",
    "SegmentSteps",
    "SessionAnalysisResults",
    "SprintAnalysisError",
    "SprintMechanicsConfig",
    "StepMetricsConfig",
    "StepRecord",
    "ToeSignal",
    "analyze_segment",
    "build_step_records",
    "build_toe_signal",
    "calibration_from_dict",
    "center_of_mass_velocity",
    "clear_config_cache",
    "default_project_config",
    "fill_landmark_gaps",
    "find_project_root",
    "fit_homography",
    "fit_line",
    "fit_profile_from_splits",
    "fit_profile_from_steps",
    "impulse_ratios",
    "joint_angle_table",
    "joint_angles",
    "load_config",
    "load_session_file",
    "merge_segments",
    "merge_step_records",
    "pair_events",
    "parse_landmark_frames",
    "position_fit_r2",
    "preferred_sprint_model",
    "preset_from_config",
    "run_session_analysis",
    "session_from_dict",
    "session_results_to_dict",
    "stance_phase_angles",
    "steps_table",
    "summarize_steps",
    "validate_events",
]
