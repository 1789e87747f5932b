"""Immutable analysis session and the one-pass recompute over it."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from .angles import stance_phase_angles
from .calibration import HomographyCalibration, LinearCalibration, calibration_from_dict
from .detection import DetectionResult, GaitEventDetector
from .errors import CalibrationDegenerateError, InsufficientSignalError
from .landmarks import CaptureMode, LandmarkFrame, fill_landmark_gaps, parse_landmark_frames
from .merge import MergeResult, SegmentSteps, merge_segments
from .presets import AnalysisPreset, preferred_sprint_model
from .profile import ForceVelocityProfile, fit_profile_from_splits, fit_profile_from_steps
from .steps import StepRecord, build_step_records, steps_table, summarize_steps

logger = logging.getLogger(__name__)

Calibration = LinearCalibration | HomographyCalibration


@dataclass(frozen=True)
class SegmentInput:
    """Landmarks from one camera segment and its calibration (if any)."""

    segment_id: str
    frames: tuple[LandmarkFrame | None, ...]
    calibration: Calibration | None = None
    search_from: int = 0
    search_to: int | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisSession:
    """Everything the engine needs; any change means a full recompute."""

    fps: float
    segments: tuple[SegmentInput, ...]
    frame_size: tuple[int, int] = (1, 1)
    mode: CaptureMode = CaptureMode.FIXED
    mass_kg: float | None = None
    start_frame: int | None = None
    split_distances_m: tuple[float, ...] = ()
    split_times_s: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise ValueError("fps must be > 0")
        if not self.segments:
            raise ValueError("session needs at least one segment")
        if len(self.split_distances_m) != len(self.split_times_s):
            raise ValueError("split distances and times must have the same length")
        ids = [segment.segment_id for segment in self.segments]
        if len(set(ids)) != len(ids):
            raise ValueError(f"segment ids must be unique: {ids}")


@dataclass(frozen=True)
class SegmentAnalysis:
    segment_id: str
    detection: DetectionResult | None
    steps: tuple[StepRecord, ...]
    stance_angles: pd.DataFrame
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionAnalysisResults:
    """Container for one-pass session analysis outputs."""

    model: AnalysisPreset
    segments: tuple[SegmentAnalysis, ...]
    steps: tuple[StepRecord, ...]
    merge: MergeResult | None
    summary: dict[str, Any]
    profile: ForceVelocityProfile | None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def steps_df(self) -> pd.DataFrame:
        return steps_table(self.steps)


def analyze_segment(
    segment: SegmentInput,
    session: AnalysisSession,
    preset: AnalysisPreset,
) -> SegmentAnalysis:
    """Detect events and build steps for one segment.

    A segment without usable toe motion yields no steps and a warning rather
    than failing the session.
    """
    warnings = list(segment.warnings)
    filled = fill_landmark_gaps(segment.frames, preset.detection.gap_fill)
    try:
        detector = GaitEventDetector.from_frames(
            filled, session.mode, preset.detection, fill_gaps=False
        )
    except InsufficientSignalError as exc:
        message = f"segment {segment.segment_id}: {exc}"
        logger.warning(message)
        return SegmentAnalysis(
            segment_id=segment.segment_id,
            detection=None,
            steps=(),
            stance_angles=pd.DataFrame(),
            warnings=(*warnings, message),
        )

    detection = detector.auto_detect_all(segment.search_from, segment.search_to)
    if detection.truncated:
        warnings.append(
            f"segment {segment.segment_id}: detection stopped after {detection.iterations} iterations"
        )
    if segment.calibration is None:
        warnings.append(f"segment {segment.segment_id}: no calibration; distances unavailable")

    steps = build_step_records(
        detection.stances,
        session.fps,
        frames=filled,
        mapper=segment.calibration,
        frame_size=session.frame_size,
        config=preset.steps,
        segment_id=segment.segment_id,
    )
    angles = stance_phase_angles(filled, steps, frame_size=session.frame_size)
    return SegmentAnalysis(
        segment_id=segment.segment_id,
        detection=detection,
        steps=tuple(steps),
        stance_angles=angles,
        warnings=tuple(warnings),
    )


def run_session_analysis(
    session: AnalysisSession,
    *,
    model: AnalysisPreset | None = None,
) -> SessionAnalysisResults:
    """Run the full analysis stack once and return reusable outputs."""
    active_model = model or preferred_sprint_model()
    analyses = tuple(analyze_segment(segment, session, active_model) for segment in session.segments)
    warnings = [message for analysis in analyses for message in analysis.warnings]

    merge: MergeResult | None = None
    if len(session.segments) > 1:
        mapped = []
        for segment, analysis in zip(session.segments, analyses):
            if segment.calibration is None:
                warnings.append(f"segment {segment.segment_id}: excluded from merge (no calibration)")
                continue
            mapped.append(SegmentSteps(segment.segment_id, segment.calibration, analysis.steps))
        merge = merge_segments(mapped, active_model.merge)
        warnings.extend(merge.warnings)
        steps = merge.steps
    else:
        steps = analyses[0].steps

    profile = None
    if session.mass_kg is not None:
        if session.split_distances_m:
            profile = fit_profile_from_splits(
                session.split_distances_m, session.split_times_s, session.mass_kg, active_model.profile
            )
        else:
            profile = fit_profile_from_steps(
                steps,
                session.mass_kg,
                active_model.profile,
                fps=session.fps if len(session.segments) == 1 else None,
                start_frame=session.start_frame,
            )
        if profile is None:
            warnings.append("force-velocity profile unavailable")
        else:
            warnings.extend(profile.warnings)

    return SessionAnalysisResults(
        model=active_model,
        segments=analyses,
        steps=tuple(steps),
        merge=merge,
        summary=summarize_steps(steps),
        profile=profile,
        warnings=tuple(warnings),
    )


def session_results_to_dict(results: SessionAnalysisResults) -> dict[str, Any]:
    """Plain-data view of the results for JSON output."""
    profile = None
    if results.profile is not None:
        profile = asdict(results.profile)
        profile["f0_rel"] = results.profile.f0_rel
        profile["pmax_rel"] = results.profile.pmax_rel

    merge = None
    if results.merge is not None:
        merge = {
            "duplicates_removed": results.merge.duplicates_removed,
            "interpolated_added": results.merge.interpolated_added,
            "representative_stride_m": results.merge.representative_stride_m,
        }

    segments = []
    for analysis in results.segments:
        detection = analysis.detection
        segments.append(
            {
                "segment_id": analysis.segment_id,
                "stance_count": len(detection.stances) if detection is not None else 0,
                "truncated": detection.truncated if detection is not None else False,
                "step_count": len(analysis.steps),
                "stance_angles": _jsonify_records(analysis.stance_angles),
            }
        )

    payload = {
        "model": results.model.name,
        "summary": results.summary,
        "steps": [asdict(step) for step in results.steps],
        "profile": profile,
        "merge": merge,
        "segments": segments,
        "warnings": list(results.warnings),
    }
    return _jsonify_obj(payload)


def session_from_dict(payload: Mapping[str, Any]) -> AnalysisSession:
    """Build a session from plain data (the session-file layout)."""
    if "fps" not in payload:
        raise ValueError("session is missing 'fps'")

    raw_segments: Sequence[Mapping[str, Any]]
    if "segments" in payload:
        raw_segments = payload["segments"]
    else:
        raw_segments = [
            {
                "id": payload.get("segment_id", "main"),
                "frames": payload.get("frames", []),
                "calibration": payload.get("calibration"),
            }
        ]

    segments = []
    for position, raw in enumerate(raw_segments):
        segment_id = str(raw.get("id", position))
        calibration = None
        segment_warnings: tuple[str, ...] = ()
        if raw.get("calibration"):
            try:
                calibration = calibration_from_dict(raw["calibration"])
            except CalibrationDegenerateError as exc:
                message = f"segment {segment_id}: calibration rejected ({exc})"
                logger.warning(message)
                segment_warnings = (message,)
        segments.append(
            SegmentInput(
                segment_id=segment_id,
                frames=tuple(parse_landmark_frames(raw.get("frames", []))),
                calibration=calibration,
                search_from=int(raw.get("search_from", 0)),
                search_to=int(raw["search_to"]) if raw.get("search_to") is not None else None,
                warnings=segment_warnings,
            )
        )

    splits = payload.get("splits") or {}
    frame_size = payload.get("frame_size", (1, 1))
    mass = payload.get("mass_kg")
    start_frame = payload.get("start_frame")
    return AnalysisSession(
        fps=float(payload["fps"]),
        segments=tuple(segments),
        frame_size=(int(frame_size[0]), int(frame_size[1])),
        mode=CaptureMode(str(payload.get("mode", CaptureMode.FIXED.value)).lower()),
        mass_kg=float(mass) if mass is not None else None,
        start_frame=int(start_frame) if start_frame is not None else None,
        split_distances_m=tuple(float(v) for v in splits.get("distances_m", ())),
        split_times_s=tuple(float(v) for v in splits.get("times_s", ())),
    )


def load_session_file(path: str | Path) -> AnalysisSession:
    """Load a JSON session file."""
    session_path = Path(path)
    if not session_path.exists():
        raise FileNotFoundError(f"Missing session file: {session_path}")
    return session_from_dict(json.loads(session_path.read_text(encoding="utf-8")))


def _jsonify_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    return [_jsonify_obj(row) for row in frame.to_dict(orient="records")]


def _jsonify_obj(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonify_obj(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonify_obj(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    return value
