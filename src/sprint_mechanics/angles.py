"""Sagittal-plane joint angles from 2D landmarks."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import math
from typing import Sequence

import numpy as np
import pandas as pd

from .constants import (
    ASSUMED_THIGH_LENGTH_CM,
    LEFT_ANKLE,
    LEFT_ELBOW,
    LEFT_HIP,
    LEFT_KNEE,
    LEFT_SHOULDER,
    LEFT_TOE,
    LEFT_WRIST,
    RIGHT_ANKLE,
    RIGHT_ELBOW,
    RIGHT_HIP,
    RIGHT_KNEE,
    RIGHT_SHOULDER,
    RIGHT_TOE,
    RIGHT_WRIST,
)
from .landmarks import LandmarkFrame, hip_center_x_series
from .steps import StepRecord, center_of_mass_velocity, running_direction

_SIDES = {
    "left": (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST, LEFT_HIP, LEFT_KNEE, LEFT_ANKLE, LEFT_TOE),
    "right": (RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST, RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE, RIGHT_TOE),
}


@dataclass(frozen=True)
class JointAngles:
    """Angles in degrees for one frame.

    Trunk is 90 when upright. Thigh and shank are 0 when pointing straight
    down and negative when the distal joint is ahead of the proximal one.
    Knee and elbow are flexion from straight; ankle is the shank-foot angle.
    """

    frame: int
    trunk: float
    left_thigh: float | None
    right_thigh: float | None
    left_shank: float | None
    right_shank: float | None
    left_knee: float | None
    right_knee: float | None
    left_ankle: float | None
    right_ankle: float | None
    left_elbow: float | None
    right_elbow: float | None
    left_toe_offset_cm: float | None
    right_toe_offset_cm: float | None


def joint_angles(
    frame: LandmarkFrame | None,
    index: int = 0,
    *,
    direction: float = 1.0,
    frame_size: tuple[int, int] = (1, 1),
    min_visibility: float = 0.5,
) -> JointAngles | None:
    """Angles for a single frame, ``None`` when hips or shoulders are not visible."""
    if frame is None:
        return None
    core = (LEFT_SHOULDER, RIGHT_SHOULDER, LEFT_HIP, RIGHT_HIP)
    if any(frame[i].visibility < min_visibility for i in core):
        return None

    scale = np.array(frame_size, dtype=float)

    def point(i: int) -> np.ndarray:
        return np.array([frame[i].x, frame[i].y]) * scale

    def visible(*indices: int) -> bool:
        return all(frame[i].visibility >= min_visibility for i in indices)

    shoulder_c = (point(LEFT_SHOULDER) + point(RIGHT_SHOULDER)) / 2.0
    hip_c = (point(LEFT_HIP) + point(RIGHT_HIP)) / 2.0
    trunk = math.degrees(math.atan2(hip_c[1] - shoulder_c[1], abs(shoulder_c[0] - hip_c[0])))

    values: dict[str, float | None] = {}
    for side, (shoulder, elbow, wrist, hip, knee, ankle, toe) in _SIDES.items():
        leg_visible = visible(hip, knee, ankle)
        values[f"{side}_thigh"] = (
            _segment_angle(point(hip), point(knee), direction) if visible(hip, knee) else None
        )
        values[f"{side}_shank"] = (
            _segment_angle(point(knee), point(ankle), direction) if visible(knee, ankle) else None
        )
        values[f"{side}_knee"] = (
            180.0 - _interior_angle(point(hip), point(knee), point(ankle)) if leg_visible else None
        )
        values[f"{side}_ankle"] = (
            _interior_angle(point(knee), point(ankle), point(toe)) if visible(knee, ankle, toe) else None
        )
        values[f"{side}_elbow"] = (
            180.0 - _interior_angle(point(shoulder), point(elbow), point(wrist))
            if visible(shoulder, elbow, wrist)
            else None
        )
        thigh_length = float(np.linalg.norm(point(knee) - point(hip)))
        if visible(hip, knee, toe) and thigh_length > 0:
            offset = (point(toe)[0] - hip_c[0]) * direction
            values[f"{side}_toe_offset_cm"] = offset / thigh_length * ASSUMED_THIGH_LENGTH_CM
        else:
            values[f"{side}_toe_offset_cm"] = None

    return JointAngles(frame=index, trunk=trunk, **values)


def joint_angle_table(
    frames: Sequence[LandmarkFrame | None],
    *,
    direction: float | None = None,
    frame_size: tuple[int, int] = (1, 1),
    min_visibility: float = 0.5,
) -> pd.DataFrame:
    """Per-frame joint angles; frames without visible hips/shoulders are skipped."""
    if direction is None:
        direction = running_direction(center_of_mass_velocity(hip_center_x_series(frames), 1.0))
    rows = []
    for index, frame in enumerate(frames):
        angles = joint_angles(
            frame, index, direction=direction, frame_size=frame_size, min_visibility=min_visibility
        )
        if angles is not None:
            rows.append(asdict(angles))
    if not rows:
        return pd.DataFrame(columns=list(JointAngles.__dataclass_fields__))
    return pd.DataFrame(rows)


def stance_phase_angles(
    frames: Sequence[LandmarkFrame | None],
    steps: Sequence[StepRecord],
    *,
    frame_size: tuple[int, int] = (1, 1),
    min_visibility: float = 0.5,
) -> pd.DataFrame:
    """Angles at contact, mid-stance and toe-off of every real step."""
    direction = running_direction(center_of_mass_velocity(hip_center_x_series(frames), 1.0))
    rows = []
    for step in steps:
        if step.is_interpolated:
            continue
        phases = {
            "contact": step.contact_frame,
            "mid_stance": (step.contact_frame + step.toe_off_frame) // 2,
            "toe_off": step.toe_off_frame,
        }
        for phase, frame_index in phases.items():
            if not 0 <= frame_index < len(frames):
                continue
            angles = joint_angles(
                frames[frame_index],
                frame_index,
                direction=direction,
                frame_size=frame_size,
                min_visibility=min_visibility,
            )
            if angles is None:
                continue
            rows.append({"step_index": step.index, "phase": phase, **asdict(angles)})
    return pd.DataFrame(rows)


def _segment_angle(proximal: np.ndarray, distal: np.ndarray, direction: float) -> float:
    dx = (distal[0] - proximal[0]) * direction
    dy = distal[1] - proximal[1]
    return -math.degrees(math.atan2(dx, dy))


def _interior_angle(a: np.ndarray, vertex: np.ndarray, b: np.ndarray) -> float:
    first = a - vertex
    second = b - vertex
    norms = float(np.linalg.norm(first) * np.linalg.norm(second))
    if norms == 0:
        return float("nan")
    cosine = float(np.dot(first, second)) / norms
    return math.degrees(math.acos(max(-1.0, min(1.0, cosine))))
