"""Synthetic landmark sequences with known contact/toe-off timing."""

from __future__ import annotations

import math

from sprint_mechanics.constants import (
    LANDMARK_COUNT,
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
from sprint_mechanics.landmarks import Landmark

CYCLE_FRAMES = 30
GROUND_Y = 0.9

# Detected frames within each 30-frame cycle (smoothing shifts raw events by one frame).
CONTACT_PHASE = 10
TOE_OFF_PHASE = 19


def toe_y(t: int) -> float:
    """Descend 9 frames, stay grounded 12 frames, lift 9 frames."""
    p = t % CYCLE_FRAMES
    if p < 9:
        return 0.81 + 0.01 * p
    if p <= 20:
        return GROUND_Y
    return GROUND_Y - 0.01 * (p - 20)


def hip_x(t: int) -> float:
    return 0.1 + 0.003 * t + 0.002 * math.sin(2 * math.pi * t / CYCLE_FRAMES)


def make_frame(
    toe: float,
    hip: float,
    *,
    hip_y: float = 0.5,
    visibility: float = 0.95,
) -> tuple[Landmark, ...]:
    points = [Landmark(hip, hip_y, 0.0, visibility) for _ in range(LANDMARK_COUNT)]
    placements = {
        LEFT_SHOULDER: (hip + 0.01, hip_y - 0.25),
        RIGHT_SHOULDER: (hip + 0.01, hip_y - 0.25),
        LEFT_ELBOW: (hip + 0.04, hip_y - 0.15),
        RIGHT_ELBOW: (hip - 0.03, hip_y - 0.15),
        LEFT_WRIST: (hip + 0.08, hip_y - 0.18),
        RIGHT_WRIST: (hip - 0.01, hip_y - 0.06),
        LEFT_HIP: (hip, hip_y),
        RIGHT_HIP: (hip, hip_y),
        LEFT_KNEE: (hip + 0.02, hip_y + 0.2),
        RIGHT_KNEE: (hip + 0.02, hip_y + 0.2),
        LEFT_ANKLE: (hip, toe - 0.03),
        RIGHT_ANKLE: (hip, toe - 0.03),
        LEFT_TOE: (hip + 0.03, toe),
        RIGHT_TOE: (hip + 0.03, toe),
    }
    for index, (x, y) in placements.items():
        points[index] = Landmark(x, y, 0.0, visibility)
    return tuple(points)


def make_sprint_frames(n_cycles: int = 5, *, hip_y: float = 0.5) -> list[tuple[Landmark, ...]]:
    return [
        make_frame(toe_y(t), hip_x(t), hip_y=hip_y) for t in range(n_cycles * CYCLE_FRAMES)
    ]


def expected_stances(n_cycles: int) -> list[tuple[int, int]]:
    return [
        (cycle * CYCLE_FRAMES + CONTACT_PHASE, cycle * CYCLE_FRAMES + TOE_OFF_PHASE)
        for cycle in range(n_cycles)
    ]


def frames_as_dicts(frames: list[tuple[Landmark, ...]]) -> list[dict]:
    return [
        {
            "landmarks": [
                {"x": p.x, "y": p.y, "z": p.z, "visibility": p.visibility} for p in frame
            ]
        }
        for frame in frames
    ]
