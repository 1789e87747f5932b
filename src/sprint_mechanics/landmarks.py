"""Landmark gap filling and toe-height signal preparation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from .constants import (
    LANDMARK_COUNT,
    LEFT_ANKLE,
    LEFT_HIP,
    LEFT_TOE,
    MIN_SIGNAL_RANGE,
    MIN_SIGNAL_SAMPLES,
    RIGHT_ANKLE,
    RIGHT_HIP,
    RIGHT_TOE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Landmark:
    """Normalized body point in image space (y grows downward)."""

    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0


LandmarkFrame = tuple[Landmark, ...]


class CaptureMode(str, Enum):
    """Camera setup that produced the landmark sequence."""

    FIXED = "fixed"
    PANNING = "panning"


@dataclass(frozen=True)
class GapFillConfig:
    """Gap-filling search bounds and confidence discounts."""

    max_search_frames: int = 20
    interpolated_confidence_factor: float = 0.9
    one_sided_confidence_factor: float = 0.7


@dataclass(frozen=True)
class ToeSignalSample:
    """One frame of the smoothed toe-height signal."""

    frame: int
    smoothed_height: float
    velocity: float


@dataclass(frozen=True)
class ToeSignal:
    """Smoothed toe height plus forward-difference velocity.

    Heights follow image coordinates, so the value grows as the toe moves
    toward the ground: positive velocity is descent, negative is lift.
    Frames without landmarks hold NaN.
    """

    height: np.ndarray
    velocity: np.ndarray
    signal_range: float
    mode: CaptureMode

    def __len__(self) -> int:
        return int(self.height.shape[0])

    @property
    def valid_count(self) -> int:
        return int(np.isfinite(self.height).sum())

    def samples(self) -> list[ToeSignalSample]:
        return [
            ToeSignalSample(frame=i, smoothed_height=float(h), velocity=float(v))
            for i, (h, v) in enumerate(zip(self.height, self.velocity))
            if np.isfinite(h)
        ]


def parse_landmark_frames(raw_frames: Sequence[Any]) -> list[LandmarkFrame | None]:
    """Convert pose-estimator output (dicts or lists) into landmark frames.

    Each entry may be ``None``, a list of ``{x, y, z, visibility}`` mappings,
    or a mapping with a ``landmarks`` key holding such a list.
    """
    frames: list[LandmarkFrame | None] = []
    for index, entry in enumerate(raw_frames):
        if entry is None:
            frames.append(None)
            continue
        points = entry.get("landmarks") if isinstance(entry, Mapping) else entry
        if points is None:
            frames.append(None)
            continue
        if len(points) < LANDMARK_COUNT:
            raise ValueError(
                f"frame {index} has {len(points)} landmarks; expected {LANDMARK_COUNT}"
            )
        frames.append(tuple(_parse_landmark(point) for point in points))
    return frames


def fill_landmark_gaps(
    frames: Sequence[LandmarkFrame | None],
    config: GapFillConfig = GapFillConfig(),
) -> list[LandmarkFrame | None]:
    """Fill missing frames from the nearest detected neighbours.

    Neighbours are searched in the original sequence only, so filled frames
    never seed further fills.
    """
    filled = list(frames)
    filled_count = 0
    for index, frame in enumerate(frames):
        if frame is not None:
            continue
        prev_i = _nearest_detected(frames, index, -1, config.max_search_frames)
        next_i = _nearest_detected(frames, index, 1, config.max_search_frames)

        if prev_i is not None and next_i is not None:
            ratio = (index - prev_i) / (next_i - prev_i)
            filled[index] = _interpolate_frame(
                frames[prev_i], frames[next_i], ratio, config.interpolated_confidence_factor
            )
        elif prev_i is not None or next_i is not None:
            source = frames[prev_i if prev_i is not None else next_i]
            filled[index] = _discount_frame(source, config.one_sided_confidence_factor)
        else:
            continue
        filled_count += 1

    if filled_count:
        logger.debug("Filled %d of %d missing landmark frames", filled_count, len(frames))
    return filled


def raw_toe_height(
    frame: LandmarkFrame | None,
    mode: CaptureMode = CaptureMode.FIXED,
    *,
    min_visibility: float = 0.3,
) -> float:
    """Lowest toe position for one frame, hip-relative when the camera pans."""
    if frame is None:
        return float("nan")

    toes = [frame[i] for i in (LEFT_TOE, RIGHT_TOE) if frame[i].visibility >= min_visibility]
    if not toes:
        return float("nan")
    toe_y = max(point.y for point in toes)

    if mode == CaptureMode.PANNING:
        return toe_y - (frame[LEFT_HIP].y + frame[RIGHT_HIP].y) / 2.0
    return toe_y


def build_toe_signal(
    frames: Sequence[LandmarkFrame | None],
    mode: CaptureMode = CaptureMode.FIXED,
    *,
    min_visibility: float = 0.3,
) -> ToeSignal | None:
    """Smoothed toe-height signal, or ``None`` when no vertical foot motion exists."""
    raw = np.array(
        [raw_toe_height(frame, mode, min_visibility=min_visibility) for frame in frames],
        dtype=float,
    )
    missing = ~np.isfinite(raw)

    rolled = pd.Series(raw).rolling(3, center=True, min_periods=1).mean()
    smoothed = rolled.to_numpy(dtype=float, copy=True)
    smoothed[missing] = np.nan

    valid = np.isfinite(smoothed)
    if int(valid.sum()) < MIN_SIGNAL_SAMPLES:
        logger.debug("Toe signal has %d valid samples; need %d", int(valid.sum()), MIN_SIGNAL_SAMPLES)
        return None

    signal_range = float(np.nanmax(smoothed) - np.nanmin(smoothed))
    if signal_range < MIN_SIGNAL_RANGE:
        logger.debug("Toe signal range %.2e below %.0e", signal_range, MIN_SIGNAL_RANGE)
        return None

    velocity = np.full_like(smoothed, np.nan)
    velocity[:-1] = np.diff(smoothed)
    return ToeSignal(height=smoothed, velocity=velocity, signal_range=signal_range, mode=mode)


def hip_center_x_series(frames: Sequence[LandmarkFrame | None]) -> np.ndarray:
    """Body-centre horizontal position per frame (NaN when undetected)."""
    return np.array(
        [
            (frame[LEFT_HIP].x + frame[RIGHT_HIP].x) / 2.0 if frame is not None else np.nan
            for frame in frames
        ],
        dtype=float,
    )


def contact_foot_pixel(
    frame: LandmarkFrame | None, frame_size: tuple[int, int]
) -> tuple[float, float] | None:
    """Pixel position of the grounded foot (the lower of the two in the image)."""
    if frame is None:
        return None
    width, height = frame_size

    left_y = max(frame[LEFT_ANKLE].y, frame[LEFT_TOE].y)
    right_y = max(frame[RIGHT_ANKLE].y, frame[RIGHT_TOE].y)
    if left_y > right_y:
        foot_x = (frame[LEFT_ANKLE].x + frame[LEFT_TOE].x) / 2.0
        foot_y = left_y
    else:
        foot_x = (frame[RIGHT_ANKLE].x + frame[RIGHT_TOE].x) / 2.0
        foot_y = right_y
    return (foot_x * width, foot_y * height)


def _parse_landmark(point: Any) -> Landmark:
    if isinstance(point, Landmark):
        return point
    if isinstance(point, Mapping):
        return Landmark(
            x=float(point["x"]),
            y=float(point["y"]),
            z=float(point.get("z", 0.0)),
            visibility=float(point.get("visibility", 1.0)),
        )
    values = [float(value) for value in point]
    return Landmark(*values[:4])


def _nearest_detected(
    frames: Sequence[LandmarkFrame | None], index: int, step: int, limit: int
) -> int | None:
    for offset in range(1, limit + 1):
        candidate = index + step * offset
        if candidate < 0 or candidate >= len(frames):
            return None
        if frames[candidate] is not None:
            return candidate
    return None


def _interpolate_frame(
    before: LandmarkFrame, after: LandmarkFrame, ratio: float, confidence_factor: float
) -> LandmarkFrame:
    return tuple(
        Landmark(
            x=a.x + (b.x - a.x) * ratio,
            y=a.y + (b.y - a.y) * ratio,
            z=a.z + (b.z - a.z) * ratio,
            visibility=min(a.visibility, b.visibility) * confidence_factor,
        )
        for a, b in zip(before, after)
    )


def _discount_frame(source: LandmarkFrame, confidence_factor: float) -> LandmarkFrame:
    return tuple(
        Landmark(x=p.x, y=p.y, z=p.z, visibility=p.visibility * confidence_factor) for p in source
    )
