"""Per-step timing, stride, speed and brake/kick metrics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from typing import Any, Literal, Sequence

import numpy as np
import pandas as pd

from .calibration import CoordinateMapper
from .landmarks import LandmarkFrame, contact_foot_pixel, hip_center_x_series

logger = logging.getLogger(__name__)

Quality = Literal["good", "warning", "bad"]


@dataclass(frozen=True)
class StepMetricsConfig:
    """Step derivation policy."""

    standing_start: bool = False
    dead_band_ratio: float = 0.05
    min_usable_stance_frames: int = 3
    good_stance_frames: int = 6


@dataclass(frozen=True)
class StepRecord:
    """One ground contact and the step that follows it.

    Times are seconds, distances metres along the track. Metrics that need a
    following contact or a mapped distance are ``None`` when unavailable.
    """

    index: int
    contact_frame: int
    toe_off_frame: int
    next_contact_frame: int | None
    contact_time: float
    flight_time: float | None
    step_time: float | None
    pitch: float | None
    stride: float | None
    speed: float | None
    acceleration: float | None
    brake_impulse_ratio: float | None
    kick_impulse_ratio: float | None
    quality: Quality
    distance_at_contact: float | None
    contact_pixel: tuple[float, float] | None = None
    segment_id: str | None = None
    is_interpolated: bool = False
    usable_stance_frames: int = 0


def center_of_mass_velocity(hip_x: np.ndarray, fps: float) -> np.ndarray:
    """Horizontal body-centre velocity (central difference, one-sided at the ends)."""
    series = np.asarray(hip_x, dtype=float)
    if series.size < 2:
        return np.full_like(series, np.nan)
    return np.gradient(series) * fps


def running_direction(com_velocity: np.ndarray) -> float:
    """+1 when the athlete moves toward larger image x, -1 otherwise."""
    finite = com_velocity[np.isfinite(com_velocity)]
    if finite.size == 0:
        return 1.0
    return -1.0 if float(np.median(finite)) < 0 else 1.0


def impulse_ratios(
    com_velocity: np.ndarray,
    contact_frame: int,
    toe_off_frame: int,
    config: StepMetricsConfig = StepMetricsConfig(),
    direction: float = 1.0,
) -> tuple[float | None, float | None, int]:
    """Brake and kick shares of the stance-phase velocity change.

    Returns ``(brake_ratio, kick_ratio, usable_frames)``; both ratios are
    ``None`` when fewer than ``min_usable_stance_frames`` deltas are usable or
    the stance shows no velocity change outside the dead-band.
    """
    deltas = []
    for t in range(contact_frame, toe_off_frame):
        if t < 0 or t + 1 >= com_velocity.size:
            continue
        delta = (com_velocity[t + 1] - com_velocity[t]) * direction
        if np.isfinite(delta):
            deltas.append(float(delta))

    usable = len(deltas)
    if usable < config.min_usable_stance_frames:
        return None, None, usable

    values = np.array(deltas)
    dead_band = config.dead_band_ratio * float(np.max(np.abs(values)))
    braking = float(np.abs(values[values < -dead_band]).sum())
    propulsion = float(values[values > dead_band].sum())
    total = braking + propulsion
    if total <= 0:
        return None, None, usable
    brake = braking / total
    return brake, 1.0 - brake, usable


def build_step_records(
    stances: Sequence[tuple[int, int]],
    fps: float,
    *,
    frames: Sequence[LandmarkFrame | None] | None = None,
    mapper: CoordinateMapper | None = None,
    frame_size: tuple[int, int] = (1, 1),
    config: StepMetricsConfig = StepMetricsConfig(),
    segment_id: str | None = None,
) -> list[StepRecord]:
    """Turn validated (contact, toe-off) pairs into step records."""
    if fps <= 0:
        raise ValueError("fps must be > 0")
    ordered = sorted(stances)
    if not ordered:
        return []

    if frames is not None:
        com_velocity = center_of_mass_velocity(hip_center_x_series(frames), fps)
        direction = running_direction(com_velocity)
    else:
        com_velocity = np.array([], dtype=float)
        direction = 1.0

    pixels: list[tuple[float, float] | None] = []
    distances: list[float | None] = []
    for contact, _ in ordered:
        pixel = None
        if frames is not None and 0 <= contact < len(frames):
            pixel = contact_foot_pixel(frames[contact], frame_size)
        pixels.append(pixel)
        distance = mapper.map_to_distance(pixel) if mapper is not None and pixel is not None else None
        distances.append(distance)

    unmapped = sum(1 for d in distances if d is None)
    if mapper is not None and unmapped:
        logger.warning("%d of %d contacts could not be mapped to a distance", unmapped, len(ordered))

    step_times: list[float | None] = []
    strides: list[float | None] = []
    for i, (contact, _) in enumerate(ordered):
        next_contact = ordered[i + 1][0] if i + 1 < len(ordered) else None
        step_times.append((next_contact - contact) / fps if next_contact is not None else None)
        if i == 0 and config.standing_start:
            strides.append(distances[0])
        elif i + 1 < len(ordered):
            strides.append(_difference(distances[i + 1], distances[i]))
        else:
            strides.append(None)

    speeds = [
        stride / step_time if stride is not None and step_time else None
        for stride, step_time in zip(strides, step_times)
    ]

    records: list[StepRecord] = []
    for i, (contact, toe_off) in enumerate(ordered):
        next_contact = ordered[i + 1][0] if i + 1 < len(ordered) else None
        step_time = step_times[i]
        acceleration = None
        if i + 1 < len(ordered) and step_time:
            delta = _difference(speeds[i + 1], speeds[i])
            acceleration = delta / step_time if delta is not None else None

        brake, kick, usable = impulse_ratios(com_velocity, contact, toe_off, config, direction)
        records.append(
            StepRecord(
                index=i,
                contact_frame=contact,
                toe_off_frame=toe_off,
                next_contact_frame=next_contact,
                contact_time=(toe_off - contact) / fps,
                flight_time=(next_contact - toe_off) / fps if next_contact is not None else None,
                step_time=step_time,
                pitch=1.0 / step_time if step_time else None,
                stride=strides[i],
                speed=speeds[i],
                acceleration=acceleration,
                brake_impulse_ratio=brake,
                kick_impulse_ratio=kick,
                quality=_stance_quality(usable, config, has_ratios=brake is not None),
                distance_at_contact=distances[i],
                contact_pixel=pixels[i],
                segment_id=segment_id,
                usable_stance_frames=usable,
            )
        )

    bad = sum(1 for r in records if r.quality == "bad")
    logger.info(
        "Built %d steps%s (%d bad)",
        len(records),
        f" for segment {segment_id}" if segment_id is not None else "",
        bad,
    )
    return records


def summarize_steps(steps: Sequence[StepRecord]) -> dict[str, Any]:
    """Session aggregates over real, non-bad steps only."""
    real = [s for s in steps if not s.is_interpolated]
    valid = [s for s in real if s.quality != "bad"]

    strides = _present(s.stride for s in valid)
    pitches = _present(s.pitch for s in valid)
    avg_pitch = _mean(pitches)
    return {
        "step_count": len(steps),
        "real_step_count": len(real),
        "interpolated_step_count": len(steps) - len(real),
        "bad_step_count": len(real) - len(valid),
        "avg_stride_m": _mean(strides),
        "median_stride_m": float(np.median(strides)) if strides else None,
        "avg_speed_mps": _mean(_present(s.speed for s in valid)),
        "max_speed_mps": max(_present(s.speed for s in valid), default=None),
        "avg_contact_time_s": _mean([s.contact_time for s in valid]),
        "avg_flight_time_s": _mean(_present(s.flight_time for s in valid)),
        "avg_pitch_hz": avg_pitch,
        "cadence_spm": avg_pitch * 60.0 if avg_pitch is not None else None,
        "avg_brake_ratio": _mean(_present(s.brake_impulse_ratio for s in valid)),
        "avg_kick_ratio": _mean(_present(s.kick_impulse_ratio for s in valid)),
    }


def steps_table(steps: Sequence[StepRecord]) -> pd.DataFrame:
    """Step records as a table, one row per step."""
    if not steps:
        return pd.DataFrame(columns=[name for name in StepRecord.__dataclass_fields__])
    return pd.DataFrame([asdict(step) for step in steps])


def _stance_quality(usable: int, config: StepMetricsConfig, *, has_ratios: bool) -> Quality:
    if usable < config.min_usable_stance_frames:
        return "bad"
    if usable < config.good_stance_frames:
        return "warning"
    if not has_ratios:
        # Enough frames but no velocity change outside the dead-band.
        return "warning"
    return "good"


def _difference(later: float | None, earlier: float | None) -> float | None:
    if later is None or earlier is None:
        return None
    return later - earlier


def _present(values: Any) -> list[float]:
    return [float(v) for v in values if v is not None]


def _mean(values: Sequence[float]) -> float | None:
    return float(np.mean(values)) if values else None
