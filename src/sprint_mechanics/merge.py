"""Stitch steps from several camera segments into one run."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
from typing import Mapping, Sequence

import numpy as np

from .calibration import CoordinateMapper
from .steps import StepRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeConfig:
    """Distance thresholds for deduplication, gap filling and stride checks."""

    duplicate_distance_m: float = 0.5
    interpolation_gap_m: float = 2.0
    min_plausible_stride_m: float = 0.6
    max_plausible_stride_m: float = 2.2


@dataclass(frozen=True)
class SegmentSteps:
    """Steps detected in one camera segment plus that segment's calibration."""

    segment_id: str
    mapper: CoordinateMapper
    steps: tuple[StepRecord, ...]


@dataclass(frozen=True)
class MergeResult:
    steps: tuple[StepRecord, ...]
    duplicates_removed: int
    interpolated_added: int
    representative_stride_m: float | None
    warnings: tuple[str, ...] = ()

    @property
    def real_steps(self) -> list[StepRecord]:
        return [step for step in self.steps if not step.is_interpolated]


def merge_segments(
    segments: Sequence[SegmentSteps], config: MergeConfig = MergeConfig()
) -> MergeResult:
    """Place every segment's contacts in the global distance frame, then merge."""
    placed: list[StepRecord] = []
    warnings: list[str] = []
    for segment in segments:
        for step in segment.steps:
            if step.is_interpolated:
                continue
            distance = (
                segment.mapper.map_to_distance(step.contact_pixel)
                if step.contact_pixel is not None
                else None
            )
            if distance is None:
                message = (
                    f"segment {segment.segment_id}: contact at frame {step.contact_frame} "
                    "has no mapped distance; step dropped"
                )
                logger.warning(message)
                warnings.append(message)
                continue
            placed.append(
                replace(step, distance_at_contact=distance, segment_id=segment.segment_id)
            )

    rank = {segment.segment_id: position for position, segment in enumerate(segments)}
    result = merge_step_records(placed, config, segment_rank=rank)
    if warnings:
        result = replace(result, warnings=tuple(warnings) + result.warnings)
    return result


def merge_step_records(
    steps: Sequence[StepRecord],
    config: MergeConfig = MergeConfig(),
    *,
    segment_rank: Mapping[str, int] | None = None,
) -> MergeResult:
    """Sort by distance, drop duplicates, fill gaps and recompute strides.

    Running this on its own output returns the same steps.
    """
    rank = dict(segment_rank or {})
    warnings: list[str] = []

    real = []
    for step in steps:
        if step.is_interpolated:
            continue
        if step.distance_at_contact is None:
            message = f"contact at frame {step.contact_frame} has no distance; step dropped"
            logger.warning(message)
            warnings.append(message)
            continue
        real.append(step)

    def order_key(step: StepRecord) -> tuple[float, int, int]:
        return (step.distance_at_contact, rank.get(step.segment_id, 0), step.contact_frame)

    kept: list[StepRecord] = []
    duplicates = 0
    for step in sorted(real, key=order_key):
        if kept and step.distance_at_contact - kept[-1].distance_at_contact < config.duplicate_distance_m:
            duplicates += 1
            previous = kept[-1]
            if rank.get(step.segment_id, 0) < rank.get(previous.segment_id, 0):
                kept[-1] = step
                dropped = previous
            else:
                dropped = step
            message = (
                f"duplicate contact at {dropped.distance_at_contact:.2f} m "
                f"(segment {dropped.segment_id}) removed"
            )
            logger.debug(message)
            warnings.append(message)
            continue
        kept.append(step)

    strides = [b.distance_at_contact - a.distance_at_contact for a, b in zip(kept, kept[1:])]
    representative = float(np.median(strides)) if strides else None

    merged: list[StepRecord] = []
    added = 0
    for position, step in enumerate(kept):
        merged.append(step)
        if position + 1 >= len(kept):
            break
        gap = kept[position + 1].distance_at_contact - step.distance_at_contact
        if gap <= config.interpolation_gap_m:
            continue
        missing = math.floor(gap / representative) - 1 if representative else 0
        if missing <= 0:
            message = f"gap of {gap:.2f} m after {step.distance_at_contact:.2f} m left unfilled"
            logger.warning(message)
            warnings.append(message)
            continue
        spacing = gap / (missing + 1)
        for k in range(1, missing + 1):
            merged.append(_interpolated_step(step, step.distance_at_contact + spacing * k))
        added += missing
        message = f"gap of {gap:.2f} m after {step.distance_at_contact:.2f} m filled with {missing} step(s)"
        logger.debug(message)
        warnings.append(message)

    final = _recompute_strides(merged, config)
    logger.info(
        "Merged %d steps (%d duplicates removed, %d interpolated)",
        len(final),
        duplicates,
        added,
    )
    return MergeResult(
        steps=tuple(final),
        duplicates_removed=duplicates,
        interpolated_added=added,
        representative_stride_m=representative,
        warnings=tuple(warnings),
    )


def _interpolated_step(template: StepRecord, distance: float) -> StepRecord:
    return replace(
        template,
        distance_at_contact=distance,
        stride=None,
        speed=None,
        acceleration=None,
        brake_impulse_ratio=None,
        kick_impulse_ratio=None,
        contact_pixel=None,
        quality="warning",
        is_interpolated=True,
    )


def _recompute_strides(steps: list[StepRecord], config: MergeConfig) -> list[StepRecord]:
    """Strides between consecutive real steps.

    A stride that spans interpolated steps or falls outside the plausible
    range does not match its step time, so its speed and acceleration are
    left empty.
    """
    real_positions = [i for i, step in enumerate(steps) if not step.is_interpolated]
    strides: dict[int, float | None] = {}
    implausible: dict[int, bool] = {}
    speeds: dict[int, float | None] = {}
    for order, position in enumerate(real_positions):
        step = steps[position]
        stride = None
        bridged = False
        if order + 1 < len(real_positions):
            next_position = real_positions[order + 1]
            stride = steps[next_position].distance_at_contact - step.distance_at_contact
            bridged = next_position != position + 1
        strides[position] = stride
        implausible[position] = stride is not None and not (
            config.min_plausible_stride_m <= stride <= config.max_plausible_stride_m
        )
        timed = stride is not None and step.step_time and not (bridged or implausible[position])
        speeds[position] = stride / step.step_time if timed else None

    result: list[StepRecord] = []
    for index, step in enumerate(steps):
        if step.is_interpolated:
            result.append(replace(step, index=index))
            continue
        order = real_positions.index(index)
        acceleration = None
        if order + 1 < len(real_positions) and step.step_time:
            current = speeds[index]
            following = speeds[real_positions[order + 1]]
            if current is not None and following is not None:
                acceleration = (following - current) / step.step_time

        quality = step.quality
        if implausible[index] and quality == "good":
            quality = "warning"
        result.append(
            replace(
                step,
                index=index,
                stride=strides[index],
                speed=speeds[index],
                acceleration=acceleration,
                quality=quality,
            )
        )
    return result
