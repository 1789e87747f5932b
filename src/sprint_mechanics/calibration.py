"""Pixel-to-track distance mapping: two-point linear and four-point homography."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Protocol, Sequence

import numpy as np

from .constants import DEFAULT_LANE_WIDTH_M, HOMOGRAPHY_MIN_WEIGHT
from .errors import CalibrationDegenerateError

logger = logging.getLogger(__name__)

Pixel = tuple[float, float]

# Condition numbers above this mean the four points are (nearly) collinear.
_MAX_SYSTEM_CONDITION = 1e12


class CoordinateMapper(Protocol):
    """Anything that turns an image pixel into along-track metres."""

    def map_to_distance(self, pixel: Pixel) -> float | None: ...


@dataclass(frozen=True)
class LinearCalibration:
    """Single fixed camera: two reference pixels a known distance apart.

    Pixels are projected onto the origin->end line, so points off the line
    map by their along-line component; positions outside the pair extrapolate.
    """

    origin_px: Pixel
    end_px: Pixel
    reference_distance_m: float

    def __post_init__(self) -> None:
        values = (*self.origin_px, *self.end_px, self.reference_distance_m)
        if not all(np.isfinite(values)):
            raise CalibrationDegenerateError("linear calibration values must be finite")
        if self.reference_distance_m <= 0:
            raise CalibrationDegenerateError("reference_distance_m must be > 0")
        if self._pixel_length_sq() < 1e-12:
            raise CalibrationDegenerateError("origin and end pixels coincide")

    def map_to_distance(self, pixel: Pixel) -> float | None:
        dx = self.end_px[0] - self.origin_px[0]
        dy = self.end_px[1] - self.origin_px[1]
        px = pixel[0] - self.origin_px[0]
        py = pixel[1] - self.origin_px[1]
        ratio = (px * dx + py * dy) / self._pixel_length_sq()
        return float(ratio * self.reference_distance_m)

    def _pixel_length_sq(self) -> float:
        dx = self.end_px[0] - self.origin_px[0]
        dy = self.end_px[1] - self.origin_px[1]
        return float(dx * dx + dy * dy)


@dataclass(frozen=True)
class HomographyCalibration:
    """Panning or multi-segment capture: image plane to ground plane.

    World X is the along-track distance inside the segment, world Y the
    lateral lane position; ``segment_origin_offset_m`` moves the segment into
    the global run frame.
    """

    matrix: tuple[tuple[float, float, float], ...]
    segment_origin_offset_m: float = 0.0

    @classmethod
    def from_correspondences(
        cls,
        image_points: Sequence[Pixel],
        world_points: Sequence[Pixel],
        *,
        segment_origin_offset_m: float = 0.0,
    ) -> HomographyCalibration:
        matrix = fit_homography(image_points, world_points)
        return cls(
            matrix=tuple(tuple(float(v) for v in row) for row in matrix),
            segment_origin_offset_m=float(segment_origin_offset_m),
        )

    @classmethod
    def from_cones(
        cls,
        *,
        x0_near: Pixel,
        x0_far: Pixel,
        x1_near: Pixel,
        x1_far: Pixel,
        x0_m: float,
        x1_m: float,
        lane_width_m: float = DEFAULT_LANE_WIDTH_M,
        segment_origin_offset_m: float = 0.0,
    ) -> HomographyCalibration:
        """Cones at two along-track distances on both sides of the lane."""
        return cls.from_correspondences(
            [x0_near, x0_far, x1_near, x1_far],
            [(x0_m, 0.0), (x0_m, lane_width_m), (x1_m, 0.0), (x1_m, lane_width_m)],
            segment_origin_offset_m=segment_origin_offset_m,
        )

    @property
    def as_array(self) -> np.ndarray:
        return np.array(self.matrix, dtype=float)

    def apply(self, px: float, py: float) -> tuple[float, float] | None:
        """World coordinates for one pixel, ``None`` near the horizon line."""
        h = self.matrix
        x = h[0][0] * px + h[0][1] * py + h[0][2]
        y = h[1][0] * px + h[1][1] * py + h[1][2]
        w = h[2][0] * px + h[2][1] * py + h[2][2]
        if abs(w) < HOMOGRAPHY_MIN_WEIGHT:
            logger.warning("Homography weight %.2e near zero at pixel (%.1f, %.1f)", w, px, py)
            return None
        world_x = x / w
        world_y = y / w
        if not (np.isfinite(world_x) and np.isfinite(world_y)):
            return None
        return (float(world_x), float(world_y))

    def local_distance(self, pixel: Pixel) -> float | None:
        world = self.apply(pixel[0], pixel[1])
        return None if world is None else world[0]

    def map_to_distance(self, pixel: Pixel) -> float | None:
        local = self.local_distance(pixel)
        return None if local is None else self.segment_origin_offset_m + local


def fit_homography(image_points: Sequence[Pixel], world_points: Sequence[Pixel]) -> np.ndarray:
    """Solve the 8-unknown DLT system (h33 = 1) from four correspondences."""
    if len(image_points) != 4 or len(world_points) != 4:
        raise CalibrationDegenerateError("homography needs exactly 4 image/world point pairs")

    rows: list[list[float]] = []
    rhs: list[float] = []
    for (x, y), (wx, wy) in zip(image_points, world_points):
        rows.append([x, y, 1.0, 0.0, 0.0, 0.0, -wx * x, -wx * y])
        rows.append([0.0, 0.0, 0.0, x, y, 1.0, -wy * x, -wy * y])
        rhs.extend([wx, wy])

    system = np.array(rows, dtype=float)
    target = np.array(rhs, dtype=float)
    if not (np.isfinite(system).all() and np.isfinite(target).all()):
        raise CalibrationDegenerateError("homography points must be finite")
    if np.linalg.cond(system) > _MAX_SYSTEM_CONDITION:
        raise CalibrationDegenerateError("homography points are degenerate (collinear or repeated)")

    try:
        solution = np.linalg.solve(system, target)
    except np.linalg.LinAlgError as exc:
        raise CalibrationDegenerateError(f"homography system is singular: {exc}") from exc

    return np.append(solution, 1.0).reshape(3, 3)


def calibration_from_dict(payload: Mapping[str, Any]) -> LinearCalibration | HomographyCalibration:
    """Build a calibration from plain session-file data."""
    kind = str(payload.get("type", "linear")).strip().lower()
    if kind == "linear":
        return LinearCalibration(
            origin_px=_pixel(payload["origin_px"]),
            end_px=_pixel(payload["end_px"]),
            reference_distance_m=float(payload["reference_distance_m"]),
        )
    if kind == "homography":
        offset = float(payload.get("segment_origin_offset_m", 0.0))
        if "matrix" in payload:
            matrix = np.asarray(payload["matrix"], dtype=float)
            if matrix.shape != (3, 3):
                raise CalibrationDegenerateError("homography matrix must be 3x3")
            return HomographyCalibration(
                matrix=tuple(tuple(float(v) for v in row) for row in matrix),
                segment_origin_offset_m=offset,
            )
        return HomographyCalibration.from_cones(
            x0_near=_pixel(payload["x0_near"]),
            x0_far=_pixel(payload["x0_far"]),
            x1_near=_pixel(payload["x1_near"]),
            x1_far=_pixel(payload["x1_far"]),
            x0_m=float(payload["x0_m"]),
            x1_m=float(payload["x1_m"]),
            lane_width_m=float(payload.get("lane_width_m", DEFAULT_LANE_WIDTH_M)),
            segment_origin_offset_m=offset,
        )
    raise ValueError(f"Unknown calibration type: {kind!r}")


def _pixel(value: Sequence[float]) -> Pixel:
    if len(value) != 2:
        raise ValueError(f"pixel must have two coordinates, got {value!r}")
    return (float(value[0]), float(value[1]))
