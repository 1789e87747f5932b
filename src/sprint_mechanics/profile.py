"""Horizontal force-velocity profile (H-FVP) from step or split data."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Literal, Sequence

import numpy as np
from scipy.optimize import least_squares

from .constants import GRAVITY_M_S2, REGRESSION_EPS
from .steps import StepRecord

logger = logging.getLogger(__name__)

RegressionMethod = Literal["ols", "huber"]

# Normal-consistent scale for the median absolute deviation.
_MAD_SCALE = 1.4826


@dataclass(frozen=True)
class ProfileConfig:
    """Regression, filtering and grading settings for the H-FVP fit."""

    regression: RegressionMethod = "ols"
    remove_outliers: bool = False
    outlier_sigma: float = 3.5
    huber_k: float = 1.345
    min_points_after_outliers: int = 3
    min_samples_warning: int = 8
    min_distance_warning_m: float = 20.0
    excellent_r2: float = 0.99
    good_r2: float = 0.97
    min_acceleration_mps2: float = 0.2
    max_speed_drop_mps: float = 0.1


@dataclass(frozen=True)
class LineFit:
    slope: float
    intercept: float
    r2: float
    n: int


@dataclass(frozen=True)
class ForceVelocityProfile:
    """Mechanical sprint parameters.

    ``f0`` in N, ``v0`` in m/s, ``pmax`` in W, ``rf_max`` in %, ``drf`` in
    %/(m/s), ``tau`` in s. ``position_fit_r2`` is ``None`` when no time
    origin is known for the samples.
    """

    f0: float
    v0: float
    pmax: float
    rf_max: float
    drf: float
    tau: float
    fv_r2: float
    position_fit_r2: float | None
    quality_grade: Literal["excellent", "good", "fair"]
    used_point_count: int
    a0: float
    mass_kg: float
    vmax: float
    is_physically_valid: bool = True
    warnings: tuple[str, ...] = ()

    @property
    def f0_rel(self) -> float:
        return self.f0 / self.mass_kg

    @property
    def pmax_rel(self) -> float:
        return self.pmax / self.mass_kg


def fit_line(
    x: Sequence[float],
    y: Sequence[float],
    method: RegressionMethod = "ols",
    huber_k: float = 1.345,
) -> LineFit | None:
    """Least-squares line ``y = slope * x + intercept``.

    Returns ``None`` when fewer than two points exist or ``x`` has no spread.
    The huber variant starts from the OLS solution and down-weights residuals
    beyond ``huber_k`` robust standard deviations.
    """
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if xs.size < 2 or xs.size != ys.size:
        return None
    x_mean = float(xs.mean())
    denominator = float(((xs - x_mean) ** 2).sum())
    if denominator < REGRESSION_EPS:
        return None

    slope = float(((xs - x_mean) * (ys - ys.mean())).sum() / denominator)
    intercept = float(ys.mean() - slope * x_mean)

    if method == "huber":
        sigma = _robust_sigma(ys - (slope * xs + intercept))
        if sigma > REGRESSION_EPS:
            solution = least_squares(
                lambda p: p[0] * xs + p[1] - ys,
                x0=np.array([slope, intercept]),
                loss="huber",
                f_scale=huber_k * sigma,
            )
            slope, intercept = float(solution.x[0]), float(solution.x[1])
    elif method != "ols":
        raise ValueError(f"Unknown regression method: {method!r}")

    r2 = _r_squared(ys, slope * xs + intercept)
    return LineFit(slope=slope, intercept=intercept, r2=r2, n=int(xs.size))


def position_fit_r2(
    times_s: Sequence[float], distances_m: Sequence[float], v0: float, tau: float
) -> float | None:
    """R^2 of ``x(t) = V0 (t - tau (1 - exp(-t / tau)))`` against measured positions."""
    t = np.asarray(times_s, dtype=float)
    measured = np.asarray(distances_m, dtype=float)
    if t.size < 2 or tau <= 0:
        return None
    modelled = v0 * (t - tau * (1.0 - np.exp(-t / tau)))
    return _r_squared(measured, modelled)


def fit_profile_from_steps(
    steps: Sequence[StepRecord],
    mass_kg: float,
    config: ProfileConfig = ProfileConfig(),
    *,
    fps: float | None = None,
    start_frame: int | None = None,
) -> ForceVelocityProfile | None:
    """Fit acceleration against speed over real, non-bad steps.

    Position R^2 needs a time origin, so it is only computed when ``fps`` and
    ``start_frame`` are given and all steps come from one segment.
    """
    usable = [
        s
        for s in steps
        if not s.is_interpolated
        and s.quality != "bad"
        and s.speed is not None
        and s.acceleration is not None
    ]
    speeds = np.array([s.speed for s in usable], dtype=float)
    accelerations = np.array([s.acceleration for s in usable], dtype=float)

    distances = [
        s.distance_at_contact
        for s in steps
        if not s.is_interpolated and s.distance_at_contact is not None
    ]
    span = (max(distances) - min(distances)) if distances else 0.0

    times = positions = None
    single_segment = len({s.segment_id for s in usable}) <= 1
    if fps and start_frame is not None and single_segment:
        timed = [s for s in usable if s.distance_at_contact is not None]
        times = [(s.contact_frame - start_frame) / fps for s in timed]
        positions = [s.distance_at_contact for s in timed]

    return _fit_profile(speeds, accelerations, mass_kg, config, span, times, positions)


def fit_profile_from_splits(
    distances_m: Sequence[float],
    times_s: Sequence[float],
    mass_kg: float,
    config: ProfileConfig = ProfileConfig(),
) -> ForceVelocityProfile | None:
    """Fit from cumulative split distances/times of a run started from rest.

    Each interval contributes its mean speed. The first interval's
    acceleration comes from ``d = a t^2 / 2``; later ones from the change in
    interval speed over the mean of the two interval durations.
    """
    d = np.asarray(distances_m, dtype=float)
    t = np.asarray(times_s, dtype=float)
    if d.size != t.size:
        raise ValueError("distances_m and times_s must have the same length")
    if d.size < 2:
        return _degenerate("at least two splits are required")
    interval_d = np.diff(np.concatenate(([0.0], d)))
    interval_t = np.diff(np.concatenate(([0.0], t)))
    if np.any(interval_d <= 0) or np.any(interval_t <= 0):
        raise ValueError("split distances and times must be positive and strictly increasing")

    speeds = interval_d / interval_t
    accelerations = np.empty_like(speeds)
    accelerations[0] = 2.0 * interval_d[0] / interval_t[0] ** 2
    for i in range(1, speeds.size):
        accelerations[i] = 2.0 * (speeds[i] - speeds[i - 1]) / (interval_t[i] + interval_t[i - 1])

    keep = _acceleration_phase(speeds, accelerations, config)
    return _fit_profile(
        speeds[keep],
        accelerations[keep],
        mass_kg,
        config,
        float(d[-1]),
        list(t),
        list(d),
    )


def _acceleration_phase(
    speeds: np.ndarray, accelerations: np.ndarray, config: ProfileConfig
) -> np.ndarray:
    peak = int(np.argmax(speeds))
    keep = np.zeros(speeds.size, dtype=bool)
    for i in range(peak + 1):
        if accelerations[i] <= config.min_acceleration_mps2:
            continue
        if i > 0 and speeds[i] < speeds[i - 1] - config.max_speed_drop_mps:
            continue
        keep[i] = True
    if int(keep.sum()) < 3:
        logger.debug("Acceleration-phase filter left %d points; using all", int(keep.sum()))
        return np.ones(speeds.size, dtype=bool)
    return keep


def _fit_profile(
    speeds: np.ndarray,
    accelerations: np.ndarray,
    mass_kg: float,
    config: ProfileConfig,
    distance_span_m: float,
    times: Sequence[float] | None,
    positions: Sequence[float] | None,
) -> ForceVelocityProfile | None:
    if mass_kg <= 0:
        return _degenerate("athlete mass must be > 0")
    if speeds.size < 2:
        return _degenerate(f"{speeds.size} usable speed/acceleration points")

    if config.remove_outliers:
        speeds, accelerations = _remove_outliers(speeds, accelerations, config)

    line = fit_line(speeds, accelerations, config.regression, config.huber_k)
    if line is None:
        return _degenerate("no speed spread across samples")
    a0 = line.intercept
    if line.slope >= 0 or a0 <= 0:
        return _degenerate(
            f"non-decreasing force-velocity relation (slope={line.slope:.3f}, a0={a0:.3f})"
        )

    v0 = -a0 / line.slope
    f0 = mass_kg * a0
    tau = v0 / a0

    forces = mass_kg * accelerations
    ratio_of_force = forces / np.sqrt(forces**2 + (mass_kg * GRAVITY_M_S2) ** 2) * 100.0
    rf_line = fit_line(speeds, ratio_of_force, "ols")
    rf_max = rf_line.intercept if rf_line is not None else float("nan")
    drf = rf_line.slope if rf_line is not None else float("nan")

    pos_r2 = position_fit_r2(times, positions, v0, tau) if times and positions else None
    grade_r2 = line.r2 if pos_r2 is None else min(line.r2, pos_r2)
    if grade_r2 >= config.excellent_r2:
        grade = "excellent"
    elif grade_r2 >= config.good_r2:
        grade = "good"
    else:
        grade = "fair"

    vmax = float(np.max(speeds))
    warnings: list[str] = []
    if speeds.size < config.min_samples_warning:
        warnings.append(f"only {speeds.size} samples (recommended >= {config.min_samples_warning})")
    if distance_span_m < config.min_distance_warning_m:
        warnings.append(
            f"measured distance {distance_span_m:.1f} m "
            f"(recommended >= {config.min_distance_warning_m:.0f} m)"
        )
    valid = True
    if v0 < vmax:
        valid = False
        warnings.append(f"V0 {v0:.2f} m/s is below measured top speed {vmax:.2f} m/s")
    if math.isfinite(drf) and drf > 0:
        valid = False
        warnings.append("ratio of force increases with speed")

    profile = ForceVelocityProfile(
        f0=f0,
        v0=v0,
        pmax=f0 * v0 / 4.0,
        rf_max=rf_max,
        drf=drf,
        tau=tau,
        fv_r2=line.r2,
        position_fit_r2=pos_r2,
        quality_grade=grade,
        used_point_count=int(speeds.size),
        a0=a0,
        mass_kg=float(mass_kg),
        vmax=vmax,
        is_physically_valid=valid,
        warnings=tuple(warnings),
    )
    logger.info(
        "H-FVP: F0=%.1f N V0=%.2f m/s Pmax=%.0f W R2=%.3f (%s, %d points)",
        profile.f0,
        profile.v0,
        profile.pmax,
        profile.fv_r2,
        profile.quality_grade,
        profile.used_point_count,
    )
    return profile


def _remove_outliers(
    speeds: np.ndarray, accelerations: np.ndarray, config: ProfileConfig
) -> tuple[np.ndarray, np.ndarray]:
    line = fit_line(speeds, accelerations, "ols")
    if line is None:
        return speeds, accelerations
    residuals = accelerations - (line.slope * speeds + line.intercept)
    sigma = _robust_sigma(residuals)
    if sigma <= REGRESSION_EPS:
        return speeds, accelerations
    keep = np.abs(residuals - np.median(residuals)) <= config.outlier_sigma * sigma
    if int(keep.sum()) < config.min_points_after_outliers:
        return speeds, accelerations
    removed = int((~keep).sum())
    if removed:
        logger.debug("Removed %d outlier(s) before the final fit", removed)
    return speeds[keep], accelerations[keep]


def _robust_sigma(residuals: np.ndarray) -> float:
    median = float(np.median(residuals))
    return _MAD_SCALE * float(np.median(np.abs(residuals - median)))


def _r_squared(observed: np.ndarray, predicted: np.ndarray) -> float:
    ss_res = float(((observed - predicted) ** 2).sum())
    ss_tot = float(((observed - observed.mean()) ** 2).sum())
    if ss_tot < REGRESSION_EPS:
        return 1.0 if ss_res < REGRESSION_EPS else 0.0
    return 1.0 - ss_res / ss_tot


def _degenerate(reason: str) -> None:
    logger.warning("Force-velocity profile unavailable: %s", reason)
    return None
