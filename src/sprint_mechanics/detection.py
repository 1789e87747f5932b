"""Contact and toe-off detection on the smoothed toe-height signal."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Sequence

import numpy as np

from .constants import MIN_SIGNAL_SAMPLES
from .errors import DetectionFailure, InsufficientSignalError
from .landmarks import (
    CaptureMode,
    GapFillConfig,
    LandmarkFrame,
    ToeSignal,
    build_toe_signal,
    fill_landmark_gaps,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionConfig:
    """Search windows and range-relative thresholds for event detection.

    Thresholds are fractions of the toe signal's dynamic range, so detection
    does not depend on athlete size or camera distance.
    """

    contact_window_frames: int = 90
    toe_off_window_frames: int = 60
    descent_lookback_frames: int = 4
    plateau_lookahead_frames: int = 4
    min_plateau_frames: int = 2
    descent_ratio: float = 0.002
    plateau_ratio: float = 0.001
    lift_ratio: float = 0.0015
    min_lift_run_frames: int = 3
    min_stance_frames: int = 8
    advance_after_toe_off: int = 3
    advance_after_miss: int = 5
    forced_toe_off_offset: int = 15
    max_iterations: int = 100
    min_toe_visibility: float = 0.3
    gap_fill: GapFillConfig = field(default_factory=GapFillConfig)


class GaitEventKind(str, Enum):
    CONTACT = "contact"
    TOE_OFF = "toeOff"


@dataclass(frozen=True)
class GaitEvent:
    kind: GaitEventKind
    frame: int


@dataclass(frozen=True)
class DetectionResult:
    """Validated (contact, toe-off) pairs from one automatic pass."""

    stances: tuple[tuple[int, int], ...]
    iterations: int
    truncated: bool = False
    dropped: int = 0
    corrected: int = 0

    @property
    def contacts(self) -> list[int]:
        return [contact for contact, _ in self.stances]

    @property
    def toe_offs(self) -> list[int]:
        return [toe_off for _, toe_off in self.stances]

    @property
    def events(self) -> list[GaitEvent]:
        events: list[GaitEvent] = []
        for contact, toe_off in self.stances:
            events.append(GaitEvent(GaitEventKind.CONTACT, contact))
            events.append(GaitEvent(GaitEventKind.TOE_OFF, toe_off))
        return events


class GaitEventDetector:
    """Locates contact and toe-off frames on one segment's toe signal."""

    def __init__(self, signal: ToeSignal, config: DetectionConfig = DetectionConfig()) -> None:
        self.signal = signal
        self.config = config

    @classmethod
    def from_frames(
        cls,
        frames: Sequence[LandmarkFrame | None],
        mode: CaptureMode = CaptureMode.FIXED,
        config: DetectionConfig = DetectionConfig(),
        *,
        fill_gaps: bool = True,
    ) -> GaitEventDetector:
        """Build a detector from landmark frames.

        Pass ``fill_gaps=False`` when the frames already went through
        ``fill_landmark_gaps``; filling twice lets filled frames seed new ones.
        """
        filled = fill_landmark_gaps(frames, config.gap_fill) if fill_gaps else list(frames)
        signal = build_toe_signal(filled, mode, min_visibility=config.min_toe_visibility)
        if signal is None:
            raise InsufficientSignalError(
                "toe-height signal has no detectable vertical foot motion "
                f"({len(frames)} frames, mode={mode.value})"
            )
        return cls(signal, config)

    @property
    def frame_count(self) -> int:
        return len(self.signal)

    def detect_contact(
        self,
        search_from: int,
        search_to: int | None = None,
        max_window: int | None = None,
    ) -> int | None:
        """Best-scoring contact frame of the first stance in ``[search_from, search_to)``.

        Score = mean prior descent velocity x plateau length x (1 - residual
        plateau velocity / plateau threshold). When nothing qualifies but the
        toe descends somewhere in the window, the lowest toe position is
        returned instead, unless that position sits on the window edge.
        """
        cfg = self.config
        window = cfg.contact_window_frames if max_window is None else max_window
        start, end = self._window(search_from, search_to, window)
        if not self._has_enough_samples(start, end):
            return None

        velocity = self.signal.velocity
        descent_thr = self.signal.signal_range * cfg.descent_ratio
        plateau_thr = self.signal.signal_range * cfg.plateau_ratio
        lift_thr = self.signal.signal_range * cfg.lift_ratio

        best_frame: int | None = None
        best_score = -np.inf
        saw_descent = False
        for i in range(start + cfg.descent_lookback_frames, end):
            # A lift after a scored plateau means later candidates belong to the next stance.
            if best_frame is not None and np.isfinite(velocity[i]) and velocity[i] < -lift_thr:
                break
            prior = velocity[i - cfg.descent_lookback_frames : i]
            prior = prior[np.isfinite(prior)]
            if prior.size == 0:
                continue
            descent = float(prior.mean())
            if descent < descent_thr:
                continue
            saw_descent = True

            count = 0
            residual_sum = 0.0
            for j in range(i, min(i + cfg.plateau_lookahead_frames, end)):
                v = velocity[j]
                if not np.isfinite(v) or abs(v) > plateau_thr:
                    break
                count += 1
                residual_sum += abs(float(v))
            if count < cfg.min_plateau_frames:
                continue

            residual = (residual_sum / count) / plateau_thr
            score = descent * count * max(0.0, 1.0 - residual)
            if score > best_score:
                best_score = score
                best_frame = i

        if best_frame is not None:
            logger.debug("Contact at frame %d (score %.3e)", best_frame, best_score)
            return best_frame

        if not saw_descent:
            return None
        heights = self.signal.height[start:end]
        fallback = start + int(np.nanargmax(heights))
        last_valid = start + int(np.flatnonzero(np.isfinite(heights))[-1])
        if fallback == last_valid:
            # Still descending at the window edge: no contact established yet.
            return None
        logger.debug("No scored contact in [%d, %d); falling back to lowest toe at %d", start, end, fallback)
        return fallback

    def detect_toe_off(self, contact_frame: int, max_window: int | None = None) -> int | None:
        """Onset of the first sustained lift after the post-contact plateau."""
        cfg = self.config
        window = cfg.toe_off_window_frames if max_window is None else max_window
        start, end = self._window(contact_frame, None, window + 1)
        if not self._has_enough_samples(start, end):
            return None

        velocity = self.signal.velocity
        plateau_thr = self.signal.signal_range * cfg.plateau_ratio
        lift_thr = self.signal.signal_range * cfg.lift_ratio

        plateau_end: int | None = None
        for j in range(contact_frame + cfg.min_stance_frames + 1, end):
            v = velocity[j]
            if np.isfinite(v) and abs(v) > plateau_thr:
                plateau_end = j
                break
        if plateau_end is None:
            return None

        run_start: int | None = None
        run_length = 0
        for j in range(plateau_end, end):
            v = velocity[j]
            if np.isfinite(v) and v < -lift_thr:
                if run_length == 0:
                    run_start = j
                run_length += 1
                if run_length >= cfg.min_lift_run_frames:
                    logger.debug("Toe-off at frame %d (contact %d)", run_start, contact_frame)
                    return run_start
            else:
                run_length = 0
                run_start = None
        return None

    def require_contact(
        self, search_from: int, search_to: int | None = None, max_window: int | None = None
    ) -> int:
        frame = self.detect_contact(search_from, search_to, max_window)
        if frame is None:
            raise DetectionFailure(f"no contact found from frame {search_from}")
        return frame

    def require_toe_off(self, contact_frame: int, max_window: int | None = None) -> int:
        frame = self.detect_toe_off(contact_frame, max_window)
        if frame is None:
            raise DetectionFailure(f"no toe-off found after contact at frame {contact_frame}")
        return frame

    def auto_detect_all(self, search_from: int = 0, search_to: int | None = None) -> DetectionResult:
        """Detect every stance in range, bounded to ``max_iterations`` passes.

        Hitting the bound returns what was found so far with ``truncated=True``.
        """
        cfg = self.config
        end = self.frame_count if search_to is None else min(search_to, self.frame_count)
        cursor = max(0, search_from)
        raw: list[tuple[int, int]] = []
        iterations = 0

        while cursor < end and iterations < cfg.max_iterations:
            iterations += 1
            contact = self.detect_contact(cursor, end)
            if contact is None:
                cursor += cfg.advance_after_miss
                continue
            toe_off = self.detect_toe_off(contact)
            if toe_off is None:
                logger.debug("Contact at %d has no toe-off; skipping", contact)
                cursor = contact + cfg.advance_after_miss
                continue
            raw.append((contact, toe_off))
            cursor = toe_off + cfg.advance_after_toe_off

        truncated = cursor < end and iterations >= cfg.max_iterations
        if truncated:
            logger.warning(
                "Event detection stopped after %d iterations at frame %d of %d",
                iterations,
                cursor,
                end,
            )

        stances, corrected, dropped = _validate(raw, cfg.forced_toe_off_offset)
        logger.info("Detected %d stances in frames [%d, %d)", len(stances), search_from, end)
        return DetectionResult(
            stances=tuple(stances),
            iterations=iterations,
            truncated=truncated,
            dropped=dropped,
            corrected=corrected,
        )

    def _window(self, search_from: int, search_to: int | None, max_window: int) -> tuple[int, int]:
        start = max(0, search_from)
        end = min(self.frame_count, start + max_window)
        if search_to is not None:
            end = min(end, search_to)
        return start, end

    def _has_enough_samples(self, start: int, end: int) -> bool:
        if end <= start:
            return False
        valid = int(np.isfinite(self.signal.height[start:end]).sum())
        return valid >= MIN_SIGNAL_SAMPLES


def validate_events(
    stances: Sequence[tuple[int, int]], forced_toe_off_offset: int = 15
) -> list[tuple[int, int]]:
    """Force ``toe_off > contact`` and drop contacts inside the previous stance."""
    validated, _, _ = _validate(stances, forced_toe_off_offset)
    return validated


def pair_events(events: Sequence[GaitEvent]) -> list[tuple[int, int]]:
    """Pair each contact with the first toe-off before the next contact."""
    pairs: list[tuple[int, int]] = []
    pending: int | None = None
    for event in sorted(events, key=lambda e: e.frame):
        if event.kind == GaitEventKind.CONTACT:
            pending = event.frame
        elif pending is not None:
            pairs.append((pending, event.frame))
            pending = None
    return pairs


def _validate(
    stances: Sequence[tuple[int, int]], forced_toe_off_offset: int
) -> tuple[list[tuple[int, int]], int, int]:
    validated: list[tuple[int, int]] = []
    corrected = 0
    dropped = 0
    for contact, toe_off in sorted(stances):
        if toe_off <= contact:
            toe_off = contact + forced_toe_off_offset
            corrected += 1
        if validated and contact <= validated[-1][1]:
            logger.debug("Dropping contact %d inside previous stance", contact)
            dropped += 1
            continue
        validated.append((contact, toe_off))
    return validated, corrected, dropped
