from __future__ import annotations

import numpy as np
import pytest

from sprint_mechanics.detection import (
    DetectionConfig,
    GaitEvent,
    GaitEventDetector,
    GaitEventKind,
    pair_events,
    validate_events,
)
from sprint_mechanics.errors import DetectionFailure, InsufficientSignalError
from sprint_mechanics.landmarks import CaptureMode, ToeSignal, fill_landmark_gaps

from synthetic import expected_stances, make_frame, make_sprint_frames


def _signal(heights: list[float]) -> ToeSignal:
    height = np.asarray(heights, dtype=float)
    velocity = np.full_like(height, np.nan)
    velocity[:-1] = np.diff(height)
    return ToeSignal(
        height=height,
        velocity=velocity,
        signal_range=float(np.nanmax(height) - np.nanmin(height)),
        mode=CaptureMode.FIXED,
    )


def test_auto_detect_finds_every_synthetic_stance() -> None:
    detector = GaitEventDetector.from_frames(make_sprint_frames(5))
    result = detector.auto_detect_all()

    assert not result.truncated
    assert len(result.stances) == 5
    for (contact, toe_off), (exp_contact, exp_toe_off) in zip(result.stances, expected_stances(5)):
        assert abs(contact - exp_contact) <= 1
        assert abs(toe_off - exp_toe_off) <= 1


def test_every_detected_toe_off_follows_its_contact() -> None:
    detector = GaitEventDetector.from_frames(make_sprint_frames(4), CaptureMode.PANNING)
    result = detector.auto_detect_all()

    assert result.stances
    previous_toe_off = -1
    for contact, toe_off in result.stances:
        assert toe_off > contact
        assert contact > previous_toe_off
        previous_toe_off = toe_off


def test_detect_contact_returns_none_when_toe_never_descends() -> None:
    rising = [0.9 - 0.005 * i for i in range(60)]
    detector = GaitEventDetector(_signal(rising))

    assert detector.detect_contact(0, 60) is None


def test_detect_contact_returns_none_for_open_ended_descent() -> None:
    ramp = [0.5 + 0.005 * i for i in range(60)]
    detector = GaitEventDetector(_signal(ramp))

    assert detector.detect_contact(0, 60) is None


def test_detect_contact_falls_back_to_lowest_toe_without_plateau() -> None:
    # Descent into a sharp bounce: no plateau frames, lowest point at frame 20.
    heights = [0.5 + 0.01 * i for i in range(21)] + [0.7 - 0.01 * i for i in range(1, 20)]
    detector = GaitEventDetector(_signal(heights))

    assert detector.detect_contact(0, len(heights)) == 20


def test_detect_contact_needs_five_valid_samples() -> None:
    heights = [np.nan] * 20 + [0.5, 0.6, 0.7, 0.7] + [np.nan] * 10
    detector = GaitEventDetector(_signal(heights))

    assert detector.detect_contact(0, len(heights)) is None


def test_toe_off_reports_onset_of_first_sustained_lift() -> None:
    heights = (
        [0.8 + 0.01 * i for i in range(10)]
        + [0.9] * 12
        + [0.9 - 0.01 * i for i in range(1, 10)]
    )
    detector = GaitEventDetector(_signal(heights))

    contact = detector.detect_contact(0, len(heights))
    assert contact == 10
    assert detector.detect_toe_off(contact) == 21


def test_toe_off_none_when_foot_stays_grounded() -> None:
    heights = [0.8 + 0.01 * i for i in range(10)] + [0.9] * 40
    detector = GaitEventDetector(_signal(heights))

    assert detector.detect_toe_off(10) is None
    with pytest.raises(DetectionFailure):
        detector.require_toe_off(10)


def test_iteration_bound_sets_truncation_flag() -> None:
    detector = GaitEventDetector.from_frames(
        make_sprint_frames(6), config=DetectionConfig(max_iterations=2)
    )
    result = detector.auto_detect_all()

    assert result.truncated
    assert result.iterations == 2
    assert len(result.stances) == 2


def test_from_frames_raises_on_static_toes() -> None:
    frames = [make_frame(0.9, 0.5) for _ in range(40)]

    with pytest.raises(InsufficientSignalError):
        GaitEventDetector.from_frames(frames)


def test_validate_events_forces_toe_off_and_drops_overlaps() -> None:
    stances = [(10, 8), (20, 30), (28, 35), (40, 50)]

    assert validate_events(stances) == [(10, 25), (28, 35), (40, 50)]


def test_pair_events_matches_contacts_to_following_toe_offs() -> None:
    events = [
        GaitEvent(GaitEventKind.CONTACT, 10),
        GaitEvent(GaitEventKind.TOE_OFF, 19),
        GaitEvent(GaitEventKind.CONTACT, 40),
        GaitEvent(GaitEventKind.CONTACT, 70),
        GaitEvent(GaitEventKind.TOE_OFF, 79),
    ]

    assert pair_events(events) == [(10, 19), (70, 79)]


def test_prefilled_frames_are_not_filled_again() -> None:
    frames = make_sprint_frames(2) + [None] * 50 + make_sprint_frames(2)
    filled = fill_landmark_gaps(frames)

    detector = GaitEventDetector.from_frames(filled, fill_gaps=False)

    # 20-frame reach from each side leaves frames 80..89 of the gap empty.
    assert np.isnan(detector.signal.height[80:90]).all()
    assert np.isfinite(detector.signal.height[79])
    assert np.isfinite(detector.signal.height[90])
