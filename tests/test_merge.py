from __future__ import annotations

import pytest

from sprint_mechanics.calibration import LinearCalibration
from sprint_mechanics.merge import SegmentSteps, merge_segments, merge_step_records
from sprint_mechanics.profile import fit_profile_from_steps
from sprint_mechanics.steps import StepRecord, summarize_steps


def _step(distance: float | None, segment: str = "A", frame: int = 0, quality: str = "good") -> StepRecord:
    return StepRecord(
        index=0,
        contact_frame=frame,
        toe_off_frame=frame + 10,
        next_contact_frame=frame + 30,
        contact_time=10 / 120,
        flight_time=20 / 120,
        step_time=0.25,
        pitch=4.0,
        stride=None,
        speed=None,
        acceleration=None,
        brake_impulse_ratio=0.4,
        kick_impulse_ratio=0.6,
        quality=quality,
        distance_at_contact=distance,
        contact_pixel=(distance * 100.0, 900.0) if distance is not None else None,
        segment_id=segment,
    )


def _segment(segment_id: str, distances: list[float]) -> list[StepRecord]:
    return [_step(d, segment_id, frame=30 * i) for i, d in enumerate(distances)]


def test_overlapping_contact_is_deduplicated_keeping_earlier_segment() -> None:
    segment_a = _segment("A", [5.3, 6.8, 8.3, 9.8])
    segment_b = _segment("B", [10.2, 11.7, 13.2])
    result = merge_step_records(segment_a + segment_b, segment_rank={"A": 0, "B": 1})

    assert len(result.steps) == len(segment_a) + len(segment_b) - 1
    assert result.duplicates_removed == 1
    kept = [s for s in result.steps if 9.0 < s.distance_at_contact < 10.5]
    assert len(kept) == 1
    assert kept[0].segment_id == "A"


def test_earlier_segment_wins_even_when_it_sorts_second() -> None:
    result = merge_step_records(
        [_step(10.0, "B"), _step(10.3, "A")], segment_rank={"A": 0, "B": 1}
    )

    assert len(result.steps) == 1
    assert result.steps[0].segment_id == "A"


def test_large_gap_is_filled_with_interpolated_steps() -> None:
    steps = _segment("A", [0.0, 1.5, 3.0, 6.5, 8.0])
    result = merge_step_records(steps)

    interpolated = [s for s in result.steps if s.is_interpolated]
    assert result.representative_stride_m == pytest.approx(1.5)
    assert len(interpolated) == 1
    assert interpolated[0].distance_at_contact == pytest.approx(4.75)
    assert interpolated[0].quality == "warning"
    assert interpolated[0].stride is None

    summary = summarize_steps(result.steps)
    assert summary["interpolated_step_count"] == 1
    # Real strides: 1.5, 1.5, 3.5, 1.5
    assert summary["avg_stride_m"] == pytest.approx(2.0)


def test_merged_steps_are_ordered_by_distance_and_reindexed() -> None:
    segment_a = _segment("A", [0.0, 1.4, 2.9])
    segment_b = _segment("B", [4.4, 5.8])
    result = merge_step_records(segment_b + segment_a, segment_rank={"A": 0, "B": 1})

    distances = [s.distance_at_contact for s in result.real_steps]
    assert distances == sorted(distances)
    assert all(b > a for a, b in zip(distances, distances[1:]))
    assert [s.index for s in result.steps] == list(range(len(result.steps)))


def test_strides_recomputed_after_merge_and_implausible_flagged() -> None:
    result = merge_step_records(_segment("A", [0.0, 1.5, 3.0, 3.55, 5.05]))

    strides = [s.stride for s in result.steps]
    assert strides[0] == pytest.approx(1.5)
    assert strides[-1] is None
    assert result.steps[0].speed == pytest.approx(6.0)
    flagged = [s for s in result.steps if s.quality == "warning"]
    assert [round(s.distance_at_contact, 2) for s in flagged] == [3.0]


def test_bad_quality_is_never_upgraded() -> None:
    steps = [_step(0.0), _step(1.5, quality="bad"), _step(3.0)]
    result = merge_step_records(steps)

    assert result.steps[1].quality == "bad"


def test_merge_is_a_fixed_point() -> None:
    segment_a = _segment("A", [5.3, 6.8, 8.3, 9.8])
    segment_b = _segment("B", [10.2, 11.7, 16.4, 17.9])
    rank = {"A": 0, "B": 1}
    first = merge_step_records(segment_a + segment_b, segment_rank=rank)
    second = merge_step_records(first.steps, segment_rank=rank)

    assert second.steps == first.steps
    assert second.duplicates_removed == 0
    assert second.interpolated_added == first.interpolated_added


def test_merge_segments_maps_contacts_with_each_segment_calibration() -> None:
    near = LinearCalibration(origin_px=(0.0, 900.0), end_px=(1000.0, 900.0), reference_distance_m=10.0)
    far = LinearCalibration(origin_px=(-1000.0, 900.0), end_px=(0.0, 900.0), reference_distance_m=10.0)
    segment_a = _segment("A", [2.0, 3.5, 5.0])
    segment_b = _segment("B", [0.5, 2.0])  # pixels 50, 200 -> 10.5 m, 12.0 m in the far frame

    result = merge_segments(
        [SegmentSteps("A", near, tuple(segment_a)), SegmentSteps("B", far, tuple(segment_b))]
    )

    distances = [round(s.distance_at_contact, 2) for s in result.steps if not s.is_interpolated]
    assert distances[:3] == [2.0, 3.5, 5.0]
    assert distances[-2:] == [10.5, 12.0]
    assert result.interpolated_added == 2


def test_steps_without_distance_are_dropped_with_warning() -> None:
    result = merge_step_records([_step(None), _step(1.0), _step(2.5)])

    assert len(result.steps) == 2
    assert any("no distance" in message for message in result.warnings)


def test_representative_stride_uses_every_real_stride() -> None:
    result = merge_step_records(_segment("A", [0.0, 1.0, 3.5, 6.0]))

    # Strides 1.0, 2.5, 2.5: the long gaps are themselves typical strides.
    assert result.representative_stride_m == pytest.approx(2.5)
    assert result.interpolated_added == 0
    assert any("unfilled" in message for message in result.warnings)


def test_stride_across_interpolated_steps_has_no_speed() -> None:
    result = merge_step_records(_segment("A", [0.0, 1.5, 3.0, 6.5, 8.0]))

    bridging = next(s for s in result.steps if s.distance_at_contact == pytest.approx(3.0))
    before = next(s for s in result.steps if s.distance_at_contact == pytest.approx(1.5))
    assert bridging.stride == pytest.approx(3.5)
    assert bridging.speed is None
    assert bridging.acceleration is None
    assert before.speed == pytest.approx(6.0)
    assert before.acceleration is None


def test_profile_ignores_speeds_spanning_a_filled_gap() -> None:
    # Speeds 4, 6, 7, 7.5 m/s lie on a = 16 - 2 v; then a 4.875 m gap.
    distances = [0.0, 1.0, 2.5, 4.25, 6.125, 11.0, 12.9]
    result = merge_step_records(_segment("A", distances))
    assert result.interpolated_added == 1

    profile = fit_profile_from_steps(result.steps, 70.0)

    assert profile is not None
    assert profile.used_point_count == 3
    assert profile.a0 == pytest.approx(16.0)
    assert profile.v0 == pytest.approx(8.0)
