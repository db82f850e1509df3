"""Tests for the plot-progress ledger."""

from novelstudio.core.progress import next_progress, progress_after_deletion, ratio_progress


def test_ratio_dominates_smaller_increment():
    assert next_progress(40, 10, remaining=60, cumulative_chapter_count=60, estimated_total_chapters=100) == 60


def test_increment_clamped_when_ratio_disabled():
    assert next_progress(90, 20, remaining=10, cumulative_chapter_count=999, estimated_total_chapters=0) == 100


def test_increment_used_when_ratio_lags():
    assert next_progress(50, 10, cumulative_chapter_count=30, estimated_total_chapters=100) == 60


def test_ratio_rounds_half_up_and_caps():
    assert ratio_progress(3, 200) == 2
    assert ratio_progress(1, 300) == 0
    assert ratio_progress(500, 100) == 100
    assert ratio_progress(10, 0) is None


def test_never_exceeds_or_goes_backwards():
    assert next_progress(100, 20) == 100
    assert next_progress(70, -5) == 70


def test_deletion_uses_fixed_step():
    assert progress_after_deletion(40) == 39
    assert progress_after_deletion(0) == 0
    assert progress_after_deletion(5, deleted_count=3) == 2
