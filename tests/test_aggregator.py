"""Tests for result aggregation and the run summary."""

import pytest

from visual_env_compare.models.scan_result import (
    ComparisonResult,
    ComparisonTarget,
    IncompleteResultSetError,
    RunSummary,
)
from visual_env_compare.services.aggregator import aggregate


def matched(path, duration=100):
    return ComparisonResult.resolved(ComparisonTarget(path), 0, 50, "r", "c", "d", duration_ms=duration)


def different(path, duration=100):
    return ComparisonResult.resolved(ComparisonTarget(path), 7, 50, "r", "c", "d", duration_ms=duration)


def errored(path, duration=100, timed_out=False):
    return ComparisonResult.failed(ComparisonTarget(path), "boom", duration_ms=duration, timed_out=timed_out)


class TestAggregate:

    def test_counts_and_durations(self):
        results = [
            matched("/a", 100),
            different("/b", 200),
            errored("/c", 300),
            errored("/d", 400, timed_out=True),
        ]
        targets = [r.target for r in results]

        summary = aggregate(results, targets, run_duration_ms=550)

        assert summary.total == 4
        assert summary.matched_count == 1
        assert summary.different_count == 1
        assert summary.errored_count == 2
        assert summary.timeouts == 1
        assert summary.total_duration_ms == 1000
        assert summary.average_duration_ms == 250
        assert summary.run_duration_ms == 550
        assert summary.total == summary.matched_count + summary.different_count + summary.errored_count
        assert summary.has_failures

    def test_order_does_not_matter(self):
        results = [matched("/a"), matched("/b")]
        targets = [ComparisonTarget("/b"), ComparisonTarget("/a")]
        assert aggregate(results, targets).matched_count == 2

    def test_run_metadata_is_set_when_computed(self):
        summary = aggregate(
            [matched("/a")],
            [ComparisonTarget("/a")],
            run_duration_ms=10,
            reference_base_url="https://stage.example.com",
            comparison_base_url="https://example.com",
            threshold=0.25,
            viewport="1280x720",
        )
        assert summary.reference_base_url == "https://stage.example.com"
        assert summary.comparison_base_url == "https://example.com"
        assert summary.threshold == 0.25
        assert summary.viewport == "1280x720"

    def test_empty_run_has_zero_average(self):
        summary = aggregate([], [])
        assert summary.total == 0
        assert summary.average_duration_ms == 0
        assert not summary.has_failures

    def test_missing_target_raises(self):
        targets = [ComparisonTarget("/a"), ComparisonTarget("/b")]
        with pytest.raises(IncompleteResultSetError, match="/b"):
            aggregate([matched("/a")], targets)

    def test_duplicate_result_raises(self):
        targets = [ComparisonTarget("/a")]
        with pytest.raises(IncompleteResultSetError):
            aggregate([matched("/a"), matched("/a")], targets)

    def test_unknown_result_raises(self):
        with pytest.raises(IncompleteResultSetError, match="/zzz"):
            aggregate([matched("/a"), matched("/zzz")], [ComparisonTarget("/a")])


class TestRunSummary:

    def test_to_dict(self):
        summary = RunSummary.from_results([matched("/a", 10), different("/b", 20)])
        data = summary.to_dict()
        assert data["total"] == 2
        assert data["matched_count"] == 1
        assert data["different_count"] == 1
        assert data["average_duration_ms"] == 15.0
