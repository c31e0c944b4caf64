# tests/test_rules.py
import pytest

from pathprobe.brain.rules import burst_rule, jitter, loss_runs, percentile, significant


def test_percentile_interpolates():
    data = [10, 20, 30, 40, 50]
    assert percentile(data, 50) == 30.0
    assert percentile(data, 0) == 10.0
    assert percentile(data, 100) == 50.0
    assert percentile(data, 25) == pytest.approx(20.0)
    assert percentile([1, 2], 50) == pytest.approx(1.5)
    assert percentile([], 99) is None


def test_jitter_is_mean_consecutive_difference():
    assert jitter([100, 110, 100, 130]) == pytest.approx((10 + 10 + 30) / 3)
    assert jitter([100]) == 0.0
    assert jitter([]) is None


def test_loss_runs_collapse_consecutive_seqs():
    assert loss_runs([9, 3, 4, 5]) == [(3, 3), (9, 1)]
    assert loss_runs([]) == []
    assert loss_runs(range(100, 201)) == [(100, 101)]


def test_burst_rule_share():
    # 6 of 8 lost probes sit in a run of >= 3
    runs = [(10, 6), (40, 1), (70, 1)]
    assert burst_rule(runs, 3, 0.5)
    assert not burst_rule(runs, 3, 0.8)
    assert not burst_rule([], 3, 0.5)


def test_significance_threshold_is_inclusive():
    assert significant(20.0, 10.0)
    assert significant(-10.0, 10.0)
    assert significant(10.000000000001, 10.0)
    assert not significant(9.9, 10.0)
    assert not significant(None, 10.0)
    assert not significant(50.0, None)
