"""
单元测试: 统计工具函数
Wilson 置信区间、直方图、中位数与 TTK 统计
"""

import pytest

from battle_sim.simulation.statistics import (
    build_histogram, mean, median, safe_ratio, ttk_stats, value_range, wilson_interval,
)


class TestWilsonInterval:
    """Wilson 置信区间测试"""

    def test_zero_successes(self):
        """测试 0/100: 下界恰为 0"""
        ci = wilson_interval(0, 100)
        assert ci.lower == 0.0
        assert 0.0 < ci.upper < 0.05

    def test_all_successes(self):
        """测试 100/100: 上界恰为 1"""
        ci = wilson_interval(100, 100)
        assert ci.upper == 1.0
        assert 0.95 < ci.lower < 1.0

    def test_half(self):
        """测试 50/100 的区间关于 0.5 对称"""
        ci = wilson_interval(50, 100)
        assert ci.lower == pytest.approx(0.4038, abs=1e-3)
        assert ci.upper == pytest.approx(0.5962, abs=1e-3)

    def test_wider_for_higher_confidence(self):
        """测试置信水平越高区间越宽"""
        narrow = wilson_interval(30, 100, confidence=0.90)
        wide = wilson_interval(30, 100, confidence=0.99)
        assert wide.lower < narrow.lower
        assert wide.upper > narrow.upper

    def test_empty_sample(self):
        """测试 0 场时返回 [0, 0]"""
        ci = wilson_interval(0, 0)
        assert (ci.lower, ci.upper) == (0.0, 0.0)

    def test_unsupported_confidence(self):
        """测试不支持的置信水平"""
        with pytest.raises(ValueError):
            wilson_interval(1, 10, confidence=0.5)

    def test_explicit_z(self):
        """测试直接指定 z 值"""
        ci = wilson_interval(50, 100, z=1.96)
        assert ci == wilson_interval(50, 100)


class TestHistogram:
    """直方图测试"""

    def test_counts_sum_to_sample_size(self):
        """测试每个值恰好落入一个箱"""
        values = [i * 0.37 for i in range(1000)]
        hist = build_histogram(values)
        assert len(hist.bins) == 20
        assert hist.total == 1000
        assert hist.min == 0.0
        assert hist.max == pytest.approx(999 * 0.37)

    def test_max_value_in_last_bin(self):
        """测试最大值落入最后一个箱"""
        hist = build_histogram([0, 5, 10])
        assert hist.bins[0] == 1
        assert hist.bins[10] == 1
        assert hist.bins[-1] == 1
        assert hist.bin_width == pytest.approx(0.5)

    def test_identical_values(self):
        """测试所有值相同时全部落入第一个箱"""
        hist = build_histogram([7.0] * 12)
        assert hist.bins[0] == 12
        assert hist.total == 12
        assert hist.bin_width == pytest.approx(1 / 20)

    def test_empty(self):
        """测试空样本"""
        hist = build_histogram([])
        assert hist.bins == [0] * 20
        assert hist.total == 0


class TestSummaries:
    """汇总函数测试"""

    def test_mean_and_median(self):
        """测试均值与中位数"""
        assert mean([1, 2, 3, 4]) == 2.5
        assert median([4, 1, 3]) == 3
        assert median([4, 1, 3, 2]) == 2.5
        assert mean([]) == 0.0
        assert median([]) == 0.0

    def test_mean_is_order_independent(self):
        """测试均值与求和顺序无关"""
        values = [0.1] * 10 + [1e16, -1e16]
        assert mean(values) == mean(list(reversed(values)))

    def test_ttk_without_wins(self):
        """测试无胜场时 TTK 全为 0 且标记 hasWins=False"""
        stats = ttk_stats([])
        assert not stats.has_wins
        assert stats.avg == 0.0
        assert stats.wins == 0

    def test_ttk_with_wins(self):
        """测试 TTK 统计"""
        stats = ttk_stats([10.0, 12.0, 11.0])
        assert stats.has_wins
        assert stats.avg == pytest.approx(11.0)
        assert stats.median == 11.0
        assert (stats.min, stats.max, stats.wins) == (10.0, 12.0, 3)

    def test_value_range_and_ratio(self):
        """测试取值范围与安全除法"""
        rng = value_range([3, -1, 8])
        assert (rng.min, rng.max) == (-1, 8)
        assert safe_ratio(1, 0) == 0.0
        assert safe_ratio(1, 4) == 0.25
