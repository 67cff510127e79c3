"""
统计计算工具
Wilson 置信区间、固定分箱直方图、均值/中位数等纯函数
"""

import math
from typing import Optional, Sequence

from ..config import Config
from .results import ConfidenceInterval, Histogram, TtkStats, ValueRange


def wilson_interval(
    successes: int,
    total: int,
    confidence: float = Config.DEFAULT_CONFIDENCE,
    z: Optional[float] = None,
) -> ConfidenceInterval:
    """
    Wilson score 置信区间
    公式: center = (p + z²/2n) / (1 + z²/n)
          margin = z / (1 + z²/n) * sqrt(p(1-p)/n + z²/4n²)

    Args:
        successes: 成功次数 (胜场)
        total: 总场数
        confidence: 置信水平，需在 Config.CONFIDENCE_Z 中
        z: 直接指定 z 值 (优先于 confidence)

    Returns:
        ConfidenceInterval: [lower, upper]，截断在 [0, 1]
    """
    if total <= 0:
        return ConfidenceInterval(lower=0.0, upper=0.0)
    if z is None:
        if confidence not in Config.CONFIDENCE_Z:
            raise ValueError(f"不支持的置信水平: {confidence}")
        z = Config.CONFIDENCE_Z[confidence]

    n = float(total)
    p = successes / n
    z2 = z * z
    denominator = 1 + z2 / n
    center = (p + z2 / (2 * n)) / denominator
    margin = (z / denominator) * math.sqrt(p * (1 - p) / n + z2 / (4 * n * n))
    lower = max(0.0, center - margin)
    upper = min(1.0, center + margin)
    # 端点处浮点误差
    if successes == 0:
        lower = 0.0
    if successes == total:
        upper = 1.0
    return ConfidenceInterval(lower=lower, upper=upper)


def build_histogram(values: Sequence[float], bins: int = Config.HISTOGRAM_BINS) -> Histogram:
    """
    固定分箱直方图，每个值恰好落入一个箱
    范围为观测到的 [min, max]；所有值相同时箱宽按 1 计算

    Args:
        values: 观测值
        bins: 箱数

    Returns:
        Histogram
    """
    counts = [0] * bins
    if not values:
        return Histogram(bins=counts)
    low = min(values)
    high = max(values)
    span = high - low
    width = (span if span > 0 else 1.0) / bins
    for value in values:
        index = int((value - low) / width)
        counts[min(max(index, 0), bins - 1)] += 1
    return Histogram(bins=counts, min=low, max=high, bin_width=width)


def mean(values: Sequence[float]) -> float:
    """均值 (math.fsum，与求和顺序无关)；空序列为 0"""
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def value_range(values: Sequence[float]) -> ValueRange:
    if not values:
        return ValueRange()
    return ValueRange(min=min(values), max=max(values))


def ttk_stats(ttks: Sequence[float]) -> TtkStats:
    """击杀耗时统计；无胜场时返回全 0 并标记 has_wins=False"""
    if not ttks:
        return TtkStats()
    return TtkStats(
        avg=mean(ttks),
        min=min(ttks),
        max=max(ttks),
        median=median(ttks),
        wins=len(ttks),
        has_wins=True,
    )


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0
