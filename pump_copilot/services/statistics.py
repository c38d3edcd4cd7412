"""
Time Series Statistics

Pure functions used by every analysis service. All of them accept sequences
that may contain None (a sensor that did not report) and skip those entries;
a missing reading is never counted as zero.
"""

import math
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from pump_copilot.models.pump_models import TrendDirection

# Regression denominators below this are treated as a degenerate fit
DEGENERATE_EPSILON = 1e-10


class RegressionResult(NamedTuple):
    slope: float
    intercept: float
    r_squared: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


class TrendResult(NamedTuple):
    direction: TrendDirection
    slope: float
    strength: float  # |R²|


NEUTRAL_FIT = RegressionResult(0.0, 0.0, 0.0)


def _is_present(value: Optional[float]) -> bool:
    return value is not None and not (isinstance(value, float) and math.isnan(value))


def clean(values: Sequence[Optional[float]]) -> List[float]:
    """Drop absent readings, keep order"""
    return [float(v) for v in values if _is_present(v)]


# ═══════════════════════════════════════════════════════════════════════════════
# DESCRIPTIVE STATISTICS
# ═══════════════════════════════════════════════════════════════════════════════


def mean(values: Sequence[Optional[float]]) -> float:
    data = clean(values)
    return float(np.mean(data)) if data else 0.0


def median(values: Sequence[Optional[float]]) -> float:
    data = clean(values)
    return float(np.median(data)) if data else 0.0


def standard_deviation(values: Sequence[Optional[float]]) -> float:
    """Sample standard deviation (n-1 divisor); 0 for fewer than two readings"""
    data = clean(values)
    if len(data) <= 1:
        return 0.0
    return float(np.std(data, ddof=1))


def coefficient_of_variation(values: Sequence[Optional[float]]) -> float:
    """stddev / mean, 0 when the mean is 0"""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return standard_deviation(values) / avg


def percentile(sorted_data: Sequence[float], p: float) -> float:
    """
    Percentile with linear interpolation between the floor and ceil ranks.

    rank = p/100 * (n-1)
    """
    n = len(sorted_data)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_data[0])

    rank = p / 100.0 * (n - 1)
    lower = int(math.floor(rank))
    upper = int(math.ceil(rank))
    if lower == upper:
        return float(sorted_data[lower])
    weight = rank - lower
    return float(sorted_data[lower] * (1 - weight) + sorted_data[upper] * weight)


def moving_average(
    values: Sequence[Optional[float]], window: int
) -> List[Optional[float]]:
    """
    Trailing moving average.

    The window shrinks at the start of the series and averages only the
    readings available in it; a window without readings yields None.
    """
    if window < 1:
        raise ValueError("window must be >= 1")

    result: List[Optional[float]] = []
    for i in range(len(values)):
        chunk = clean(values[max(0, i - window + 1) : i + 1])
        result.append(sum(chunk) / len(chunk) if chunk else None)
    return result


def detect_outliers(values: Sequence[Optional[float]]) -> List[int]:
    """
    IQR outlier detection.

    Returns indices into the original sequence whose value falls outside
    [Q1 - 1.5*IQR, Q3 + 1.5*IQR]. Needs at least four readings.
    """
    data = clean(values)
    if len(data) < 4:
        return []

    ordered = sorted(data)
    q1 = percentile(ordered, 25)
    q3 = percentile(ordered, 75)
    iqr = q3 - q1
    low = q1 - 1.5 * iqr
    high = q3 + 1.5 * iqr

    return [
        i
        for i, value in enumerate(values)
        if _is_present(value) and (value < low or value > high)
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# REGRESSION AND TRENDS
# ═══════════════════════════════════════════════════════════════════════════════


def linear_regression(x: Sequence[float], y: Sequence[float]) -> RegressionResult:
    """
    Closed-form least squares fit.

    A numerically zero denominator (all x equal) returns a neutral fit with
    slope, intercept and R² all 0. R² is 0 when y has no variance.
    """
    if len(x) != len(y) or len(x) < 2:
        return NEUTRAL_FIT

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    n = len(xs)

    sum_x = xs.sum()
    sum_y = ys.sum()
    sum_xy = (xs * ys).sum()
    sum_x2 = (xs * xs).sum()

    denominator = n * sum_x2 - sum_x * sum_x
    if abs(denominator) < DEGENERATE_EPSILON:
        return NEUTRAL_FIT

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    ss_total = float(((ys - y_mean) ** 2).sum())
    ss_residual = float(((ys - (slope * xs + intercept)) ** 2).sum())
    r_squared = 1.0 - ss_residual / ss_total if ss_total != 0 else 0.0

    return RegressionResult(float(slope), float(intercept), float(r_squared))


def analyze_trend(values: Sequence[Optional[float]]) -> TrendResult:
    """
    Classify the direction of a series by regressing it on its index.

    Longer series use a tighter slope threshold (0.01 above ten points,
    0.05 otherwise). Strength is |R²|.
    """
    data = clean(values)
    if len(data) < 2:
        return TrendResult(TrendDirection.STABLE, 0.0, 0.0)

    fit = linear_regression(list(range(len(data))), data)
    threshold = 0.01 if len(data) > 10 else 0.05

    if abs(fit.slope) < threshold:
        direction = TrendDirection.STABLE
    elif fit.slope > 0:
        direction = TrendDirection.INCREASING
    else:
        direction = TrendDirection.DECREASING

    return TrendResult(direction, fit.slope, abs(fit.r_squared))


def detect_change_points(
    values: Sequence[Optional[float]], threshold: float = 2.0
) -> List[int]:
    """
    Flag interior points whose local step size is large relative to the
    local spread.

    For point i the mean of |x[i]-x[i-1]| and |x[i+1]-x[i]| is divided by
    the standard deviation of up to five readings on each side.
    """
    if len(values) < 3:
        return []

    change_points = []
    for i in range(1, len(values) - 1):
        prev_value, value, next_value = values[i - 1], values[i], values[i + 1]
        if not (_is_present(prev_value) and _is_present(value) and _is_present(next_value)):
            continue

        avg_diff = (abs(value - prev_value) + abs(next_value - value)) / 2
        half = min(5, i)
        window = clean(values[max(0, i - half) : min(len(values), i + half + 1)])
        if len(window) <= 2:
            continue

        local_std = standard_deviation(window)
        if local_std > 0 and avg_diff / local_std > threshold:
            change_points.append(i)

    return change_points


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson r; 0 for unequal lengths, fewer than two points or no variance"""
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    dx = xs - xs.mean()
    dy = ys - ys.mean()
    denominator = math.sqrt(float((dx * dx).sum()) * float((dy * dy).sum()))
    if denominator == 0:
        return 0.0
    return float((dx * dy).sum()) / denominator
