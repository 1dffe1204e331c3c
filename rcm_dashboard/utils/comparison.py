"""
Comparison Engine
Turns a current/previous value pair into a directional trend indicator and
formats values for the KPI cards.
"""
# rcm_dashboard/utils/comparison.py

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from rcm_dashboard.data_processing.record_normalizer import MONTH_LABEL_FORMAT
from rcm_dashboard.utils.kpi_calculations import round_half_up
from rcm_dashboard.utils.period_resolver import PeriodWindow

COLOR_GOOD = "#10b981"
COLOR_BAD = "#ef4444"
COLOR_NEUTRAL = "#6b7280"


class Arrow(str, Enum):
    UP = "up"
    DOWN = "down"

    @property
    def glyph(self) -> str:
        return "▲" if self is Arrow.UP else "▼"


# Whether a rising value is good news, per metric
INCREASE_IS_GOOD: Dict[str, bool] = {
    "gcr": True,
    "ncr": True,
    "first_pass_rate": True,
    "clean_claim_rate": True,
    "total_claims": True,
    "total_payments": True,
    "denial_rate": False,
}


@dataclass(frozen=True)
class TrendResult:
    delta: str
    arrow: Arrow
    color: str
    previous_formatted: str
    is_positive: bool

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["arrow"] = self.arrow.value
        result["arrow_glyph"] = self.arrow.glyph
        return result


def _fixed(value: float, decimals: int) -> str:
    return f"{value:.{decimals}f}"


def trend(
    current: float,
    previous: Optional[float],
    increase_is_good: bool = True,
    decimals: int = 2
) -> TrendResult:
    """
    Compare a KPI value against its previous value.

    A zero, missing or non-finite previous value yields a neutral result: the
    delta is the current value itself, the arrow points up and the color is
    gray. A zero baseline never produces a red signal.

    Args:
        current: Current window value
        previous: Comparison value (previous window or baseline snapshot)
        increase_is_good: Direction in which change is good for this metric
        decimals: Decimal places for the formatted delta/previous value

    Returns:
        TrendResult
    """
    if previous is None or not math.isfinite(previous) or previous == 0:
        return TrendResult(
            delta=_fixed(current, decimals),
            arrow=Arrow.UP,
            color=COLOR_NEUTRAL,
            previous_formatted="0",
            is_positive=True,
        )

    diff = current - previous
    is_positive = diff >= 0
    return TrendResult(
        delta=_fixed(abs(diff), decimals),
        arrow=Arrow.UP if is_positive else Arrow.DOWN,
        color=COLOR_GOOD if is_positive == increase_is_good else COLOR_BAD,
        previous_formatted=_fixed(previous, decimals),
        is_positive=is_positive,
    )


def metric_trend(metric: str, current: float, previous: Optional[float], decimals: int = 2) -> TrendResult:
    """trend() with the metric's direction looked up in INCREASE_IS_GOOD."""
    return trend(current, previous, INCREASE_IS_GOOD.get(metric, True), decimals)


def format_compact_number(number: Optional[float], currency: bool = False) -> str:
    """
    Compact display form: 1.2K, 3.4M.

    Values below a thousand are rounded to whole units with thousands
    separators. With ``currency`` the result carries a "$" prefix.
    """
    prefix = "$" if currency else ""
    if not number or not math.isfinite(number):
        return f"{prefix}0"

    magnitude = abs(number)
    if magnitude >= 1_000_000:
        return f"{prefix}{number / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{prefix}{number / 1_000:.1f}K"
    return f"{prefix}{round_half_up(number):,}"


def date_range_labels(period: PeriodWindow) -> Dict[str, str]:
    """Current and previous window labels in the form "Jan 24 - Mar 24"."""

    def label(start, end) -> str:
        if start is None or end is None:
            return ""
        return f"{start.strftime(MONTH_LABEL_FORMAT)} - {end.strftime(MONTH_LABEL_FORMAT)}"

    return {
        "current": label(period.current_start, period.current_end),
        "previous": label(period.previous_start, period.previous_end),
    }
