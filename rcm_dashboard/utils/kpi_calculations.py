"""
Pure KPI calculation functions.

These functions perform individual value coercions and metric calculations.
They are shared by the KPI aggregator, the monthly trend reducers and the
page-level services, so every screen computes a ratio the same way.

Each function takes plain values or DataFrames and returns a calculated value
without any formatting. None of them raise on malformed data.
"""
# rcm_dashboard/utils/kpi_calculations.py

import math
import re
from numbers import Number
from typing import Any, Iterable, Optional

import pandas as pd

# Numeric text accepted after separators are stripped ("1,234.50" -> "1234.50")
_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

FIRST_PASS_TRUE_VALUES = {"true", "yes", "y", "1"}

CLEAN_CLAIM_MIN = 0.0
CLEAN_CLAIM_MAX = 100.0

MS_PER_DAY = 24 * 60 * 60 * 1000


# ============================================================================
# VALUE COERCION
# ============================================================================

def parse_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce a raw cell to a float.

    Empty/missing values return ``default``; text that is not a number returns
    NaN so callers can decide whether to exclude it.

    Args:
        value: Raw cell value (string, number or None)
        default: Value used when the cell is empty

    Returns:
        Parsed float, ``default`` or NaN
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Number):
        number = float(value)
        return default if math.isnan(number) else number

    text = str(value).strip()
    if not text:
        return default
    if not _NUMERIC_RE.match(text):
        return math.nan
    return float(text)


def parse_amount(value: Any) -> float:
    """
    Parse a currency amount.

    Strips thousands separators and double quotes. Absent, malformed,
    non-finite and negative inputs all coerce to 0.0, so the result is always
    a finite non-negative float and ``parse_amount(parse_amount(x)) ==
    parse_amount(x)``.

    Args:
        value: Raw amount cell

    Returns:
        Finite non-negative float
    """
    if isinstance(value, str):
        value = value.replace(",", "").replace('"', "")

    try:
        amount = parse_number(value, default=0.0)
    except (TypeError, ValueError, OverflowError):
        return 0.0

    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def parse_flag(value: Any) -> bool:
    """True iff the value case-insensitively matches true/yes/y/1."""
    if is_missing(value):
        return False
    return str(value).strip().lower() in FIRST_PASS_TRUE_VALUES


def is_missing(value: Any) -> bool:
    """True for None and float NaN (pandas' empty cell)."""
    return value is None or (isinstance(value, float) and math.isnan(value))


def first_non_empty(row: dict, keys: Iterable[str], default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty (after trim) value among ``keys``."""
    for key in keys:
        value = row.get(key)
        if is_missing(value):
            continue
        text = str(value).strip()
        if text:
            return text
    return default


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (towards +infinity)."""
    if not math.isfinite(value):
        return 0
    return int(math.floor(value + 0.5))


# ============================================================================
# RATIOS
# ============================================================================

def safe_percentage(numerator: float, denominator: float) -> float:
    """
    Percentage with a zero-denominator guard.

    Returns 0.0 when the denominator is not strictly positive.
    """
    if denominator is None or pd.isna(denominator) or denominator <= 0:
        return 0.0
    result = (numerator / denominator) * 100
    return result if math.isfinite(result) else 0.0


def calculate_gross_collection_rate(total_payments: float, total_billed: float) -> float:
    """
    Calculate Gross Collection Rate (GCR).

    Formula: (Total Payments / Total Billed) × 100
    """
    return safe_percentage(total_payments, total_billed)


def calculate_net_collection_rate(
    total_paid: float,
    total_billed: float,
    total_adjustments: float
) -> float:
    """
    Calculate Net Collection Rate (NCR).

    Formula: Paid / (Billed - Adjustments) × 100, 0 when the net billed
    amount is not positive.
    """
    return safe_percentage(total_paid, total_billed - total_adjustments)


def calculate_clean_claim_rate(scores: pd.Series) -> float:
    """
    Mean clean-claim score over values inside [0, 100].

    Out-of-range and NaN scores are excluded, not clamped.
    """
    if scores is None or len(scores) == 0:
        return 0.0
    valid = scores[(scores >= CLEAN_CLAIM_MIN) & (scores <= CLEAN_CLAIM_MAX)]
    if valid.empty:
        return 0.0
    return float(valid.mean())


# ============================================================================
# DENIALS
# ============================================================================

def denied_mask(claim_status: pd.Series, exact: bool = True) -> pd.Series:
    """
    Boolean mask of denied rows.

    Args:
        claim_status: Claim status column
        exact: True for trimmed case-insensitive equality with "denied"
            (KPI aggregation); False for a case-insensitive substring match
            (denial listings)

    Returns:
        Boolean Series aligned with ``claim_status``
    """
    normalized = claim_status.fillna("").astype(str).str.lower()
    if exact:
        return normalized.str.strip() == "denied"
    return normalized.str.contains("denied", regex=False)


# ============================================================================
# DATES AND LAGS
# ============================================================================

def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse a date string to a naive Timestamp, None when absent or invalid.
    """
    if is_missing(value):
        return None
    text = str(value).strip()
    if not text:
        return None

    parsed = pd.to_datetime(text, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed


def to_epoch_ms(timestamp: Optional[pd.Timestamp]) -> int:
    """Epoch milliseconds for a Timestamp, 0 for None (the unparseable sentinel)."""
    if timestamp is None:
        return 0
    try:
        return int(timestamp.value // 1_000_000)
    except (OverflowError, ValueError):
        return 0


def date_to_epoch_ms(day) -> int:
    """Epoch milliseconds of midnight on a calendar date."""
    return to_epoch_ms(pd.Timestamp(day))


def days_between(earlier: Any, later: Any) -> Optional[int]:
    """
    Whole days from ``earlier`` to ``later`` (truncated towards zero).

    Returns None when either date fails to parse.
    """
    start = parse_date(earlier)
    end = parse_date(later)
    if start is None or end is None:
        return None
    return int((end - start) / pd.Timedelta(days=1))


def calculate_mean_lag(df: pd.DataFrame, from_col: str, to_col: str) -> int:
    """
    Mean day difference between two date columns, rounded half-up.

    Only rows where both dates parse take part; 0 when there are none.

    Args:
        df: Records with raw date string columns
        from_col: Earlier date column (e.g. date_of_service)
        to_col: Later date column (e.g. charge_entry_date)

    Returns:
        Rounded mean lag in days
    """
    if df is None or df.empty or from_col not in df.columns or to_col not in df.columns:
        return 0

    diffs = [
        d for d in (days_between(a, b) for a, b in zip(df[from_col], df[to_col]))
        if d is not None
    ]
    if not diffs:
        return 0
    return round_half_up(sum(diffs) / len(diffs))
