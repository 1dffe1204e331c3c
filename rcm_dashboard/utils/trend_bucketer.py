"""
Trend Bucketer
Groups records by calendar month and reduces each month into a trend series.
"""
# rcm_dashboard/utils/trend_bucketer.py

import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from rcm_dashboard.config.client_config import ClientBaseline
from rcm_dashboard.data_processing.record_normalizer import MONTH_LABEL_FORMAT, empty_records
from rcm_dashboard.utils.kpi_calculations import (
    CLEAN_CLAIM_MAX,
    CLEAN_CLAIM_MIN,
    MS_PER_DAY,
    calculate_clean_claim_rate,
    calculate_gross_collection_rate,
    calculate_net_collection_rate,
    date_to_epoch_ms,
    days_between,
    denied_mask,
    round_half_up,
    safe_percentage,
)

logger = logging.getLogger(__name__)

MONTH_FIELD = "month"
LONG_MONTH_LABEL_FORMAT = "%b %Y"  # "Jan 2024"
UNLABELED_MONTH = "Unknown"

CHART_METRICS = ("GCR", "NCR", "CCR", "FPR", "Denial Rate")

ValueFn = Callable[[pd.DataFrame], float]


# ============================================================================
# ORDERING AND PADDING
# ============================================================================

def month_sort_key(label: str) -> Optional[date]:
    """Chronological key for a "MMM YY" or "MMM YYYY" label; None if unparseable."""
    text = (label or "").strip()
    for fmt in (MONTH_LABEL_FORMAT, LONG_MONTH_LABEL_FORMAT):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _ordering(label: str) -> Tuple[int, date, str]:
    # Dated months first in calendar order; unparseable labels after, by label
    key = month_sort_key(label)
    return (0, key, label) if key is not None else (1, date.max, label)


def pad_single_bucket(series: List[Dict[str, Any]], month_key: str = "month") -> List[Dict[str, Any]]:
    """
    Pad a one-point series to three identical points so it renders as a line.

    The padded points carry "" and " " as month labels.
    """
    if len(series) != 1:
        return series
    point = series[0]
    return [{**point, month_key: ""}, point, {**point, month_key: " "}]


# ============================================================================
# BUCKETING
# ============================================================================

def _month_labels(
    records: pd.DataFrame,
    bucket_field: str,
    label_format: str,
    unlabeled: Optional[str]
) -> Tuple[pd.DataFrame, pd.Series]:
    if bucket_field == MONTH_FIELD:
        labels = records[MONTH_FIELD].fillna("").astype(str)
        if unlabeled is None:
            keep = labels != ""
            return records[keep], labels[keep]
        return records, labels.where(labels != "", unlabeled)

    # Timestamp column: derive the label, skipping the unparseable sentinel
    dated = records[records[bucket_field] != 0]
    labels = pd.to_datetime(dated[bucket_field].astype("int64"), unit="ms").dt.strftime(label_format)
    return dated, labels


def bucket_monthly(
    records: pd.DataFrame,
    bucket_field: str,
    value_fn: ValueFn,
    label_format: str = MONTH_LABEL_FORMAT,
    unlabeled: Optional[str] = UNLABELED_MONTH,
    value_key: str = "value",
    pad: bool = True
) -> List[Dict[str, Any]]:
    """
    Reduce records into an ordered monthly series.

    Args:
        records: Canonical record DataFrame (already window-filtered)
        bucket_field: "month" to group on the ingestion-time label, or a
            timestamp column (ts_service_date / ts_entry_date) to derive it
        value_fn: Reducer applied to each month's rows
        label_format: strftime format when deriving labels from timestamps
        unlabeled: Bucket name for rows without a month label; None drops them
        value_key: Key of the reduced value in each point
        pad: Pad a single bucket to three points

    Returns:
        List of {"month", value_key} sorted chronologically
    """
    if records is None or records.empty:
        return []

    rows, labels = _month_labels(records, bucket_field, label_format, unlabeled)
    if rows.empty:
        return []

    series = [
        {"month": label, value_key: value_fn(group)}
        for label, group in rows.groupby(labels.values, sort=False)
    ]
    series.sort(key=lambda point: _ordering(point["month"]))
    logger.debug(f"Bucketed {len(rows)} rows on {bucket_field} into {len(series)} months")

    return pad_single_bucket(series) if pad else series


# ============================================================================
# MONTHLY REDUCERS
# ============================================================================

def monthly_gcr(rows: pd.DataFrame) -> float:
    return calculate_gross_collection_rate(rows["paid_amount"].sum(), rows["billed_amount"].sum())


def monthly_ncr(rows: pd.DataFrame) -> float:
    return calculate_net_collection_rate(
        rows["paid_amount"].sum(),
        rows["billed_amount"].sum(),
        rows["adjustment_amount"].sum()
    )


def monthly_clean_claim_rate(rows: pd.DataFrame) -> float:
    return calculate_clean_claim_rate(pd.to_numeric(rows["is_clean_claim"], errors="coerce"))


def monthly_total_claims(rows: pd.DataFrame) -> float:
    return float(rows["visit_count"].sum())


def monthly_denial_rate(rows: pd.DataFrame) -> float:
    return safe_percentage(int(denied_mask(rows["claim_status"]).sum()), len(rows))


def monthly_first_pass_rate(rows: pd.DataFrame) -> float:
    return safe_percentage(int(rows["is_first_pass_resolution"].astype(bool).sum()), len(rows))


def monthly_ar_days(rows: pd.DataFrame) -> float:
    values = pd.to_numeric(rows["ar_days"], errors="coerce")
    values = values[values >= 0]
    return float(round_half_up(float(values.mean()))) if not values.empty else 0.0


def ar_days_trend(open_ar: pd.DataFrame) -> List[Dict[str, Any]]:
    """Monthly mean AR days ("MMM YYYY" labels from the service date)."""
    return bucket_monthly(
        open_ar,
        "ts_service_date",
        monthly_ar_days,
        label_format=LONG_MONTH_LABEL_FORMAT,
    )


# ============================================================================
# DASHBOARD MAIN CHART
# ============================================================================

def _labelled_groups(records: pd.DataFrame, ts_field: str) -> Dict[str, pd.DataFrame]:
    if records is None or records.empty:
        return {}
    rows, labels = _month_labels(records, ts_field, MONTH_LABEL_FORMAT, None)
    return {label: group for label, group in rows.groupby(labels.values, sort=False)}


def build_metric_chart(
    charges: pd.DataFrame,
    ncr: pd.DataFrame,
    denials: pd.DataFrame,
    metric: str,
    baseline: ClientBaseline
) -> List[Dict[str, Any]]:
    """
    Monthly series of one headline metric with its target and baseline.

    Months come from the union of charge entry dates, NCR entry dates and
    denial service dates. A month where CCR has no qualifying scores falls
    back to the CCR target.

    Args:
        charges: Current-window charge records
        ncr: Current-window NCR records
        denials: Current-window denial records
        metric: One of CHART_METRICS
        baseline: Client snapshot providing target/baseline lines

    Returns:
        List of {"month", "avg", "target", "baseline"} in calendar order
    """
    if metric not in CHART_METRICS:
        raise ValueError(f"Unknown chart metric: {metric}. Expected one of {', '.join(CHART_METRICS)}")

    target = baseline.target_for(metric)
    baseline_value = baseline.baseline_for(metric)

    charge_months = _labelled_groups(charges, "ts_entry_date")
    ncr_months = _labelled_groups(ncr, "ts_entry_date")
    denial_months = _labelled_groups(denials, "ts_service_date")

    months = set(charge_months) | set(ncr_months) | set(denial_months)
    empty = empty_records()

    chart = []
    for month in sorted(months, key=_ordering):
        month_charges = charge_months.get(month, empty)
        month_ncr = ncr_months.get(month, empty)
        month_denials = denial_months.get(month, empty)

        if metric == "GCR":
            value = monthly_gcr(month_charges) if not month_charges.empty else 0.0
        elif metric == "NCR":
            value = monthly_ncr(month_ncr) if not month_ncr.empty else 0.0
        elif metric == "CCR":
            scores = pd.to_numeric(month_charges["is_clean_claim"], errors="coerce")
            has_scores = bool(((scores >= CLEAN_CLAIM_MIN) & (scores <= CLEAN_CLAIM_MAX)).any())
            value = calculate_clean_claim_rate(scores) if has_scores else target
        elif metric == "FPR":
            value = monthly_first_pass_rate(month_denials) if not month_denials.empty else 0.0
        else:
            value = monthly_denial_rate(month_denials) if not month_denials.empty else 0.0

        chart.append({"month": month, "avg": value, "target": target, "baseline": baseline_value})

    return pad_single_bucket(chart)


# ============================================================================
# SIDE-CARD SPARKLINES
# ============================================================================

def segment_sparklines(
    charges: pd.DataFrame,
    denials: pd.DataFrame,
    start: date,
    end: date,
    segments: int = 6
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Split the selected range into equal segments for the side-card sparklines.

    Payments and charge lag follow charge entry dates; billing lag follows
    denial service dates.

    Returns:
        {"payments_data", "charge_lag_data", "billing_lag_data"}, each a list
        of ``segments`` points
    """
    total_days = (end - start).days + 1
    days_per_segment = math.ceil(total_days / segments) if total_days > 1 else 1
    start_ts = date_to_epoch_ms(start)
    end_ts = date_to_epoch_ms(end)

    payments = [0.0] * segments
    charge_lags: List[List[int]] = [[] for _ in range(segments)]
    billing_lags: List[List[int]] = [[] for _ in range(segments)]

    def segment_index(ts: int) -> Optional[int]:
        if ts == 0 or ts < start_ts or ts > end_ts:
            return None
        return min(int((ts - start_ts) // MS_PER_DAY) // days_per_segment, segments - 1)

    charges = charges if charges is not None else empty_records()
    for row in charges.itertuples(index=False):
        idx = segment_index(row.ts_entry_date)
        if idx is None:
            continue
        payments[idx] += row.paid_amount
        lag = days_between(row.date_of_service, row.charge_entry_date)
        if lag is not None:
            charge_lags[idx].append(lag)

    denials = denials if denials is not None else empty_records()
    for row in denials.itertuples(index=False):
        idx = segment_index(row.ts_service_date)
        if idx is None:
            continue
        lag = days_between(row.date_of_service, row.claim_submission_date)
        if lag is not None:
            billing_lags[idx].append(lag)

    def mean(values: List[int]) -> float:
        return sum(values) / len(values) if values else 0.0

    return {
        "payments_data": [{"value": value, "unit": "amount"} for value in payments],
        "charge_lag_data": [{"value": mean(values), "unit": "days"} for values in charge_lags],
        "billing_lag_data": [{"value": mean(values), "unit": "days"} for values in billing_lags],
    }
