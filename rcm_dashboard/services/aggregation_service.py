"""
Aggregation Service
Builds the dashboard view and the detail page views from a session dataset.

Every detail page (total claims, total payments, NCR, denials) is described by
a PageConfig: its source export, record variant, row filters and reducers. The
service runs the same pipeline for each one:

    resolve range -> partition -> metrics / monthly series / 3-month
    comparison / payer breakdown -> paginate

The dashboard view combines all five exports with the client's baseline
snapshot.
"""
# rcm_dashboard/services/aggregation_service.py

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from rcm_dashboard.config.client_config import (
    CLIENT_BASELINES,
    DEFAULT_CLIENT,
    ClientBaseline,
    get_client_baseline,
)
from rcm_dashboard.data_processing.dataset_manager import Dataset
from rcm_dashboard.data_processing.record_normalizer import (
    DEFAULT_VARIANT,
    MonthSource,
    RecordVariant,
    SourceKind,
)
from rcm_dashboard.utils.comparison import date_range_labels, format_compact_number, metric_trend
from rcm_dashboard.utils.kpi_calculations import (
    calculate_net_collection_rate,
    denied_mask,
    round_half_up,
    safe_percentage,
)
from rcm_dashboard.utils.kpi_calculator import (
    KPISet,
    aggregate,
    calculate_aging_buckets,
    calculate_average_ar_days,
)
from rcm_dashboard.utils.partitioner import (
    TS_ENTRY_DATE,
    TS_SERVICE_DATE,
    partition,
    partition_dataset,
)
from rcm_dashboard.utils.period_resolver import (
    DASHBOARD_QUICK_FILTERS,
    DETAIL_PAGE_FIXED_YEARS,
    DETAIL_PAGE_QUICK_FILTERS,
    Clock,
    PeriodWindow,
    QuickFilter,
    SystemClock,
    default_range,
    month_bounds,
    months_back,
    resolve_period,
    resolve_quick_filter,
)
from rcm_dashboard.utils.trend_bucketer import (
    CHART_METRICS,
    MONTH_FIELD,
    ValueFn,
    ar_days_trend,
    bucket_monthly,
    build_metric_chart,
    monthly_clean_claim_rate,
    monthly_denial_rate,
    monthly_first_pass_rate,
    monthly_gcr,
    monthly_ncr,
    monthly_total_claims,
    segment_sparklines,
)

logger = logging.getLogger(__name__)

ROWS_PER_PAGE = 5
PAYERS_PER_PAGE = 6
PAYER_LIMIT = 50
NCR_INDUSTRY_TARGET = 97

# Entry-dated page records: month label from the charge entry date only
ENTRY_DATED_VARIANT = RecordVariant(month_source=MonthSource.ENTRY, visit_default=1, honor_month_column=False)
SERVICE_DATED_VARIANT = RecordVariant(month_source=MonthSource.SERVICE, honor_month_column=False)


class ViewRequestError(ValueError):
    """Raised for an unknown page, quick filter or chart metric."""
    pass


@dataclass(frozen=True)
class ViewRequest:
    """Selection made in the dashboard controls."""

    client_id: str = DEFAULT_CLIENT
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    quick_filter: Optional[QuickFilter] = None
    metric: str = "GCR"
    page_number: int = 1
    payer_page: int = 1


# ============================================================================
# PAGE CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class PageConfig:
    """
    Everything that differs between detail pages.

    Attributes:
        name: Page id used in URLs
        title: Display title
        source: Export the page reads
        variant: Record variant for normalization
        date_field: Timestamp column for windowing and the 3-month comparison
        metrics: Reducer producing the page's headline metrics
        monthly_value: Reducer for each month of the trend series
        monthly_key: Key of the monthly value in each trend point
        monthly_bucket_field: "month" label column or a timestamp column
        comparison_value: Reducer for the current-month / last-3-months bars
        comparison_key: Key of the value in each comparison bar
        comparison_is_total: Divide the last-3-months value by three
        payer_value: Reducer for each payer's breakdown value
        payer_key: Key of the value in each payer entry
        payer_limit: Keep only the top N payers
        payer_positive_only: Drop payers whose value is not positive
        precision: Decimal places for series values (None: whole numbers)
        detail_columns: Columns of the paginated detail rows
        source_filter: Applied to the whole export before windowing
        focus_filter: Selects the rows listed, bucketed and compared
        monthly_extra: Constant fields added to every trend point
    """

    name: str
    title: str
    source: SourceKind
    variant: RecordVariant
    date_field: str
    metrics: Callable[[pd.DataFrame], Dict[str, Any]]
    monthly_value: ValueFn
    monthly_key: str
    monthly_bucket_field: str
    comparison_value: ValueFn
    comparison_key: str
    comparison_is_total: bool
    payer_value: ValueFn
    payer_key: str
    payer_limit: Optional[int] = None
    payer_positive_only: bool = False
    precision: Optional[int] = None
    detail_columns: Tuple[str, ...] = ()
    source_filter: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None
    focus_filter: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None
    monthly_extra: Mapping[str, Any] = field(default_factory=dict)
    quick_filters: Sequence[QuickFilter] = DETAIL_PAGE_QUICK_FILTERS
    fixed_years: Optional[Sequence[int]] = DETAIL_PAGE_FIXED_YEARS


def _sum_of(column: str) -> ValueFn:
    def reducer(rows: pd.DataFrame) -> float:
        return float(rows[column].sum()) if not rows.empty else 0.0
    return reducer


def _row_count(rows: pd.DataFrame) -> float:
    return float(len(rows))


def _only_paid(records: pd.DataFrame) -> pd.DataFrame:
    return records[records["paid_amount"] > 0]


def _only_denied(records: pd.DataFrame) -> pd.DataFrame:
    return records[denied_mask(records["claim_status"], exact=False)]


def _claims_metrics(rows: pd.DataFrame) -> Dict[str, Any]:
    return {
        "total_claims": round_half_up(float(rows["visit_count"].sum())),
        "total_billed": round_half_up(float(rows["billed_amount"].sum())),
        "total_paid": round_half_up(float(rows["paid_amount"].sum())),
    }


def _payments_metrics(rows: pd.DataFrame) -> Dict[str, Any]:
    total_paid = float(rows["paid_amount"].sum())
    claims_paid = len(rows)
    return {
        "total_paid": round_half_up(total_paid),
        "claims_paid": claims_paid,
        "avg_payment": round_half_up(total_paid / claims_paid) if claims_paid > 0 else 0,
    }


def _ncr_metrics(rows: pd.DataFrame) -> Dict[str, Any]:
    total_paid = float(rows["paid_amount"].sum())
    total_billed = float(rows["billed_amount"].sum())
    total_adj = float(rows["adjustment_amount"].sum())
    return {
        "overall_ncr": round(calculate_net_collection_rate(total_paid, total_billed, total_adj), 2),
        "total_paid": total_paid,
        "total_billed": total_billed,
        "total_adjustments": total_adj,
    }


def _denials_metrics(rows: pd.DataFrame) -> Dict[str, Any]:
    denied = _only_denied(rows)
    return {
        "total_denials": len(denied),
        "total_denied_amount": float(denied["denial_amount"].sum()),
        "denial_rate": safe_percentage(len(denied), len(rows)),
    }


PAGE_CONFIGS: Dict[str, PageConfig] = {
    "total_claims": PageConfig(
        name="total_claims",
        title="Total Claims Analysis",
        source=SourceKind.CHARGES,
        variant=ENTRY_DATED_VARIANT,
        date_field=TS_ENTRY_DATE,
        metrics=_claims_metrics,
        monthly_value=monthly_total_claims,
        monthly_key="claims",
        monthly_bucket_field=MONTH_FIELD,
        comparison_value=_sum_of("visit_count"),
        comparison_key="claims",
        comparison_is_total=True,
        payer_value=_sum_of("visit_count"),
        payer_key="claims",
        payer_limit=PAYER_LIMIT,
        detail_columns=(
            "claim_id", "client_id", "date_of_service", "charge_entry_date",
            "payer_name", "billed_amount", "paid_amount", "visit_count",
        ),
    ),
    "total_payments": PageConfig(
        name="total_payments",
        title="Total Payments Analysis",
        source=SourceKind.CHARGES,
        variant=ENTRY_DATED_VARIANT,
        date_field=TS_ENTRY_DATE,
        metrics=_payments_metrics,
        monthly_value=_sum_of("paid_amount"),
        monthly_key="actual",
        monthly_bucket_field=MONTH_FIELD,
        comparison_value=_sum_of("paid_amount"),
        comparison_key="payment",
        comparison_is_total=True,
        payer_value=_sum_of("paid_amount"),
        payer_key="payment",
        detail_columns=(
            "claim_id", "client_id", "date_of_service", "charge_entry_date",
            "payer_name", "billed_amount", "paid_amount",
        ),
        source_filter=_only_paid,
    ),
    "ncr": PageConfig(
        name="ncr",
        title="Net Collection Rate Analysis",
        source=SourceKind.NCR,
        variant=DEFAULT_VARIANT,
        date_field=TS_ENTRY_DATE,
        metrics=_ncr_metrics,
        monthly_value=monthly_ncr,
        monthly_key="actual",
        monthly_bucket_field=TS_ENTRY_DATE,
        comparison_value=monthly_ncr,
        comparison_key="ncr",
        comparison_is_total=False,
        payer_value=_sum_of("paid_amount"),
        payer_key="payments",
        payer_positive_only=True,
        precision=2,
        detail_columns=(
            "date_of_service", "charge_entry_date", "payer_name",
            "billed_amount", "paid_amount", "adjustment_amount",
        ),
        monthly_extra={"target": NCR_INDUSTRY_TARGET},
    ),
    "denials": PageConfig(
        name="denials",
        title="Denials Analysis",
        source=SourceKind.DENIALS,
        variant=SERVICE_DATED_VARIANT,
        date_field=TS_SERVICE_DATE,
        metrics=_denials_metrics,
        monthly_value=_row_count,
        monthly_key="denials",
        monthly_bucket_field=MONTH_FIELD,
        comparison_value=_row_count,
        comparison_key="denials",
        comparison_is_total=True,
        payer_value=_row_count,
        payer_key="denials",
        payer_limit=PAYER_LIMIT,
        detail_columns=(
            "denial_id", "claim_id", "client_id", "date_of_service",
            "payer_name", "reason", "claim_status", "denial_amount",
        ),
        focus_filter=_only_denied,
    ),
}


# ============================================================================
# HELPERS
# ============================================================================

def _finalize(value: float, precision: Optional[int]):
    if precision is None:
        return round_half_up(value)
    return round(float(value), precision)


def paginate(items: Sequence[Any], page: int, per_page: int) -> Tuple[List[Any], int, int]:
    """
    Slice one page out of ``items``.

    Returns:
        (page items, clamped page number, total pages)
    """
    total_pages = math.ceil(len(items) / per_page) if items else 0
    page = max(1, int(page or 1))
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), page, total_pages


def _period_dict(period: PeriodWindow) -> Dict[str, Optional[str]]:
    def iso(day: Optional[date]) -> Optional[str]:
        return day.isoformat() if day is not None else None

    return {
        "current_start": iso(period.current_start),
        "current_end": iso(period.current_end),
        "previous_start": iso(period.previous_start),
        "previous_end": iso(period.previous_end),
        "duration_days": period.duration_days,
    }


# ============================================================================
# SERVICE
# ============================================================================

class AggregationService:
    """Computes dashboard and detail page views for a session dataset."""

    def __init__(
        self,
        baselines: Mapping[str, ClientBaseline] = CLIENT_BASELINES,
        clock: Optional[Clock] = None,
        pages: Optional[Mapping[str, PageConfig]] = None
    ):
        """
        Initialize the service.

        Args:
            baselines: Immutable per-client baseline snapshots
            clock: Source of "today" for quick filters and default ranges
            pages: Detail page configurations by page id
        """
        self.baselines = baselines
        self.clock = clock or SystemClock()
        self.pages = pages if pages is not None else PAGE_CONFIGS

    def resolve_range(
        self,
        request: ViewRequest,
        allowed_filters: Sequence[QuickFilter] = DASHBOARD_QUICK_FILTERS,
        fixed_years: Optional[Sequence[int]] = None
    ) -> Tuple[date, date]:
        """
        Selected date range: a quick filter wins, then explicit dates, then
        the default three-month range.

        Raises:
            ViewRequestError: Quick filter not offered on this view
        """
        quick_filter = request.quick_filter
        if quick_filter is not None and quick_filter != QuickFilter.NONE:
            if quick_filter not in allowed_filters:
                raise ViewRequestError(f"Quick filter not available here: {quick_filter.value}")
            return resolve_quick_filter(quick_filter, self.clock, fixed_years)

        if request.start_date is not None and request.end_date is not None:
            return request.start_date, request.end_date

        return default_range(self.clock)

    def baseline_for(self, client_id: str) -> ClientBaseline:
        return get_client_baseline(client_id, self.baselines)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def dashboard_view(self, dataset: Dataset, request: ViewRequest) -> Dict[str, Any]:
        """
        Build the main dashboard view.

        Args:
            dataset: Session dataset
            request: Client, date range / quick filter and chart metric

        Returns:
            Dictionary with headline KPIs, trends, sparklines and charts

        Raises:
            ViewRequestError: Unknown chart metric or quick filter
        """
        if request.metric not in CHART_METRICS:
            raise ViewRequestError(
                f"Unknown chart metric: {request.metric}. Expected one of {', '.join(CHART_METRICS)}"
            )

        start, end = self.resolve_range(request)
        period = resolve_period(start, end)
        baseline = self.baseline_for(request.client_id)

        collections = dataset.collections(DEFAULT_VARIANT)
        parts = partition_dataset(collections, period)

        charges = parts.current_of(SourceKind.CHARGES)
        denials = parts.current_of(SourceKind.DENIALS)
        open_ar = parts.current_of(SourceKind.OPEN_AR)
        ncr = parts.current_of(SourceKind.NCR)

        current = aggregate(charges, denials, open_ar, ncr)
        previous = aggregate(
            parts.previous_of(SourceKind.CHARGES),
            parts.previous_of(SourceKind.DENIALS),
            parts.previous_of(SourceKind.OPEN_AR),
            parts.previous_of(SourceKind.NCR),
        )

        logger.info(
            f"Dashboard view for {request.client_id}: {start} - {end} "
            f"({len(charges)} charges, {len(denials)} denials, {len(ncr)} NCR rows)"
        )

        return {
            "client_id": request.client_id,
            "metric": request.metric,
            "period": _period_dict(period),
            "date_labels": date_range_labels(period),
            "kpis": current.to_dict(),
            "previous_kpis": previous.to_dict(),
            "baseline": baseline.to_dict(),
            "kpi_trends": self._kpi_trends(current, baseline),
            "kpi_sparklines": {
                "gcr": bucket_monthly(charges, MONTH_FIELD, monthly_gcr),
                "ncr": bucket_monthly(ncr, MONTH_FIELD, monthly_ncr),
                "denial_rate": bucket_monthly(denials, TS_SERVICE_DATE, monthly_denial_rate),
                "first_pass_rate": bucket_monthly(denials, TS_SERVICE_DATE, monthly_first_pass_rate),
                "clean_claim_rate": bucket_monthly(charges, MONTH_FIELD, monthly_clean_claim_rate),
                "total_claims": bucket_monthly(charges, MONTH_FIELD, monthly_total_claims),
            },
            "main_chart": build_metric_chart(charges, ncr, denials, request.metric, baseline),
            "ar_days_trend": ar_days_trend(open_ar),
            "average_ar_days": calculate_average_ar_days(open_ar),
            "aging_buckets": calculate_aging_buckets(collections[SourceKind.AGING], end),
            "charge_lag": current.charge_lag,
            "billing_lag": current.billing_lag,
            "side_cards": segment_sparklines(charges, denials, start, end),
            "comparison_bars": self._comparison_bars(current, previous),
            "formatted": {
                "total_payments": format_compact_number(current.total_payments, currency=True),
                "total_open_ar": format_compact_number(current.total_open_ar, currency=True),
                "total_claims": f"{current.total_claims:,}",
            },
        }

    def _kpi_trends(self, current: KPISet, baseline: ClientBaseline) -> Dict[str, Dict[str, Any]]:
        pairs = {
            "gcr": (current.gcr, baseline.gcr, 2),
            "ncr": (current.ncr, baseline.ncr, 2),
            "denial_rate": (current.denial_rate, baseline.denial_rate, 2),
            "first_pass_rate": (current.first_pass_rate, baseline.first_pass_rate, 2),
            "clean_claim_rate": (current.clean_claim_rate, baseline.clean_claim_rate, 2),
            "total_claims": (current.total_claims, baseline.total_claims, 0),
            "total_payments": (current.total_payments, baseline.total_payments, 2),
        }
        return {
            name: metric_trend(name, value, previous, decimals).to_dict()
            for name, (value, previous, decimals) in pairs.items()
        }

    @staticmethod
    def _comparison_bars(current: KPISet, previous: KPISet) -> List[Dict[str, Any]]:
        """Current vs previous window; previous values negated for a back-to-back chart."""
        pairs = [
            ("GCR", current.gcr, previous.gcr),
            ("NCR", current.ncr, previous.ncr),
            ("CCR", current.clean_claim_rate, previous.clean_claim_rate),
            ("FPR", current.first_pass_rate, previous.first_pass_rate),
            ("Denial Rate", current.denial_rate, previous.denial_rate),
        ]
        return [{"name": name, "current": cur, "previous": -prev} for name, cur, prev in pairs]

    # ------------------------------------------------------------------
    # Detail pages
    # ------------------------------------------------------------------

    def page_config(self, page: str) -> PageConfig:
        if page not in self.pages:
            raise ViewRequestError(f"Unknown page: {page}. Expected one of {', '.join(self.pages)}")
        return self.pages[page]

    def page_view(self, dataset: Dataset, page: str, request: ViewRequest) -> Dict[str, Any]:
        """
        Build a detail page view.

        Args:
            dataset: Session dataset
            page: Page id (total_claims, total_payments, ncr, denials)
            request: Client, date range / quick filter and pagination

        Returns:
            Dictionary with metrics, monthly trend, 3-month comparison, payer
            breakdown and paginated detail rows

        Raises:
            ViewRequestError: Unknown page or quick filter
        """
        config = self.page_config(page)
        start, end = self.resolve_range(request, config.quick_filters, config.fixed_years)
        period = resolve_period(start, end)

        records = dataset.records(config.source, config.variant)
        if config.source_filter is not None:
            records = config.source_filter(records)

        current = partition(records, period.current_start, period.current_end, config.date_field)
        previous = partition(records, period.previous_start, period.previous_end, config.date_field)
        focus = config.focus_filter(current) if config.focus_filter is not None else current

        payers = self._payer_breakdown(config, focus)
        payer_items, payer_page, payer_pages = paginate(payers, request.payer_page, PAYERS_PER_PAGE)

        rows = focus[list(config.detail_columns)].to_dict("records") if config.detail_columns else []
        row_items, page_number, total_pages = paginate(rows, request.page_number, ROWS_PER_PAGE)

        logger.info(f"Page {config.name} for {request.client_id}: {start} - {end} ({len(current)} rows)")

        return {
            "page": config.name,
            "title": config.title,
            "client_id": request.client_id,
            "period": _period_dict(period),
            "date_labels": date_range_labels(period),
            "metrics": config.metrics(current),
            "previous_metrics": config.metrics(previous),
            "monthly_trend": self._monthly_trend(config, focus),
            "comparison": self._three_month_comparison(config, records, end),
            "payers": {
                "items": payer_items,
                "page": payer_page,
                "total_pages": payer_pages,
                "total": len(payers),
            },
            "rows": {
                "items": row_items,
                "page": page_number,
                "total_pages": total_pages,
                "total": len(rows),
            },
        }

    def _monthly_trend(self, config: PageConfig, rows: pd.DataFrame) -> List[Dict[str, Any]]:
        series = bucket_monthly(
            rows,
            config.monthly_bucket_field,
            lambda group: _finalize(config.monthly_value(group), config.precision),
            unlabeled=None,
            value_key=config.monthly_key,
        )
        return [{**point, **config.monthly_extra} for point in series]

    def _three_month_comparison(self, config: PageConfig, records: pd.DataFrame, end: date) -> List[Dict[str, Any]]:
        """
        "Last 3 Mos Avg" vs "Current Month", anchored on the end date's month.

        Uses the page's whole export, not the selected window.
        """
        rows = config.focus_filter(records) if config.focus_filter is not None else records
        if rows.empty:
            return []

        month_start, month_end = month_bounds(end)
        prior_end = month_start - timedelta(days=1)
        prior_start, _ = month_bounds(months_back(prior_end, 2))

        current_value = config.comparison_value(partition(rows, month_start, month_end, config.date_field))
        prior_value = config.comparison_value(partition(rows, prior_start, prior_end, config.date_field))
        if config.comparison_is_total:
            prior_value = prior_value / 3 if prior_value > 0 else 0.0

        return [
            {"label": "Last 3 Mos Avg", config.comparison_key: _finalize(prior_value, config.precision)},
            {"label": "Current Month", config.comparison_key: _finalize(current_value, config.precision)},
        ]

    def _payer_breakdown(self, config: PageConfig, rows: pd.DataFrame) -> List[Dict[str, Any]]:
        entries = [
            {"name": str(payer), config.payer_key: _finalize(config.payer_value(group), config.precision)}
            for payer, group in rows.groupby("payer_name", sort=False)
        ]
        if config.payer_positive_only:
            entries = [entry for entry in entries if entry[config.payer_key] > 0]

        entries.sort(key=lambda entry: -entry[config.payer_key])
        if config.payer_limit is not None:
            entries = entries[:config.payer_limit]
        return entries
