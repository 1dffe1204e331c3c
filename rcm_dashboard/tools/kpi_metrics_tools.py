"""
KPI Metrics Tools for the Dashboard Assistant

Individual tools that let the assistant answer specific metric questions from
the session's dashboard figures without calling the LLM. Every answer uses the
same numbers the dashboard shows for the selected client and date range.

Example user questions:
- "What is our gross collection rate?"
- "How many days in AR do we have?"
- "What's the denial rate this period?"
- "Show me the AR aging"
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from rcm_dashboard.data_processing.dataset_manager import Dataset
from rcm_dashboard.data_processing.record_normalizer import SourceKind
from rcm_dashboard.services.aggregation_service import AggregationService, ViewRequest
from rcm_dashboard.utils.comparison import format_compact_number

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "❌ No data available. Load a client or upload the five CSV files first."

# Ordered: the first matching pattern wins
METRIC_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ("kpi_summary", re.compile(r"\b(kpi summary|summary|overview|all kpis|how are we doing)\b")),
    ("gcr", re.compile(r"\b(gross collection|gcr)\b")),
    ("ncr", re.compile(r"\b(net collection|ncr)\b")),
    ("first_pass_rate", re.compile(r"\b(first[- ]pass|fpr)\b")),
    ("clean_claim_rate", re.compile(r"\b(clean claims?|ccr)\b")),
    ("denial_rate", re.compile(r"\b(denial rate|denials?|denied)\b")),
    ("days_in_ar", re.compile(r"\b(days in ar|ar days)\b")),
    ("ar_summary", re.compile(r"\b(aging|open ar|accounts receivable|ar summary)\b")),
    ("lags", re.compile(r"\b(charge lag|billing lag|lags?)\b")),
    ("total_claims", re.compile(r"\b(total claims|claim volume|how many claims|visits?)\b")),
    ("total_payments", re.compile(r"\b(total payments?|payments?|collected|paid)\b")),
]


def detect_metric(question: str) -> Optional[str]:
    """Metric tool name for a question, None for a general question."""
    text = (question or "").lower()
    for name, pattern in METRIC_PATTERNS:
        if pattern.search(text):
            return name
    return None


class KPIMetricsTools:
    """Tools for answering individual KPI questions."""

    def __init__(self, service: AggregationService, dataset: Dataset, request: ViewRequest):
        """
        Initialize KPI metrics tools.

        Args:
            service: Aggregation service computing the dashboard view
            dataset: Session dataset
            request: Client and date range the answers refer to
        """
        self.service = service
        self.dataset = dataset
        self.request = request
        self._view: Optional[Dict[str, Any]] = None

    def has_data(self) -> bool:
        return any(not self.dataset.raw_rows(kind).empty for kind in SourceKind)

    def _get_view(self) -> Optional[Dict[str, Any]]:
        """Dashboard view for the request, computed once; None without data."""
        if not self.has_data():
            return None
        if self._view is None:
            logger.info(f"Computing KPI view for client {self.request.client_id}")
            self._view = self.service.dashboard_view(self.dataset, self.request)
        return self._view

    def _period(self, view: Dict[str, Any]) -> str:
        return f" ({view['client_id']}, {view['period']['current_start']} to {view['period']['current_end']})"

    def _trend_line(self, view: Dict[str, Any], metric: str, suffix: str = "%") -> str:
        trend = view["kpi_trends"][metric]
        return f"- vs baseline {trend['previous_formatted']}{suffix}: {trend['arrow_glyph']} {trend['delta']}{suffix}"

    def get_gross_collection_rate(self) -> str:
        """GCR with the payments and billed amounts behind it."""
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        kpis = view["kpis"]
        return f"""**Gross Collection Rate{self._period(view)}:**
- Total Payments: ${kpis['total_payments']:,.2f}
- Total Billed: ${kpis['total_billed']:,.2f}
- **GCR: {kpis['gcr']:.2f}%**
{self._trend_line(view, 'gcr')}"""

    def get_net_collection_rate(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        return f"""**Net Collection Rate{self._period(view)}:**
- **NCR: {view['kpis']['ncr']:.2f}%** (from the NCR export)
{self._trend_line(view, 'ncr')}"""

    def get_denial_rate(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        kpis = view["kpis"]
        return f"""**Denial Rate{self._period(view)}:**
- Denied claims: {kpis['total_denials']:,}
- **Denial Rate: {kpis['denial_rate']:.2f}%**
{self._trend_line(view, 'denial_rate')}"""

    def get_first_pass_rate(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        return f"""**First Pass Rate{self._period(view)}:**
- **FPR: {view['kpis']['first_pass_rate']:.2f}%**
{self._trend_line(view, 'first_pass_rate')}"""

    def get_clean_claim_rate(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        return f"""**Clean Claim Rate{self._period(view)}:**
- **CCR: {view['kpis']['clean_claim_rate']:.2f}%**
{self._trend_line(view, 'clean_claim_rate')}"""

    def get_total_claims(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        return f"""**Total Claims{self._period(view)}:** {view['kpis']['total_claims']:,}
{self._trend_line(view, 'total_claims', suffix='')}"""

    def get_total_payments(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        total = view["kpis"]["total_payments"]
        return f"**Total Payments{self._period(view)}:** ${total:,.2f} ({format_compact_number(total, currency=True)})"

    def get_days_in_ar(self) -> str:
        """
        Average AR days and the monthly trend.
        """
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        trend = [point for point in view["ar_days_trend"] if point["month"].strip()]
        trend_text = "\n".join(f"  - {point['month']}: {point['value']} days" for point in trend)
        if trend_text:
            trend_text = f"\n- Monthly trend:\n{trend_text}"

        return f"""**Days in AR{self._period(view)}:**
- **Average: {view['average_ar_days']} days**{trend_text}"""

    def get_ar_summary(self) -> str:
        """Open AR total and the aging distribution of the end date's month."""
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        aging_text = "\n".join(
            f"  - {bucket['name']}: ${bucket['raw_amount']:,.2f} ({bucket['value']:.1f}%)"
            for bucket in view["aging_buckets"]
        )

        return f"""**AR Summary{self._period(view)}:**
- Total Open AR: ${view['kpis']['total_open_ar']:,.2f}
- AR Aging:
{aging_text}"""

    def get_lags(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        return f"""**Lags{self._period(view)}:**
- Charge Lag (service to entry): {view['charge_lag']} days
- Billing Lag (service to submission): {view['billing_lag']} days"""

    def get_kpi_summary(self) -> str:
        view = self._get_view()
        if view is None:
            return NO_DATA_MESSAGE

        kpis = view["kpis"]
        return f"""**KPI Summary{self._period(view)}:**
- GCR: {kpis['gcr']:.2f}%
- NCR: {kpis['ncr']:.2f}%
- Denial Rate: {kpis['denial_rate']:.2f}%
- First Pass Rate: {kpis['first_pass_rate']:.2f}%
- Clean Claim Rate: {kpis['clean_claim_rate']:.2f}%
- Total Claims: {kpis['total_claims']:,}
- Total Payments: {format_compact_number(kpis['total_payments'], currency=True)}
- Total Open AR: {format_compact_number(kpis['total_open_ar'], currency=True)}"""

    def context_summary(self) -> str:
        """Plain-text KPI context for LLM prompts."""
        view = self._get_view()
        if view is None:
            return "No data is loaded for this session."

        kpis = view["kpis"]
        lines = [f"Client: {view['client_id']}", f"Period: {view['date_labels']['current']}"]
        lines.extend(f"{name}: {value}" for name, value in kpis.items())
        lines.append(f"average_ar_days: {view['average_ar_days']}")
        return "\n".join(lines)


def create_kpi_metrics_tool_functions(tools: KPIMetricsTools) -> Dict[str, Callable[[], str]]:
    """
    Map metric intents to tool functions.

    Args:
        tools: Tools bound to one session and date range

    Returns:
        Dictionary of intent: tool_function
    """
    return {
        "kpi_summary": tools.get_kpi_summary,
        "gcr": tools.get_gross_collection_rate,
        "ncr": tools.get_net_collection_rate,
        "denial_rate": tools.get_denial_rate,
        "first_pass_rate": tools.get_first_pass_rate,
        "clean_claim_rate": tools.get_clean_claim_rate,
        "total_claims": tools.get_total_claims,
        "total_payments": tools.get_total_payments,
        "days_in_ar": tools.get_days_in_ar,
        "ar_summary": tools.get_ar_summary,
        "lags": tools.get_lags,
    }
