"""
KPI Calculator
Reduces partitioned record collections into the RCM KPI set.
"""
# rcm_dashboard/utils/kpi_calculator.py

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from rcm_dashboard.data_processing.record_normalizer import MONTH_LABEL_FORMAT, empty_records
from rcm_dashboard.utils.kpi_calculations import (
    calculate_clean_claim_rate,
    calculate_gross_collection_rate,
    calculate_mean_lag,
    calculate_net_collection_rate,
    denied_mask,
    round_half_up,
    safe_percentage,
)

logger = logging.getLogger(__name__)

AGING_BUCKETS = ["0-30 Days", "31-60 Days", "61-90 Days", "90+ Days"]


@dataclass
class KPISet:
    """Headline KPI values; percentages are 0-100 floats."""

    total_payments: float = 0.0
    total_billed: float = 0.0
    total_adjustments: float = 0.0
    total_claims: int = 0
    gcr: float = 0.0
    ncr: float = 0.0
    denial_rate: float = 0.0
    first_pass_rate: float = 0.0
    clean_claim_rate: float = 0.0
    total_denials: int = 0
    total_open_ar: float = 0.0
    charge_lag: int = 0
    billing_lag: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _frame(df: Optional[pd.DataFrame]) -> pd.DataFrame:
    return df if df is not None else empty_records()


def _sum(df: pd.DataFrame, col: str) -> float:
    if df.empty or col not in df.columns:
        return 0.0
    return float(df[col].sum())


class KPICalculator:
    """Calculate RCM KPIs from one window's record collections."""

    def __init__(
        self,
        charges: Optional[pd.DataFrame] = None,
        denials: Optional[pd.DataFrame] = None,
        open_ar: Optional[pd.DataFrame] = None,
        ncr: Optional[pd.DataFrame] = None
    ):
        """
        Initialize KPI calculator with the window's collections.

        Args:
            charges: Charge records (GCR, CCR, payments, claims, charge lag)
            denials: Denial-file records (denial rate, FPR, billing lag)
            open_ar: Open AR records
            ncr: NCR records; NCR is never derived from charges
        """
        self.charges = _frame(charges)
        self.denials = _frame(denials)
        self.open_ar = _frame(open_ar)
        self.ncr = _frame(ncr)

    def calculate_total_payments(self) -> float:
        """Formula: ∑ charges.paid_amount"""
        return _sum(self.charges, "paid_amount")

    def calculate_total_billed(self) -> float:
        """Formula: ∑ charges.billed_amount"""
        return _sum(self.charges, "billed_amount")

    def calculate_total_claims(self) -> int:
        """Formula: ∑ charges.visit_count"""
        return int(_sum(self.charges, "visit_count"))

    def calculate_gross_collection_rate(self) -> float:
        """
        Calculate gross collection rate.

        Formula: Payments ÷ Billed × 100
        """
        return calculate_gross_collection_rate(
            self.calculate_total_payments(),
            self.calculate_total_billed()
        )

    def calculate_net_collection_rate(self) -> float:
        """
        Calculate net collection rate from the NCR collection.

        Formula: ∑ paid ÷ (∑ billed - ∑ adjustments) × 100
        """
        return calculate_net_collection_rate(
            _sum(self.ncr, "paid_amount"),
            _sum(self.ncr, "billed_amount"),
            _sum(self.ncr, "adjustment_amount")
        )

    def calculate_denied_count(self) -> int:
        if self.denials.empty:
            return 0
        return int(denied_mask(self.denials["claim_status"], exact=True).sum())

    def calculate_denial_rate(self) -> float:
        """
        Calculate denial rate.

        Formula: denied rows ÷ denial-file rows × 100 (not ÷ total claims)
        """
        return safe_percentage(self.calculate_denied_count(), len(self.denials))

    def calculate_first_pass_rate(self) -> float:
        """Formula: first-pass rows ÷ denial-file rows × 100"""
        if self.denials.empty:
            return 0.0
        resolved = int(self.denials["is_first_pass_resolution"].astype(bool).sum())
        return safe_percentage(resolved, len(self.denials))

    def calculate_clean_claim_rate(self) -> float:
        if self.charges.empty:
            return 0.0
        return calculate_clean_claim_rate(pd.to_numeric(self.charges["is_clean_claim"], errors="coerce"))

    def calculate_total_open_ar(self) -> float:
        return _sum(self.open_ar, "open_ar_amount")

    def calculate_charge_lag(self) -> int:
        """Mean days from service to charge entry over charges."""
        return calculate_mean_lag(self.charges, "date_of_service", "charge_entry_date")

    def calculate_billing_lag(self) -> int:
        """Mean days from service to claim submission over denial records."""
        return calculate_mean_lag(self.denials, "date_of_service", "claim_submission_date")

    def calculate_all(self) -> KPISet:
        """
        Reduce the collections into the full KPI set.

        Returns:
            KPISet; empty inputs yield zeroed KPIs
        """
        kpis = KPISet(
            total_payments=self.calculate_total_payments(),
            total_billed=self.calculate_total_billed(),
            total_adjustments=_sum(self.charges, "adjustment_amount"),
            total_claims=self.calculate_total_claims(),
            gcr=self.calculate_gross_collection_rate(),
            ncr=self.calculate_net_collection_rate(),
            denial_rate=self.calculate_denial_rate(),
            first_pass_rate=self.calculate_first_pass_rate(),
            clean_claim_rate=self.calculate_clean_claim_rate(),
            total_denials=self.calculate_denied_count(),
            total_open_ar=self.calculate_total_open_ar(),
            charge_lag=self.calculate_charge_lag(),
            billing_lag=self.calculate_billing_lag(),
        )
        logger.info(
            f"KPIs: GCR {kpis.gcr:.2f}% NCR {kpis.ncr:.2f}% "
            f"Denial {kpis.denial_rate:.2f}% FPR {kpis.first_pass_rate:.2f}% "
            f"CCR {kpis.clean_claim_rate:.2f}%"
        )
        return kpis


def aggregate(
    charges: Optional[pd.DataFrame],
    denials: Optional[pd.DataFrame],
    open_ar: Optional[pd.DataFrame],
    ncr: Optional[pd.DataFrame]
) -> KPISet:
    """Pure reduction of one window's collections into a KPISet."""
    return KPICalculator(charges, denials, open_ar, ncr).calculate_all()


def calculate_average_ar_days(open_ar: Optional[pd.DataFrame]) -> int:
    """
    Mean AR days over open AR records, rounded.

    Negative and non-numeric values are excluded.
    """
    open_ar = _frame(open_ar)
    if open_ar.empty:
        return 0
    values = pd.to_numeric(open_ar["ar_days"], errors="coerce")
    values = values[values >= 0]
    if values.empty:
        return 0
    return round_half_up(float(values.mean()))


def calculate_aging_buckets(aging: Optional[pd.DataFrame], end_date: date) -> List[Dict[str, Any]]:
    """
    AR aging distribution for the snapshot month of ``end_date``.

    Aging rows are pre-bucketed snapshots: only rows whose month label equals
    the end date's "MMM YY" label are used.

    Args:
        aging: Aging snapshot records
        end_date: Selected end date

    Returns:
        One entry per bucket with its percentage share and raw amount
    """
    totals = {bucket: 0.0 for bucket in AGING_BUCKETS}
    aging = _frame(aging)
    target_month = end_date.strftime(MONTH_LABEL_FORMAT)

    if not aging.empty:
        snapshot = aging[aging["month"] == target_month]
        for age, amount in zip(
            pd.to_numeric(snapshot["aging_days"], errors="coerce"),
            pd.to_numeric(snapshot["aging_amount"], errors="coerce")
        ):
            if pd.isna(age) or age < 0 or pd.isna(amount):
                continue
            if age <= 30:
                totals["0-30 Days"] += amount
            elif age <= 60:
                totals["31-60 Days"] += amount
            elif age <= 90:
                totals["61-90 Days"] += amount
            else:
                totals["90+ Days"] += amount

    grand_total = sum(totals.values())
    return [
        {
            "name": bucket,
            "value": (amount / grand_total) * 100 if grand_total > 0 else 0.0,
            "raw_amount": amount,
        }
        for bucket, amount in totals.items()
    ]
