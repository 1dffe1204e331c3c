"""
Record Normalizer
Converts raw parsed CSV rows into canonical, typed record DataFrames.
"""
# rcm_dashboard/data_processing/record_normalizer.py

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from rcm_dashboard.utils.kpi_calculations import (
    first_non_empty,
    is_missing,
    parse_amount,
    parse_date,
    parse_flag,
    parse_number,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)

MONTH_LABEL_FORMAT = "%b %y"  # "Jan 24"


class SourceKind(str, Enum):
    """The five CSV exports the dashboard consumes."""

    CHARGES = "charges"
    DENIALS = "denials"
    OPEN_AR = "open_ar"
    AGING = "aging"
    NCR = "ncr"


class MonthSource(str, Enum):
    """Which date produces a record's month label."""

    AUTO = "auto"        # service date, else entry date
    SERVICE = "service"
    ENTRY = "entry"


@dataclass(frozen=True)
class RecordVariant:
    """
    Per-consumer ingestion differences.

    Attributes:
        month_source: Date used to derive the month label
        visit_default: Visit count used when the source value is absent or zero
        honor_month_column: Use an explicit ``month`` source column when present
    """

    month_source: MonthSource = MonthSource.AUTO
    visit_default: int = 0
    honor_month_column: bool = True


DEFAULT_VARIANT = RecordVariant()

# Ordered fallbacks: first non-empty wins
PAYER_NAME_COLUMNS = [
    "Payer_Name", "Payer_Name_1", "Payer_Name_2",
    "Payer", "Payer_1", "Payer Name",
    "Insurance", "Insurance Provider",
]
OPEN_AR_COLUMNS = ["Open_AR_Amount", "apenaramount"]
FIRST_PASS_COLUMNS = ["Is_First_Pass_Resolution", "First_Pass"]

CANONICAL_COLUMNS = [
    "claim_id", "client_id", "denial_id", "payer_name", "reason", "claim_status",
    "date_of_service", "charge_entry_date", "claim_submission_date",
    "ts_service_date", "ts_entry_date",
    "billed_amount", "paid_amount", "adjustment_amount", "open_ar_amount",
    "denial_amount", "aging_amount", "gcr_target", "gcr_baseline",
    "visit_count", "is_first_pass_resolution", "is_clean_claim",
    "aging_days", "ar_days", "month",
]

RawRows = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]


def _text_or_none(row: Mapping[str, Any], key: str) -> Optional[str]:
    value = row.get(key)
    if is_missing(value):
        return None
    text = str(value).strip()
    return text or None


def _month_label(
    row: Mapping[str, Any],
    service: Optional[pd.Timestamp],
    entry: Optional[pd.Timestamp],
    variant: RecordVariant
) -> str:
    if variant.honor_month_column:
        explicit = _text_or_none(row, "month")
        if explicit:
            return explicit

    if variant.month_source == MonthSource.SERVICE:
        source = service
    elif variant.month_source == MonthSource.ENTRY:
        source = entry
    else:
        source = service if service is not None else entry

    return source.strftime(MONTH_LABEL_FORMAT) if source is not None else ""


def _visit_count(value: Any, default: int) -> int:
    visits = parse_number(value, default=0.0)
    if pd.isna(visits) or visits == 0:
        return default
    # Visits are whole counts; fractional exports are truncated
    return int(visits)


def normalize_row(row: Mapping[str, Any], variant: RecordVariant = DEFAULT_VARIANT) -> Dict[str, Any]:
    """
    Normalize a single raw row.

    Never raises: malformed fields degrade to their defaults.
    """
    date_of_service = _text_or_none(row, "Date_of_Service")
    charge_entry_date = _text_or_none(row, "Charge_Entry_Date")
    service = parse_date(date_of_service)
    entry = parse_date(charge_entry_date)

    return {
        "claim_id": first_non_empty(row, ["Claim_ID"], "N/A"),
        "client_id": first_non_empty(row, ["Client", "Client_ID"], "Unknown"),
        "denial_id": first_non_empty(row, ["Denial_ID"], "N/A"),
        "payer_name": first_non_empty(row, PAYER_NAME_COLUMNS, "Unknown"),
        "reason": first_non_empty(row, ["Reason"], "N/A"),
        "claim_status": first_non_empty(row, ["Claim_Status"], "Unknown"),
        "date_of_service": date_of_service,
        "charge_entry_date": charge_entry_date,
        "claim_submission_date": _text_or_none(row, "Claim_Submission_Date"),
        "ts_service_date": to_epoch_ms(service),
        "ts_entry_date": to_epoch_ms(entry),
        "billed_amount": parse_amount(row.get("Billed_Amount")),
        "paid_amount": parse_amount(row.get("Paid_Amount")),
        "adjustment_amount": parse_amount(row.get("Adjustment_Amount")),
        "open_ar_amount": parse_amount(first_non_empty(row, OPEN_AR_COLUMNS)),
        "denial_amount": parse_amount(row.get("Denial_Amount")),
        "aging_amount": parse_amount(row.get("Aging_Amount")),
        "gcr_target": parse_amount(row.get("GCR_Target")),
        "gcr_baseline": parse_amount(row.get("GCR_Baseline")),
        "visit_count": _visit_count(row.get("visit"), variant.visit_default),
        "is_first_pass_resolution": parse_flag(first_non_empty(row, FIRST_PASS_COLUMNS)),
        "is_clean_claim": parse_number(row.get("Is_Clean_Claim"), default=0.0),
        "aging_days": parse_number(row.get("aging"), default=0.0),
        "ar_days": parse_number(row.get("ar_days"), default=0.0),
        "month": _month_label(row, service, entry, variant),
    }


def empty_records() -> pd.DataFrame:
    """An empty record collection with the canonical columns."""
    return pd.DataFrame(columns=CANONICAL_COLUMNS)


def normalize(
    raw_rows: RawRows,
    source_kind: SourceKind,
    variant: RecordVariant = DEFAULT_VARIANT
) -> pd.DataFrame:
    """
    Convert raw parsed CSV rows into a canonical record DataFrame.

    Pure and total: rows are never dropped and no field raises.

    Args:
        raw_rows: Sequence of string-keyed mappings (or a DataFrame of strings)
        source_kind: Which export the rows came from
        variant: Ingestion differences for the consuming page

    Returns:
        DataFrame with CANONICAL_COLUMNS, one row per input row
    """
    if isinstance(raw_rows, pd.DataFrame):
        rows: List[Mapping[str, Any]] = raw_rows.to_dict("records")
    else:
        rows = list(raw_rows or [])

    if not rows:
        return empty_records()

    records = pd.DataFrame([normalize_row(row, variant) for row in rows], columns=CANONICAL_COLUMNS)

    unparsed = int((records["ts_service_date"] == 0).sum()) if source_kind in (
        SourceKind.DENIALS, SourceKind.OPEN_AR, SourceKind.AGING
    ) else int((records["ts_entry_date"] == 0).sum())
    if unparsed:
        logger.debug(f"{source_kind.value}: {unparsed}/{len(records)} rows without a parseable window date")

    logger.info(f"Normalized {len(records)} {source_kind.value} rows")
    return records
