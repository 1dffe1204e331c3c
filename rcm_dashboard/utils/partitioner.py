"""
Dataset Partitioner
Filters record collections into the current and previous period windows.
"""
# rcm_dashboard/utils/partitioner.py

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Mapping, Optional

import pandas as pd

from rcm_dashboard.data_processing.record_normalizer import SourceKind, empty_records
from rcm_dashboard.utils.kpi_calculations import date_to_epoch_ms
from rcm_dashboard.utils.period_resolver import PeriodWindow

logger = logging.getLogger(__name__)

TS_SERVICE_DATE = "ts_service_date"
TS_ENTRY_DATE = "ts_entry_date"

# Window date per collection; fixed, not chosen by callers
DATE_FIELD_BY_KIND: Mapping[SourceKind, str] = {
    SourceKind.CHARGES: TS_ENTRY_DATE,
    SourceKind.DENIALS: TS_SERVICE_DATE,
    SourceKind.OPEN_AR: TS_SERVICE_DATE,
    SourceKind.AGING: TS_SERVICE_DATE,
    SourceKind.NCR: TS_ENTRY_DATE,
}


def partition(
    records: pd.DataFrame,
    window_start: Optional[date],
    window_end: Optional[date],
    date_field: str
) -> pd.DataFrame:
    """
    Select records whose timestamp lies inside an inclusive date window.

    Timestamp 0 marks an unparseable date and is always excluded, even when
    the window spans the epoch.

    Args:
        records: Canonical record DataFrame
        window_start: First day of the window (None for an empty window)
        window_end: Last day of the window, inclusive at midnight
        date_field: Timestamp column (ts_service_date or ts_entry_date)

    Returns:
        Filtered copy of ``records``
    """
    if records is None or records.empty or window_start is None or window_end is None:
        return empty_records() if records is None else records.iloc[0:0].copy()

    start_ts = date_to_epoch_ms(window_start)
    end_ts = date_to_epoch_ms(window_end)
    ts = records[date_field]

    mask = (ts != 0) & (ts >= start_ts) & (ts <= end_ts)
    return records[mask].copy()


def partition_kind(
    records: pd.DataFrame,
    kind: SourceKind,
    window_start: Optional[date],
    window_end: Optional[date]
) -> pd.DataFrame:
    """Partition a collection on its fixed window date."""
    return partition(records, window_start, window_end, DATE_FIELD_BY_KIND[kind])


@dataclass
class PartitionedDataset:
    """Current and previous window subsets for each collection."""

    current: Dict[SourceKind, pd.DataFrame] = field(default_factory=dict)
    previous: Dict[SourceKind, pd.DataFrame] = field(default_factory=dict)

    def current_of(self, kind: SourceKind) -> pd.DataFrame:
        return self.current.get(kind, empty_records())

    def previous_of(self, kind: SourceKind) -> pd.DataFrame:
        return self.previous.get(kind, empty_records())


def partition_dataset(
    collections: Mapping[SourceKind, pd.DataFrame],
    period: PeriodWindow
) -> PartitionedDataset:
    """
    Split every collection into current and previous windows.

    Args:
        collections: Record DataFrame per source kind
        period: Resolved period windows

    Returns:
        PartitionedDataset keyed by source kind
    """
    result = PartitionedDataset()

    for kind, records in collections.items():
        result.current[kind] = partition_kind(records, kind, period.current_start, period.current_end)
        result.previous[kind] = partition_kind(records, kind, period.previous_start, period.previous_end)

        logger.debug(
            f"{kind.value}: {len(result.current[kind])} current / "
            f"{len(result.previous[kind])} previous of {len(records)}"
        )

    return result
