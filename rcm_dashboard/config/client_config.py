"""
Client Configuration
Static per-client baseline KPI snapshots and default data folder mapping.
"""
# rcm_dashboard/config/client_config.py

from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Dict, List, Mapping

ALL_CLIENTS = "all"
DEFAULT_CLIENT = "entfw"


@dataclass(frozen=True)
class ClientBaseline:
    """Prior-period totals and Target/Baseline pairs for one client."""

    total_payments: float
    total_claims: float
    gcr: float
    ncr: float
    denial_rate: float
    first_pass_rate: float
    clean_claim_rate: float
    total_denials: float
    total_open_ar: float
    gcr_target: float
    gcr_baseline: float
    ncr_target: float
    ncr_baseline: float
    ccr_target: float
    ccr_baseline: float
    fpr_target: float
    fpr_baseline: float
    denial_rate_target: float
    denial_rate_baseline: float

    def target_for(self, metric: str) -> float:
        """Target value for a chart metric name (GCR, NCR, CCR, FPR, Denial Rate)."""
        return float(getattr(self, f"{_metric_prefix(metric)}_target", 0.0))

    def baseline_for(self, metric: str) -> float:
        """Baseline value for a chart metric name (GCR, NCR, CCR, FPR, Denial Rate)."""
        return float(getattr(self, f"{_metric_prefix(metric)}_baseline", 0.0))

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _metric_prefix(metric: str) -> str:
    return metric.strip().lower().replace(" ", "_")


CLIENT_BASELINES: Mapping[str, ClientBaseline] = MappingProxyType({
    "entfw": ClientBaseline(
        total_payments=95000, total_claims=9469, gcr=34.50, ncr=97.00, denial_rate=0.30,
        first_pass_rate=0.00, clean_claim_rate=95.00, total_denials=55, total_open_ar=320000,
        gcr_target=32.5, gcr_baseline=34.5, ncr_target=45.2, ncr_baseline=97.0,
        ccr_target=91.2, ccr_baseline=95.0, fpr_target=95.0, fpr_baseline=85.0,
        denial_rate_target=0.3, denial_rate_baseline=0.30,
    ),
    "eca": ClientBaseline(
        total_payments=120000, total_claims=510, gcr=38.1, ncr=49.7, denial_rate=10.4,
        first_pass_rate=82.1, clean_claim_rate=89.5, total_denials=48, total_open_ar=410000,
        gcr_target=38.1, gcr_baseline=38.1, ncr_target=49.7, ncr_baseline=49.7,
        ccr_target=89.5, ccr_baseline=89.5, fpr_target=82.1, fpr_baseline=82.1,
        denial_rate_target=10.4, denial_rate_baseline=10.4,
    ),
    "soundhealth": ClientBaseline(
        total_payments=78000, total_claims=9367, gcr=24.00, ncr=93.00, denial_rate=0.00,
        first_pass_rate=0.00, clean_claim_rate=98.00, total_denials=62, total_open_ar=275000,
        gcr_target=29.9, gcr_baseline=24.0, ncr_target=41.3, ncr_baseline=93.0,
        ccr_target=87.1, ccr_baseline=98.0, fpr_target=76.3, fpr_baseline=0.0,
        denial_rate_target=14.9, denial_rate_baseline=0.0,
    ),
    "piedmont": ClientBaseline(
        total_payments=142000, total_claims=600, gcr=40.4, ncr=53.0, denial_rate=9.1,
        first_pass_rate=85.5, clean_claim_rate=93.2, total_denials=41, total_open_ar=520000,
        gcr_target=40.4, gcr_baseline=40.4, ncr_target=53.0, ncr_baseline=53.0,
        ccr_target=93.2, ccr_baseline=93.2, fpr_target=85.5, fpr_baseline=85.5,
        denial_rate_target=9.1, denial_rate_baseline=9.1,
    ),
})

# Folders under DATA_ROOT holding each client's default CSV exports.
# piedmont has a baseline but no default data folder.
CLIENT_FOLDERS: Mapping[str, tuple] = MappingProxyType({
    "entfw": ("entfw",),
    "eca": ("eca",),
    "soundhealth": ("soundhealth",),
})


def average_baseline(baselines: Mapping[str, ClientBaseline] = CLIENT_BASELINES) -> ClientBaseline:
    """
    Unweighted arithmetic mean of every client snapshot.

    Args:
        baselines: Per-client snapshots to average

    Returns:
        ClientBaseline holding the mean of each field
    """
    snapshots = list(baselines.values())
    if not snapshots:
        return ClientBaseline(**{f.name: 0.0 for f in fields(ClientBaseline)})

    count = len(snapshots)
    return ClientBaseline(**{
        f.name: sum(getattr(s, f.name) for s in snapshots) / count
        for f in fields(ClientBaseline)
    })


def get_client_baseline(
    client_id: str,
    baselines: Mapping[str, ClientBaseline] = CLIENT_BASELINES
) -> ClientBaseline:
    """
    Resolve the baseline snapshot for a client selector value.

    "all" yields the cross-client average; unknown ids fall back to the
    default client's snapshot.
    """
    if client_id == ALL_CLIENTS:
        return average_baseline(baselines)
    if client_id in baselines:
        return baselines[client_id]
    return baselines.get(DEFAULT_CLIENT) or average_baseline(baselines)


def get_client_folders(client_id: str) -> List[str]:
    """Data folders for a client; "all" spans every configured folder."""
    if client_id == ALL_CLIENTS:
        return [folder for folders in CLIENT_FOLDERS.values() for folder in folders]
    return list(CLIENT_FOLDERS.get(client_id, ()))


def list_clients() -> List[str]:
    return list(CLIENT_BASELINES.keys()) + [ALL_CLIENTS]
