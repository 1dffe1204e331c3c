from datetime import date

import pytest

from rcm_dashboard.data_processing.record_normalizer import SourceKind
from rcm_dashboard.utils.kpi_calculator import (
    KPICalculator,
    KPISet,
    aggregate,
    calculate_aging_buckets,
    calculate_average_ar_days,
)


def test_gross_collection_rate_scenario(make_records):
    charges = make_records([
        {"Billed_Amount": "1000", "Paid_Amount": "300", "Charge_Entry_Date": "2024-01-05"},
        {"Billed_Amount": "2000", "Paid_Amount": "800", "Charge_Entry_Date": "2024-01-20"},
    ])

    kpis = aggregate(charges, None, None, None)

    assert f"{kpis.gcr:.2f}" == "36.67"
    assert kpis.total_payments == 1100
    assert kpis.total_billed == 3000


def test_denial_rate_scenario(make_records):
    denials = make_records([
        {"Claim_Status": "Denied"},
        {"Claim_Status": "  dEnIeD "},
        {"Claim_Status": "Paid"},
        {"Claim_Status": "Pending"},
    ], SourceKind.DENIALS)

    kpis = aggregate(None, denials, None, None)

    assert f"{kpis.denial_rate:.2f}" == "50.00"
    assert kpis.total_denials == 2


def test_empty_collections_give_zeroed_kpis():
    assert aggregate(None, None, None, None) == KPISet()


def test_zero_denominators(make_records):
    charges = make_records([{"Billed_Amount": "0", "Paid_Amount": "100"}])
    ncr = make_records([{"Billed_Amount": "100", "Paid_Amount": "90", "Adjustment_Amount": "150"}], SourceKind.NCR)

    kpis = aggregate(charges, None, None, ncr)

    assert kpis.gcr == 0.0
    assert kpis.ncr == 0.0
    assert kpis.denial_rate == 0.0
    assert kpis.first_pass_rate == 0.0


def test_ncr_comes_from_ncr_collection_only(make_records):
    charges = make_records([{"Billed_Amount": "1000", "Paid_Amount": "1000"}])
    ncr = make_records([
        {"Billed_Amount": "1000", "Paid_Amount": "450", "Adjustment_Amount": "100"},
        {"Billed_Amount": "1000", "Paid_Amount": "400", "Adjustment_Amount": "200"},
    ], SourceKind.NCR)

    assert KPICalculator(charges=charges).calculate_net_collection_rate() == 0.0
    assert KPICalculator(charges=charges, ncr=ncr).calculate_net_collection_rate() == 50.0


def test_first_pass_clean_claims_and_lags(make_records):
    charges = make_records([
        {"Date_of_Service": "2024-01-02", "Charge_Entry_Date": "2024-01-05", "Is_Clean_Claim": "95", "visit": "1"},
        {"Date_of_Service": "2024-01-10", "Charge_Entry_Date": "2024-01-20", "Is_Clean_Claim": "90", "visit": "2"},
        {"Date_of_Service": "2024-02-01", "Charge_Entry_Date": "2024-02-04", "Is_Clean_Claim": "150"},
    ])
    denials = make_records([
        {"Date_of_Service": "2024-01-03", "Claim_Submission_Date": "2024-01-06", "Is_First_Pass_Resolution": "yes"},
        {"Date_of_Service": "2024-01-15", "Claim_Submission_Date": "2024-01-17", "First_Pass": "no"},
    ], SourceKind.DENIALS)

    kpis = aggregate(charges, denials, None, None)

    assert kpis.clean_claim_rate == 92.5
    assert kpis.first_pass_rate == 50.0
    assert kpis.total_claims == 3
    assert kpis.charge_lag == 5
    assert kpis.billing_lag == 3


def test_average_ar_days_ignores_negative_values(make_records):
    open_ar = make_records([{"ar_days": "30"}, {"ar_days": "45"}, {"ar_days": "-10"}], SourceKind.OPEN_AR)
    assert calculate_average_ar_days(open_ar) == 38
    assert calculate_average_ar_days(None) == 0


def test_aging_buckets_use_end_date_month(make_records):
    aging = make_records([
        {"Date_of_Service": "2024-03-01", "aging": "10", "Aging_Amount": "100"},
        {"Date_of_Service": "2024-03-02", "aging": "45", "Aging_Amount": "300"},
        {"Date_of_Service": "2024-03-03", "aging": "100", "Aging_Amount": "600"},
        {"Date_of_Service": "2024-02-01", "aging": "20", "Aging_Amount": "999"},
    ], SourceKind.AGING)

    buckets = calculate_aging_buckets(aging, date(2024, 3, 31))

    assert [b["name"] for b in buckets] == ["0-30 Days", "31-60 Days", "61-90 Days", "90+ Days"]
    assert [b["raw_amount"] for b in buckets] == [100, 300, 0, 600]
    assert [b["value"] for b in buckets] == pytest.approx([10.0, 30.0, 0.0, 60.0])


def test_aging_buckets_without_snapshot_are_zero(make_records):
    buckets = calculate_aging_buckets(None, date(2024, 3, 31))
    assert all(b["value"] == 0.0 and b["raw_amount"] == 0.0 for b in buckets)
