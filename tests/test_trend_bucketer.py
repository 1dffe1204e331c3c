from datetime import date

import pytest

from rcm_dashboard.config.client_config import CLIENT_BASELINES
from rcm_dashboard.data_processing.record_normalizer import SourceKind
from rcm_dashboard.utils.trend_bucketer import (
    MONTH_FIELD,
    ar_days_trend,
    bucket_monthly,
    build_metric_chart,
    monthly_gcr,
    monthly_total_claims,
    month_sort_key,
    pad_single_bucket,
    segment_sparklines,
)


def test_months_come_out_in_calendar_order(make_records):
    # Non-adjacent months across a year boundary, newest first
    charges = make_records([
        {"Date_of_Service": "2024-05-03", "visit": "1"},
        {"Date_of_Service": "2024-02-11", "visit": "2"},
        {"Date_of_Service": "2023-11-20", "visit": "3"},
        {"Date_of_Service": "2024-05-28", "visit": "4"},
    ])

    series = bucket_monthly(charges, MONTH_FIELD, monthly_total_claims)

    assert [p["month"] for p in series] == ["Nov 23", "Feb 24", "May 24"]
    assert [p["value"] for p in series] == [3.0, 2.0, 5.0]


def test_order_does_not_depend_on_row_order(make_records):
    rows = [{"Date_of_Service": d} for d in ("2024-03-01", "2023-12-01", "2024-01-15")]
    forward = bucket_monthly(make_records(rows), MONTH_FIELD, monthly_total_claims)
    backward = bucket_monthly(make_records(rows[::-1]), MONTH_FIELD, monthly_total_claims)
    assert [p["month"] for p in forward] == [p["month"] for p in backward] == ["Dec 23", "Jan 24", "Mar 24"]


def test_single_month_is_padded_to_three_points(make_records):
    charges = make_records([
        {"Date_of_Service": "2024-01-02", "Billed_Amount": "1000", "Paid_Amount": "300"},
        {"Date_of_Service": "2024-01-10", "Billed_Amount": "2000", "Paid_Amount": "800"},
    ])

    series = bucket_monthly(charges, MONTH_FIELD, monthly_gcr)

    assert len(series) == 3
    assert [p["month"] for p in series] == ["", "Jan 24", " "]
    assert series[0]["value"] == series[1]["value"] == series[2]["value"]


def test_pad_leaves_other_lengths_alone():
    assert pad_single_bucket([]) == []
    two = [{"month": "Jan 24", "value": 1}, {"month": "Feb 24", "value": 2}]
    assert pad_single_bucket(two) == two


def test_unlabeled_rows_get_their_own_bucket_or_are_dropped(make_records):
    charges = make_records([
        {"Date_of_Service": "2024-01-02", "visit": "1"},
        {"Date_of_Service": "2024-02-02", "visit": "1"},
        {"visit": "5"},
    ])

    with_unknown = bucket_monthly(charges, MONTH_FIELD, monthly_total_claims)
    assert [p["month"] for p in with_unknown] == ["Jan 24", "Feb 24", "Unknown"]

    dropped = bucket_monthly(charges, MONTH_FIELD, monthly_total_claims, unlabeled=None)
    assert [p["month"] for p in dropped] == ["Jan 24", "Feb 24"]


def test_month_sort_key_accepts_both_label_formats():
    assert month_sort_key("Jan 24") == date(2024, 1, 1)
    assert month_sort_key("Jan 2024") == date(2024, 1, 1)
    assert month_sort_key("Unknown") is None


def test_ar_days_trend_uses_long_labels(make_records):
    open_ar = make_records([
        {"Date_of_Service": "2024-02-10", "ar_days": "45"},
        {"Date_of_Service": "2024-01-02", "ar_days": "30"},
        {"Date_of_Service": "2024-01-05", "ar_days": "31"},
        {"Date_of_Service": "", "ar_days": "99"},
    ], SourceKind.OPEN_AR)

    assert ar_days_trend(open_ar) == [
        {"month": "Jan 2024", "value": 31.0},
        {"month": "Feb 2024", "value": 45.0},
    ]


def test_metric_chart_unions_months_across_sources(make_records):
    charges = make_records([
        {"Charge_Entry_Date": "2024-01-05", "Billed_Amount": "1000", "Paid_Amount": "300"},
    ])
    denials = make_records([
        {"Date_of_Service": "2024-02-03", "Claim_Status": "Denied"},
        {"Date_of_Service": "2024-02-04", "Claim_Status": "Paid"},
    ], SourceKind.DENIALS)
    baseline = CLIENT_BASELINES["eca"]

    gcr = build_metric_chart(charges, None, denials, "GCR", baseline)
    assert [p["month"] for p in gcr] == ["Jan 24", "Feb 24"]
    assert gcr[0]["avg"] == 30.0
    assert gcr[1]["avg"] == 0.0
    assert gcr[0]["target"] == baseline.gcr_target
    assert gcr[0]["baseline"] == baseline.gcr_baseline

    denial_rate = build_metric_chart(charges, None, denials, "Denial Rate", baseline)
    assert [p["avg"] for p in denial_rate] == [0.0, 50.0]


def test_metric_chart_clean_claims_fall_back_to_target(make_records):
    charges = make_records([
        {"Charge_Entry_Date": "2024-01-05", "Is_Clean_Claim": "120"},
        {"Charge_Entry_Date": "2024-02-05", "Is_Clean_Claim": "80"},
    ])
    baseline = CLIENT_BASELINES["eca"]

    chart = build_metric_chart(charges, None, None, "CCR", baseline)

    assert [p["avg"] for p in chart] == [baseline.ccr_target, 80.0]


def test_metric_chart_rejects_unknown_metric():
    with pytest.raises(ValueError):
        build_metric_chart(None, None, None, "ROI", CLIENT_BASELINES["eca"])


def test_segment_sparklines(make_records):
    charges = make_records([
        {"Date_of_Service": "2024-01-01", "Charge_Entry_Date": "2024-01-03", "Paid_Amount": "100"},
        {"Date_of_Service": "2024-01-02", "Charge_Entry_Date": "2024-01-05", "Paid_Amount": "50"},
        {"Date_of_Service": "2024-01-20", "Charge_Entry_Date": "2024-01-30", "Paid_Amount": "25"},
    ])
    denials = make_records([
        {"Date_of_Service": "2024-01-02", "Claim_Submission_Date": "2024-01-05"},
    ], SourceKind.DENIALS)

    result = segment_sparklines(charges, denials, date(2024, 1, 1), date(2024, 1, 30), segments=6)

    assert [p["value"] for p in result["payments_data"]] == [150.0, 0.0, 0.0, 0.0, 0.0, 25.0]
    assert result["charge_lag_data"][0] == {"value": 2.5, "unit": "days"}
    assert result["charge_lag_data"][5]["value"] == 10.0
    assert result["billing_lag_data"][0]["value"] == 3.0
    assert all(p["unit"] == "amount" for p in result["payments_data"])
