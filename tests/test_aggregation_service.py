from datetime import date

import pytest

from rcm_dashboard.data_processing.dataset_manager import Dataset
from rcm_dashboard.services.aggregation_service import ViewRequest, ViewRequestError, paginate
from rcm_dashboard.utils.comparison import COLOR_BAD, COLOR_NEUTRAL
from rcm_dashboard.utils.period_resolver import QuickFilter


# ===== Dashboard =====

def test_dashboard_headline_kpis(service, sample_dataset):
    view = service.dashboard_view(sample_dataset, ViewRequest())
    kpis = view["kpis"]

    assert view["period"]["current_start"] == "2024-01-01"
    assert view["period"]["previous_start"] == "2023-10-02"
    assert view["date_labels"] == {"current": "Jan 24 - Mar 24", "previous": "Oct 23 - Dec 23"}

    assert kpis["total_payments"] == 1100
    assert kpis["total_billed"] == 4500
    assert kpis["gcr"] == pytest.approx(1100 / 4500 * 100)
    assert kpis["ncr"] == 50.0
    assert kpis["denial_rate"] == 50.0
    assert kpis["first_pass_rate"] == 50.0
    assert kpis["clean_claim_rate"] == 92.5
    assert kpis["total_claims"] == 4
    assert kpis["total_denials"] == 2
    assert kpis["total_open_ar"] == 1500
    assert view["charge_lag"] == 5
    assert view["billing_lag"] == 3
    assert view["average_ar_days"] == 38


def test_dashboard_previous_window(service, sample_dataset):
    view = service.dashboard_view(sample_dataset, ViewRequest())

    assert view["previous_kpis"]["gcr"] == 80.0
    assert view["previous_kpis"]["ncr"] == 100.0
    gcr_bar = view["comparison_bars"][0]
    assert gcr_bar["name"] == "GCR"
    assert gcr_bar["previous"] == -80.0


def test_dashboard_trends_against_baseline(service, sample_dataset):
    trends = service.dashboard_view(sample_dataset, ViewRequest(client_id="entfw"))["kpi_trends"]

    # entfw baseline GCR is 34.50
    assert trends["gcr"]["arrow"] == "down"
    assert trends["gcr"]["color"] == COLOR_BAD
    assert trends["gcr"]["previous_formatted"] == "34.50"
    # entfw baseline first pass rate is 0
    assert trends["first_pass_rate"]["color"] == COLOR_NEUTRAL
    assert trends["first_pass_rate"]["delta"] == "50.00"


def test_dashboard_charts(service, sample_dataset):
    view = service.dashboard_view(sample_dataset, ViewRequest(metric="GCR"))

    chart = view["main_chart"]
    assert [p["month"] for p in chart] == ["Jan 24", "Feb 24", "Mar 24"]
    assert chart[0]["avg"] == pytest.approx(36.6667, abs=1e-3)
    assert chart[2]["avg"] == 0.0

    assert view["ar_days_trend"] == [
        {"month": "Jan 2024", "value": 30.0},
        {"month": "Feb 2024", "value": 45.0},
    ]
    assert [b["value"] for b in view["aging_buckets"]] == pytest.approx([10.0, 30.0, 0.0, 60.0])
    assert [p["month"] for p in view["kpi_sparklines"]["gcr"]] == ["Jan 24", "Feb 24"]
    assert len(view["side_cards"]["payments_data"]) == 6
    assert view["formatted"]["total_payments"] == "$1.1K"


def test_dashboard_explicit_range(service, sample_dataset):
    request = ViewRequest(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
    kpis = service.dashboard_view(sample_dataset, request)["kpis"]
    assert f"{kpis['gcr']:.2f}" == "36.67"


def test_dashboard_year_preset_is_relative(service, sample_dataset):
    request = ViewRequest(quick_filter=QuickFilter.YEAR_PREV_YEAR_2)
    view = service.dashboard_view(sample_dataset, request)

    assert view["period"]["current_start"] == "2023-01-01"
    assert view["kpis"]["total_payments"] == 400


def test_dashboard_all_clients_uses_average_baseline(service, sample_dataset):
    view = service.dashboard_view(sample_dataset, ViewRequest(client_id="all"))
    assert view["baseline"]["gcr"] == pytest.approx(34.25)


def test_dashboard_rejects_unknown_metric(service, sample_dataset):
    with pytest.raises(ViewRequestError):
        service.dashboard_view(sample_dataset, ViewRequest(metric="ROI"))


def test_dashboard_on_empty_dataset(service):
    view = service.dashboard_view(Dataset.empty(), ViewRequest())

    assert view["kpis"]["gcr"] == 0.0
    assert view["main_chart"] == []
    assert view["ar_days_trend"] == []


# ===== Detail pages =====

def test_total_claims_page(service, sample_dataset):
    view = service.page_view(sample_dataset, "total_claims", ViewRequest())

    assert view["metrics"] == {"total_claims": 4, "total_billed": 4500, "total_paid": 1100}
    assert view["previous_metrics"] == {"total_claims": 1, "total_billed": 500, "total_paid": 400}
    assert view["monthly_trend"] == [{"month": "Jan 24", "claims": 3}, {"month": "Feb 24", "claims": 1}]
    assert view["comparison"] == [
        {"label": "Last 3 Mos Avg", "claims": 2},
        {"label": "Current Month", "claims": 0},
    ]
    assert view["payers"]["items"] == [{"name": "Aetna", "claims": 2}, {"name": "Cigna", "claims": 2}]
    assert view["rows"]["total"] == 3
    assert view["rows"]["total_pages"] == 1


def test_total_payments_page_only_counts_paid_claims(service, sample_dataset):
    view = service.page_view(sample_dataset, "total_payments", ViewRequest())

    assert view["metrics"] == {"total_paid": 1100, "claims_paid": 2, "avg_payment": 550}
    # One month: padded to three points
    assert [p["month"] for p in view["monthly_trend"]] == ["", "Jan 24", " "]
    assert all(p["actual"] == 1100 for p in view["monthly_trend"])
    assert view["comparison"][0] == {"label": "Last 3 Mos Avg", "payment": 500}


def test_denials_page(service, sample_dataset):
    view = service.page_view(sample_dataset, "denials", ViewRequest())

    assert view["metrics"] == {"total_denials": 2, "total_denied_amount": 300.0, "denial_rate": 50.0}
    assert [p["denials"] for p in view["monthly_trend"]] == [2, 2, 2]
    assert {p["name"] for p in view["payers"]["items"]} == {"Aetna", "Cigna"}
    assert view["comparison"] == [
        {"label": "Last 3 Mos Avg", "denials": 1},
        {"label": "Current Month", "denials": 0},
    ]
    assert [row["denial_id"] for row in view["rows"]["items"]] == ["D1", "D2"]


def test_ncr_page(service, sample_dataset):
    view = service.page_view(sample_dataset, "ncr", ViewRequest())

    assert view["metrics"]["overall_ncr"] == 50.0
    assert view["monthly_trend"] == [
        {"month": "Jan 24", "actual": 50.0, "target": 97},
        {"month": "Feb 24", "actual": 50.0, "target": 97},
    ]
    assert view["payers"]["items"] == [{"name": "Aetna", "payments": 450.0}, {"name": "Cigna", "payments": 400.0}]
    assert view["comparison"] == [
        {"label": "Last 3 Mos Avg", "ncr": 50.0},
        {"label": "Current Month", "ncr": 0.0},
    ]


def test_page_year_presets_use_fixed_years(service, sample_dataset):
    request = ViewRequest(quick_filter=QuickFilter.YEAR_PREV_YEAR_2)
    view = service.page_view(sample_dataset, "ncr", request)

    assert view["period"]["current_start"] == "2024-01-01"
    assert view["period"]["current_end"] == "2024-12-31"


def test_page_rejects_dashboard_only_quick_filter(service, sample_dataset):
    with pytest.raises(ViewRequestError):
        service.page_view(sample_dataset, "ncr", ViewRequest(quick_filter=QuickFilter.DAY_LAST_YEAR_SAME_DAY))


def test_unknown_page(service, sample_dataset):
    with pytest.raises(ViewRequestError):
        service.page_view(sample_dataset, "revenue", ViewRequest())


@pytest.mark.parametrize("page", ["total_claims", "total_payments", "ncr", "denials"])
def test_pages_on_empty_dataset(service, page):
    view = service.page_view(Dataset.empty(), page, ViewRequest())

    assert view["monthly_trend"] == []
    assert view["comparison"] == []
    assert view["rows"] == {"items": [], "page": 1, "total_pages": 0, "total": 0}


def test_paginate():
    assert paginate(list(range(12)), 3, 5) == ([10, 11], 3, 3)
    assert paginate(list(range(12)), 0, 5) == ([0, 1, 2, 3, 4], 1, 3)
    assert paginate([], 1, 5) == ([], 1, 0)
