from rcm_dashboard.data_processing.record_normalizer import (
    CANONICAL_COLUMNS,
    MonthSource,
    RecordVariant,
    SourceKind,
    normalize,
    normalize_row,
)


def test_missing_fields_degrade_to_defaults():
    record = normalize_row({})

    assert record["claim_id"] == "N/A"
    assert record["client_id"] == "Unknown"
    assert record["payer_name"] == "Unknown"
    assert record["claim_status"] == "Unknown"
    assert record["billed_amount"] == 0.0
    assert record["ts_service_date"] == 0
    assert record["ts_entry_date"] == 0
    assert record["visit_count"] == 0
    assert record["is_first_pass_resolution"] is False
    assert record["month"] == ""


def test_payer_name_fallbacks_skip_blank_values():
    record = normalize_row({"Payer_Name": "  ", "Payer_Name_1": "", "Insurance": "BCBS"})
    assert record["payer_name"] == "BCBS"


def test_open_ar_alias_and_first_pass_alias():
    record = normalize_row({"apenaramount": "1,250", "First_Pass": "Yes"})
    assert record["open_ar_amount"] == 1250.0
    assert record["is_first_pass_resolution"] is True


def test_month_label_prefers_explicit_column_then_service_date():
    assert normalize_row({"month": "Feb 24", "Date_of_Service": "2024-01-10"})["month"] == "Feb 24"
    assert normalize_row({"Date_of_Service": "2024-01-10", "Charge_Entry_Date": "2024-02-01"})["month"] == "Jan 24"
    assert normalize_row({"Charge_Entry_Date": "2024-02-01"})["month"] == "Feb 24"


def test_variants_change_month_source_and_visit_default():
    row = {"month": "Dec 23", "Date_of_Service": "2024-01-10", "Charge_Entry_Date": "2024-02-01", "visit": "0"}

    entry_dated = RecordVariant(month_source=MonthSource.ENTRY, visit_default=1, honor_month_column=False)
    record = normalize_row(row, entry_dated)
    assert record["month"] == "Feb 24"
    assert record["visit_count"] == 1

    service_dated = RecordVariant(month_source=MonthSource.SERVICE, honor_month_column=False)
    assert normalize_row(row, service_dated)["month"] == "Jan 24"


def test_normalize_keeps_every_row():
    rows = [
        {"Claim_ID": "A", "Billed_Amount": "100", "Charge_Entry_Date": "2024-01-01"},
        {"Claim_ID": "B", "Billed_Amount": "garbage", "Charge_Entry_Date": "nope"},
    ]
    records = normalize(rows, SourceKind.CHARGES)

    assert list(records.columns) == CANONICAL_COLUMNS
    assert records["claim_id"].tolist() == ["A", "B"]
    assert records["billed_amount"].tolist() == [100.0, 0.0]
    assert records.loc[1, "ts_entry_date"] == 0


def test_normalize_empty_input_has_canonical_columns():
    records = normalize([], SourceKind.DENIALS)
    assert records.empty
    assert list(records.columns) == CANONICAL_COLUMNS


def test_fractional_visits_are_truncated_to_whole_counts():
    assert normalize_row({"visit": "1.5"})["visit_count"] == 1
    assert normalize_row({"visit": "2.99"})["visit_count"] == 2
