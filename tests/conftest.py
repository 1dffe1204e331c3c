"""
Shared fixtures: a pinned clock and a small five-export sample for client "entfw".

With the clock pinned to 2024-04-15 the default range is 2024-01-01 to
2024-03-31 and the previous window is 2023-10-02 to 2023-12-31.
"""

from datetime import date
from typing import Any, Dict, List, Mapping

import pandas as pd
import pytest
from langchain_core.messages import AIMessage

from rcm_dashboard.data_processing.csv_loader import parse_csv
from rcm_dashboard.data_processing.dataset_manager import Dataset, DatasetManager
from rcm_dashboard.data_processing.record_normalizer import DEFAULT_VARIANT, SourceKind, normalize
from rcm_dashboard.services.aggregation_service import AggregationService
from rcm_dashboard.utils.period_resolver import FixedClock

TODAY = date(2024, 4, 15)

CHARGES_CSV = """Claim_ID,Client,Date_of_Service,Charge_Entry_Date,Claim_Submission_Date,Payer_Name,Billed_Amount,Paid_Amount,Adjustment_Amount,Is_Clean_Claim,visit
C1,entfw,2024-01-02,2024-01-05,2024-01-08,Aetna,1000,300,100,95,1
C2,entfw,2024-01-10,2024-01-20,2024-01-22,Cigna,2000,800,200,90,2
C3,entfw,2024-02-01,2024-02-04,,Aetna,"1,500",0,0,150,1
C4,entfw,2023-12-01,2023-12-05,,Aetna,500,400,0,80,1
"""

DENIALS_CSV = """Denial_ID,Claim_ID,Client,Date_of_Service,Claim_Submission_Date,Payer_Name,Reason,Claim_Status,Denial_Amount,Is_First_Pass_Resolution
D1,C1,entfw,2024-01-03,2024-01-06,Aetna,CO-16,Denied,100,false
D2,C2,entfw,2024-01-15,2024-01-17,Cigna,CO-50, denied ,200,no
D3,C5,entfw,2024-02-10,2024-02-12,Aetna,,Paid,0,yes
D4,C6,entfw,2024-03-05,2024-03-09,Aetna,,Paid,0,true
"""

OPEN_AR_CSV = """Claim_ID,Date_of_Service,Open_AR_Amount,ar_days
C1,2024-01-02,500,30
C2,2024-02-10,"1,000",45
"""

AGING_CSV = """Claim_ID,Date_of_Service,aging,Aging_Amount
A1,2024-03-01,10,100
A2,2024-03-02,45,300
A3,2024-03-03,100,600
A4,2024-02-01,20,999
"""

NCR_CSV = """Charge_Entry_Date,Payer_Name,Billed_Amount,Paid_Amount,Adjustment_Amount
2024-01-05,Aetna,1000,450,100
2024-02-05,Cigna,1000,400,200
2023-11-05,Aetna,1000,900,100
"""

SAMPLE_CSV: Dict[SourceKind, str] = {
    SourceKind.CHARGES: CHARGES_CSV,
    SourceKind.DENIALS: DENIALS_CSV,
    SourceKind.OPEN_AR: OPEN_AR_CSV,
    SourceKind.AGING: AGING_CSV,
    SourceKind.NCR: NCR_CSV,
}

UPLOAD_NAMES: Dict[SourceKind, str] = {
    SourceKind.CHARGES: "charges.csv",
    SourceKind.DENIALS: "denial.csv",
    SourceKind.OPEN_AR: "openar.csv",
    SourceKind.AGING: "aging.csv",
    SourceKind.NCR: "ncrdata.csv",
}


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def service(clock) -> AggregationService:
    return AggregationService(clock=clock)


@pytest.fixture
def sample_dataset() -> Dataset:
    raw = {kind: parse_csv(text) for kind, text in SAMPLE_CSV.items()}
    return Dataset.from_raw(raw, source="test", client_id="entfw")


@pytest.fixture
def upload_files() -> List[tuple]:
    """The sample as (filename, bytes) pairs in upload order."""
    return [(UPLOAD_NAMES[kind], text.encode("utf-8")) for kind, text in SAMPLE_CSV.items()]


@pytest.fixture
def data_root(tmp_path):
    """Data folder holding the sample for "entfw" and only charges for "eca"."""
    entfw = tmp_path / "entfw"
    entfw.mkdir()
    for kind, text in SAMPLE_CSV.items():
        (entfw / UPLOAD_NAMES[kind]).write_text(text, encoding="utf-8")

    eca = tmp_path / "eca"
    eca.mkdir()
    (eca / "charges.csv").write_text(CHARGES_CSV, encoding="utf-8")
    return tmp_path


@pytest.fixture
def store(data_root) -> DatasetManager:
    return DatasetManager(data_root=str(data_root))


@pytest.fixture
def make_records():
    """Build canonical records from raw row dicts."""
    def build(rows: List[Mapping[str, Any]], kind: SourceKind = SourceKind.CHARGES, variant=DEFAULT_VARIANT) -> pd.DataFrame:
        return normalize(rows, kind, variant)
    return build


class FakeLLM:
    """Stands in for ChatOpenAI; records the prompts it receives."""

    def __init__(self, content: str = "Payments dipped in February.", error: Exception = None):
        self.content = content
        self.error = error
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.content)


@pytest.fixture
def fake_llm():
    return FakeLLM
