from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import date
from functools import lru_cache
import asyncio
import logging

from rcm_dashboard.agents.assistant_agent import BOT_ERROR_MESSAGE, AssistantAgent
from rcm_dashboard.config.client_config import DEFAULT_CLIENT, list_clients
from rcm_dashboard.config.settings import get_settings
from rcm_dashboard.data_processing.csv_loader import IngestionError
from rcm_dashboard.data_processing.dataset_manager import DatasetManager
from rcm_dashboard.data_processing.file_validator import UploadValidationError
from rcm_dashboard.services.aggregation_service import (
    AggregationService,
    ViewRequest,
    ViewRequestError,
)
from rcm_dashboard.utils.logger import ProvenanceLogger, setup_logging
from rcm_dashboard.utils.period_resolver import QuickFilter

settings = get_settings()
setup_logging(settings.log_level, settings.log_file)
logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"


class LoadRequest(BaseModel):
    session_id: str = DEFAULT_SESSION_ID
    client_id: str = DEFAULT_CLIENT


class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None
    client_id: Optional[str] = None
    history: List[Dict[str, str]] = []


# ===== Dependencies (replace through app.dependency_overrides in tests) =====

@lru_cache
def get_store() -> DatasetManager:
    return DatasetManager(data_root=str(settings.data_root), max_sessions=settings.max_sessions)


@lru_cache
def get_service() -> AggregationService:
    return AggregationService()


@lru_cache
def get_agent() -> AssistantAgent:
    provenance_logger = ProvenanceLogger(settings.chat_log_path) if settings.chat_log_path else None
    return AssistantAgent(
        service=get_service(),
        openai_api_key=settings.openai_api_key,
        model=settings.chat_model,
        provenance_logger=provenance_logger,
    )


def parse_date_param(name: str, value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}. Expected YYYY-MM-DD")


def parse_quick_filter(value: Optional[str]) -> Optional[QuickFilter]:
    if not value:
        return None
    try:
        return QuickFilter(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown quick filter: {value}")


def build_view_request(
    client_id: str = DEFAULT_CLIENT,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    quick_filter: Optional[str] = None,
    metric: str = "GCR",
    page_number: int = 1,
    payer_page: int = 1,
) -> ViewRequest:
    return ViewRequest(
        client_id=client_id,
        start_date=parse_date_param("start_date", start_date),
        end_date=parse_date_param("end_date", end_date),
        quick_filter=parse_quick_filter(quick_filter),
        metric=metric,
        page_number=page_number,
        payer_page=payer_page,
    )


app = FastAPI(title="RCM Dashboard Backend", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/clients")
async def clients() -> Dict[str, Any]:
    return {"clients": list_clients(), "default": DEFAULT_CLIENT}


@app.post("/api/load")
async def load_client(
    req: LoadRequest,
    store: DatasetManager = Depends(get_store),
) -> Dict[str, Any]:
    """Load a client's default exports into a session (missing files load as empty)."""
    if req.client_id not in list_clients():
        raise HTTPException(status_code=400, detail=f"Unknown client: {req.client_id}")

    dataset = await store.load_client(req.session_id, req.client_id)
    return {"session_id": req.session_id, **dataset.summary()}


@app.get("/api/dashboard")
async def dashboard(
    session_id: str = DEFAULT_SESSION_ID,
    request: ViewRequest = Depends(build_view_request),
    store: DatasetManager = Depends(get_store),
    service: AggregationService = Depends(get_service),
) -> Dict[str, Any]:
    dataset = store.get(session_id)
    try:
        return await asyncio.to_thread(service.dashboard_view, dataset, request)
    except ViewRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/pages/{page}")
async def detail_page(
    page: str,
    session_id: str = DEFAULT_SESSION_ID,
    request: ViewRequest = Depends(build_view_request),
    store: DatasetManager = Depends(get_store),
    service: AggregationService = Depends(get_service),
) -> Dict[str, Any]:
    dataset = store.get(session_id)
    try:
        return await asyncio.to_thread(service.page_view, dataset, page, request)
    except ViewRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/upload")
async def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    session_id: str = Form(DEFAULT_SESSION_ID),
    store: DatasetManager = Depends(get_store),
) -> Dict[str, Any]:
    """
    Replace a session's data with five CSV exports.

    A rejected or unparseable upload leaves the session's current data in place.
    """
    uploaded = [(file.filename or "", await file.read()) for file in (files or [])]

    try:
        dataset = await store.upload(session_id, uploaded)
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IngestionError as e:
        logger.error(f"Upload failed for session {session_id} ({e.filename}): {e.reason}")
        raise HTTPException(status_code=422, detail=IngestionError.MESSAGE)

    return {
        "session_id": session_id,
        "message": "Files uploaded successfully",
        **dataset.summary(),
    }


@app.delete("/api/session/{session_id}")
async def drop_session(
    session_id: str,
    store: DatasetManager = Depends(get_store),
) -> Dict[str, Any]:
    if not store.drop(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")

    logger.info(f"Dropped dataset for session {session_id}")
    return {"success": True, "session_id": session_id}


@app.post("/api/chat")
async def chat(
    req: ChatRequest,
    store: DatasetManager = Depends(get_store),
    agent: AssistantAgent = Depends(get_agent),
) -> Dict[str, Any]:
    session_id = req.session_id or DEFAULT_SESSION_ID
    dataset = store.get(session_id)
    client_id = req.client_id or dataset.client_id or DEFAULT_CLIENT

    try:
        result = await asyncio.to_thread(
            agent.ask,
            req.message,
            dataset,
            ViewRequest(client_id=client_id),
            session_id,
            req.history,
        )
    except Exception as e:
        logger.error(f"Chat failed for session {session_id}: {e}")
        return {"response": BOT_ERROR_MESSAGE}

    return {"response": result.get("answer") or BOT_ERROR_MESSAGE}
