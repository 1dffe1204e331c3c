"""
Dataset Manager
Holds each dashboard session's record collections and swaps them wholesale on
client load or upload.
"""
#rcm_dashboard/data_processing/dataset_manager.py
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

import pandas as pd

from rcm_dashboard.config.client_config import get_client_folders
from rcm_dashboard.data_processing.csv_loader import (
    UploadedFile,
    empty_frame,
    ingest_uploaded_files,
    load_client_frames,
)
from rcm_dashboard.data_processing.file_validator import UploadValidator
from rcm_dashboard.data_processing.record_normalizer import (
    DEFAULT_VARIANT,
    RecordVariant,
    SourceKind,
    normalize,
)

logger = logging.getLogger(__name__)


class Dataset:
    """
    Raw rows of the five exports plus their normalized forms.

    Normalized collections are computed lazily per record variant and cached;
    a Dataset is never mutated after construction apart from that cache.
    """

    def __init__(
        self,
        raw: Mapping[SourceKind, pd.DataFrame],
        source: str,
        client_id: Optional[str] = None
    ):
        self._raw: Dict[SourceKind, pd.DataFrame] = {
            kind: raw.get(kind, empty_frame()) for kind in SourceKind
        }
        self.source = source
        self.client_id = client_id
        self.loaded_at = datetime.now()
        self._normalized: Dict[Tuple[SourceKind, RecordVariant], pd.DataFrame] = {}
        self._lock = threading.Lock()

    @classmethod
    def empty(cls) -> "Dataset":
        return cls({}, source="empty")

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[SourceKind, pd.DataFrame],
        source: str = "upload",
        client_id: Optional[str] = None
    ) -> "Dataset":
        return cls(raw, source=source, client_id=client_id)

    def raw_rows(self, kind: SourceKind) -> pd.DataFrame:
        return self._raw[kind]

    def records(self, kind: SourceKind, variant: RecordVariant = DEFAULT_VARIANT) -> pd.DataFrame:
        """Canonical records of one export under a record variant."""
        key = (kind, variant)
        with self._lock:
            if key not in self._normalized:
                self._normalized[key] = normalize(self._raw[kind], kind, variant)
            return self._normalized[key]

    def collections(self, variant: RecordVariant = DEFAULT_VARIANT) -> Dict[SourceKind, pd.DataFrame]:
        return {kind: self.records(kind, variant) for kind in SourceKind}

    def row_counts(self) -> Dict[str, int]:
        return {kind.value: len(df) for kind, df in self._raw.items()}

    def summary(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "client_id": self.client_id,
            "loaded_at": self.loaded_at.isoformat(),
            "row_counts": self.row_counts(),
        }


class DatasetManager:
    """Per-session dataset store with LRU eviction."""

    # Maximum number of sessions to keep (prevents memory leaks)
    MAX_SESSIONS = 50

    def __init__(self, data_root: str = "data", max_sessions: Optional[int] = None):
        """
        Initialize Dataset Manager.

        Args:
            data_root: Directory holding one folder per client
            max_sessions: Maximum number of session datasets to keep (default: 50)
        """
        self.data_root = Path(data_root)
        self.max_sessions = max_sessions or self.MAX_SESSIONS
        self.validator = UploadValidator()

        # OrderedDict for LRU eviction: oldest sessions are evicted first
        self._sessions: "OrderedDict[str, Dataset]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Dataset:
        """
        Current dataset of a session; an empty dataset if none was loaded.
        """
        with self._lock:
            if session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return self._sessions[session_id]
        return Dataset.empty()

    def replace(self, session_id: str, dataset: Dataset):
        """Swap a session's dataset in a single assignment."""
        with self._lock:
            if session_id not in self._sessions and len(self._sessions) >= self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted dataset for session: {evicted} (store was full)")
            self._sessions[session_id] = dataset
            self._sessions.move_to_end(session_id)

        logger.info(f"Session {session_id} now holds {dataset.source} data: {dataset.row_counts()}")

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def load_client(self, session_id: str, client_id: str) -> Dataset:
        """
        Load a client's default exports into a session.

        Missing files yield empty collections rather than errors.

        Args:
            session_id: Dashboard session ID
            client_id: Client id or "all"

        Returns:
            The new session dataset
        """
        folders = get_client_folders(client_id)
        if not folders:
            logger.warning(f"No data folders configured for client: {client_id}")

        raw = await load_client_frames(self.data_root, folders)
        dataset = Dataset.from_raw(raw, source=f"client:{client_id}", client_id=client_id)
        self.replace(session_id, dataset)
        return dataset

    async def upload(self, session_id: str, files: Sequence[UploadedFile]) -> Dataset:
        """
        Replace a session's data with a five-file upload.

        Validation and parsing both happen before the swap, so a rejected or
        failed upload leaves the session untouched.

        Raises:
            UploadValidationError: Wrong number of files
            IngestionError: Any file fails to parse
        """
        sanitized = self.validator.validate_upload(
            [filename for filename, _ in files],
            [len(content) for _, content in files]
        )

        raw = await ingest_uploaded_files(
            [(name, content) for name, (_, content) in zip(sanitized, files)]
        )
        dataset = Dataset.from_raw(raw, source="upload")
        self.replace(session_id, dataset)
        return dataset
