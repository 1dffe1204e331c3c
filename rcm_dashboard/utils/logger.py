"""
Logging Utilities
Application logging setup and a JSONL audit trail for assistant exchanges.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ProvenanceLogger:
    """Appends assistant exchanges to a JSONL file for auditing."""

    def __init__(self, log_path: str = "logs/chat_exchanges.jsonl"):
        """
        Args:
            log_path: JSONL file receiving one line per exchange
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _append(self, entry: Dict[str, Any]):
        with self.log_path.open('a', encoding='utf-8') as handle:
            handle.write(json.dumps(entry, default=str) + '\n')

    def _entries(self) -> Iterator[Dict[str, Any]]:
        if not self.log_path.exists():
            return
        with self.log_path.open('r', encoding='utf-8') as handle:
            for raw in handle:
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    yield json.loads(raw)
                except json.JSONDecodeError:
                    # Partially written line from an interrupted process
                    continue

    def log_exchange(
        self,
        session_id: Optional[str],
        message: str,
        response: str,
        intent: Optional[str],
        success: bool,
        execution_time: Optional[float] = None,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Record one chat message and the assistant's reply.

        Args:
            session_id: Dashboard session the message came from
            message: User message
            response: Text returned to the user
            intent: Detected intent (metric name or "general")
            success: False when the reply is the error fallback
            execution_time: Seconds spent answering
            error: Error message if answering failed
            metadata: Client and date range the answer was computed for
        """
        entry = {
            "logged_at": datetime.now().isoformat(),
            "session_id": session_id,
            "message": message,
            "response": response,
            "intent": intent,
            "success": success,
        }
        if execution_time is not None:
            entry["duration_seconds"] = round(execution_time, 3)
        if error:
            entry["error"] = error
        if metadata:
            entry["metadata"] = metadata

        self._append(entry)

    def get_recent_exchanges(self, limit: int = 100, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent exchanges first, optionally only those of one session."""
        entries = [
            entry for entry in self._entries()
            if session_id is None or entry.get("session_id") == session_id
        ]
        return list(reversed(entries[-limit:]))


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure the root logger with a console handler and an optional file handler.

    Calling it again replaces the handlers it installed earlier.
    """
    level = log_level.upper()
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        if getattr(handler, "_rcm_dashboard", False):
            root.removeHandler(handler)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._rcm_dashboard = True
        root.addHandler(handler)

    return root
