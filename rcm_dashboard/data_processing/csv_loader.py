"""
CSV Loader
Reads the five dashboard exports from a client's data folder or from an upload.
"""
# rcm_dashboard/data_processing/csv_loader.py

import asyncio
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from rcm_dashboard.data_processing.record_normalizer import SourceKind

logger = logging.getLogger(__name__)

# Default file name of each export inside a client folder
CLIENT_FILE_NAMES: Dict[SourceKind, str] = {
    SourceKind.CHARGES: "charges.csv",
    SourceKind.DENIALS: "denial.csv",
    SourceKind.OPEN_AR: "openar.csv",
    SourceKind.AGING: "aging.csv",
    SourceKind.NCR: "ncrdata.csv",
}

UploadedFile = Tuple[str, bytes]


class IngestionError(Exception):
    """Raised when an uploaded file cannot be parsed; nothing is committed."""

    MESSAGE = "Error processing files. Please check CSV format."

    def __init__(self, filename: str, reason: str):
        super().__init__(self.MESSAGE)
        self.filename = filename
        self.reason = reason


def empty_frame() -> pd.DataFrame:
    return pd.DataFrame()


def parse_csv(source: Union[str, bytes], encoding: str = 'utf-8') -> pd.DataFrame:
    """
    Parse CSV text into a DataFrame of raw strings.

    A header row is required. Every cell stays a string (empty cells are
    empty strings) and blank lines are skipped; typing happens later in the
    normalizer.

    Raises:
        pd.errors.ParserError: Malformed CSV
        UnicodeDecodeError: Bytes not in ``encoding``
    """
    if isinstance(source, bytes):
        source = source.decode(encoding)

    try:
        df = pd.read_csv(
            io.StringIO(source),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True
        )
    except pd.errors.EmptyDataError:
        return empty_frame()

    df.columns = [str(col).strip() for col in df.columns]
    return df


def read_csv_file(csv_path: Path) -> pd.DataFrame:
    """
    Read one export from disk.

    A missing or unreadable file is treated as no data: an empty DataFrame
    is returned and a warning logged.
    """
    if not csv_path.exists():
        logger.warning(f"CSV file not found, using empty collection: {csv_path}")
        return empty_frame()

    try:
        df = parse_csv(csv_path.read_bytes())
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        logger.warning(f"Could not read {csv_path}, using empty collection: {e}")
        return empty_frame()

    logger.info(f"Loaded CSV: {csv_path} ({len(df)} rows, {len(df.columns)} columns)")
    return df


def route_filename(filename: str) -> Optional[SourceKind]:
    """
    Map an uploaded filename to its export by case-insensitive substring.

    Checked in order: "charge", "denial", "ncr", "aging", then
    "openar" / "open" / "ar" (the last only without "aging").
    """
    name = (filename or "").lower()

    if "charge" in name:
        return SourceKind.CHARGES
    if "denial" in name:
        return SourceKind.DENIALS
    if "ncr" in name:
        return SourceKind.NCR
    if "aging" in name:
        return SourceKind.AGING
    if "openar" in name or "open" in name or "ar" in name:
        return SourceKind.OPEN_AR
    return None


async def load_client_frames(data_root: Path, folders: Sequence[str]) -> Dict[SourceKind, pd.DataFrame]:
    """
    Load every export of the given client folders concurrently.

    Rows from several folders (the "all" client) are concatenated per export.

    Args:
        data_root: Directory holding one sub-folder per client
        folders: Client folder names

    Returns:
        Raw DataFrame per source kind; kinds without data are empty
    """
    jobs: List[Tuple[SourceKind, Path]] = [
        (kind, Path(data_root) / folder / file_name)
        for folder in folders
        for kind, file_name in CLIENT_FILE_NAMES.items()
    ]

    frames = await asyncio.gather(*[asyncio.to_thread(read_csv_file, path) for _, path in jobs])

    collected: Dict[SourceKind, List[pd.DataFrame]] = {kind: [] for kind in SourceKind}
    for (kind, _), frame in zip(jobs, frames):
        if not frame.empty:
            collected[kind].append(frame)

    return {
        kind: pd.concat(parts, ignore_index=True).fillna("") if parts else empty_frame()
        for kind, parts in collected.items()
    }


def _parse_upload(filename: str, content: bytes) -> pd.DataFrame:
    try:
        return parse_csv(content)
    except (UnicodeDecodeError, pd.errors.ParserError) as e:
        logger.error(f"Error parsing uploaded file {filename}: {e}")
        raise IngestionError(filename, str(e)) from e


async def ingest_uploaded_files(files: Sequence[UploadedFile]) -> Dict[SourceKind, pd.DataFrame]:
    """
    Parse an upload selection concurrently and route each file to its export.

    All files must parse before anything is returned; a single failure fails
    the whole upload. Unmatched categories come back empty, and a later file
    for the same category replaces an earlier one.

    Args:
        files: (filename, content) pairs in selection order

    Returns:
        Raw DataFrame for every source kind

    Raises:
        IngestionError: If any file fails to parse
    """
    frames = await asyncio.gather(
        *[asyncio.to_thread(_parse_upload, filename, content) for filename, content in files]
    )

    routed: Dict[SourceKind, pd.DataFrame] = {kind: empty_frame() for kind in SourceKind}
    for (filename, _), frame in zip(files, frames):
        kind = route_filename(filename)
        if kind is None:
            logger.warning(f"Uploaded file {filename} matches no export; ignored")
            continue
        routed[kind] = frame
        logger.info(f"Routed {filename} to {kind.value} ({len(frame)} rows)")

    return routed
