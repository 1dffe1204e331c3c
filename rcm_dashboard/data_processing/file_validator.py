"""
File Validator
Validates a bulk CSV upload before any file is parsed.
"""
#rcm_dashboard/data_processing/file_validator.py
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class UploadValidationError(Exception):
    """Raised when an upload is rejected before processing."""
    pass


class UploadValidator:
    """Validates bulk uploads of the five dashboard exports."""

    REQUIRED_FILE_COUNT = 5
    FILE_COUNT_MESSAGE = (
        "Please select exactly 5 files: Charges, Denials, OpenAR, Aging, and NCR Data."
    )

    MAX_FILE_SIZE_BYTES = 200 * 1024 * 1024  # 200MB per file

    def __init__(self, max_file_size: Optional[int] = None):
        """
        Initialize upload validator.

        Args:
            max_file_size: Override default max file size in bytes
        """
        self.max_file_size = max_file_size or self.MAX_FILE_SIZE_BYTES

    def validate_upload(self, filenames: Sequence[str], sizes: Sequence[int] = ()) -> List[str]:
        """
        Validate an upload selection.

        Only the file count and size are checked here; files whose names match
        no category are accepted and later produce an empty collection.

        Args:
            filenames: Original filenames of the selection
            sizes: Size in bytes per file, when known

        Returns:
            Sanitized filenames in selection order

        Raises:
            UploadValidationError: If the selection is not exactly five files
                or a file exceeds the size limit
        """
        if len(filenames) != self.REQUIRED_FILE_COUNT:
            logger.warning(f"Upload rejected: {len(filenames)} files selected")
            raise UploadValidationError(self.FILE_COUNT_MESSAGE)

        for filename, size in zip(filenames, sizes):
            if size > self.max_file_size:
                raise UploadValidationError(
                    f"File too large: {filename} ({size / 1024 / 1024:.2f}MB). "
                    f"Maximum allowed: {self.max_file_size / 1024 / 1024:.2f}MB"
                )

        sanitized = [self.sanitize_filename(name).name for name in filenames]
        logger.info(f"Upload validation passed: {', '.join(sanitized)}")
        return sanitized

    def sanitize_filename(self, filename: str) -> Path:
        """
        Sanitize filename for logging and routing.

        Args:
            filename: Original filename

        Returns:
            Path object with sanitized filename
        """
        path = Path(filename or "")
        name = path.stem
        ext = path.suffix.lower()

        # Allow: letters, numbers, underscore, hyphen, dot, space
        name = re.sub(r'[^\w\s\-\.]', '_', name)
        name = re.sub(r'[\s_]+', '_', name)
        name = name.strip('_.')

        if len(name) > 100:
            name = name[:100]

        if not name:
            name = "upload"

        return Path(f"{name}{ext}")
