"""Staging area for uploaded CSV files on the local filesystem."""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import BinaryIO

from adinsight.core.exceptions import UploadValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class LocalUploadStorage:
    """Persist uploads under ``base_dir`` and remove them when no longer needed."""

    def __init__(self, base_dir: str | Path, max_bytes: int | None = None) -> None:
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.max_bytes = max_bytes

    def save(self, job_id: str, file_obj: BinaryIO, original_name: str | None = None) -> tuple[Path, int]:
        """Copy the upload to disk and return ``(absolute path, bytes written)``.

        Raises ``UploadValidationError`` once the copy exceeds ``max_bytes``.
        """
        safe_job = _UNSAFE_CHARS.sub("_", job_id)[:64]
        safe_name = _UNSAFE_CHARS.sub("_", Path(original_name or "upload.csv").name)
        target_path = self.base_dir / f"{safe_job}_{uuid.uuid4().hex[:8]}_{safe_name}"

        if hasattr(file_obj, "seek"):
            file_obj.seek(0)
        written = 0
        try:
            with target_path.open("wb") as destination:
                while True:
                    chunk = file_obj.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if self.max_bytes is not None and written > self.max_bytes:
                        raise UploadValidationError(
                            f"File exceeds maximum size of {self.max_bytes} bytes",
                            field="file",
                            details={"max_bytes": self.max_bytes},
                        )
                    destination.write(chunk)
        except BaseException:
            target_path.unlink(missing_ok=True)
            raise
        logger.info(f"Staged upload for job {job_id} at {target_path} ({written} bytes)")
        return target_path, written

    def delete(self, uri: str | Path | None) -> None:
        """Cleanup staged files; a missing file is not an error."""
        if not uri:
            return
        path = Path(uri)
        if not path.is_absolute():
            path = path.resolve()
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete staged file {path}: {e}")
