"""
Research Gate Backend — File Storage Service
==============================================

What:  Validates and stores files uploaded through /api/upload.
Why:   Keeps all file system work (and its failure modes) out of the router.
How:   Checks extension and size, writes to a date-organized directory
       under the upload root with a UUID filename, returns the public URL.
Who:   Called by UploadRouter; stored files are served at /uploads/*.

Security Model:
    1. Extension whitelist:  rejects executables and unknown types early
    2. Size check:           bounded by MAX_UPLOAD_SIZE (default 10MB)
    3. UUID filename:        no user input reaches the file system path
    4. Served read-only:     StaticFiles mount, no directory listing

Directory Structure:
    uploads/
    └── 2024/
        └── 01/
            └── 15/
                ├── 3f2b...e1.pdf
                └── 9a0c...42.png
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from research_gate.exceptions import InternalError, ValidationError

logger = logging.getLogger(__name__)

# Research attachments: figures and papers
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".pdf", ".doc", ".docx"}

PUBLIC_PREFIX = "/uploads"


@dataclass(frozen=True)
class StoredFile:
    original_name: str
    relative_path: str
    size: int

    @property
    def url(self) -> str:
        return f"{PUBLIC_PREFIX}/{self.relative_path}"


class FileService:
    """
    Manages upload validation and storage.

    Args:
        storage_root: Directory that backs the /uploads static mount.
        max_size:     Maximum accepted file size in bytes.
    """

    def __init__(self, storage_root: str, max_size: int):
        self.storage_root = Path(storage_root).resolve()
        self.max_size = max_size
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """Returns the normalized extension (lowercase with dot) or raises ValidationError."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext or 'none'}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext},
            )
        return ext

    def validate_size(self, actual_size: int, content_length: Optional[int] = None) -> None:
        """
        Checks the declared size first (if any), then the bytes actually read.
        Empty files are rejected too.
        """
        max_mb = self.max_size / (1024 * 1024)
        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty", field="file")
        if (content_length and content_length > self.max_size) or actual_size > self.max_size:
            raise ValidationError(
                message=f"File too large. Maximum size is {max_mb:.0f}MB",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{date_dir}/{uuid.uuid4().hex}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str) -> str:
        """
        Write validated content to disk. Returns the path relative to the root.

        Raises:
            InternalError if the directory or file cannot be written.
        """
        absolute_path, relative_path = self._generate_storage_path(extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            raise InternalError(
                message=f"Failed to store uploaded file: {e}",
                context={"path": str(absolute_path), "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> StoredFile:
        """Cheap checks first (extension, size), then the write."""
        ext = self.validate_extension(filename)
        self.validate_size(len(content), content_length)
        relative_path = await self.store_file(content, ext)
        return StoredFile(original_name=filename, relative_path=relative_path, size=len(content))
