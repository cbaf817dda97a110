"""
Research Gate Backend — Upload Router
=======================================

What:  POST /api/upload — multipart upload of a single `file` field.
How:   Starlette parses the form (python-multipart); FileService validates
       and stores; the response carries the public /uploads URL that posts
       and profiles reference.
"""

import logging

from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.requests import Request

from research_gate.database import PersistenceHandle
from research_gate.exceptions import ValidationError
from research_gate.pipeline import Ok
from research_gate.routes.base import ResourceRouter, endpoint
from research_gate.services.file_service import FileService

logger = logging.getLogger(__name__)


class UploadRouter(ResourceRouter):
    prefix = "/api/upload"

    def __init__(self, persistence: PersistenceHandle, file_service: FileService):
        super().__init__(persistence)
        self.file_service = file_service

    @endpoint("POST", "/")
    async def upload(self, request: Request) -> Ok:
        try:
            form = await request.form(max_files=1)
        except HTTPException as exc:
            # Malformed multipart bodies surface as 400 HTTPExceptions
            raise ValidationError(message=str(exc.detail), field="file")

        try:
            upload = form.get("file")
            if not isinstance(upload, UploadFile):
                raise ValidationError("No file uploaded", field="file")

            filename = upload.filename or "upload"
            content = await upload.read()
            stored = await self.file_service.validate_and_store(
                filename=filename,
                content=content,
                content_length=upload.size,
            )
        finally:
            await form.close()

        logger.info("Upload accepted: %s -> %s", filename, stored.relative_path)
        return Ok({
            "message": "File uploaded successfully",
            "url": stored.url,
            "filename": stored.original_name,
            "size": stored.size,
        })
