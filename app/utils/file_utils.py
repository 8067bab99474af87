"""
File handling utilities for policy document uploads.
"""

from pathlib import Path
from typing import List, Tuple

from fastapi import UploadFile, HTTPException

from app.core.config import settings
from app.models.policy_import_model import SourceDocument

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def guess_mime_type(file_name: str, declared: str = "") -> str:
    """Resolve a MIME type from the file extension, falling back to the declared one."""
    return MIME_TYPES.get(Path(file_name).suffix.lower()) or declared or "application/octet-stream"


def is_allowed_file(file_name: str) -> bool:
    return Path(file_name).suffix.lower() in settings.ALLOWED_EXTENSIONS


async def read_uploaded_files(files: List[UploadFile]) -> Tuple[List[SourceDocument], List[str]]:
    """
    Read uploaded policy documents into memory.

    Unsupported or oversized files are skipped and reported as warnings.

    Args:
        files: FastAPI UploadFile objects

    Returns:
        Tuple of (accepted documents, warning messages)

    Raises:
        HTTPException: If no files were sent or too many files were sent
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    if len(files) > settings.MAX_FILES_PER_IMPORT:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files. Maximum per import: {settings.MAX_FILES_PER_IMPORT}",
        )

    documents: List[SourceDocument] = []
    warnings: List[str] = []
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024

    for file in files:
        # Strip any client-side directory components
        file_name = Path(file.filename or "").name
        if not file_name or not is_allowed_file(file_name):
            warnings.append(f"{file_name or 'arquivo'}: tipo de arquivo não suportado")
            continue

        too_large = f"{file_name}: arquivo maior que {settings.MAX_FILE_SIZE_MB}MB"
        if file.size is not None and file.size > max_bytes:
            warnings.append(too_large)
            continue

        # Size is not always known up front: read at most one byte past the limit
        content = await file.read(max_bytes + 1)
        if not content:
            warnings.append(f"{file_name}: arquivo vazio")
            continue
        if len(content) > max_bytes:
            warnings.append(too_large)
            continue

        documents.append(SourceDocument(
            file_name=file_name,
            mime_type=guess_mime_type(file_name, file.content_type or ""),
            content=content,
        ))

    return documents, warnings

