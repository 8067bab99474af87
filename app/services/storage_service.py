"""
Storage Service
===============
Stores committed policy documents in the tenant-scoped document bucket
(a directory under UPLOAD_DIR served at /files) and returns their public URL.
"""

import uuid
import asyncio
import logging
from pathlib import Path
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class StorageService:
    """Service for storing policy documents on the local file store"""

    def __init__(self, root_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root_dir = Path(root_dir or settings.UPLOAD_DIR)
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def build_object_path(self, user_id: str, file_name: str) -> str:
        """policy-docs/{user_id}/{uuid}.{ext}"""
        ext = Path(file_name).suffix.lstrip(".").lower() or "pdf"
        return f"{settings.POLICY_DOCS_BUCKET}/{user_id}/{uuid.uuid4()}.{ext}"

    def public_url(self, object_path: str) -> str:
        return f"{self.public_base_url}/files/{object_path}"

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def upload_policy_document(self, content: bytes, file_name: str, user_id: str) -> Optional[str]:
        """
        Save a policy document and return its public URL.

        Args:
            content: File bytes
            file_name: Original file name (only the extension is kept)
            user_id: Tenant ID

        Returns:
            Public URL, or None if the upload failed
        """
        object_path = self.build_object_path(user_id, file_name)
        target = (self.root_dir / object_path).resolve()
        if not target.is_relative_to(self.root_dir.resolve()):
            logger.error(f"❌ Refusing to store {file_name} outside the upload directory ({object_path})")
            return None

        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as e:
            logger.error(f"❌ Error uploading {file_name}: {e}")
            return None

        url = self.public_url(object_path)
        logger.info(f"📎 Stored {file_name} → {object_path}")
        return url


# Global instance
storage_service = StorageService()
