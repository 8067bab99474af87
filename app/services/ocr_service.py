"""
OCR.space OCR Service
=====================
Extracts text from scanned policy documents using the OCR.space HTTP API.

Features:
- Singleton pattern for resource efficiency
- Circuit breaker pattern for API failures
- Size check against the free-tier limit before calling the API
- Async wrapper for the synchronous requests call
"""

import base64
import logging
import asyncio
from typing import Optional
from datetime import datetime, timedelta

import requests

from app.core.config import settings
from app.services.rate_limiter import RateLimitedError

logger = logging.getLogger(__name__)


class OCRError(Exception):
    """OCR could not produce text for a document."""
    pass


class OCRRateLimitError(OCRError, RateLimitedError):
    pass


class OCRSpaceService:
    """
    Singleton service for OCR.space.
    Raises OCRError on failure so the caller can record a per-file error.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.session = requests.Session()

        # Circuit breaker
        self.consecutive_failures = 0
        self.circuit_open_until: Optional[datetime] = None
        self.max_failures = 3
        self.circuit_cooldown_seconds = 120

        self._initialized = True
        logger.info("🔧 OCRSpaceService singleton initialized")

    def _check_circuit_breaker(self) -> bool:
        if self.circuit_open_until is None:
            return True

        now = datetime.now()
        if now >= self.circuit_open_until:
            logger.info("🔄 Circuit breaker reset - retrying OCR calls")
            self.circuit_open_until = None
            self.consecutive_failures = 0
            return True

        return False

    def _record_failure(self):
        self.consecutive_failures += 1

        if self.consecutive_failures >= self.max_failures:
            self.circuit_open_until = datetime.now() + timedelta(seconds=self.circuit_cooldown_seconds)
            logger.error(
                f"🚨 Circuit breaker opened after {self.consecutive_failures} consecutive failures - "
                f"pausing OCR for {self.circuit_cooldown_seconds} seconds"
            )

    def _record_success(self):
        self.consecutive_failures = 0

    @staticmethod
    def _filetype(file_name: str, mime_type: str) -> str:
        if mime_type == "application/pdf" or file_name.lower().endswith(".pdf"):
            return "PDF"
        ext = file_name.rsplit(".", 1)[-1].upper() if "." in file_name else ""
        return "JPG" if ext == "JPEG" else (ext or "PDF")

    @staticmethod
    def _error_message(payload: dict) -> str:
        message = payload.get("ErrorMessage")
        if isinstance(message, list):
            message = message[0] if message else None
        return str(message) if message else "Falha no OCR"

    def _post(self, data: dict) -> requests.Response:
        return self.session.post(
            settings.OCR_SPACE_URL,
            data=data,
            timeout=settings.OCR_TIMEOUT_SECONDS,
        )

    async def ocr_document(self, content: bytes, file_name: str, mime_type: str = "application/pdf") -> str:
        """
        Run OCR on a document.

        Args:
            content: Raw file bytes (PDF or image)
            file_name: Original file name
            mime_type: MIME type of the file

        Returns:
            Parsed text of the first result page set

        Raises:
            OCRError: file too large, circuit open, HTTP failure or empty result
        """
        size_kb = round(len(content) / 1024)
        if len(content) > settings.OCR_MAX_FILE_SIZE_KB * 1024:
            raise OCRError(f"arquivo muito grande para OCR ({size_kb}KB)")

        if not self._check_circuit_breaker():
            raise OCRError("OCR temporariamente indisponível")

        start_time = datetime.now()
        data = {
            "apikey": settings.OCR_SPACE_API_KEY,
            "language": settings.OCR_LANGUAGE,
            "OCREngine": settings.OCR_ENGINE,
            "isTable": "true",
            "filetype": self._filetype(file_name, mime_type),
            "base64Image": f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}",
        }

        logger.info(f"🔍 [OCR] Sending {file_name} ({size_kb}KB) to OCR.space")

        try:
            response = await asyncio.to_thread(self._post, data)
        except requests.RequestException as e:
            self._record_failure()
            raise OCRError(str(e)) from e

        if response.status_code == 429:
            raise OCRRateLimitError("Limite de requisições do OCR atingido")
        if response.status_code >= 400:
            self._record_failure()
            raise OCRError(f"Erro no OCR: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            self._record_failure()
            raise OCRError("Resposta inválida do OCR") from e

        results = payload.get("ParsedResults") or []
        text = results[0].get("ParsedText") if results else None

        if payload.get("IsErroredOnProcessing") or not text:
            self._record_failure()
            raise OCRError(self._error_message(payload))

        self._record_success()
        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(f"✅ [OCR] {file_name}: {len(text)} chars in {elapsed:.2f}s")
        return text


# Global singleton instance
ocr_service = OCRSpaceService()
