"""
Document Analyzer
=================
Hybrid text extraction (local PDF text layer first, OCR fallback) followed by
AI field extraction.

- analyze_files: one batch, one AI call for all the documents that yielded text
- analyze_file: one document, used by the standard (file-by-file) import mode
"""

import time
import asyncio
import logging
from typing import List, Tuple

from app.core.config import settings
from app.models.policy_import_model import (
    BulkExtractionResult,
    BulkExtractionStats,
    BulkOCRExtractedPolicy,
    FileExtractionError,
    SourceDocument,
)
from app.services.ai_extractor import AIExtractionError, ai_extractor
from app.services.ocr_service import OCRError, ocr_service
from app.services.pdf_extractor import pdf_extractor

logger = logging.getLogger(__name__)

# Below this many characters a document is treated as unreadable
MIN_USABLE_TEXT_CHARS = 10


class DocumentAnalysisError(Exception):
    """No document in the batch produced usable text."""
    pass


class DocumentAnalyzer:

    def __init__(self, extractor=None, ocr=None, pdf=None):
        self.extractor = extractor if extractor is not None else ai_extractor
        self.ocr = ocr if ocr is not None else ocr_service
        self.pdf = pdf if pdf is not None else pdf_extractor

    async def extract_text(self, document: SourceDocument) -> str:
        """
        Get the text of a document.

        Digital PDFs are read locally; scans and images go to OCR.

        Raises:
            OCRError: OCR failed or the text is unusable
        """
        text = ""
        if self.pdf.is_pdf(document.file_name, document.mime_type):
            text = await asyncio.to_thread(
                self.pdf.extract_text_from_bytes, document.content, document.file_name
            )

        if len(text) > settings.LOCAL_TEXT_MIN_CHARS:
            logger.info(f"✅ [LOCAL] {document.file_name}: {len(text)} chars")
            return text

        logger.info(
            f"⚠️  [LOCAL] Not enough text in {document.file_name} ({len(text)} chars), trying OCR..."
        )
        text = await self.ocr.ocr_document(document.content, document.file_name, document.mime_type)

        if len(text.strip()) <= MIN_USABLE_TEXT_CHARS:
            raise OCRError("texto insuficiente extraído do documento")
        return text

    async def _collect_texts(
        self, documents: List[SourceDocument]
    ) -> Tuple[List[Tuple[str, str]], List[FileExtractionError]]:
        texts: List[Tuple[str, str]] = []
        errors: List[FileExtractionError] = []

        for index, document in enumerate(documents, start=1):
            logger.info(
                f"📄 [{index}/{len(documents)}] {document.file_name}: {round(document.size / 1024)}KB"
            )
            try:
                texts.append((document.file_name, await self.extract_text(document)))
            except OCRError as e:
                logger.error(f"❌ [OCR] {document.file_name}: {e}")
                errors.append(FileExtractionError(file_name=document.file_name, error=str(e)))

        return texts, errors

    async def analyze_files(self, documents: List[SourceDocument]) -> BulkExtractionResult:
        """
        Extract policies from a batch of documents with a single AI call.

        Raises:
            DocumentAnalysisError: no document produced usable text
            AIExtractionError: the AI call failed (see its subclasses)
        """
        if not documents:
            raise DocumentAnalysisError("Nenhum arquivo recebido.")

        start = time.monotonic()
        logger.info(f"🚀 [BULK-OCR] Processing {len(documents)} files")

        texts, errors = await self._collect_texts(documents)
        logger.info(
            f"📊 [EXTRACTION] {len(texts)}/{len(documents)} files extracted "
            f"in {time.monotonic() - start:.2f}s"
        )

        if not texts:
            details = "; ".join(f"{e.file_name}: {e.error}" for e in errors)
            raise DocumentAnalysisError(f"Nenhum texto pôde ser extraído. Erros: {details}")

        policies, rejected = await self.extractor.extract_policies(texts)

        logger.info(
            f"✅ [BULK-OCR] {len(policies)} policies extracted in {time.monotonic() - start:.2f}s"
        )
        return BulkExtractionResult(
            success=True,
            data=policies,
            processed_files=[name for name, _ in texts],
            errors=errors + rejected,
            stats=BulkExtractionStats(
                total=len(documents),
                success=len(texts),
                failed=len(errors),
            ),
        )

    async def analyze_file(self, document: SourceDocument) -> BulkOCRExtractedPolicy:
        """
        Extract the policy of a single document.

        Raises:
            OCRError: no usable text
            AIExtractionError: AI failure or no valid record returned
        """
        text = await self.extract_text(document)
        policies, rejected = await self.extractor.extract_policies([(document.file_name, text)])

        if not policies:
            raise AIExtractionError(rejected[0].error if rejected else "Falha na extração")
        return policies[0]


# Global instance
document_analyzer = DocumentAnalyzer()
