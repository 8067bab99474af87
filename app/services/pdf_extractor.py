"""
PDF Extraction Service
======================
Reads the embedded text layer of digital PDFs. Scanned documents come back
(nearly) empty and are sent to OCR by the caller.
"""

import logging

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


class PDFExtractor:
    """Service for extracting text from PDF files"""

    @staticmethod
    def extract_text_from_bytes(content: bytes, file_name: str = "") -> str:
        """
        Extract text content from an in-memory PDF.

        Args:
            content: Raw PDF bytes
            file_name: Name used in log messages

        Returns:
            Extracted text, or "" when the PDF has no text layer or cannot be read
        """
        try:
            doc = fitz.open(stream=content, filetype="pdf")
            try:
                pages = [page.get_text() for page in doc]
            finally:
                doc.close()

            full_text = "\n\n".join(pages).strip()
            logger.info(f"📖 Local extraction {file_name}: {len(full_text)} chars from {len(pages)} pages")
            return full_text

        except Exception as e:
            logger.warning(f"⚠️  Local extraction failed for {file_name}: {e}")
            return ""

    @staticmethod
    def is_pdf(file_name: str, mime_type: str = "") -> bool:
        return mime_type == "application/pdf" or file_name.lower().endswith(".pdf")


# Create singleton instance
pdf_extractor = PDFExtractor()
