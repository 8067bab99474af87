"""Tests for hybrid text extraction and batch analysis."""

from unittest.mock import AsyncMock, Mock

import pytest

from app.models.policy_import_model import FileExtractionError
from app.services.ai_extractor import AIExtractionError
from app.services.document_analyzer import DocumentAnalysisError, DocumentAnalyzer
from app.services.ocr_service import OCRError
from tests.factories import make_document, make_policy

DIGITAL_TEXT = "APÓLICE DE SEGURO AUTO " * 20


def fake_pdf(texts) -> Mock:
    pdf = Mock()
    pdf.is_pdf.return_value = True
    pdf.extract_text_from_bytes.side_effect = lambda content, file_name="": texts.get(file_name, "")
    return pdf


class TestDocumentAnalyzer:

    @pytest.mark.asyncio
    async def test_digital_pdf_skips_ocr(self) -> None:
        ocr = Mock()
        ocr.ocr_document = AsyncMock()
        analyzer = DocumentAnalyzer(extractor=Mock(), ocr=ocr, pdf=fake_pdf({"a.pdf": DIGITAL_TEXT}))

        text = await analyzer.extract_text(make_document("a.pdf"))

        assert text == DIGITAL_TEXT
        ocr.ocr_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_scanned_pdf_falls_back_to_ocr(self) -> None:
        ocr = Mock()
        ocr.ocr_document = AsyncMock(return_value="Texto do OCR suficiente")
        analyzer = DocumentAnalyzer(extractor=Mock(), ocr=ocr, pdf=fake_pdf({}))

        assert await analyzer.extract_text(make_document("scan.pdf")) == "Texto do OCR suficiente"
        ocr.ocr_document.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_short_ocr_text_is_unusable(self) -> None:
        ocr = Mock()
        ocr.ocr_document = AsyncMock(return_value="   abc   ")
        analyzer = DocumentAnalyzer(extractor=Mock(), ocr=ocr, pdf=fake_pdf({}))

        with pytest.raises(OCRError, match="texto insuficiente"):
            await analyzer.extract_text(make_document("scan.pdf"))

    @pytest.mark.asyncio
    async def test_analyze_files_reports_per_file_errors(self) -> None:
        ocr = Mock()
        ocr.ocr_document = AsyncMock(side_effect=OCRError("arquivo muito grande para OCR (2048KB)"))
        extractor = Mock()
        extractor.extract_policies = AsyncMock(return_value=(
            [make_policy(arquivo_origem="a.pdf")],
            [FileExtractionError(file_name="a.pdf", error="Registro inválido retornado pela IA (x)")],
        ))
        analyzer = DocumentAnalyzer(extractor=extractor, ocr=ocr, pdf=fake_pdf({"a.pdf": DIGITAL_TEXT}))

        result = await analyzer.analyze_files([make_document("a.pdf"), make_document("big.pdf")])

        assert result.success is True
        assert result.processed_files == ["a.pdf"]
        assert [p.numero_apolice for p in result.data] == ["AP-001"]
        assert result.stats.total == 2
        assert result.stats.success == 1
        assert result.stats.failed == 1
        assert [e.file_name for e in result.errors] == ["big.pdf", "a.pdf"]
        extractor.extract_policies.assert_awaited_once_with([("a.pdf", DIGITAL_TEXT)])

    @pytest.mark.asyncio
    async def test_analyze_files_without_any_text(self) -> None:
        ocr = Mock()
        ocr.ocr_document = AsyncMock(side_effect=OCRError("Falha no OCR"))
        extractor = Mock()
        extractor.extract_policies = AsyncMock()
        analyzer = DocumentAnalyzer(extractor=extractor, ocr=ocr, pdf=fake_pdf({}))

        with pytest.raises(DocumentAnalysisError, match="Nenhum texto pôde ser extraído"):
            await analyzer.analyze_files([make_document("scan.pdf")])
        extractor.extract_policies.assert_not_called()

    @pytest.mark.asyncio
    async def test_analyze_files_requires_documents(self) -> None:
        analyzer = DocumentAnalyzer(extractor=Mock(), ocr=Mock(), pdf=fake_pdf({}))
        with pytest.raises(DocumentAnalysisError, match="Nenhum arquivo recebido"):
            await analyzer.analyze_files([])

    @pytest.mark.asyncio
    async def test_analyze_file_without_valid_record(self) -> None:
        extractor = Mock()
        extractor.extract_policies = AsyncMock(return_value=(
            [], [FileExtractionError(file_name="a.pdf", error="Registro inválido retornado pela IA (x)")]
        ))
        analyzer = DocumentAnalyzer(extractor=extractor, ocr=Mock(), pdf=fake_pdf({"a.pdf": DIGITAL_TEXT}))

        with pytest.raises(AIExtractionError, match="Registro inválido"):
            await analyzer.analyze_file(make_document("a.pdf"))
