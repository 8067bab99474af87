"""Tests for API endpoints."""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from main import app
from app.api.routes import (
    get_appointment_service,
    get_db_service,
    get_document_analyzer,
    get_policy_import_service,
)
from app.models.policy_import_model import BulkExtractionResult, BulkExtractionStats
from app.services.ai_extractor import AICreditsError, AIRateLimitError
from app.services.appointment_service import AppointmentService
from app.services.client_reconciliation import ClientReconciliationService
from app.services.commission_service import CommissionService
from app.services.matching_service import MatchingService
from app.services.policy_import_service import PolicyImportService
from tests.factories import OTHER_USER_ID, USER_ID, make_policy

HEADERS = {"X-User-Id": USER_ID}
PDF = b"%PDF-1.4 fake policy"


def upload(*names):
    return [("files", (name, PDF, "application/pdf")) for name in names]


def import_service(fake_db, fast_limiters, analyzer) -> PolicyImportService:
    storage = Mock()
    storage.upload_policy_document = AsyncMock(return_value="http://localhost:8000/files/doc.pdf")
    return PolicyImportService(
        db=fake_db,
        analyzer=analyzer,
        reconciler=ClientReconciliationService(db=fake_db),
        matcher=MatchingService(db=fake_db),
        storage=storage,
        commissions=CommissionService(db=fake_db),
        **fast_limiters,
    )


class TestTenantAndHealth:

    def test_health(self, test_client: TestClient) -> None:
        response = test_client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "database" in data

    def test_tenant_is_required(self, test_client: TestClient) -> None:
        response = test_client.post("/api/policy-import/sessions")

        assert response.status_code == 400
        assert "User ID is required" in response.json()["detail"]

    @pytest.mark.parametrize("user_id", ["../../escaped", "user/1", "..", "a b"])
    def test_tenant_must_be_a_single_path_segment(self, test_client: TestClient, user_id: str) -> None:
        response = test_client.post("/api/policy-import/sessions", headers={"X-User-Id": user_id})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid User ID"

    def test_tenant_from_query_parameter(self, test_client: TestClient) -> None:
        response = test_client.post(f"/api/policy-import/sessions?userId={USER_ID}")

        assert response.status_code == 201
        assert response.json()["user_id"] == USER_ID

    def test_unknown_session(self, test_client: TestClient) -> None:
        response = test_client.get("/api/policy-import/sessions/nope", headers=HEADERS)

        assert response.status_code == 404
        assert "Sessão de importação não encontrada" in response.json()["detail"]


class TestBulkAnalyzeEndpoint:

    def test_success_includes_upload_warnings(self, test_client: TestClient) -> None:
        analyzer = Mock()
        analyzer.analyze_files = AsyncMock(return_value=BulkExtractionResult(
            data=[make_policy(arquivo_origem="a.pdf")],
            processed_files=["a.pdf"],
            stats=BulkExtractionStats(total=1, success=1),
        ))
        app.dependency_overrides[get_document_analyzer] = lambda: analyzer

        files = upload("a.pdf") + [("files", ("notes.txt", b"hello", "text/plain"))]
        response = test_client.post("/api/ocr-bulk-analyze", files=files, headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"][0]["numero_apolice"] == "AP-001"
        assert data["processed_files"] == ["a.pdf"]
        assert data["warnings"] == ["notes.txt: tipo de arquivo não suportado"]

    def test_rate_limit_status(self, test_client: TestClient) -> None:
        analyzer = Mock()
        analyzer.analyze_files = AsyncMock(
            side_effect=AIRateLimitError("Rate limit da IA atingido. Aguarde alguns segundos.")
        )
        app.dependency_overrides[get_document_analyzer] = lambda: analyzer

        response = test_client.post("/api/ocr-bulk-analyze", files=upload("a.pdf"), headers=HEADERS)

        assert response.status_code == 429
        assert response.json() == {
            "success": False,
            "error": "Rate limit da IA atingido. Aguarde alguns segundos.",
        }

    def test_credits_status(self, test_client: TestClient) -> None:
        analyzer = Mock()
        analyzer.analyze_files = AsyncMock(side_effect=AICreditsError("Créditos insuficientes."))
        app.dependency_overrides[get_document_analyzer] = lambda: analyzer

        response = test_client.post("/api/ocr-bulk-analyze", files=upload("a.pdf"), headers=HEADERS)

        assert response.status_code == 402
        assert response.json()["success"] is False


class TestImportWorkflow:

    def test_upload_process_review_commit(self, test_client: TestClient, fake_db, fast_limiters) -> None:
        analyzer = Mock()
        analyzer.analyze_files = AsyncMock(return_value=BulkExtractionResult(
            data=[
                make_policy(numero_apolice="AP-1", arquivo_origem="a.pdf"),
                make_policy(numero_apolice="AP-2", cpf_cnpj="999.999.999-99", email=None, arquivo_origem="b.pdf"),
            ],
            processed_files=["a.pdf", "b.pdf"],
            stats=BulkExtractionStats(total=2, success=2),
        ))
        service = import_service(fake_db, fast_limiters, analyzer)
        app.dependency_overrides[get_policy_import_service] = lambda: service

        session = test_client.post("/api/policy-import/sessions", headers=HEADERS).json()
        base = f"/api/policy-import/sessions/{session['id']}"

        response = test_client.post(f"{base}/files", files=upload("a.pdf", "b.pdf"), headers=HEADERS)
        assert response.status_code == 200
        assert [f["file_name"] for f in response.json()["files"]] == ["a.pdf", "b.pdf"]
        assert "documents" not in response.json()

        response = test_client.post(f"{base}/process", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "review"
        assert data["valid_count"] == 0
        assert len(data["items"]) == 2

        response = test_client.post(f"{base}/batch/producer", json={"producer_id": "producer-1"}, headers=HEADERS)
        assert response.json()["valid_count"] == 2

        item_id = data["items"][1]["id"]
        response = test_client.patch(
            f"{base}/items/{item_id}", json={"commission_rate": 150}, headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["is_valid"] is False

        response = test_client.post(f"{base}/commit", headers=HEADERS)
        assert response.status_code == 200
        result = response.json()
        assert result["success"] == 1
        assert result["errors"] == 0
        assert len(fake_db.policies) == 1

        response = test_client.get(base, headers=HEADERS)
        assert response.json()["step"] == "complete"

    def test_other_tenant_cannot_see_session(self, test_client: TestClient) -> None:
        session = test_client.post("/api/policy-import/sessions", headers=HEADERS).json()

        response = test_client.get(
            f"/api/policy-import/sessions/{session['id']}", headers={"X-User-Id": OTHER_USER_ID}
        )

        assert response.status_code == 404

    def test_batch_edit_outside_review(self, test_client: TestClient, fake_db, fast_limiters) -> None:
        service = import_service(fake_db, fast_limiters, Mock())
        app.dependency_overrides[get_policy_import_service] = lambda: service
        session = test_client.post("/api/policy-import/sessions", headers=HEADERS).json()

        response = test_client.post(
            f"/api/policy-import/sessions/{session['id']}/batch/commission",
            json={"commission_rate": "abc"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert "etapa 'upload'" in response.json()["detail"]

    def test_unknown_item_field_rejected(self, test_client: TestClient) -> None:
        session = test_client.post("/api/policy-import/sessions", headers=HEADERS).json()

        response = test_client.patch(
            f"/api/policy-import/sessions/{session['id']}/items/x",
            json={"is_valid": True},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_reference_data(self, test_client: TestClient, fake_db) -> None:
        app.dependency_overrides[get_db_service] = lambda: fake_db

        response = test_client.get("/api/policy-import/reference-data", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert [c["name"] for c in data["companies"]] == ["Porto Seguro", "Allianz"]
        assert [r["nome"] for r in data["ramos"]] == ["Auto", "Residencial", "Vida"]
        assert data["producers"][0]["id"] == "producer-1"


class TestAppointmentEndpoints:

    def _add(self, fake_db, rule):
        fake_db.add(
            "appointments", id="appt-1", user_id=USER_ID, title="Revisão", date="2025-03-10",
            time="09:30", status="Realizado", priority="Normal", recurrence_rule=rule,
            parent_appointment_id=None, original_start_timestamptz=None,
        )

    def test_create_next(self, test_client: TestClient, fake_db) -> None:
        self._add(fake_db, "FREQ=WEEKLY")
        app.dependency_overrides[get_appointment_service] = lambda: AppointmentService(db=fake_db)

        response = test_client.post(
            "/api/appointments/create-next", json={"appointmentId": "appt-1"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["newAppointmentId"] == fake_db.appointments[-1]["id"]
        assert fake_db.appointments[-1]["date"] == "2025-03-17"

    def test_create_next_missing_id(self, test_client: TestClient, fake_db) -> None:
        app.dependency_overrides[get_appointment_service] = lambda: AppointmentService(db=fake_db)

        response = test_client.post("/api/appointments/create-next", json={}, headers=HEADERS)

        assert response.status_code == 400

    def test_process_completion(self, test_client: TestClient, fake_db) -> None:
        self._add(fake_db, "FREQ=YEARLY")
        app.dependency_overrides[get_appointment_service] = lambda: AppointmentService(db=fake_db)

        response = test_client.post(
            "/api/appointments/process-completion", json={"appointmentId": "appt-1"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["nextDate"] == "2026-03-10"
