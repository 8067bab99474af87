"""
API ROUTES - Policy Import & Recurring Appointments
===================================================
- Bulk OCR analysis of policy documents
- Import sessions: upload -> processing -> review -> complete
- Successor creation for completed recurring appointments

Every endpoint is tenant-scoped: the user ID comes from the X-User-Id header
or the userId query parameter.
"""

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from typing import List, Optional
import logging

from app.core.config import settings
from app.core.tenant import TenantContext, require_tenant
from app.models.scheme import (
    AppointmentRequest,
    BatchCommissionRequest,
    BatchProducerRequest,
    HealthResponse,
    ImportItemUpdate,
    ProcessRequest,
)
from app.services.ai_extractor import AICreditsError, AIExtractionError, AIRateLimitError
from app.services.appointment_service import appointment_service
from app.services.brokerage_db_service import brokerage_db_service
from app.services.document_analyzer import DocumentAnalysisError, document_analyzer
from app.services.import_session_store import ImportSessionError, ImportSessionNotFoundError
from app.services.policy_import_service import policy_import_service
from app.utils.file_utils import read_uploaded_files

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Policy Import"])


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_policy_import_service():
    return policy_import_service


def get_document_analyzer():
    return document_analyzer


def get_appointment_service():
    return appointment_service


def get_db_service():
    return brokerage_db_service


def _http_error(error: ImportSessionError) -> HTTPException:
    status_code = 404 if isinstance(error, ImportSessionNotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(error))


# ============================================================================
# BULK OCR ANALYSIS
# ============================================================================


@router.post("/ocr-bulk-analyze")
async def ocr_bulk_analyze(
    files: List[UploadFile] = File(...),
    tenant: TenantContext = Depends(require_tenant),
    analyzer=Depends(get_document_analyzer),
):
    """
    Extract structured policy data from a batch of documents.

    Local PDF text first, OCR fallback, then a single AI call for the batch.
    """
    documents, warnings = await read_uploaded_files(files)
    logger.info(f"📁 [BULK-OCR] {len(documents)} file(s) received from user {tenant.user_id}")

    try:
        result = await analyzer.analyze_files(documents)
    except AIRateLimitError as e:
        return JSONResponse(status_code=429, content={"success": False, "error": str(e)})
    except AICreditsError as e:
        return JSONResponse(status_code=402, content={"success": False, "error": str(e)})
    except (DocumentAnalysisError, AIExtractionError) as e:
        logger.error(f"💀 [BULK-OCR] {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    content = result.model_dump(mode="json")
    content["warnings"] = warnings
    return JSONResponse(content=content)


# ============================================================================
# IMPORT SESSIONS
# ============================================================================


@router.post("/policy-import/sessions", status_code=201)
async def create_import_session(
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    session = service.create_session(tenant)
    return JSONResponse(status_code=201, content=session.to_dict())


@router.get("/policy-import/sessions/{session_id}")
async def get_import_session(
    session_id: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.delete("/policy-import/sessions/{session_id}")
async def cancel_import_session(
    session_id: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        service.cancel(session_id, tenant)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content={"success": True, "message": "Importação cancelada"})


@router.post("/policy-import/sessions/{session_id}/files")
async def upload_import_files(
    session_id: str,
    files: List[UploadFile] = File(...),
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    documents, warnings = await read_uploaded_files(files)
    try:
        session = service.get_session(session_id, tenant)
        service.add_files(session, documents, warnings)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.delete("/policy-import/sessions/{session_id}/files/{file_name}")
async def remove_import_file(
    session_id: str,
    file_name: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        service.remove_file(session, file_name)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.post("/policy-import/sessions/{session_id}/process")
async def process_import_session(
    session_id: str,
    request: Optional[ProcessRequest] = Body(None),
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    """Run extraction for every uploaded file; returns the session in review (or back in upload)."""
    try:
        session = service.get_session(session_id, tenant)
        await service.process(session, tenant, mode=request.mode if request else None)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.patch("/policy-import/sessions/{session_id}/items/{item_id}")
async def update_import_item(
    session_id: str,
    item_id: str,
    updates: ImportItemUpdate,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        item = service.update_item(session, item_id, updates.model_dump(exclude_unset=True))
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=item.model_dump(mode="json"))


@router.delete("/policy-import/sessions/{session_id}/items/{item_id}")
async def remove_import_item(
    session_id: str,
    item_id: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        service.remove_item(session, item_id)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.post("/policy-import/sessions/{session_id}/items/{item_id}/retry")
async def retry_import_item(
    session_id: str,
    item_id: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        item = await service.retry_item(session, item_id, tenant)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=item.model_dump(mode="json"))


@router.post("/policy-import/sessions/{session_id}/batch/producer")
async def apply_batch_producer(
    session_id: str,
    request: BatchProducerRequest,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        service.apply_batch_producer(session, request.producer_id)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.post("/policy-import/sessions/{session_id}/batch/commission")
async def apply_batch_commission(
    session_id: str,
    request: BatchCommissionRequest,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    try:
        session = service.get_session(session_id, tenant)
        service.apply_batch_commission(session, request.commission_rate)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=session.to_dict())


@router.post("/policy-import/sessions/{session_id}/commit")
async def commit_import_session(
    session_id: str,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_policy_import_service),
):
    """Create clients, policies and commissions for every valid item."""
    try:
        session = service.get_session(session_id, tenant)
        result = await service.commit(session, tenant)
    except ImportSessionError as e:
        raise _http_error(e)
    return JSONResponse(content=result.model_dump(mode="json"))


@router.get("/policy-import/reference-data")
async def get_reference_data(
    tenant: TenantContext = Depends(require_tenant),
    db=Depends(get_db_service),
):
    """Insurers, insurance lines and producers of the tenant, for the review screen."""
    try:
        companies = await db.list_companies(tenant.user_id)
        ramos = await db.list_ramos(tenant.user_id)
        producers = await db.list_producers(tenant.user_id)
    except ConnectionError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JSONResponse(content={
        "companies": companies,
        "ramos": ramos,
        "producers": producers,
    })


# ============================================================================
# RECURRING APPOINTMENTS
# ============================================================================


@router.post("/appointments/create-next")
async def create_next_appointment(
    request: AppointmentRequest,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_appointment_service),
):
    status_code, content = await service.create_next_appointment(request.appointment_id, tenant.user_id)
    return JSONResponse(status_code=status_code, content=content)


@router.post("/appointments/process-completion")
async def process_appointment_completion(
    request: AppointmentRequest,
    tenant: TenantContext = Depends(require_tenant),
    service=Depends(get_appointment_service),
):
    status_code, content = await service.process_appointment_completion(request.appointment_id, tenant.user_id)
    return JSONResponse(status_code=status_code, content=content)


# ============================================================================
# HEALTH
# ============================================================================


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    """
    health = HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        database="connected" if brokerage_db_service.database is not None else "disconnected",
        ai_gateway="configured" if settings.AI_GATEWAY_API_KEY else "not configured",
        ocr="configured" if settings.OCR_SPACE_API_KEY else "not configured",
    )
    return JSONResponse(content=health.model_dump())
