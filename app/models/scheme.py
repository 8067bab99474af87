"""
Request/response models for the HTTP API.
"""

from typing import Optional, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.policy_import_model import ProcessingMode


# ========================================================================
# POLICY IMPORT
# ========================================================================

class ProcessRequest(BaseModel):
    mode: Optional[ProcessingMode] = Field(None, description="bulk-ocr (default) or standard")


class ImportItemUpdate(BaseModel):
    """Editable review fields; only the fields sent are applied."""

    model_config = ConfigDict(extra="forbid")

    client_name: Optional[str] = None
    seguradora_id: Optional[str] = None
    seguradora_nome: Optional[str] = None
    ramo_id: Optional[str] = None
    ramo_nome: Optional[str] = None
    producer_id: Optional[str] = None
    commission_rate: Optional[float] = None
    numero_apolice: Optional[str] = None
    data_inicio: Optional[str] = None
    data_fim: Optional[str] = None
    objeto_segurado: Optional[str] = None
    premio_liquido: Optional[float] = None
    premio_total: Optional[float] = None


class BatchProducerRequest(BaseModel):
    producer_id: str = Field(..., min_length=1)


class BatchCommissionRequest(BaseModel):
    # Range and NaN checks happen in the service
    commission_rate: Optional[Union[float, str]] = None


# ========================================================================
# APPOINTMENTS
# ========================================================================

class AppointmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_id: Optional[str] = Field(None, alias="appointmentId")


# ========================================================================
# COMMON
# ========================================================================

class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Detailed error information")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    version: str = Field(default="1.0.0", description="API version")
    database: Optional[str] = Field(None, description="Database status")
    ai_gateway: Optional[str] = Field(None, description="AI gateway configuration status")
    ocr: Optional[str] = Field(None, description="OCR configuration status")
