"""
Policy Import Models
====================
Pydantic models for the bulk policy import workflow: what the AI extracts from a
document, the editable review item built from it, and the commit result.
"""

import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.helpers import parse_amount, normalize_date


class ClientReconcileStatus(str, Enum):
    MATCHED = "matched"
    NEW = "new"


class MatchedBy(str, Enum):
    CPF_CNPJ = "cpf_cnpj"
    EMAIL = "email"


class FileProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


class ImportStep(str, Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    REVIEW = "review"
    COMMITTING = "committing"
    COMPLETE = "complete"


class ProcessingMode(str, Enum):
    STANDARD = "standard"
    BULK_OCR = "bulk-ocr"


class OperationType(str, Enum):
    RENOVACAO = "RENOVACAO"
    NOVA = "NOVA"
    ENDOSSO = "ENDOSSO"


# ========================================================================
# EXTRACTED DATA (immutable once built)
# ========================================================================

class ClienteData(BaseModel):
    model_config = ConfigDict(frozen=True)

    nome_completo: str = ""
    cpf_cnpj: Optional[str] = None
    email: Optional[str] = None
    telefone: Optional[str] = None
    endereco_completo: Optional[str] = None


class ApoliceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    numero_apolice: str = ""
    nome_seguradora: str = ""
    data_inicio: str = ""
    data_fim: str = ""
    ramo_seguro: str = ""


class ObjetoSegurado(BaseModel):
    model_config = ConfigDict(frozen=True)

    descricao_bem: str = ""


class Valores(BaseModel):
    model_config = ConfigDict(frozen=True)

    premio_liquido: float = 0.0
    premio_total: float = 0.0


class ExtractedPolicyData(BaseModel):
    """Structured output of document extraction, staged in memory until commit."""

    model_config = ConfigDict(frozen=True)

    cliente: ClienteData = Field(default_factory=ClienteData)
    apolice: ApoliceData = Field(default_factory=ApoliceData)
    objeto_segurado: ObjetoSegurado = Field(default_factory=ObjetoSegurado)
    valores: Valores = Field(default_factory=Valores)


class BulkOCRExtractedPolicy(BaseModel):
    """
    One policy record as returned by the AI extraction tool call.

    The LLM output is untrusted: strings are stripped, blank optionals become None,
    amounts are coerced to floats and dates are normalized to YYYY-MM-DD.
    Records missing any required field fail validation.
    """

    model_config = ConfigDict(extra="ignore")

    nome_cliente: str = Field(..., min_length=1)
    cpf_cnpj: Optional[str] = None
    email: Optional[str] = None
    telefone: Optional[str] = None
    numero_apolice: str = Field(..., min_length=1)
    nome_seguradora: str = Field(..., min_length=1)
    ramo_seguro: str = Field(..., min_length=1)
    descricao_bem: Optional[str] = None
    objeto_segurado: Optional[str] = None
    identificacao_adicional: Optional[str] = None
    tipo_operacao: Optional[OperationType] = None
    titulo_sugerido: Optional[str] = None
    data_inicio: str = ""
    data_fim: str = ""
    premio_liquido: float = 0.0
    premio_total: float = 0.0
    arquivo_origem: str = Field(..., min_length=1)

    @field_validator(
        "nome_cliente", "numero_apolice", "nome_seguradora", "ramo_seguro", "arquivo_origem",
        mode="before",
    )
    @classmethod
    def _strip_required(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value).strip()

    @field_validator(
        "cpf_cnpj", "email", "telefone", "descricao_bem", "objeto_segurado",
        "identificacao_adicional", "titulo_sugerido",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.lower() in ("null", "none", "n/a"):
            return None
        return text

    @field_validator("tipo_operacao", mode="before")
    @classmethod
    def _operation_type(cls, value: Any) -> Optional[str]:
        if not value:
            return None
        text = str(value).strip().upper()
        return text if text in OperationType.__members__ else None

    @field_validator("data_inicio", "data_fim", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> str:
        return normalize_date(value)

    @field_validator("premio_liquido", "premio_total", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> float:
        return parse_amount(value)

    def to_extracted(self) -> ExtractedPolicyData:
        return ExtractedPolicyData(
            cliente=ClienteData(
                nome_completo=self.nome_cliente,
                cpf_cnpj=self.cpf_cnpj,
                email=self.email,
                telefone=self.telefone,
            ),
            apolice=ApoliceData(
                numero_apolice=self.numero_apolice,
                nome_seguradora=self.nome_seguradora,
                data_inicio=self.data_inicio,
                data_fim=self.data_fim,
                ramo_seguro=self.ramo_seguro,
            ),
            objeto_segurado=ObjetoSegurado(descricao_bem=self.descricao_bem or ""),
            valores=Valores(
                premio_liquido=self.premio_liquido,
                premio_total=self.premio_total,
            ),
        )


# ========================================================================
# RECONCILIATION / REVIEW
# ========================================================================

class ClientReconcileResult(BaseModel):
    status: ClientReconcileStatus
    client_id: Optional[str] = None
    matched_by: Optional[MatchedBy] = None


def _new_item_id() -> str:
    return str(uuid.uuid4())


class PolicyImportItem(BaseModel):
    """Working/review unit: one extracted policy plus the user's corrections."""

    id: str = Field(default_factory=_new_item_id)
    file_name: str
    # Name of the uploaded document the item was extracted from
    source_file: Optional[str] = None

    extracted: ExtractedPolicyData = Field(default_factory=ExtractedPolicyData)

    # Reconciliation
    client_status: ClientReconcileStatus = ClientReconcileStatus.NEW
    client_id: Optional[str] = None
    client_name: str = ""
    client_cpf_cnpj: Optional[str] = None
    matched_by: Optional[MatchedBy] = None

    # User-selectable fields
    seguradora_id: Optional[str] = None
    seguradora_nome: str = ""
    ramo_id: Optional[str] = None
    ramo_nome: str = ""
    producer_id: Optional[str] = None
    commission_rate: float = 15.0

    # Policy data
    numero_apolice: str = ""
    data_inicio: str = ""
    data_fim: str = ""
    objeto_segurado: str = ""
    premio_liquido: float = 0.0
    premio_total: float = 0.0

    estimated_commission: float = 0.0

    is_valid: bool = False
    validation_errors: List[str] = Field(default_factory=list)

    is_processing: bool = False
    is_processed: bool = False
    process_error: Optional[str] = None


class ImportItemDetail(BaseModel):
    item_id: str
    file_name: str
    policy_id: Optional[str] = None
    client_id: Optional[str] = None
    client_created: bool = False
    error: Optional[str] = None


class PolicyImportResult(BaseModel):
    success: int = 0
    errors: int = 0
    details: List[ImportItemDetail] = Field(default_factory=list)


class SourceDocument(BaseModel):
    """An uploaded file held in memory between upload and commit."""

    file_name: str
    mime_type: str = "application/pdf"
    content: bytes = Field(default=b"", repr=False, exclude=True)

    @property
    def size(self) -> int:
        return len(self.content)


class FileExtractionError(BaseModel):
    file_name: str
    error: str


class BulkExtractionStats(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0


class BulkExtractionResult(BaseModel):
    """Outcome of one OCR + AI batch (the bulk analyze response)."""

    success: bool = True
    data: List[BulkOCRExtractedPolicy] = Field(default_factory=list)
    processed_files: List[str] = Field(default_factory=list)
    errors: List[FileExtractionError] = Field(default_factory=list)
    stats: BulkExtractionStats = Field(default_factory=BulkExtractionStats)
    error: Optional[str] = None


# ========================================================================
# IMPORT SESSION
# ========================================================================

class ImportFileState(BaseModel):
    file_name: str
    size: int = 0
    status: FileProcessingStatus = FileProcessingStatus.PENDING
    error: Optional[str] = None


class ImportSession(BaseModel):
    """
    State of one import run for one tenant.

    Moves strictly forward: upload -> processing -> review -> complete.
    Uploaded documents stay in memory until commit or cancel.
    """

    id: str = Field(default_factory=_new_item_id)
    user_id: str
    step: ImportStep = ImportStep.UPLOAD
    mode: ProcessingMode = ProcessingMode.BULK_OCR

    documents: List[SourceDocument] = Field(default_factory=list)
    files: List[ImportFileState] = Field(default_factory=list)
    items: List[PolicyImportItem] = Field(default_factory=list)

    errors: List[FileExtractionError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    current_batch: int = 0
    total_batches: int = 0

    result: Optional[PolicyImportResult] = None

    created_at: float = Field(default_factory=time.time)
    last_update: float = Field(default_factory=time.time)

    def touch(self) -> None:
        self.last_update = time.time()

    def find_document(self, file_name: Optional[str]) -> Optional[SourceDocument]:
        for document in self.documents:
            if document.file_name == file_name:
                return document
        return None

    def find_item(self, item_id: str) -> Optional[PolicyImportItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def file_state(self, file_name: str) -> Optional[ImportFileState]:
        for state in self.files:
            if state.file_name == file_name:
                return state
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"documents"})
        data["valid_count"] = sum(1 for item in self.items if item.is_valid)
        data["invalid_count"] = sum(1 for item in self.items if not item.is_valid)
        data["error_count"] = sum(1 for item in self.items if item.process_error)
        return data
