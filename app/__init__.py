"""
Models Package
==============
Pydantic models for request/response validation and data structures.
"""

from .models.policy_import_model import (
    ExtractedPolicyData,
    BulkOCRExtractedPolicy,
    PolicyImportItem,
    PolicyImportResult,
    ImportSession,
)
from .models.scheme import ErrorResponse, HealthResponse

__all__ = [
    "ExtractedPolicyData",
    "BulkOCRExtractedPolicy",
    "PolicyImportItem",
    "PolicyImportResult",
    "ImportSession",
    "ErrorResponse",
    "HealthResponse"
]
