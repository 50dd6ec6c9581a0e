from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .services.business_rules import ApprovalConfig, DataIntegrityRequest, TraceabilityRequest  # noqa: F401
from .services.rule_messages import ValidationResult


class ValidationResultOut(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    codes: List[str] = []

    @classmethod
    def from_result(cls, result: ValidationResult) -> "ValidationResultOut":
        return cls(
            is_valid=result.is_valid,
            errors=result.error_messages,
            warnings=result.warning_messages,
            codes=[c.value for c in result.codes],
        )


class TransitionCheckRequest(BaseModel):
    document_type: str
    current_status: str
    requested_status: str
    remarks: Optional[str] = None
    reason: Optional[str] = None


class TransitionCheckOut(BaseModel):
    allowed: bool
    errors: List[str] = []
    allowed_next: List[str] = []


class FIFOCheckRequest(BaseModel):
    product: str
    size_label: str
    heat_numbers: List[str] = []


class ApprovalCheckRequest(BaseModel):
    entity_type: str
    amount: Decimal = Field(..., ge=0)
    config: Optional[ApprovalConfig] = None


class ApprovalCheckOut(BaseModel):
    requires_approval: bool
    threshold: Optional[Decimal] = None


class SupersedeOut(BaseModel):
    quotation_no: str
    won_revision_id: int
    superseded: int


class StatusChangeRequest(BaseModel):
    """Body for a document status change"""
    status: str
    role: str  # set by the authenticated gateway, not the end client
    remarks: Optional[str] = None
    reason: Optional[str] = None


class StatusChangeOut(BaseModel):
    document_type: str
    document_id: int
    previous_status: str
    status: str
    superseded: int = 0


class SubmitForApprovalRequest(BaseModel):
    role: str
