"""
Business Rules API Router
=========================
HTTP access to the document rules for the screens that create, advance and
delete documents:
- Transition checks and validated status changes
- Mandatory attachment, deletion, FIFO and traceability checks
- Approval threshold decisions
- Revision chain supersede

No authentication happens here. The `role` carried by status change and
submit bodies is trusted as given, so it must be filled in by an
authenticated layer in front of this router, never by the end client.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import get_approval_config
from ..db import get_db
from ..models import Quotation, QuotationStatus
from ..schemas import (
    ApprovalCheckOut, ApprovalCheckRequest, DataIntegrityRequest,
    FIFOCheckRequest, StatusChangeOut, StatusChangeRequest,
    SubmitForApprovalRequest, SupersedeOut, TraceabilityRequest,
    TransitionCheckOut, TransitionCheckRequest, ValidationResultOut,
)
from ..services import business_rules
from ..services.errors import RuleError
from ..services.revisions import supersede_sibling_revisions, validate_revision_request
from ..services.transitions import (
    allowed_transitions, check_transition_fields, validate_transition,
)
from ..services.workflow import DocumentWorkflowService

router = APIRouter(prefix="/api/v2/rules", tags=["Business Rules"])


def _http_error(exc: RuleError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"errors": exc.messages, "codes": [v.code.value for v in exc.violations]},
    )


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@router.post("/transitions/validate", response_model=TransitionCheckOut)
def check_transition(payload: TransitionCheckRequest):
    """Structural legality plus mandatory fields, without touching any document"""
    document_type = payload.document_type.upper()
    current = payload.current_status.upper()
    requested = payload.requested_status.upper()

    next_states = sorted(allowed_transitions(document_type, current))
    try:
        validate_transition(document_type, current, requested)
    except RuleError as exc:
        return TransitionCheckOut(allowed=False, errors=exc.messages, allowed_next=next_states)

    fields = check_transition_fields(
        document_type, current, requested, remarks=payload.remarks, reason=payload.reason,
    )
    return TransitionCheckOut(allowed=fields.is_valid, errors=fields.error_messages, allowed_next=next_states)


@router.patch("/documents/{document_type}/{document_id}/status", response_model=StatusChangeOut)
def change_document_status(
    document_type: str,
    document_id: int,
    payload: StatusChangeRequest,
    db: Session = Depends(get_db),
):
    try:
        outcome = DocumentWorkflowService.change_status(
            db, document_type.upper(), document_id, payload.status.upper(), payload.role,
            remarks=payload.remarks, reason=payload.reason,
        )
    except RuleError as exc:
        raise _http_error(exc)

    return StatusChangeOut(
        document_type=document_type.upper(),
        document_id=document_id,
        previous_status=outcome.previous_status,
        status=outcome.status,
        superseded=outcome.superseded,
    )


@router.post("/documents/{document_type}/{document_id}/submit", response_model=StatusChangeOut)
def submit_document(
    document_type: str,
    document_id: int,
    payload: SubmitForApprovalRequest,
    db: Session = Depends(get_db),
):
    try:
        outcome = DocumentWorkflowService.submit_for_approval(
            db, document_type.upper(), document_id, payload.role, config=get_approval_config()
        )
    except RuleError as exc:
        raise _http_error(exc)

    return StatusChangeOut(
        document_type=document_type.upper(),
        document_id=document_id,
        previous_status=outcome.previous_status,
        status=outcome.status,
    )


# =============================================================================
# VALIDATORS
# =============================================================================

@router.get("/attachments/{entity_type}/{entity_id}", response_model=ValidationResultOut)
def check_attachments(entity_type: str, entity_id: int, db: Session = Depends(get_db)):
    result = business_rules.validate_mandatory_attachments(db, entity_type.upper(), entity_id)
    return ValidationResultOut.from_result(result)


@router.get("/deletion/{entity_type}/{entity_id}", response_model=ValidationResultOut)
def check_deletion(entity_type: str, entity_id: int, db: Session = Depends(get_db)):
    result = business_rules.can_delete_record(db, entity_type.upper(), entity_id)
    return ValidationResultOut.from_result(result)


@router.post("/fifo/validate", response_model=ValidationResultOut)
def check_fifo(payload: FIFOCheckRequest, db: Session = Depends(get_db)):
    result = business_rules.validate_fifo_reservation(
        db, payload.product, payload.size_label, payload.heat_numbers
    )
    return ValidationResultOut.from_result(result)


@router.post("/traceability/{entity_type}", response_model=ValidationResultOut)
def check_traceability(entity_type: str, payload: TraceabilityRequest, db: Session = Depends(get_db)):
    result = business_rules.validate_traceability(db, entity_type.upper(), payload)
    return ValidationResultOut.from_result(result)


@router.post("/integrity/{entity_type}", response_model=ValidationResultOut)
def check_integrity(entity_type: str, payload: DataIntegrityRequest):
    return ValidationResultOut.from_result(
        business_rules.validate_data_integrity(entity_type.upper(), payload)
    )


@router.post("/approval/check", response_model=ApprovalCheckOut)
def check_approval(payload: ApprovalCheckRequest):
    config = payload.config or get_approval_config()
    entity_type = payload.entity_type.upper()
    return ApprovalCheckOut(
        requires_approval=business_rules.requires_approval(entity_type, payload.amount, config),
        threshold=business_rules.ApprovalPolicy.threshold(entity_type, config),
    )


# =============================================================================
# REVISION CHAINS
# =============================================================================

@router.get("/quotations/{quotation_id}/revisable", response_model=ValidationResultOut)
def check_revisable(quotation_id: int, db: Session = Depends(get_db)):
    return ValidationResultOut.from_result(validate_revision_request(db, quotation_id))


@router.post("/quotations/{quotation_no}/supersede/{won_revision_id}", response_model=SupersedeOut)
def supersede_revisions(quotation_no: str, won_revision_id: int, db: Session = Depends(get_db)):
    """Retry hook for a supersede that did not complete after a WON commit"""
    won = db.query(Quotation).filter(
        Quotation.id == won_revision_id,
        Quotation.quotation_no == quotation_no,
    ).first()
    if not won:
        raise HTTPException(status_code=404, detail="Quotation revision not found")
    if won.status != QuotationStatus.WON:
        raise HTTPException(
            status_code=400,
            detail=f"Revision {won_revision_id} is {won.status.value}, not WON",
        )

    count = supersede_sibling_revisions(db, quotation_no, won_revision_id)
    db.commit()
    return SupersedeOut(quotation_no=quotation_no, won_revision_id=won_revision_id, superseded=count)
