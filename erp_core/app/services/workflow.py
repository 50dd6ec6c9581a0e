"""
Document Workflow Service
=========================
Status changes as one unit of work:

1. Load the document (row locked for update)
2. Structural legality (transition graph)
3. Mandatory fields (remarks on rejection, reason on LOST)
4. Approve capability of the caller's role
5. Quality gates (NCR closure evidence and CAPA fields)
6. Apply the status and its stamps
7. Side effects (supersede revisions) and a single commit

Any failure before the commit leaves the database untouched.
"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import (
    Quotation, QuotationStatus, PurchaseRequisition, PRStatus, PurchaseOrder,
    POStatus, SalesOrder, SOStatus, NCR, NCRStatus, Invoice, InvoiceStatus,
)
from ..security import role_can_approve
from .business_rules import ApprovalConfig, ApprovalPolicy, has_evidence
from .errors import DocumentNotFoundError, MissingFieldError, PermissionDeniedError
from .revisions import supersede_on_send, supersede_sibling_revisions
from .rule_messages import RuleCode, violation
from .transitions import (
    DocumentType, DOCUMENT_LABELS, check_transition_fields, is_rejection,
    requires_approve_capability, status_value, validate_transition,
)

logger = logging.getLogger(__name__)


DOCUMENT_MODELS = {
    DocumentType.QUOTATION: (Quotation, QuotationStatus),
    DocumentType.PURCHASE_REQUISITION: (PurchaseRequisition, PRStatus),
    DocumentType.PURCHASE_ORDER: (PurchaseOrder, POStatus),
    DocumentType.SALES_ORDER: (SalesOrder, SOStatus),
    DocumentType.NCR: (NCR, NCRStatus),
    DocumentType.INVOICE: (Invoice, InvoiceStatus),
}

# Where submit_for_approval lands a document that is within its threshold
AUTO_APPROVED_STATUS = {
    DocumentType.QUOTATION: QuotationStatus.APPROVED,
    DocumentType.PURCHASE_REQUISITION: PRStatus.APPROVED,
    DocumentType.PURCHASE_ORDER: POStatus.OPEN,
}

SYSTEM_ROLE = "SYSTEM"


class TransitionOutcome(NamedTuple):
    document: object
    previous_status: str
    status: str
    superseded: int


def _document_amount(document):
    if isinstance(document, Quotation):
        return document.grand_total or 0
    return document.total_amount or 0


class DocumentWorkflowService:
    """Service for validated document status changes"""

    @staticmethod
    def load(db: Session, document_type, document_id: int, lock: bool = True):
        try:
            doc_type = DocumentType(status_value(document_type))
        except ValueError:
            raise DocumentNotFoundError(
                [violation(RuleCode.NOT_FOUND, entity=f"Document type {document_type}")]
            )

        model, _ = DOCUMENT_MODELS[doc_type]
        query = db.query(model).filter(model.id == document_id)
        if lock:
            query = query.with_for_update()
        document = query.first()
        if not document:
            label = DOCUMENT_LABELS[doc_type]
            raise DocumentNotFoundError(
                [violation(RuleCode.NOT_FOUND, entity=label[0].upper() + label[1:])]
            )
        return doc_type, document

    @staticmethod
    def _check_gates(doc_type: DocumentType, document, requested: str):
        """Evidence a document must carry before it may enter `requested`"""
        if doc_type == DocumentType.NCR and requested == NCRStatus.CLOSED.value:
            missing = []
            if not has_evidence(document.evidence_paths):
                missing.append(violation(RuleCode.NCR_EVIDENCE_REQUIRED))
            capa = (document.root_cause, document.corrective_action,
                    document.preventive_action, document.disposition)
            if not all(v and str(v).strip() for v in capa):
                missing.append(violation(RuleCode.NCR_CLOSURE_FIELDS_REQUIRED))
            if missing:
                raise MissingFieldError(missing)

    @staticmethod
    def _stamp(doc_type: DocumentType, document, previous: str, requested: str,
               role: str, remarks: Optional[str], reason: Optional[str]):
        now = datetime.utcnow()

        approving = requested == "APPROVED" or (
            doc_type == DocumentType.PURCHASE_ORDER
            and previous == POStatus.PENDING_APPROVAL.value
            and requested == POStatus.OPEN.value
        )
        if approving or is_rejection(doc_type, previous, requested):
            document.approved_by_role = role
            document.approval_date = now
            if remarks is not None:
                document.approval_remarks = remarks

        if doc_type == DocumentType.QUOTATION:
            if requested == QuotationStatus.LOST.value:
                document.lost_reason = reason
            elif requested == QuotationStatus.SENT.value:
                document.sent_date = now

        if doc_type == DocumentType.NCR:
            if requested == NCRStatus.CLOSED.value:
                document.closed_at = now
            elif requested == NCRStatus.VERIFIED.value:
                document.verified_at = now
                document.verified_by_role = role

    @classmethod
    def _apply(cls, db: Session, doc_type: DocumentType, document, requested: str,
               role: str, remarks: Optional[str] = None, reason: Optional[str] = None,
               check_capability: bool = True) -> int:
        """Validate and apply one transition without committing. Returns supersede count."""
        previous = document.status.value
        validate_transition(doc_type, previous, requested)

        fields = check_transition_fields(doc_type, previous, requested, remarks=remarks, reason=reason)
        if not fields.is_valid:
            raise MissingFieldError(fields.errors)

        if check_capability and requires_approve_capability(doc_type, previous, requested):
            if not role_can_approve(role, doc_type):
                raise PermissionDeniedError([violation(
                    RuleCode.APPROVE_CAPABILITY_REQUIRED,
                    role=role, document=DOCUMENT_LABELS[doc_type], requested=requested,
                )])

        cls._check_gates(doc_type, document, requested)

        _, status_enum = DOCUMENT_MODELS[doc_type]
        document.status = status_enum(requested)
        cls._stamp(doc_type, document, previous, requested, role, remarks, reason)

        superseded = 0
        if doc_type == DocumentType.QUOTATION:
            db.flush()
            if requested == QuotationStatus.WON.value:
                superseded = supersede_sibling_revisions(db, document.quotation_no, document.id)
            elif requested == QuotationStatus.SENT.value:
                superseded = supersede_on_send(db, document)
        return superseded

    @classmethod
    def change_status(
        cls,
        db: Session,
        document_type,
        document_id: int,
        requested_status,
        role: str,
        remarks: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Move a document to `requested_status`.

        Raises:
            DocumentNotFoundError: document does not exist
            InvalidTransitionError: move not in the document's graph
            MissingFieldError: remarks/reason/evidence missing
            PermissionDeniedError: role lacks the approve capability
        """
        requested = status_value(requested_status)
        try:
            doc_type, document = cls.load(db, document_type, document_id)
            previous = document.status.value
            superseded = cls._apply(db, doc_type, document, requested, role, remarks, reason)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Status change failed for %s %s", document_type, document_id)
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(document)
        logger.info("%s %s: %s -> %s by %s", doc_type.value, document_id, previous, requested, role)
        return TransitionOutcome(document, previous, requested, superseded)

    @classmethod
    def mark_quotation_won(cls, db: Session, quotation_id: int, role: str) -> TransitionOutcome:
        """WON transition and sibling supersede, committed together"""
        return cls.change_status(db, DocumentType.QUOTATION, quotation_id, QuotationStatus.WON, role)

    @classmethod
    def submit_for_approval(
        cls,
        db: Session,
        document_type,
        document_id: int,
        role: str,
        config: Optional[ApprovalConfig] = None,
    ) -> TransitionOutcome:
        """
        DRAFT -> PENDING_APPROVAL, or straight through to the approved state
        when the document total is within the approval threshold.
        """
        try:
            doc_type, document = cls.load(db, document_type, document_id)
            previous = document.status.value
            cls._apply(db, doc_type, document, "PENDING_APPROVAL", role)

            if doc_type in AUTO_APPROVED_STATUS and not ApprovalPolicy.requires_approval(
                doc_type.value, _document_amount(document), config
            ):
                cls._apply(
                    db, doc_type, document, AUTO_APPROVED_STATUS[doc_type].value, SYSTEM_ROLE,
                    remarks="Auto-approved: within approval threshold", check_capability=False,
                )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Submit for approval failed for %s %s", document_type, document_id)
            raise
        except Exception:
            db.rollback()
            raise

        db.refresh(document)
        status = document.status.value
        logger.info("%s %s submitted by %s, now %s", doc_type.value, document_id, role, status)
        return TransitionOutcome(document, previous, status, 0)
