from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from erp_core.app.models import (
    NCR, NCRStatus, POStatus, PRStatus, PurchaseOrder, Quotation, QuotationStatus,
)
from erp_core.app.services.business_rules import ApprovalConfig
from erp_core.app.services.errors import (
    DocumentNotFoundError, InvalidTransitionError, MissingFieldError, PermissionDeniedError,
)
from erp_core.app.services.rule_messages import RuleCode
from erp_core.app.services.transitions import DocumentType
from erp_core.app.services import workflow
from erp_core.app.services.workflow import DocumentWorkflowService

CAPA = {
    "root_cause": "Improper heat treatment at mill",
    "corrective_action": "Lot returned to vendor",
    "preventive_action": "Third party inspection at mill for next orders",
    "disposition": "RETURN_TO_VENDOR",
}


def test_approval_stamps_the_document(db, make):
    quotation = make.quotation(status=QuotationStatus.PENDING_APPROVAL)

    outcome = DocumentWorkflowService.change_status(
        db, DocumentType.QUOTATION, quotation.id, "APPROVED", "MANAGEMENT", remarks="OK to send"
    )

    assert outcome.previous_status == "PENDING_APPROVAL"
    assert outcome.status == "APPROVED"
    saved = db.get(Quotation, quotation.id)
    assert saved.status == QuotationStatus.APPROVED
    assert saved.approved_by_role == "MANAGEMENT"
    assert saved.approval_remarks == "OK to send"
    assert saved.approval_date is not None


def test_illegal_move_leaves_document_unchanged(db, make):
    quotation = make.quotation(status=QuotationStatus.DRAFT)

    with pytest.raises(InvalidTransitionError):
        DocumentWorkflowService.change_status(db, "QUOTATION", quotation.id, "WON", "ADMIN")

    assert db.get(Quotation, quotation.id).status == QuotationStatus.DRAFT


def test_sales_role_cannot_approve(db, make):
    quotation = make.quotation(status=QuotationStatus.PENDING_APPROVAL)

    with pytest.raises(PermissionDeniedError) as exc_info:
        DocumentWorkflowService.change_status(db, "QUOTATION", quotation.id, "APPROVED", "SALES")

    assert exc_info.value.status_code == 403
    assert db.get(Quotation, quotation.id).status == QuotationStatus.PENDING_APPROVAL


def test_rejection_without_remarks(db, make):
    quotation = make.quotation(status=QuotationStatus.PENDING_APPROVAL)

    with pytest.raises(MissingFieldError) as exc_info:
        DocumentWorkflowService.change_status(db, "QUOTATION", quotation.id, "REJECTED", "MANAGEMENT")

    assert exc_info.value.violations[0].code == RuleCode.REMARKS_REQUIRED


def test_lost_records_reason(db, make):
    quotation = make.quotation(status=QuotationStatus.SENT)

    with pytest.raises(MissingFieldError):
        DocumentWorkflowService.change_status(db, "QUOTATION", quotation.id, "LOST", "SALES")

    DocumentWorkflowService.change_status(
        db, "QUOTATION", quotation.id, "LOST", "SALES", reason="Competitor price lower"
    )
    saved = db.get(Quotation, quotation.id)
    assert saved.status == QuotationStatus.LOST
    assert saved.lost_reason == "Competitor price lower"


def test_won_supersedes_siblings_in_one_commit(db, make):
    v0 = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-0900", version=0)
    v1 = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-0900", version=1)

    outcome = DocumentWorkflowService.mark_quotation_won(db, v1.id, "SALES")

    assert outcome.superseded == 1
    assert db.get(Quotation, v1.id).status == QuotationStatus.WON
    assert db.get(Quotation, v0.id).status == QuotationStatus.SUPERSEDED


def test_failed_supersede_rolls_back_the_win(db, make, monkeypatch):
    v0 = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-0901", version=0)
    v1 = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-0901", version=1)

    def failing_supersede(*args, **kwargs):
        raise OperationalError("UPDATE quotations", {}, Exception("database is locked"))

    monkeypatch.setattr(workflow, "supersede_sibling_revisions", failing_supersede)

    with pytest.raises(OperationalError):
        DocumentWorkflowService.mark_quotation_won(db, v1.id, "SALES")

    assert db.get(Quotation, v1.id).status == QuotationStatus.SENT
    assert db.get(Quotation, v0.id).status == QuotationStatus.SENT


def test_po_rejection_goes_back_to_draft(db, make):
    po = make.purchase_order(status=POStatus.PENDING_APPROVAL)

    with pytest.raises(MissingFieldError):
        DocumentWorkflowService.change_status(db, "PURCHASE_ORDER", po.id, "DRAFT", "MANAGEMENT")

    with pytest.raises(PermissionDeniedError):
        DocumentWorkflowService.change_status(
            db, "PURCHASE_ORDER", po.id, "DRAFT", "PURCHASE", remarks="Re-quote freight"
        )

    DocumentWorkflowService.change_status(
        db, "PURCHASE_ORDER", po.id, "DRAFT", "MANAGEMENT", remarks="Re-quote freight"
    )
    saved = db.get(PurchaseOrder, po.id)
    assert saved.status == POStatus.DRAFT
    assert saved.approval_remarks == "Re-quote freight"


def test_ncr_closure_needs_evidence_and_capa(db, make):
    ncr = make.ncr(status=NCRStatus.CORRECTIVE_ACTION_IN_PROGRESS)

    with pytest.raises(MissingFieldError) as exc_info:
        DocumentWorkflowService.change_status(db, "NCR", ncr.id, "CLOSED", "QC")

    codes = [v.code for v in exc_info.value.violations]
    assert codes == [RuleCode.NCR_EVIDENCE_REQUIRED, RuleCode.NCR_CLOSURE_FIELDS_REQUIRED]
    assert db.get(NCR, ncr.id).status == NCRStatus.CORRECTIVE_ACTION_IN_PROGRESS


def test_ncr_close_and_verify(db, make):
    ncr = make.ncr(
        status=NCRStatus.CORRECTIVE_ACTION_IN_PROGRESS,
        evidence_paths=["/uploads/ncr/ut-report.pdf"],
        **CAPA,
    )

    DocumentWorkflowService.change_status(db, "NCR", ncr.id, "CLOSED", "QC")
    assert db.get(NCR, ncr.id).closed_at is not None

    with pytest.raises(PermissionDeniedError):
        DocumentWorkflowService.change_status(db, "NCR", ncr.id, "VERIFIED", "QC")

    DocumentWorkflowService.change_status(db, "NCR", ncr.id, "VERIFIED", "MANAGEMENT")
    saved = db.get(NCR, ncr.id)
    assert saved.status == NCRStatus.VERIFIED
    assert saved.verified_by_role == "MANAGEMENT"


def test_missing_document(db):
    with pytest.raises(DocumentNotFoundError) as exc_info:
        DocumentWorkflowService.change_status(db, "SALES_ORDER", 77, "CLOSED", "ADMIN")

    assert exc_info.value.messages == ["Sales order not found"]


def test_unknown_document_type(db):
    with pytest.raises(DocumentNotFoundError):
        DocumentWorkflowService.change_status(db, "DELIVERY_CHALLAN", 1, "CLOSED", "ADMIN")


def test_submit_within_threshold_is_auto_approved(db, make):
    quotation = make.quotation(status=QuotationStatus.DRAFT, grand_total=Decimal("85000"))

    outcome = DocumentWorkflowService.submit_for_approval(db, "QUOTATION", quotation.id, "SALES")

    assert outcome.previous_status == "DRAFT"
    assert outcome.status == "APPROVED"
    saved = db.get(Quotation, quotation.id)
    assert saved.approved_by_role == "SYSTEM"
    assert saved.approval_remarks.startswith("Auto-approved")


def test_submit_above_threshold_waits_for_approval(db, make):
    pr = make.requisition(status=PRStatus.DRAFT, total_amount=Decimal("75000"))

    outcome = DocumentWorkflowService.submit_for_approval(db, "PURCHASE_REQUISITION", pr.id, "PURCHASE")

    assert outcome.status == "PENDING_APPROVAL"


def test_submitted_po_within_threshold_opens(db, make):
    po = make.purchase_order(status=POStatus.DRAFT, total_amount=Decimal("20000"))
    config = ApprovalConfig(po_threshold=Decimal("50000"))

    outcome = DocumentWorkflowService.submit_for_approval(db, "PURCHASE_ORDER", po.id, "PURCHASE", config=config)

    assert outcome.status == "OPEN"


def test_submit_from_wrong_status(db, make):
    quotation = make.quotation(status=QuotationStatus.SENT)
    with pytest.raises(InvalidTransitionError):
        DocumentWorkflowService.submit_for_approval(db, "QUOTATION", quotation.id, "SALES")
    assert db.get(Quotation, quotation.id).status == QuotationStatus.SENT
