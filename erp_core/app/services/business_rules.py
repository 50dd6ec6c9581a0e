"""
Business Rule Validators
========================
Mandatory system controls for the document flow:
- Mandatory attachments (MTC at GRN, inspection report at QC release,
  evidence on NCRs)
- No deletion once a record has irreversible consequences
- FIFO consumption of heats by MTC date (advisory)
- Traceability of every document to its predecessor
- Approval thresholds

Validators return a ValidationResult for every expected outcome. A failing
data store is logged and turned into a fail-closed system-error result.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, validator
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import (
    Quotation, QuotationStatus, PurchaseRequisition, PRStatus,
    PurchaseOrder, POStatus, SalesOrder, SOStatus, PackingList, Invoice,
    PaymentReceipt, GoodsReceiptNote, GRNItem, Inspection, InspectionResult,
    NCR, InventoryStock, StockStatus,
)
from .rule_messages import (
    RuleCode, ValidationResult, system_error_result, violation,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ENTITY VARIANTS - one enum per validator, every member has a handler
# =============================================================================

class AttachmentEntity(str, Enum):
    GRN = "GRN"
    INSPECTION = "INSPECTION"
    NCR = "NCR"


class DeletableEntity(str, Enum):
    QUOTATION = "QUOTATION"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    SALES_ORDER = "SALES_ORDER"
    INVOICE = "INVOICE"
    GRN = "GRN"


class TraceableEntity(str, Enum):
    SALES_ORDER = "SALES_ORDER"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    GRN = "GRN"
    DISPATCH = "DISPATCH"


class ApprovalEntity(str, Enum):
    QUOTATION = "QUOTATION"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    PURCHASE_REQUISITION = "PURCHASE_REQUISITION"


class IntegrityEntity(str, Enum):
    QUOTATION = "QUOTATION"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    GRN = "GRN"


def _coerce(enum_cls, value):
    try:
        return enum_cls(value.value if isinstance(value, Enum) else value)
    except ValueError:
        return None


def _present(value) -> bool:
    return value is not None and str(value).strip() != ""


# =============================================================================
# INPUT MODELS
# =============================================================================

class ApprovalConfig(BaseModel):
    """Amounts above which a document needs management approval"""
    quotation_threshold: Decimal = Decimal("100000")  # 1 lakh
    po_threshold: Decimal = Decimal("100000")
    pr_threshold: Decimal = Decimal("50000")


class TraceabilityRequest(BaseModel):
    """Upstream references proposed for a new downstream document"""
    quotation_id: Optional[int] = None
    customer_po_no: Optional[str] = None
    pr_id: Optional[int] = None
    po_id: Optional[int] = None
    so_id: Optional[int] = None

    @validator('customer_po_no')
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class DataIntegrityRequest(BaseModel):
    customer_id: Optional[int] = None
    vendor_id: Optional[int] = None
    heat_no: Optional[str] = None


# =============================================================================
# MANDATORY ATTACHMENTS
# =============================================================================

class MandatoryAttachmentValidator:
    """Evidence that must exist before an entity passes a quality gate"""

    @staticmethod
    def _grn(db: Session, entity_id: int, result: ValidationResult):
        # MTC is held per received heat, i.e. on the GRN line
        item = db.query(GRNItem).filter(GRNItem.id == entity_id).first()
        if not item:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="GRN"))
            return
        if not _present(item.mtc_no) or not _present(item.mtc_document_path):
            result.errors.append(violation(RuleCode.MTC_REQUIRED))

    @staticmethod
    def _inspection(db: Session, entity_id: int, result: ValidationResult):
        inspection = db.query(Inspection).filter(Inspection.id == entity_id).first()
        if not inspection:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="Inspection"))
            return
        if inspection.overall_result in (InspectionResult.PASS, InspectionResult.FAIL):
            if not _present(inspection.report_path):
                result.errors.append(violation(RuleCode.INSPECTION_REPORT_REQUIRED))

    @staticmethod
    def _ncr(db: Session, entity_id: int, result: ValidationResult):
        ncr = db.query(NCR).filter(NCR.id == entity_id).first()
        if not ncr:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="NCR"))
            return
        if not has_evidence(ncr.evidence_paths):
            result.errors.append(violation(RuleCode.NCR_EVIDENCE_REQUIRED))

    HANDLERS: Dict[AttachmentEntity, Callable] = {}

    @classmethod
    def validate(cls, db: Session, entity_type, entity_id: int) -> ValidationResult:
        result = ValidationResult()
        kind = _coerce(AttachmentEntity, entity_type)
        if kind is None:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity=f"Entity type {entity_type}"))
            return result
        try:
            cls.HANDLERS[kind](db, entity_id, result)
        except SQLAlchemyError:
            logger.exception("Attachment validation failed for %s %s", kind.value, entity_id)
            return system_error_result("Validation")
        return result


MandatoryAttachmentValidator.HANDLERS = {
    AttachmentEntity.GRN: MandatoryAttachmentValidator._grn,
    AttachmentEntity.INSPECTION: MandatoryAttachmentValidator._inspection,
    AttachmentEntity.NCR: MandatoryAttachmentValidator._ncr,
}


def has_evidence(evidence_paths) -> bool:
    """evidence_paths is stored as JSON; a list with at least one entry counts"""
    if isinstance(evidence_paths, (list, tuple)):
        return len(evidence_paths) > 0
    return bool(evidence_paths)


# =============================================================================
# DELETION GUARD
# =============================================================================

PO_OPEN_OR_RECEIVED_STATUSES = (POStatus.OPEN, POStatus.PARTIALLY_RECEIVED, POStatus.FULLY_RECEIVED)
PO_MATERIAL_RECEIVED_STATUSES = (POStatus.PARTIALLY_RECEIVED, POStatus.CLOSED)
SO_CLOSED_STATUSES = (SOStatus.CLOSED, SOStatus.FULLY_DISPATCHED)


class DeletionGuard:
    """
    Decides whether a record may be destroyed.

    Checked against consequences (linked downstream records) as well as
    status, and every blocker is reported.
    """

    @staticmethod
    def _quotation(db: Session, entity_id: int, result: ValidationResult):
        quotation = db.query(Quotation).filter(Quotation.id == entity_id).first()
        if not quotation:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="Quotation"))
            return

        if quotation.status == QuotationStatus.APPROVED:
            result.errors.append(violation(RuleCode.QUOTATION_APPROVED, number=quotation.quotation_no))

        so_count = db.query(func.count(SalesOrder.id)).filter(
            SalesOrder.quotation_id == quotation.id
        ).scalar() or 0
        if so_count > 0:
            result.errors.append(violation(
                RuleCode.QUOTATION_HAS_SALES_ORDERS, number=quotation.quotation_no, count=so_count
            ))

    @staticmethod
    def _purchase_order(db: Session, entity_id: int, result: ValidationResult):
        po = db.query(PurchaseOrder).filter(PurchaseOrder.id == entity_id).first()
        if not po:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="Purchase Order"))
            return

        if po.status in PO_OPEN_OR_RECEIVED_STATUSES:
            result.errors.append(violation(RuleCode.PO_OPEN_OR_RECEIVED, number=po.po_no))

        # Overlaps the check above on PARTIALLY_RECEIVED; CLOSED only lands here
        if po.status in PO_MATERIAL_RECEIVED_STATUSES:
            result.errors.append(violation(RuleCode.PO_MATERIAL_RECEIVED, number=po.po_no))

    @staticmethod
    def _sales_order(db: Session, entity_id: int, result: ValidationResult):
        so = db.query(SalesOrder).filter(SalesOrder.id == entity_id).first()
        if not so:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="Sales Order"))
            return

        packing_lists = db.query(func.count(PackingList.id)).filter(
            PackingList.sales_order_id == so.id
        ).scalar() or 0
        invoices = db.query(func.count(Invoice.id)).filter(
            Invoice.sales_order_id == so.id
        ).scalar() or 0
        if packing_lists > 0 or invoices > 0:
            result.errors.append(violation(RuleCode.SO_DISPATCHED_OR_INVOICED, number=so.so_no))

        if so.status in SO_CLOSED_STATUSES:
            result.errors.append(violation(RuleCode.SO_CLOSED, number=so.so_no))

    @staticmethod
    def _invoice(db: Session, entity_id: int, result: ValidationResult):
        invoice = db.query(Invoice).filter(Invoice.id == entity_id).first()
        if not invoice:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="Invoice"))
            return

        # Never deletable, whatever the status
        result.errors.append(violation(RuleCode.INVOICE_NOT_DELETABLE, number=invoice.invoice_no))

        receipts = db.query(func.count(PaymentReceipt.id)).filter(
            PaymentReceipt.invoice_id == invoice.id
        ).scalar() or 0
        if receipts > 0:
            result.errors.append(violation(RuleCode.INVOICE_HAS_PAYMENTS, number=invoice.invoice_no))

    @staticmethod
    def _grn(db: Session, entity_id: int, result: ValidationResult):
        grn = db.query(GoodsReceiptNote).filter(GoodsReceiptNote.id == entity_id).first()
        if not grn:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity="GRN"))
            return

        inspected = db.query(Inspection.id).join(
            GRNItem, Inspection.grn_item_id == GRNItem.id
        ).filter(GRNItem.grn_id == grn.id).first()
        if inspected is not None:
            result.errors.append(violation(RuleCode.GRN_INSPECTED, number=grn.grn_no))

        stocked = db.query(InventoryStock.id).join(
            GRNItem, InventoryStock.grn_item_id == GRNItem.id
        ).filter(GRNItem.grn_id == grn.id).first()
        if stocked is not None:
            result.errors.append(violation(RuleCode.GRN_IN_INVENTORY, number=grn.grn_no))

    HANDLERS: Dict[DeletableEntity, Callable] = {}

    @classmethod
    def can_delete(cls, db: Session, entity_type, entity_id: int) -> ValidationResult:
        result = ValidationResult()
        kind = _coerce(DeletableEntity, entity_type)
        if kind is None:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity=f"Entity type {entity_type}"))
            return result
        try:
            cls.HANDLERS[kind](db, entity_id, result)
        except SQLAlchemyError:
            logger.exception("Delete validation failed for %s %s", kind.value, entity_id)
            return system_error_result("Validation")
        return result


DeletionGuard.HANDLERS = {
    DeletableEntity.QUOTATION: DeletionGuard._quotation,
    DeletableEntity.PURCHASE_ORDER: DeletionGuard._purchase_order,
    DeletableEntity.SALES_ORDER: DeletionGuard._sales_order,
    DeletableEntity.INVOICE: DeletionGuard._invoice,
    DeletableEntity.GRN: DeletionGuard._grn,
}


# =============================================================================
# FIFO
# =============================================================================

class FIFOAllocationValidator:
    """Oldest MTC first. Advisory only: a deviation is a warning, never a block."""

    @staticmethod
    def available_lots(db: Session, product: str, size_label: str) -> List[InventoryStock]:
        """ACCEPTED lots with stock left, oldest MTC first"""
        return db.query(InventoryStock).filter(
            InventoryStock.product == product,
            InventoryStock.size_label == size_label,
            InventoryStock.status == StockStatus.ACCEPTED,
            InventoryStock.quantity_mtr > 0,
        ).order_by(
            InventoryStock.mtc_date.is_(None),  # undated certificates last
            InventoryStock.mtc_date.asc(),
            InventoryStock.id.asc(),
        ).all()

    @classmethod
    def validate(
        cls,
        db: Session,
        product: str,
        size_label: str,
        requested_heat_numbers: Sequence[str],
    ) -> ValidationResult:
        result = ValidationResult()
        try:
            lots = cls.available_lots(db, product, size_label)
        except SQLAlchemyError:
            logger.exception("FIFO validation failed for %s / %s", product, size_label)
            return system_error_result("FIFO validation")

        if not lots:
            result.errors.append(violation(RuleCode.NO_STOCK_AVAILABLE))
            return result

        requested = list(requested_heat_numbers or [])
        oldest_heats = [lot.heat_no for lot in lots[:len(requested)] if lot.heat_no is not None]
        out_of_order = [heat for heat in requested if heat not in oldest_heats]

        if out_of_order:
            logger.info(
                "FIFO override for %s / %s: requested %s, oldest %s",
                product, size_label, out_of_order, oldest_heats,
            )
            result.warnings.append(violation(
                RuleCode.FIFO_ORDER_NOT_FOLLOWED, oldest_heats=", ".join(oldest_heats)
            ))

        return result


# =============================================================================
# TRACEABILITY
# =============================================================================

SO_SOURCE_QUOTATION_STATUSES = (QuotationStatus.APPROVED, QuotationStatus.SENT)
GRN_BLOCKED_PO_STATUSES = (POStatus.DRAFT, POStatus.CANCELLED)
DISPATCHABLE_SO_STATUSES = (SOStatus.OPEN, SOStatus.PARTIALLY_DISPATCHED)


class TraceabilityValidator:
    """Every document must link to a properly staged predecessor"""

    @staticmethod
    def _sales_order(db: Session, data: TraceabilityRequest, result: ValidationResult):
        if not data.quotation_id and not data.customer_po_no:
            result.errors.append(violation(RuleCode.SO_REFERENCE_REQUIRED))

        if data.quotation_id:
            quotation = db.query(Quotation).filter(Quotation.id == data.quotation_id).first()
            if not quotation:
                result.errors.append(violation(RuleCode.QUOTATION_LINK_NOT_FOUND))
            elif quotation.status not in SO_SOURCE_QUOTATION_STATUSES:
                result.errors.append(violation(
                    RuleCode.QUOTATION_NOT_CONVERTIBLE,
                    number=quotation.quotation_no,
                    status=quotation.status.value,
                ))

    @staticmethod
    def _purchase_order(db: Session, data: TraceabilityRequest, result: ValidationResult):
        # PR link is optional
        if data.pr_id:
            pr = db.query(PurchaseRequisition).filter(PurchaseRequisition.id == data.pr_id).first()
            if not pr:
                result.errors.append(violation(RuleCode.PR_LINK_NOT_FOUND))
            elif pr.status != PRStatus.APPROVED:
                result.errors.append(violation(RuleCode.PR_NOT_APPROVED))

    @staticmethod
    def _grn(db: Session, data: TraceabilityRequest, result: ValidationResult):
        if not data.po_id:
            result.errors.append(violation(RuleCode.GRN_PO_REQUIRED))
            return

        po = db.query(PurchaseOrder).filter(PurchaseOrder.id == data.po_id).first()
        if not po:
            result.errors.append(violation(RuleCode.PO_LINK_NOT_FOUND))
        elif po.status in GRN_BLOCKED_PO_STATUSES:
            result.errors.append(violation(
                RuleCode.PO_NOT_RECEIVABLE, status_label=po.status.value.lower(), number=po.po_no
            ))

    @staticmethod
    def _dispatch(db: Session, data: TraceabilityRequest, result: ValidationResult):
        if not data.so_id:
            result.errors.append(violation(RuleCode.DISPATCH_SO_REQUIRED))
            return

        so = db.query(SalesOrder).filter(SalesOrder.id == data.so_id).first()
        if not so:
            result.errors.append(violation(RuleCode.SO_LINK_NOT_FOUND))
        elif so.status not in DISPATCHABLE_SO_STATUSES:
            result.errors.append(violation(
                RuleCode.SO_NOT_DISPATCHABLE, number=so.so_no, status=so.status.value
            ))

    HANDLERS: Dict[TraceableEntity, Callable] = {}

    @classmethod
    def validate(cls, db: Session, entity_type, data: Union[TraceabilityRequest, dict]) -> ValidationResult:
        result = ValidationResult()
        kind = _coerce(TraceableEntity, entity_type)
        if kind is None:
            result.errors.append(violation(RuleCode.NOT_FOUND, entity=f"Entity type {entity_type}"))
            return result
        if not isinstance(data, TraceabilityRequest):
            data = TraceabilityRequest(**(data or {}))
        try:
            cls.HANDLERS[kind](db, data, result)
        except SQLAlchemyError:
            logger.exception("Traceability validation failed for %s", kind.value)
            return system_error_result("Traceability validation")
        return result


TraceabilityValidator.HANDLERS = {
    TraceableEntity.SALES_ORDER: TraceabilityValidator._sales_order,
    TraceableEntity.PURCHASE_ORDER: TraceabilityValidator._purchase_order,
    TraceableEntity.GRN: TraceabilityValidator._grn,
    TraceableEntity.DISPATCH: TraceabilityValidator._dispatch,
}


# =============================================================================
# APPROVAL POLICY
# =============================================================================

class ApprovalPolicy:
    """Threshold decision; no state of its own"""

    THRESHOLD_FIELDS: Dict[ApprovalEntity, str] = {
        ApprovalEntity.QUOTATION: "quotation_threshold",
        ApprovalEntity.PURCHASE_ORDER: "po_threshold",
        ApprovalEntity.PURCHASE_REQUISITION: "pr_threshold",
    }

    @classmethod
    def threshold(cls, entity_type, config: Optional[ApprovalConfig] = None) -> Optional[Decimal]:
        kind = _coerce(ApprovalEntity, entity_type)
        if kind is None:
            return None
        return getattr(config or ApprovalConfig(), cls.THRESHOLD_FIELDS[kind])

    @classmethod
    def requires_approval(cls, entity_type, amount, config: Optional[ApprovalConfig] = None) -> bool:
        limit = cls.threshold(entity_type, config)
        if limit is None:
            return False
        return Decimal(str(amount)) > limit


# =============================================================================
# DATA INTEGRITY
# =============================================================================

def validate_data_integrity(entity_type, data: Union[DataIntegrityRequest, dict]) -> ValidationResult:
    """Required foreign keys per document type"""
    result = ValidationResult()
    if not isinstance(data, DataIntegrityRequest):
        data = DataIntegrityRequest(**(data or {}))

    kind = _coerce(IntegrityEntity, entity_type)
    if kind == IntegrityEntity.QUOTATION and not data.customer_id:
        result.errors.append(violation(RuleCode.CUSTOMER_REQUIRED))
    elif kind == IntegrityEntity.PURCHASE_ORDER and not data.vendor_id:
        result.errors.append(violation(RuleCode.VENDOR_REQUIRED))
    elif kind == IntegrityEntity.GRN and not _present(data.heat_no):
        result.errors.append(violation(RuleCode.HEAT_NO_REQUIRED))
    return result


# =============================================================================
# FUNCTION-STYLE ENTRY POINTS
# =============================================================================

def validate_mandatory_attachments(db: Session, entity_type, entity_id: int) -> ValidationResult:
    return MandatoryAttachmentValidator.validate(db, entity_type, entity_id)


def can_delete_record(db: Session, entity_type, entity_id: int) -> ValidationResult:
    return DeletionGuard.can_delete(db, entity_type, entity_id)


def validate_fifo_reservation(db: Session, product: str, size_label: str, heat_numbers: Sequence[str]) -> ValidationResult:
    return FIFOAllocationValidator.validate(db, product, size_label, heat_numbers)


def validate_traceability(db: Session, entity_type, data) -> ValidationResult:
    return TraceabilityValidator.validate(db, entity_type, data)


def requires_approval(entity_type, amount, config: Optional[ApprovalConfig] = None) -> bool:
    return ApprovalPolicy.requires_approval(entity_type, amount, config)
