"""
Rule Violations
===============
Business rules report what went wrong as a `RuleViolation` (a code plus the
parameters the message needs). `render_violation` produces the default
English sentence; other front ends can render the same codes their own way.
"""

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class RuleCode(str, Enum):
    # Generic
    NOT_FOUND = "not_found"
    SYSTEM_ERROR = "system_error"

    # Status transitions
    INVALID_TRANSITION = "invalid_transition"
    REMARKS_REQUIRED = "remarks_required"
    LOST_REASON_REQUIRED = "lost_reason_required"
    APPROVE_CAPABILITY_REQUIRED = "approve_capability_required"
    NCR_CLOSURE_FIELDS_REQUIRED = "ncr_closure_fields_required"

    # Mandatory attachments
    MTC_REQUIRED = "mtc_required"
    INSPECTION_REPORT_REQUIRED = "inspection_report_required"
    NCR_EVIDENCE_REQUIRED = "ncr_evidence_required"

    # Deletion
    QUOTATION_APPROVED = "quotation_approved"
    QUOTATION_HAS_SALES_ORDERS = "quotation_has_sales_orders"
    PO_OPEN_OR_RECEIVED = "po_open_or_received"
    PO_MATERIAL_RECEIVED = "po_material_received"
    SO_DISPATCHED_OR_INVOICED = "so_dispatched_or_invoiced"
    SO_CLOSED = "so_closed"
    INVOICE_NOT_DELETABLE = "invoice_not_deletable"
    INVOICE_HAS_PAYMENTS = "invoice_has_payments"
    GRN_INSPECTED = "grn_inspected"
    GRN_IN_INVENTORY = "grn_in_inventory"

    # FIFO
    NO_STOCK_AVAILABLE = "no_stock_available"
    FIFO_ORDER_NOT_FOLLOWED = "fifo_order_not_followed"

    # Traceability
    SO_REFERENCE_REQUIRED = "so_reference_required"
    QUOTATION_LINK_NOT_FOUND = "quotation_link_not_found"
    QUOTATION_NOT_CONVERTIBLE = "quotation_not_convertible"
    PR_LINK_NOT_FOUND = "pr_link_not_found"
    PR_NOT_APPROVED = "pr_not_approved"
    GRN_PO_REQUIRED = "grn_po_required"
    PO_LINK_NOT_FOUND = "po_link_not_found"
    PO_NOT_RECEIVABLE = "po_not_receivable"
    DISPATCH_SO_REQUIRED = "dispatch_so_required"
    SO_LINK_NOT_FOUND = "so_link_not_found"
    SO_NOT_DISPATCHABLE = "so_not_dispatchable"

    # Data integrity
    CUSTOMER_REQUIRED = "customer_required"
    VENDOR_REQUIRED = "vendor_required"
    HEAT_NO_REQUIRED = "heat_no_required"

    # Revision chains
    REVISION_STATUS_NOT_REVISABLE = "revision_status_not_revisable"
    REVISION_DRAFT_EXISTS = "revision_draft_exists"
    REVISION_LIMIT_REACHED = "revision_limit_reached"


RULE_MESSAGES: Dict[RuleCode, str] = {
    RuleCode.NOT_FOUND: "{entity} not found",
    RuleCode.SYSTEM_ERROR: "{check} check failed due to system error",

    RuleCode.INVALID_TRANSITION: "Invalid status transition from {current} to {requested}",
    RuleCode.REMARKS_REQUIRED: "Remarks are required when rejecting a {document}.",
    RuleCode.LOST_REASON_REQUIRED: "A reason is required when marking a {document} as LOST.",
    RuleCode.APPROVE_CAPABILITY_REQUIRED: "Role '{role}' is not allowed to move a {document} to {requested}.",
    RuleCode.NCR_CLOSURE_FIELDS_REQUIRED: (
        "Root cause, corrective action, preventive action, and disposition are required to close an NCR"
    ),

    RuleCode.MTC_REQUIRED: (
        "MTC (Material Test Certificate) is mandatory. Please upload MTC document and enter MTC number."
    ),
    RuleCode.INSPECTION_REPORT_REQUIRED: "Inspection report document is mandatory before releasing QC result.",
    RuleCode.NCR_EVIDENCE_REQUIRED: (
        "Evidence documents are required for NCR. Please upload photos or reports showing the non-conformance."
    ),

    RuleCode.QUOTATION_APPROVED: "Cannot delete approved quotation {number}. Use 'Void' or 'Cancel' instead.",
    RuleCode.QUOTATION_HAS_SALES_ORDERS: "Cannot delete quotation {number}. It has {count} linked Sales Order(s).",
    RuleCode.PO_OPEN_OR_RECEIVED: "Cannot delete open/received PO {number}. Use 'Cancel' instead with proper reason.",
    RuleCode.PO_MATERIAL_RECEIVED: "Cannot delete PO {number}. Material has been received.",
    RuleCode.SO_DISPATCHED_OR_INVOICED: "Cannot delete SO {number}. Material has been dispatched or invoiced.",
    RuleCode.SO_CLOSED: "Cannot delete closed/dispatched SO {number}.",
    RuleCode.INVOICE_NOT_DELETABLE: (
        "Cannot delete invoice {number}. Invoices cannot be deleted as per compliance requirements. "
        "Use 'Credit Note' for corrections."
    ),
    RuleCode.INVOICE_HAS_PAYMENTS: "Invoice {number} has payment receipts. Deletion is strictly prohibited.",
    RuleCode.GRN_INSPECTED: "Cannot delete GRN {number}. Inspection has been completed.",
    RuleCode.GRN_IN_INVENTORY: "Cannot delete GRN {number}. Material has been added to inventory.",

    RuleCode.NO_STOCK_AVAILABLE: "No available stock found for the selected product and size.",
    RuleCode.FIFO_ORDER_NOT_FOLLOWED: (
        "Warning: Selected heat numbers do not follow FIFO order. "
        "Oldest available heats are: {oldest_heats}. "
        "Consider reserving oldest stock first to maintain FIFO."
    ),

    RuleCode.SO_REFERENCE_REQUIRED: (
        "Sales Order must link to either an approved Quotation or Customer PO reference."
    ),
    RuleCode.QUOTATION_LINK_NOT_FOUND: "Linked quotation not found.",
    RuleCode.QUOTATION_NOT_CONVERTIBLE: (
        'Cannot create SO from quotation {number} with status "{status}". '
        "Quotation must be Approved or Sent."
    ),
    RuleCode.PR_LINK_NOT_FOUND: "Linked Purchase Requisition not found.",
    RuleCode.PR_NOT_APPROVED: "Cannot create PO from unapproved PR. Please get PR approved first.",
    RuleCode.GRN_PO_REQUIRED: "GRN must be linked to a Purchase Order.",
    RuleCode.PO_LINK_NOT_FOUND: "Linked Purchase Order not found.",
    RuleCode.PO_NOT_RECEIVABLE: "Cannot create GRN for {status_label} PO {number}.",
    RuleCode.DISPATCH_SO_REQUIRED: "Dispatch/Packing List must be linked to a Sales Order.",
    RuleCode.SO_LINK_NOT_FOUND: "Linked Sales Order not found.",
    RuleCode.SO_NOT_DISPATCHABLE: "Sales Order {number} must be OPEN or PARTIALLY_DISPATCHED (current: {status}).",

    RuleCode.CUSTOMER_REQUIRED: "Customer is required for quotation.",
    RuleCode.VENDOR_REQUIRED: "Vendor is required for purchase order.",
    RuleCode.HEAT_NO_REQUIRED: "Heat number is mandatory for GRN (traceability requirement).",

    RuleCode.REVISION_STATUS_NOT_REVISABLE: "Cannot revise a quotation with status {status}. Allowed: {allowed}",
    RuleCode.REVISION_DRAFT_EXISTS: (
        "Cannot create a new revision: a draft or pending approval revision already exists in this chain"
    ),
    RuleCode.REVISION_LIMIT_REACHED: "Maximum {limit} revisions reached for this quotation",
}


class RuleViolation(BaseModel):
    """A single broken rule, kept structured until it is shown to someone"""
    code: RuleCode
    params: Dict[str, Any] = Field(default_factory=dict)

    def render(self) -> str:
        return render_violation(self)


def violation(code: RuleCode, **params) -> RuleViolation:
    return RuleViolation(code=code, params=params)


def render_violation(item: RuleViolation) -> str:
    return RULE_MESSAGES[item.code].format(**item.params)


class ValidationResult(BaseModel):
    """
    Outcome of a rule check.

    `errors` block the operation; `warnings` are advisory and never change
    `is_valid`.
    """
    errors: List[RuleViolation] = Field(default_factory=list)
    warnings: List[RuleViolation] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_messages(self) -> List[str]:
        return [render_violation(e) for e in self.errors]

    @property
    def warning_messages(self) -> List[str]:
        return [render_violation(w) for w in self.warnings]

    @property
    def codes(self) -> List[RuleCode]:
        return [e.code for e in self.errors] + [w.code for w in self.warnings]


def system_error_result(check: str = "Validation") -> ValidationResult:
    """Fail-closed result used when the data store could not be read"""
    return ValidationResult(errors=[violation(RuleCode.SYSTEM_ERROR, check=check)])
