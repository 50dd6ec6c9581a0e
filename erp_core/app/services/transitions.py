"""
Status Transition Guard
=======================
One finite state machine per document type. A transition is legal only when
the requested status is listed under the current status; a status with no
entry (or an empty set) is terminal.

The guard is a pure decision. Mandatory fields (rejection remarks, lost
reason) are checked separately by `check_transition_fields` so that a caller
gets every missing field at once.
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple, Union

from ..models import (
    QuotationStatus, PRStatus, POStatus, SOStatus, InvoiceStatus, NCRStatus,
)
from .errors import InvalidTransitionError
from .rule_messages import RuleCode, ValidationResult, violation

logger = logging.getLogger(__name__)


class DocumentType(str, Enum):
    QUOTATION = "QUOTATION"
    PURCHASE_REQUISITION = "PURCHASE_REQUISITION"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    SALES_ORDER = "SALES_ORDER"
    NCR = "NCR"
    INVOICE = "INVOICE"


StatusLike = Union[str, Enum]


def _graph(edges: Dict[Enum, Iterable[Enum]]) -> Dict[str, FrozenSet[str]]:
    return {src.value: frozenset(dst.value for dst in targets) for src, targets in edges.items()}


Q = QuotationStatus
QUOTATION_TRANSITIONS = _graph({
    Q.DRAFT: [Q.PENDING_APPROVAL],
    Q.PENDING_APPROVAL: [Q.APPROVED, Q.REJECTED],
    Q.REJECTED: [Q.DRAFT],
    Q.APPROVED: [Q.SENT],
    Q.SENT: [Q.WON, Q.LOST, Q.EXPIRED],
    Q.EXPIRED: [],
    Q.LOST: [],
    Q.WON: [],
    Q.REVISED: [],
    Q.SUPERSEDED: [],
    Q.CANCELLED: [],
})

PR_TRANSITIONS = _graph({
    PRStatus.DRAFT: [PRStatus.PENDING_APPROVAL],
    PRStatus.PENDING_APPROVAL: [PRStatus.APPROVED, PRStatus.REJECTED],
    PRStatus.REJECTED: [PRStatus.DRAFT],
    PRStatus.APPROVED: [PRStatus.CLOSED],
    PRStatus.CLOSED: [],
    PRStatus.CANCELLED: [],
})

P = POStatus
PO_TRANSITIONS = _graph({
    P.DRAFT: [P.PENDING_APPROVAL, P.CANCELLED],
    # Approval opens the PO, rejection sends it back to DRAFT
    P.PENDING_APPROVAL: [P.OPEN, P.DRAFT],
    P.OPEN: [P.SENT_TO_VENDOR, P.PARTIALLY_RECEIVED, P.FULLY_RECEIVED, P.CANCELLED],
    P.SENT_TO_VENDOR: [P.PARTIALLY_RECEIVED, P.FULLY_RECEIVED, P.CANCELLED],
    P.PARTIALLY_RECEIVED: [P.FULLY_RECEIVED, P.CLOSED],
    P.FULLY_RECEIVED: [P.CLOSED],
    P.CLOSED: [],
    P.CANCELLED: [],
})

SO_TRANSITIONS = _graph({
    SOStatus.OPEN: [SOStatus.PARTIALLY_DISPATCHED, SOStatus.FULLY_DISPATCHED, SOStatus.CANCELLED],
    SOStatus.PARTIALLY_DISPATCHED: [SOStatus.FULLY_DISPATCHED],
    SOStatus.FULLY_DISPATCHED: [SOStatus.CLOSED],
    SOStatus.CLOSED: [],
    SOStatus.CANCELLED: [],
})

NCR_TRANSITIONS = _graph({
    NCRStatus.OPEN: [NCRStatus.UNDER_INVESTIGATION],
    NCRStatus.UNDER_INVESTIGATION: [NCRStatus.CORRECTIVE_ACTION_IN_PROGRESS],
    NCRStatus.CORRECTIVE_ACTION_IN_PROGRESS: [NCRStatus.CLOSED],
    NCRStatus.CLOSED: [NCRStatus.VERIFIED],
    NCRStatus.VERIFIED: [],
})

INVOICE_TRANSITIONS = _graph({
    InvoiceStatus.DRAFT: [InvoiceStatus.SENT, InvoiceStatus.CANCELLED],
    InvoiceStatus.SENT: [InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID],
    InvoiceStatus.PARTIALLY_PAID: [InvoiceStatus.PAID],
    InvoiceStatus.PAID: [],
    InvoiceStatus.CANCELLED: [],
})

TRANSITIONS: Dict[DocumentType, Dict[str, FrozenSet[str]]] = {
    DocumentType.QUOTATION: QUOTATION_TRANSITIONS,
    DocumentType.PURCHASE_REQUISITION: PR_TRANSITIONS,
    DocumentType.PURCHASE_ORDER: PO_TRANSITIONS,
    DocumentType.SALES_ORDER: SO_TRANSITIONS,
    DocumentType.NCR: NCR_TRANSITIONS,
    DocumentType.INVOICE: INVOICE_TRANSITIONS,
}

# (document type, from, to) moves that count as a rejection besides "-> REJECTED"
REJECTION_MOVES = {
    (DocumentType.PURCHASE_ORDER, P.PENDING_APPROVAL.value, P.DRAFT.value),
}

# (document type, from, to) moves that need the approve capability besides
# "-> APPROVED" and "-> REJECTED"
APPROVAL_MOVES = {
    (DocumentType.PURCHASE_ORDER, P.PENDING_APPROVAL.value, P.OPEN.value),
    (DocumentType.PURCHASE_ORDER, P.PENDING_APPROVAL.value, P.DRAFT.value),
    (DocumentType.NCR, NCRStatus.CLOSED.value, NCRStatus.VERIFIED.value),
}

DOCUMENT_LABELS = {
    DocumentType.QUOTATION: "quotation",
    DocumentType.PURCHASE_REQUISITION: "purchase requisition",
    DocumentType.PURCHASE_ORDER: "purchase order",
    DocumentType.SALES_ORDER: "sales order",
    DocumentType.NCR: "NCR",
    DocumentType.INVOICE: "invoice",
}


def status_value(status: Optional[StatusLike]) -> Optional[str]:
    if status is None:
        return None
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


def _document_type(document_type) -> Optional[DocumentType]:
    try:
        return DocumentType(status_value(document_type))
    except ValueError:
        return None


def _normalize(document_type, current_status, requested_status) -> Tuple[Optional[DocumentType], str, str]:
    return _document_type(document_type), status_value(current_status), status_value(requested_status)


def allowed_transitions(document_type, current_status: StatusLike) -> FrozenSet[str]:
    """Statuses directly reachable from `current_status` (empty when terminal or unknown)"""
    doc_type = _document_type(document_type)
    if doc_type is None:
        return frozenset()
    return TRANSITIONS[doc_type].get(status_value(current_status), frozenset())


def can_transition(document_type, current_status: StatusLike, requested_status: StatusLike) -> bool:
    return status_value(requested_status) in allowed_transitions(document_type, current_status)


def validate_transition(document_type, current_status: StatusLike, requested_status: StatusLike) -> None:
    """
    Raise InvalidTransitionError unless the move is in the document's graph.

    Unknown document types and unknown current statuses fail closed.
    """
    doc_type, current, requested = _normalize(document_type, current_status, requested_status)
    if can_transition(doc_type, current, requested):
        return

    logger.info("Denied %s transition %s -> %s", status_value(document_type), current, requested)
    raise InvalidTransitionError(
        doc_type or document_type,
        current,
        requested,
        [violation(RuleCode.INVALID_TRANSITION, current=current, requested=requested)],
    )


def is_rejection(document_type, current_status: StatusLike, requested_status: StatusLike) -> bool:
    doc_type, current, requested = _normalize(document_type, current_status, requested_status)
    return requested == "REJECTED" or (doc_type, current, requested) in REJECTION_MOVES


def requires_approve_capability(document_type, current_status: StatusLike, requested_status: StatusLike) -> bool:
    doc_type, current, requested = _normalize(document_type, current_status, requested_status)
    if requested in ("APPROVED", "REJECTED"):
        return True
    return (doc_type, current, requested) in APPROVAL_MOVES


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def check_transition_fields(
    document_type,
    current_status: StatusLike,
    requested_status: StatusLike,
    remarks: Optional[str] = None,
    reason: Optional[str] = None,
) -> ValidationResult:
    """
    Mandatory-field checks that sit alongside the transition graph.

    A rejection needs remarks and a LOST outcome needs a reason. Every
    missing field is reported; legality of the move itself is not checked
    here.
    """
    doc_type = _document_type(document_type)
    label = DOCUMENT_LABELS.get(doc_type, status_value(document_type).lower())
    result = ValidationResult()

    if is_rejection(doc_type, current_status, requested_status) and _blank(remarks):
        result.errors.append(violation(RuleCode.REMARKS_REQUIRED, document=label))

    if status_value(requested_status) == "LOST" and _blank(reason):
        result.errors.append(violation(RuleCode.LOST_REASON_REQUIRED, document=label))

    return result
