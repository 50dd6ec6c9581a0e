"""
Quotation Revision Chains
=========================
Revisions of one quotation share `quotation_no`. Once one of them is WON it
is the only binding offer, so every sibling that is still live gets
SUPERSEDED. Siblings that reached their own outcome (LOST, CANCELLED,
already SUPERSEDED) are left as they are.

Nothing here commits. Callers run the supersede inside the same
transaction as the WON transition (see DocumentWorkflowService).
"""

import logging
from typing import Dict, List

from sqlalchemy.orm import Session

from ..models import Quotation, QuotationStatus
from .rule_messages import RuleCode, ValidationResult, violation

logger = logging.getLogger(__name__)

# Siblings that are still live but become moot once a revision is WON
SUPERSEDABLE_ON_WIN = (
    QuotationStatus.SENT,
    QuotationStatus.APPROVED,
    QuotationStatus.EXPIRED,
    QuotationStatus.REVISED,
)

# Previous revisions replaced when a newer revision goes out to the customer
SUPERSEDABLE_ON_SEND = (
    QuotationStatus.SENT,
    QuotationStatus.APPROVED,
    QuotationStatus.REVISED,
)

REVISABLE_STATUSES = (
    QuotationStatus.APPROVED,
    QuotationStatus.SENT,
    QuotationStatus.REJECTED,
    QuotationStatus.EXPIRED,
    QuotationStatus.LOST,
)

# A chain may hold only one revision in progress
ACTIVE_DRAFT_STATUSES = (QuotationStatus.DRAFT, QuotationStatus.PENDING_APPROVAL)

MAX_REVISIONS = 99


def _supersede(db: Session, quotation_no: str, keep_id: int, statuses) -> int:
    return db.query(Quotation).filter(
        Quotation.quotation_no == quotation_no,
        Quotation.id != keep_id,
        Quotation.status.in_(statuses),
    ).update(
        {Quotation.status: QuotationStatus.SUPERSEDED},
        synchronize_session="fetch",
    )


def supersede_sibling_revisions(db: Session, quotation_no: str, won_revision_id: int) -> int:
    """
    Supersede the live siblings of a WON revision.

    Idempotent: a second run finds nothing left to update and returns 0.
    Returns the number of revisions updated.
    """
    count = _supersede(db, quotation_no, won_revision_id, SUPERSEDABLE_ON_WIN)
    if count:
        logger.info("Superseded %d revision(s) of %s after revision %s was won",
                    count, quotation_no, won_revision_id)
    return count


def supersede_on_send(db: Session, quotation: Quotation) -> int:
    """When a revision (version > 0) is sent, earlier live revisions are replaced"""
    if not quotation.version:
        return 0
    count = _supersede(db, quotation.quotation_no, quotation.id, SUPERSEDABLE_ON_SEND)
    if count:
        logger.info("Revision %s of %s sent, superseded %d earlier revision(s)",
                    quotation.version, quotation.quotation_no, count)
    return count


def chain_revisions(db: Session, quotation_no: str) -> List[Quotation]:
    return db.query(Quotation).filter(
        Quotation.quotation_no == quotation_no
    ).order_by(Quotation.version.asc()).all()


def validate_revision_request(db: Session, quotation_id: int) -> ValidationResult:
    """Whether a new revision may be created from `quotation_id`"""
    result = ValidationResult()
    original = db.query(Quotation).filter(Quotation.id == quotation_id).first()
    if not original:
        result.errors.append(violation(RuleCode.NOT_FOUND, entity="Quotation"))
        return result

    if original.status not in REVISABLE_STATUSES:
        result.errors.append(violation(
            RuleCode.REVISION_STATUS_NOT_REVISABLE,
            status=original.status.value,
            allowed=", ".join(s.value for s in REVISABLE_STATUSES),
        ))

    revisions = chain_revisions(db, original.quotation_no)
    if any(r.status in ACTIVE_DRAFT_STATUSES and r.id != original.id for r in revisions):
        result.errors.append(violation(RuleCode.REVISION_DRAFT_EXISTS))

    if max(r.version for r in revisions) >= MAX_REVISIONS:
        result.errors.append(violation(RuleCode.REVISION_LIMIT_REACHED, limit=MAX_REVISIONS))

    return result


def find_inconsistent_chains(db: Session) -> Dict[str, List[int]]:
    """
    Chains where a WON revision still has live siblings.

    Left behind when a supersede failed after the WON commit. Maps
    quotation_no to the ids of the WON revisions in that chain.
    """
    won = db.query(Quotation).filter(Quotation.status == QuotationStatus.WON).all()
    broken: Dict[str, List[int]] = {}
    for quotation in won:
        live = db.query(Quotation.id).filter(
            Quotation.quotation_no == quotation.quotation_no,
            Quotation.id != quotation.id,
            Quotation.status.in_(SUPERSEDABLE_ON_WIN),
        ).first()
        if live is not None:
            broken.setdefault(quotation.quotation_no, []).append(quotation.id)
    return broken


def reconcile_revision_chains(db: Session) -> int:
    """Re-run the supersede for every inconsistent chain. Does not commit."""
    total = 0
    for quotation_no, won_ids in find_inconsistent_chains(db).items():
        for won_id in won_ids:
            total += supersede_sibling_revisions(db, quotation_no, won_id)
    return total
