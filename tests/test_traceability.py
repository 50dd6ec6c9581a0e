from erp_core.app.models import POStatus, PRStatus, QuotationStatus, SOStatus
from erp_core.app.services.business_rules import TraceabilityRequest, validate_traceability
from erp_core.app.services.rule_messages import RuleCode


def test_sales_order_needs_a_reference(db):
    result = validate_traceability(db, "SALES_ORDER", {})
    assert result.codes == [RuleCode.SO_REFERENCE_REQUIRED]


def test_blank_customer_po_is_no_reference(db):
    result = validate_traceability(db, "SALES_ORDER", {"customer_po_no": "   "})
    assert result.codes == [RuleCode.SO_REFERENCE_REQUIRED]


def test_customer_po_alone_is_enough(db):
    assert validate_traceability(db, "SALES_ORDER", {"customer_po_no": "ONGC/PO/5521"}).is_valid


def test_approved_or_sent_quotation_is_enough(db, make):
    for status in (QuotationStatus.APPROVED, QuotationStatus.SENT):
        quotation = make.quotation(status=status)
        assert validate_traceability(db, "SALES_ORDER", TraceabilityRequest(quotation_id=quotation.id)).is_valid


def test_draft_quotation_cannot_become_an_order(db, make):
    quotation = make.quotation(status=QuotationStatus.DRAFT)
    result = validate_traceability(db, "SALES_ORDER", {"quotation_id": quotation.id})

    assert result.codes == [RuleCode.QUOTATION_NOT_CONVERTIBLE]
    assert 'with status "DRAFT"' in result.error_messages[0]


def test_missing_quotation(db):
    result = validate_traceability(db, "SALES_ORDER", {"quotation_id": 404, "customer_po_no": "PO-1"})
    assert result.codes == [RuleCode.QUOTATION_LINK_NOT_FOUND]


def test_purchase_order_pr_link_is_optional(db, make):
    assert validate_traceability(db, "PURCHASE_ORDER", {}).is_valid

    approved = make.requisition(status=PRStatus.APPROVED)
    assert validate_traceability(db, "PURCHASE_ORDER", {"pr_id": approved.id}).is_valid

    draft = make.requisition(status=PRStatus.DRAFT)
    assert validate_traceability(db, "PURCHASE_ORDER", {"pr_id": draft.id}).codes == [RuleCode.PR_NOT_APPROVED]

    assert validate_traceability(db, "PURCHASE_ORDER", {"pr_id": 999}).codes == [RuleCode.PR_LINK_NOT_FOUND]


def test_grn_needs_a_po(db):
    assert validate_traceability(db, "GRN", {}).codes == [RuleCode.GRN_PO_REQUIRED]
    assert validate_traceability(db, "GRN", {"po_id": 999}).codes == [RuleCode.PO_LINK_NOT_FOUND]


def test_grn_against_cancelled_po(db, make):
    po = make.purchase_order(status=POStatus.CANCELLED)
    result = validate_traceability(db, "GRN", {"po_id": po.id})

    assert not result.is_valid
    assert result.error_messages == [f"Cannot create GRN for cancelled PO {po.po_no}."]


def test_grn_against_open_po(db, make):
    po = make.purchase_order(status=POStatus.OPEN)
    assert validate_traceability(db, "GRN", {"po_id": po.id}).is_valid


def test_dispatch_needs_an_open_sales_order(db, make):
    assert validate_traceability(db, "DISPATCH", {}).codes == [RuleCode.DISPATCH_SO_REQUIRED]
    assert validate_traceability(db, "DISPATCH", {"so_id": 999}).codes == [RuleCode.SO_LINK_NOT_FOUND]

    for status in (SOStatus.OPEN, SOStatus.PARTIALLY_DISPATCHED):
        so = make.sales_order(status=status)
        assert validate_traceability(db, "DISPATCH", {"so_id": so.id}).is_valid

    closed = make.sales_order(status=SOStatus.CLOSED)
    result = validate_traceability(db, "DISPATCH", {"so_id": closed.id})
    assert result.codes == [RuleCode.SO_NOT_DISPATCHABLE]
    assert "current: CLOSED" in result.error_messages[0]


def test_unknown_entity_type(db):
    assert validate_traceability(db, "INVOICE", {}).codes == [RuleCode.NOT_FOUND]


def test_store_failure_fails_closed(broken_db):
    result = validate_traceability(broken_db, "GRN", {"po_id": 1})
    assert not result.is_valid
    assert result.error_messages == ["Traceability validation check failed due to system error"]
