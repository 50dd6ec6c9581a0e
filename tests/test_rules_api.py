from decimal import Decimal

from erp_core.app.models import POStatus, Quotation, QuotationStatus

API = "/api/v2/rules"


def test_transition_check_lists_next_states(client):
    response = client.post(f"{API}/transitions/validate", json={
        "document_type": "quotation",
        "current_status": "SENT",
        "requested_status": "LOST",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is False
    assert body["errors"] == ["A reason is required when marking a quotation as LOST."]
    assert body["allowed_next"] == ["EXPIRED", "LOST", "WON"]


def test_transition_check_illegal_move(client):
    response = client.post(f"{API}/transitions/validate", json={
        "document_type": "INVOICE",
        "current_status": "PAID",
        "requested_status": "DRAFT",
    })

    body = response.json()
    assert body["allowed"] is False
    assert body["allowed_next"] == []
    assert body["errors"] == ["Invalid status transition from PAID to DRAFT"]


def test_status_change(client, make):
    quotation = make.quotation(status=QuotationStatus.APPROVED)

    response = client.patch(
        f"{API}/documents/quotation/{quotation.id}/status",
        json={"status": "sent", "role": "SALES"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "document_type": "QUOTATION",
        "document_id": quotation.id,
        "previous_status": "APPROVED",
        "status": "SENT",
        "superseded": 0,
    }


def test_status_change_error_mapping(client, make):
    quotation = make.quotation(status=QuotationStatus.PENDING_APPROVAL)
    url = f"{API}/documents/QUOTATION/{quotation.id}/status"

    denied = client.patch(url, json={"status": "APPROVED", "role": "STORES"})
    assert denied.status_code == 403
    assert denied.json()["detail"]["codes"] == ["approve_capability_required"]

    illegal = client.patch(url, json={"status": "WON", "role": "ADMIN"})
    assert illegal.status_code == 400
    assert illegal.json()["detail"]["codes"] == ["invalid_transition"]

    missing = client.patch(f"{API}/documents/QUOTATION/9999/status", json={"status": "SENT", "role": "ADMIN"})
    assert missing.status_code == 404


def test_submit_for_approval(client, make):
    po = make.purchase_order(status=POStatus.DRAFT, total_amount=Decimal("450000"))

    response = client.post(f"{API}/documents/purchase_order/{po.id}/submit", json={"role": "PURCHASE"})

    assert response.status_code == 200
    assert response.json()["status"] == "PENDING_APPROVAL"


def test_attachment_check(client, make):
    item = make.grn_item(mtc_no=None)

    body = client.get(f"{API}/attachments/grn/{item.id}").json()

    assert body["is_valid"] is False
    assert body["codes"] == ["mtc_required"]


def test_deletion_check(client, make):
    invoice = make.invoice()

    body = client.get(f"{API}/deletion/INVOICE/{invoice.id}").json()

    assert body["is_valid"] is False
    assert "Credit Note" in body["errors"][0]


def test_fifo_check_warns(client, make, dates):
    make.stock("H-OLD", dates["oldest"])
    make.stock("H-NEW", dates["newest"])

    body = client.post(f"{API}/fifo/validate", json={
        "product": "SMLS PIPE",
        "size_label": "2\" SCH 40",
        "heat_numbers": ["H-NEW"],
    }).json()

    assert body["is_valid"] is True
    assert body["codes"] == ["fifo_order_not_followed"]
    assert len(body["warnings"]) == 1


def test_traceability_check(client, make):
    po = make.purchase_order(status=POStatus.DRAFT)

    body = client.post(f"{API}/traceability/grn", json={"po_id": po.id}).json()

    assert body["errors"] == [f"Cannot create GRN for draft PO {po.po_no}."]


def test_integrity_check(client):
    body = client.post(f"{API}/integrity/purchase_order", json={}).json()
    assert body["codes"] == ["vendor_required"]


def test_approval_check(client):
    body = client.post(f"{API}/approval/check", json={"entity_type": "quotation", "amount": 100001}).json()
    assert body["requires_approval"] is True
    assert Decimal(str(body["threshold"])) == Decimal("100000")

    body = client.post(f"{API}/approval/check", json={
        "entity_type": "QUOTATION",
        "amount": 100001,
        "config": {"quotation_threshold": 200000},
    }).json()
    assert body["requires_approval"] is False


def test_approval_check_rejects_negative_amount(client):
    response = client.post(f"{API}/approval/check", json={"entity_type": "QUOTATION", "amount": -1})
    assert response.status_code == 422


def test_revisable_check(client, make):
    quotation = make.quotation(status=QuotationStatus.CANCELLED)

    body = client.get(f"{API}/quotations/{quotation.id}/revisable").json()

    assert body["codes"] == ["revision_status_not_revisable"]


def test_supersede_endpoint(client, db, make):
    stale = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-1000", version=0)
    won = make.quotation(status=QuotationStatus.WON, quotation_no="QTN-24-1000", version=1)

    response = client.post(f"{API}/quotations/QTN-24-1000/supersede/{won.id}")

    assert response.status_code == 200
    assert response.json()["superseded"] == 1
    assert db.get(Quotation, stale.id).status == QuotationStatus.SUPERSEDED


def test_supersede_endpoint_needs_a_won_revision(client, make):
    sent = make.quotation(status=QuotationStatus.SENT, quotation_no="QTN-24-1001", version=0)

    assert client.post(f"{API}/quotations/QTN-24-1001/supersede/{sent.id}").status_code == 400
    assert client.post(f"{API}/quotations/QTN-24-1001/supersede/9999").status_code == 404
