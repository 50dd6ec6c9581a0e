import itertools
import os
from datetime import date
from decimal import Decimal

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from erp_core.app.db import Base  # noqa: E402
from erp_core.app.models import (  # noqa: E402
    Quotation, QuotationStatus, SalesOrder, SOStatus, PackingList,
    Invoice, InvoiceStatus, PaymentReceipt, PurchaseRequisition, PRStatus,
    PurchaseOrder, POStatus, GoodsReceiptNote, GRNItem, Inspection,
    InspectionResult, NCR, NCRStatus, InventoryStock, StockStatus,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


class BrokenSession:
    """Session stand-in whose every query fails"""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture
def broken_db():
    return BrokenSession()


class Factory:
    """Builds committed documents for rule tests"""

    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def _no(self, prefix):
        return f"{prefix}-{next(self._seq):04d}"

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    # Sales side

    def quotation(self, status=QuotationStatus.DRAFT, quotation_no=None, version=0,
                  grand_total=Decimal("0"), customer_id=1):
        return self._save(Quotation(
            quotation_no=quotation_no or self._no("QTN"),
            version=version,
            status=status,
            grand_total=grand_total,
            customer_id=customer_id,
        ))

    def sales_order(self, quotation=None, status=SOStatus.OPEN, customer_po_no="CUST-PO-1"):
        return self._save(SalesOrder(
            so_no=self._no("SO"),
            quotation_id=quotation.id if quotation else None,
            customer_po_no=customer_po_no,
            status=status,
        ))

    def packing_list(self, sales_order):
        return self._save(PackingList(pl_no=self._no("PL"), sales_order_id=sales_order.id))

    def invoice(self, sales_order=None, status=InvoiceStatus.DRAFT):
        return self._save(Invoice(
            invoice_no=self._no("INV"),
            sales_order_id=sales_order.id if sales_order else None,
            status=status,
        ))

    def payment(self, invoice, amount=Decimal("1000")):
        return self._save(PaymentReceipt(receipt_no=self._no("RCPT"), invoice_id=invoice.id, amount=amount))

    # Purchase side

    def requisition(self, status=PRStatus.DRAFT, total_amount=Decimal("0")):
        return self._save(PurchaseRequisition(pr_no=self._no("PR"), status=status, total_amount=total_amount))

    def purchase_order(self, status=POStatus.DRAFT, requisition=None, total_amount=Decimal("0"), vendor_id=1):
        return self._save(PurchaseOrder(
            po_no=self._no("PO"),
            status=status,
            pr_id=requisition.id if requisition else None,
            total_amount=total_amount,
            vendor_id=vendor_id,
        ))

    def grn(self, purchase_order=None):
        purchase_order = purchase_order or self.purchase_order(status=POStatus.OPEN)
        return self._save(GoodsReceiptNote(grn_no=self._no("GRN"), po_id=purchase_order.id))

    def grn_item(self, grn=None, heat_no="H-1", product="SMLS PIPE", size_label="2\" SCH 40",
                 mtc_no="MTC-1", mtc_document_path="/uploads/mtc-1.pdf", mtc_date=None):
        grn = grn or self.grn()
        return self._save(GRNItem(
            grn_id=grn.id,
            heat_no=heat_no,
            product=product,
            size_label=size_label,
            quantity_mtr=Decimal("100"),
            mtc_no=mtc_no,
            mtc_document_path=mtc_document_path,
            mtc_date=mtc_date,
        ))

    # Quality and inventory

    def inspection(self, grn_item=None, overall_result=InspectionResult.PENDING, report_path=None):
        return self._save(Inspection(
            inspection_no=self._no("INSP"),
            grn_item_id=grn_item.id if grn_item else None,
            overall_result=overall_result,
            report_path=report_path,
        ))

    def ncr(self, status=NCRStatus.OPEN, evidence_paths=None, **fields):
        return self._save(NCR(ncr_no=self._no("NCR"), status=status, evidence_paths=evidence_paths, **fields))

    def stock(self, heat_no, mtc_date, product="SMLS PIPE", size_label="2\" SCH 40",
              status=StockStatus.ACCEPTED, quantity_mtr=Decimal("50"), grn_item=None):
        return self._save(InventoryStock(
            heat_no=heat_no,
            product=product,
            size_label=size_label,
            status=status,
            quantity_mtr=quantity_mtr,
            mtc_date=mtc_date,
            grn_item_id=grn_item.id if grn_item else None,
        ))


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from erp_core.app.db import get_db
    from erp_core.app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make(db):
    return Factory(db)


@pytest.fixture
def dates():
    return {
        "oldest": date(2024, 1, 10),
        "middle": date(2024, 3, 5),
        "newest": date(2024, 6, 20),
    }
