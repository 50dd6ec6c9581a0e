"""
Pipe ERP Document Models
========================
Persistence for the documents whose lifecycles the business rules govern.

Key Features:
- One status enum per document type
- Quotation revision chains (shared quotation_no, increasing version)
- Heat-number traceability from GRN line to inventory lot
- Downstream links (SO, packing list, invoice, payment) used by the
  deletion and traceability rules
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Numeric, JSON, Enum as SQLEnum, Index, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates
from .db import Base


# =============================================================================
# ENUMS
# =============================================================================

class QuotationStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT = "SENT"
    WON = "WON"
    LOST = "LOST"
    EXPIRED = "EXPIRED"
    REVISED = "REVISED"
    SUPERSEDED = "SUPERSEDED"
    CANCELLED = "CANCELLED"


class PRStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class POStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    OPEN = "OPEN"
    SENT_TO_VENDOR = "SENT_TO_VENDOR"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class SOStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_DISPATCHED = "PARTIALLY_DISPATCHED"
    FULLY_DISPATCHED = "FULLY_DISPATCHED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class NCRStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_INVESTIGATION = "UNDER_INVESTIGATION"
    CORRECTIVE_ACTION_IN_PROGRESS = "CORRECTIVE_ACTION_IN_PROGRESS"
    CLOSED = "CLOSED"
    VERIFIED = "VERIFIED"


class InspectionResult(str, Enum):
    PENDING = "PENDING"
    PASS = "PASS"
    FAIL = "FAIL"
    HOLD = "HOLD"


class StockStatus(str, Enum):
    """Inventory lot statuses"""
    UNDER_INSPECTION = "UNDER_INSPECTION"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    HOLD = "HOLD"
    RESERVED = "RESERVED"
    DISPATCHED = "DISPATCHED"


# =============================================================================
# SALES SIDE
# =============================================================================

class Quotation(Base):
    """
    One revision of a quotation.

    Revisions of the same deal share `quotation_no` and differ by `version`
    (0 for the original offer). Once a revision is WON its live siblings are
    superseded.
    """
    __tablename__ = "quotations"

    id = Column(Integer, primary_key=True, index=True)
    quotation_no = Column(String(50), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=0)
    parent_quotation_id = Column(Integer, ForeignKey("quotations.id"), nullable=True)

    customer_id = Column(Integer, nullable=True)
    status = Column(SQLEnum(QuotationStatus), nullable=False, default=QuotationStatus.DRAFT)
    grand_total = Column(Numeric(15, 2), default=0)

    # Approval / outcome
    approved_by_role = Column(String(50), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    approval_remarks = Column(Text, nullable=True)
    lost_reason = Column(Text, nullable=True)
    sent_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sales_orders = relationship("SalesOrder", back_populates="quotation")

    __table_args__ = (
        UniqueConstraint('quotation_no', 'version', name='uq_quotation_revision'),
        Index('ix_quotation_chain_status', 'quotation_no', 'status'),
    )


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True, index=True)
    so_no = Column(String(50), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True)

    # Traceability - either a quotation or the customer's own PO
    quotation_id = Column(Integer, ForeignKey("quotations.id"), nullable=True)
    customer_po_no = Column(String(100), nullable=True)

    status = Column(SQLEnum(SOStatus), nullable=False, default=SOStatus.OPEN)
    total_amount = Column(Numeric(15, 2), default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quotation = relationship("Quotation", back_populates="sales_orders")
    packing_lists = relationship("PackingList", back_populates="sales_order")
    invoices = relationship("Invoice", back_populates="sales_order")


class PackingList(Base):
    __tablename__ = "packing_lists"

    id = Column(Integer, primary_key=True, index=True)
    pl_no = Column(String(50), unique=True, nullable=False)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    sales_order = relationship("SalesOrder", back_populates="packing_lists")


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_no = Column(String(50), unique=True, nullable=False, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=True)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    total_amount = Column(Numeric(15, 2), default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    sales_order = relationship("SalesOrder", back_populates="invoices")
    payment_receipts = relationship("PaymentReceipt", back_populates="invoice")


class PaymentReceipt(Base):
    __tablename__ = "payment_receipts"

    id = Column(Integer, primary_key=True, index=True)
    receipt_no = Column(String(50), unique=True, nullable=False)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payment_receipts")


# =============================================================================
# PURCHASE SIDE
# =============================================================================

class PurchaseRequisition(Base):
    __tablename__ = "purchase_requisitions"

    id = Column(Integer, primary_key=True, index=True)
    pr_no = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(SQLEnum(PRStatus), nullable=False, default=PRStatus.DRAFT)
    total_amount = Column(Numeric(15, 2), default=0)

    approved_by_role = Column(String(50), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    approval_remarks = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    purchase_orders = relationship("PurchaseOrder", back_populates="purchase_requisition")


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    po_no = Column(String(50), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=0)
    vendor_id = Column(Integer, nullable=True)
    pr_id = Column(Integer, ForeignKey("purchase_requisitions.id"), nullable=True)

    status = Column(SQLEnum(POStatus), nullable=False, default=POStatus.DRAFT)
    total_amount = Column(Numeric(15, 2), default=0)

    approved_by_role = Column(String(50), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    approval_remarks = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    purchase_requisition = relationship("PurchaseRequisition", back_populates="purchase_orders")
    grns = relationship("GoodsReceiptNote", back_populates="purchase_order")

    __table_args__ = (
        UniqueConstraint('po_no', 'version', name='uq_po_amendment'),
    )


class GoodsReceiptNote(Base):
    """
    GRN - inward document for material received against a PO.
    Each line carries the heat number and its MTC.
    """
    __tablename__ = "goods_receipt_notes"

    id = Column(Integer, primary_key=True, index=True)
    grn_no = Column(String(50), unique=True, nullable=False, index=True)
    po_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    received_at = Column(DateTime, default=datetime.utcnow)
    remarks = Column(Text, nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="grns")
    items = relationship("GRNItem", back_populates="grn")


class GRNItem(Base):
    """Individual heat received on a GRN"""
    __tablename__ = "grn_items"

    id = Column(Integer, primary_key=True, index=True)
    grn_id = Column(Integer, ForeignKey("goods_receipt_notes.id"), nullable=False)

    product = Column(String(100), nullable=False)
    size_label = Column(String(100), nullable=True)
    heat_no = Column(String(50), nullable=True, index=True)
    quantity_mtr = Column(Numeric(15, 3), default=0)

    # Material Test Certificate
    mtc_no = Column(String(100), nullable=True)
    mtc_date = Column(Date, nullable=True)
    mtc_document_path = Column(String(500), nullable=True)

    grn = relationship("GoodsReceiptNote", back_populates="items")
    inspections = relationship("Inspection", back_populates="grn_item")
    inventory_stocks = relationship("InventoryStock", back_populates="grn_item")


# =============================================================================
# QUALITY
# =============================================================================

class Inspection(Base):
    __tablename__ = "inspections"

    id = Column(Integer, primary_key=True, index=True)
    inspection_no = Column(String(50), unique=True, nullable=False)
    grn_item_id = Column(Integer, ForeignKey("grn_items.id"), nullable=True)
    overall_result = Column(SQLEnum(InspectionResult), nullable=False, default=InspectionResult.PENDING)
    report_path = Column(String(500), nullable=True)
    inspected_at = Column(DateTime, nullable=True)

    grn_item = relationship("GRNItem", back_populates="inspections")


class NCR(Base):
    """Non-Conformance Report raised against a received heat"""
    __tablename__ = "ncrs"

    id = Column(Integer, primary_key=True, index=True)
    ncr_no = Column(String(50), unique=True, nullable=False)
    grn_item_id = Column(Integer, ForeignKey("grn_items.id"), nullable=True)
    status = Column(SQLEnum(NCRStatus), nullable=False, default=NCRStatus.OPEN)

    description = Column(Text, nullable=True)
    evidence_paths = Column(JSON, nullable=True)  # list of uploaded file paths
    root_cause = Column(Text, nullable=True)
    corrective_action = Column(Text, nullable=True)
    preventive_action = Column(Text, nullable=True)
    disposition = Column(String(50), nullable=True)

    closed_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by_role = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# INVENTORY
# =============================================================================

class InventoryStock(Base):
    """
    A lot of pipe in stock, identified by its heat number.
    The MTC date is the FIFO ordering key.
    """
    __tablename__ = "inventory_stocks"

    id = Column(Integer, primary_key=True, index=True)
    heat_no = Column(String(50), nullable=True, index=True)
    product = Column(String(100), nullable=False)
    size_label = Column(String(100), nullable=False)
    status = Column(SQLEnum(StockStatus), nullable=False, default=StockStatus.UNDER_INSPECTION)
    quantity_mtr = Column(Numeric(15, 3), nullable=False, default=0)
    mtc_date = Column(Date, nullable=True)
    grn_item_id = Column(Integer, ForeignKey("grn_items.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    grn_item = relationship("GRNItem", back_populates="inventory_stocks")

    __table_args__ = (
        CheckConstraint('quantity_mtr >= 0', name='ck_stock_quantity_positive'),
        Index('ix_stock_product_size_status', 'product', 'size_label', 'status'),
    )

    @validates('quantity_mtr')
    def validate_quantity(self, key, value):
        """Prevent negative stock"""
        if value is not None and value < 0:
            raise ValueError("Stock quantity cannot be negative")
        return value
