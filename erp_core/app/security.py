"""
Capabilities for the document workflow
======================================
Role to permission map. Authentication lives outside this package; callers
pass the role of the user they have already authenticated.
"""

from typing import Dict, Set


class Permission:
    """Approve capability per document type"""

    QUOTATION_APPROVE = "quotation:approve"
    SALES_ORDER_APPROVE = "sales_order:approve"
    PR_APPROVE = "purchase_requisition:approve"
    PO_APPROVE = "purchase_order:approve"
    NCR_APPROVE = "ncr:approve"
    INVOICE_APPROVE = "invoice:approve"


_APPROVE_ALL = {
    Permission.QUOTATION_APPROVE, Permission.SALES_ORDER_APPROVE, Permission.PR_APPROVE,
    Permission.PO_APPROVE, Permission.NCR_APPROVE, Permission.INVOICE_APPROVE,
}

# Roles missing here (SALES, PURCHASE, STORES, QC, ACCOUNTS) may move documents
# along their graphs but cannot approve, reject or verify
ROLE_PERMISSIONS: Dict[str, Set[str]] = {
    "ADMIN": set(_APPROVE_ALL),
    "MANAGEMENT": set(_APPROVE_ALL),
}

APPROVE_PERMISSIONS: Dict[str, str] = {
    "QUOTATION": Permission.QUOTATION_APPROVE,
    "SALES_ORDER": Permission.SALES_ORDER_APPROVE,
    "PURCHASE_REQUISITION": Permission.PR_APPROVE,
    "PURCHASE_ORDER": Permission.PO_APPROVE,
    "NCR": Permission.NCR_APPROVE,
    "INVOICE": Permission.INVOICE_APPROVE,
}


def get_role_permissions(role: str) -> Set[str]:
    """Get permissions for a role"""
    return ROLE_PERMISSIONS.get((role or "").upper(), set())


def has_permission(role: str, permission: str) -> bool:
    return permission in get_role_permissions(role)


def role_can_approve(role: str, document_type) -> bool:
    """document_type is a DocumentType or its value"""
    permission = APPROVE_PERMISSIONS.get(getattr(document_type, "value", document_type))
    return permission is not None and has_permission(role, permission)
