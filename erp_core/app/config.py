import os
from decimal import Decimal, InvalidOperation
from typing import Optional

from .services.business_rules import ApprovalConfig


def _env_decimal(name: str) -> Optional[Decimal]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def get_approval_config() -> ApprovalConfig:
    """
    Approval thresholds, with environment overrides:
    APPROVAL_QUOTATION_THRESHOLD, APPROVAL_PO_THRESHOLD, APPROVAL_PR_THRESHOLD.
    """
    overrides = {
        "quotation_threshold": _env_decimal("APPROVAL_QUOTATION_THRESHOLD"),
        "po_threshold": _env_decimal("APPROVAL_PO_THRESHOLD"),
        "pr_threshold": _env_decimal("APPROVAL_PR_THRESHOLD"),
    }
    return ApprovalConfig(**{k: v for k, v in overrides.items() if v is not None})


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
