"""
Services package initialization.
Business rules and document workflow for pipe trading operations.
"""

from .rule_messages import (
    RuleCode,
    RuleViolation,
    ValidationResult,
    render_violation,
)
from .errors import (
    RuleError,
    InvalidTransitionError,
    MissingFieldError,
    PermissionDeniedError,
    DocumentNotFoundError,
)
from .transitions import (
    DocumentType,
    TRANSITIONS,
    allowed_transitions,
    can_transition,
    validate_transition,
    check_transition_fields,
)
from .business_rules import (
    ApprovalConfig,
    TraceabilityRequest,
    validate_mandatory_attachments,
    can_delete_record,
    validate_fifo_reservation,
    validate_traceability,
    validate_data_integrity,
    requires_approval,
)
from .revisions import (
    supersede_sibling_revisions,
    validate_revision_request,
    reconcile_revision_chains,
)
from .workflow import DocumentWorkflowService

__all__ = [
    'RuleCode',
    'RuleViolation',
    'ValidationResult',
    'render_violation',
    'RuleError',
    'InvalidTransitionError',
    'MissingFieldError',
    'PermissionDeniedError',
    'DocumentNotFoundError',
    'DocumentType',
    'TRANSITIONS',
    'allowed_transitions',
    'can_transition',
    'validate_transition',
    'check_transition_fields',
    'ApprovalConfig',
    'TraceabilityRequest',
    'validate_mandatory_attachments',
    'can_delete_record',
    'validate_fifo_reservation',
    'validate_traceability',
    'validate_data_integrity',
    'requires_approval',
    'supersede_sibling_revisions',
    'validate_revision_request',
    'reconcile_revision_chains',
    'DocumentWorkflowService',
]
