from typing import List, Optional

from .rule_messages import RuleViolation, render_violation


class RuleError(Exception):
    """Base exception for business-rule failures raised to the request layer"""

    status_code = 400

    def __init__(self, violations: List[RuleViolation], message: Optional[str] = None):
        self.violations = violations
        super().__init__(message or "; ".join(render_violation(v) for v in violations))

    @property
    def messages(self) -> List[str]:
        return [render_violation(v) for v in self.violations]


class InvalidTransitionError(RuleError):
    """Requested status is not reachable from the current status"""

    def __init__(self, document_type, current_status, requested_status, violations: List[RuleViolation]):
        self.document_type = document_type
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(violations)


class MissingFieldError(RuleError):
    """A transition is legal but a field it depends on was not supplied"""
    pass


class PermissionDeniedError(RuleError):
    """Caller's role lacks the capability the transition needs"""

    status_code = 403


class DocumentNotFoundError(RuleError):
    status_code = 404
