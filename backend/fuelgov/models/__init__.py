from fuelgov.models.policy import ApprovalPolicy
from fuelgov.models.approval import (
    ApprovalRequest,
    ApprovalStep,
    RequestStatus,
    StepStatus,
    TERMINAL_STATUSES,
)
from fuelgov.models.audit import AuditLog

__all__ = [
    "ApprovalPolicy",
    "ApprovalRequest", "ApprovalStep", "RequestStatus", "StepStatus", "TERMINAL_STATUSES",
    "AuditLog",
]
