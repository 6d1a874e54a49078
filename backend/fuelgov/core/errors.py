"""Typed governance errors.

Every failure the engine reports is one of these. Each carries a stable
``code`` for API clients and the HTTP ``status_code`` the web layer maps it
to. None of them are raised after a partial write: services validate first
and roll back on anything unexpected.

    GovernanceError
    ├── InvalidPolicy           422
    ├── InvalidTransition       409
    │   ├── NoActiveStep        409
    │   └── ConcurrencyConflict 409
    ├── Unauthorized            403
    ├── SelfApprovalForbidden   403
    └── NotFound                404
"""


class GovernanceError(Exception):
    code = "governance_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.details:
            body["context"] = {k: str(v) for k, v in self.details.items()}
        return body


class InvalidPolicy(GovernanceError):
    code = "invalid_policy"
    status_code = 422


class InvalidTransition(GovernanceError):
    code = "invalid_transition"
    status_code = 409


class NoActiveStep(InvalidTransition):
    code = "no_active_step"


class ConcurrencyConflict(InvalidTransition):
    """The request changed underneath us; re-read and retry if still relevant."""

    code = "concurrency_conflict"


class Unauthorized(GovernanceError):
    code = "unauthorized"
    status_code = 403


class SelfApprovalForbidden(GovernanceError):
    code = "self_approval_forbidden"
    status_code = 403


class NotFound(GovernanceError):
    code = "not_found"
    status_code = 404
