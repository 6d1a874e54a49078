"""Step decision engine: who may decide the active step, and what follows.

A decision is one transaction: the step outcome, the resulting request status
or next-step activation, the audit entry and any business-action hook are
committed together or not at all.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from fuelgov.core.errors import (
    InvalidTransition,
    NoActiveStep,
    SelfApprovalForbidden,
    Unauthorized,
)
from fuelgov.models.approval import ApprovalRequest, ApprovalStep, RequestStatus, StepStatus
from fuelgov.services import audit as audit_svc
from fuelgov.services.actors import Actor
from fuelgov.services.approval import (
    activate_step,
    active_step,
    guarded_write,
    get_request,
    request_snapshot,
)
from fuelgov.services.effects import apply_effects

logger = logging.getLogger(__name__)

DECISIONS = ("approve", "reject")


# ─── Gate checks ───

def check_self_approval(request: ApprovalRequest, step: ApprovalStep, actor: Actor) -> None:
    """Requesters may not decide steps on their own request unless the step allows it."""
    if str(request.requested_by) == str(actor.id) and not step.allow_self_approval:
        raise SelfApprovalForbidden(
            "Requester cannot decide a step on their own request.",
            request_id=request.id,
            step_order=step.step_order,
        )


def check_gate(step: ApprovalStep, actor: Actor) -> None:
    """Raise Unauthorized unless the actor satisfies every requirement of the step.

    Permission and role are both enforced when both are set. A step with
    neither cannot be decided by anyone.
    """
    if step.required_permission is None and step.required_role is None:
        raise Unauthorized(
            f"Step {step.step_order} has no role or permission gate and cannot be decided.",
            step_order=step.step_order,
        )
    if step.required_permission is not None and not actor.has_permission(step.required_permission):
        raise Unauthorized(
            f"Missing permission: {step.required_permission}",
            step_order=step.step_order,
        )
    if step.required_role is not None and actor.role != step.required_role:
        raise Unauthorized(
            f"Missing role: {step.required_role}",
            step_order=step.step_order,
        )


def can_decide(request: ApprovalRequest, actor: Actor) -> bool:
    """Whether ``actor`` could decide the request's active step right now."""
    step = active_step(request)
    if step is None:
        return False
    try:
        check_self_approval(request, step, actor)
        check_gate(step, actor)
    except (SelfApprovalForbidden, Unauthorized):
        return False
    return True


# ─── Decide ───

def decide_step(
    db: Session,
    request_id: uuid.UUID,
    actor: Actor,
    decision: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> ApprovalRequest:
    """Approve or reject the active step of a submitted request.

    Args:
        db: Sync SQLAlchemy session.
        request_id: Request to act on.
        actor: Deciding actor, resolved at call time.
        decision: "approve" or "reject".
        reason: Optional decision note stored on the step.
        now: Decision time (defaults to current UTC time).

    Returns:
        The updated ApprovalRequest.

    Raises:
        NotFound: unknown request.
        NoActiveStep: request already finished or nothing is pending.
        InvalidTransition: request is still a draft.
        ValueError: decision is not approve/reject.
        SelfApprovalForbidden: requester deciding their own step.
        Unauthorized: actor does not satisfy the step's gate.
        ConcurrencyConflict: someone else changed the request meanwhile.
    """
    if decision not in DECISIONS:
        raise ValueError(f"Invalid decision '{decision}'. Must be 'approve' or 'reject'.")

    now = now or datetime.now(timezone.utc)

    with guarded_write(db, request_id):
        request = get_request(db, request_id, for_update=True)

        if request.is_terminal:
            raise NoActiveStep(
                f"Request is already {request.status}; nothing left to decide.",
                request_id=request.id,
            )
        if request.status != RequestStatus.submitted.value:
            raise InvalidTransition(
                f"Request must be submitted before steps can be decided (status={request.status}).",
                request_id=request.id,
            )
        step = active_step(request)
        if step is None:
            raise NoActiveStep("No pending step to decide.", request_id=request.id)

        check_self_approval(request, step, actor)
        check_gate(step, actor)

        before = request_snapshot(request)
        step.decided_by = actor.id
        step.decided_at = now
        step.decision_reason = reason
        request.updated_at = now
        next_step = None

        if decision == "reject":
            step.status = StepStatus.rejected.value
            for other in request.steps:
                if other.status == StepStatus.pending.value:
                    other.status = StepStatus.skipped.value
            request.status = RequestStatus.rejected.value
        else:
            step.status = StepStatus.approved.value
            next_step = active_step(request)
            if next_step is None:
                request.status = RequestStatus.approved.value
            else:
                activate_step(next_step, now)
        db.flush()

        audit_svc.log(
            db=db,
            action=f"approval_request.step_{'approved' if decision == 'approve' else 'rejected'}",
            entity_type="approval_request",
            entity_id=request.id,
            actor_id=actor.id,
            before=before,
            after={
                **request_snapshot(request),
                "decided_step": step.step_order,
                "next_step": next_step.step_order if next_step else None,
            },
            notes=reason,
        )

        if request.is_terminal:
            apply_effects(db, request, request.status, actor)

    logger.info(
        "Approval decision: request=%s step=%s decision=%s actor=%s status=%s",
        request.id, step.step_order, decision, actor.id, request.status,
    )
    return request
