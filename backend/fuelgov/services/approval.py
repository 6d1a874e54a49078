"""Approval request lifecycle service.

    draft ──submit──▶ submitted ──(last step approved)──▶ approved
      │                  │  └──(any step rejected)─────▶ rejected
      └──────cancel──────┴──(no step approved yet)─────▶ cancelled

Steps are materialized from a frozen copy of the matched policy's templates
when the request is created. The active step is never stored: it is the
pending step with the lowest step_order while the request is submitted.

All functions accept a sync SQLAlchemy Session and run one transaction each.
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from fuelgov.core.config import settings
from fuelgov.core.errors import ConcurrencyConflict, InvalidTransition, NotFound, Unauthorized
from fuelgov.models.approval import ApprovalRequest, ApprovalStep, RequestStatus, StepStatus
from fuelgov.models.policy import ApprovalPolicy
from fuelgov.services import audit as audit_svc
from fuelgov.services.actors import Actor
from fuelgov.services.matcher import match_policy, should_gate
from fuelgov.services.policy import validate_steps
from fuelgov.services.sla import compute_due_at

logger = logging.getLogger(__name__)


# ─── Step helpers ───

def active_step(request: ApprovalRequest) -> ApprovalStep | None:
    """The single decidable step, or None when the request is not submitted."""
    if request.status != RequestStatus.submitted.value:
        return None
    pending = [s for s in request.steps if s.status == StepStatus.pending.value]
    if not pending:
        return None
    return min(pending, key=lambda s: s.step_order)


def activate_step(step: ApprovalStep, now: datetime) -> None:
    """Start the step's SLA clock."""
    step.activated_at = now
    step.due_at = compute_due_at(now, step.due_hours)


def request_snapshot(request: ApprovalRequest) -> dict:
    return {
        "status": request.status,
        "steps": [
            {"step_order": s.step_order, "status": s.status, "decided_by": s.decided_by}
            for s in sorted(request.steps, key=lambda s: s.step_order)
        ],
    }


def _decimal_str(value) -> str | None:
    return str(Decimal(str(value))) if value is not None else None


@contextmanager
def guarded_write(db: Session, request_id: uuid.UUID):
    """Run the block as one transaction on a request and commit it.

    The block is expected to load the request (taking its row lock), check
    preconditions and mutate. Anything raised inside rolls the whole
    transaction back, releasing the lock. A failed optimistic version check
    surfaces as ConcurrencyConflict.
    """
    try:
        yield
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Concurrent update detected on approval request %s", request_id)
        raise ConcurrencyConflict(
            f"Approval request {request_id} was modified concurrently; reload and retry.",
            request_id=request_id,
        ) from None
    except Exception:
        db.rollback()
        raise


# ─── Create ───

def create_request(
    db: Session,
    company_id: uuid.UUID,
    branch_id: uuid.UUID | None,
    entity_type: str,
    entity_id: uuid.UUID,
    action_type: str,
    requested_by: uuid.UUID,
    policy: ApprovalPolicy,
    reason: str | None = None,
    meta: dict | None = None,
    amount: Decimal | float | None = None,
    percentage: Decimal | float | None = None,
    now: datetime | None = None,
) -> ApprovalRequest:
    """Create a draft request with steps copied from ``policy``.

    Steps are all pending and none is active until submit. Approvers are not
    notified here.

    Raises:
        InvalidPolicy: the policy's steps are empty, duplicated or ungated.
    """
    templates = validate_steps(policy.approval_steps or [])
    now = now or datetime.now(timezone.utc)

    request_meta = dict(meta or {})
    request_meta["gate"] = {
        "amount": _decimal_str(amount),
        "percentage": _decimal_str(percentage),
    }
    request_meta["policy"] = {
        "policy_id": str(policy.id) if policy.id else None,
        "policy_version": policy.version,
        "threshold_amount": _decimal_str(policy.threshold_amount),
        "threshold_pct": _decimal_str(policy.threshold_pct),
        "steps": templates,
    }

    request = ApprovalRequest(
        company_id=company_id,
        branch_id=branch_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        policy_id=policy.id,
        status=RequestStatus.draft.value,
        requested_by=requested_by,
        requested_at=now,
        reason=reason,
        meta=request_meta,
    )
    for template in templates:
        due_hours = template["due_hours"]
        request.steps.append(
            ApprovalStep(
                step_order=template["step_order"],
                required_role=template["required_role"],
                required_permission=template["required_permission"],
                due_hours=Decimal(str(due_hours)) if due_hours is not None else None,
                allow_self_approval=template["allow_self_approval"],
                status=StepStatus.pending.value,
            )
        )
    db.add(request)
    db.flush()

    audit_svc.log(
        db=db,
        action="approval_request.draft_created",
        entity_type="approval_request",
        entity_id=request.id,
        actor_id=requested_by,
        after={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action_type": action_type,
            "policy_id": str(policy.id) if policy.id else None,
            "step_count": len(templates),
        },
    )
    db.commit()

    logger.info(
        "Approval request drafted: id=%s %s/%s entity=%s policy=%s steps=%d",
        request.id, entity_type, action_type, entity_id, policy.id, len(templates),
    )
    return request


def request_approval(
    db: Session,
    company_id: uuid.UUID,
    branch_id: uuid.UUID | None,
    entity_type: str,
    entity_id: uuid.UUID,
    action_type: str,
    requested_by: uuid.UUID,
    reason: str | None = None,
    meta: dict | None = None,
    amount: Decimal | float | None = None,
    percentage: Decimal | float | None = None,
    auto_submit: bool = False,
) -> ApprovalRequest | None:
    """Entry point for business-action code about to do something sensitive.

    Returns None when no policy gates the attempt: the caller commits its
    action immediately. Otherwise returns the new request (draft, or
    submitted when ``auto_submit``) and the caller must hold the action until
    the request is approved.
    """
    policy = match_policy(db, company_id, branch_id, entity_type, action_type)
    if policy is None:
        logger.info("Ungated: no policy for %s/%s entity=%s", entity_type, action_type, entity_id)
        return None
    if not should_gate(policy, amount=amount, percentage=percentage):
        logger.info(
            "Ungated: %s/%s entity=%s below thresholds of policy %s",
            entity_type, action_type, entity_id, policy.id,
        )
        return None

    request = create_request(
        db,
        company_id=company_id,
        branch_id=branch_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        requested_by=requested_by,
        policy=policy,
        reason=reason,
        meta=meta,
        amount=amount,
        percentage=percentage,
    )
    if auto_submit:
        request = submit_request(db, request.id, requested_by)
    return request


# ─── Read ───

def get_request(db: Session, request_id: uuid.UUID, for_update: bool = False) -> ApprovalRequest:
    """Load a request with its steps.

    With ``for_update`` the row is locked (where the backend supports it) and
    any copy already in the session is refreshed from the database.
    """
    stmt = (
        select(ApprovalRequest)
        .options(selectinload(ApprovalRequest.steps))
        .where(ApprovalRequest.id == request_id, ApprovalRequest.deleted_at.is_(None))
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    request = db.execute(stmt).scalars().first()
    if request is None:
        raise NotFound(f"Approval request {request_id} not found.", request_id=request_id)
    return request


def list_requests(
    db: Session,
    company_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
    status: str | None = None,
    requested_by: uuid.UUID | None = None,
) -> list[ApprovalRequest]:
    """Return requests matching every given filter, oldest first."""
    stmt = (
        select(ApprovalRequest)
        .options(selectinload(ApprovalRequest.steps))
        .where(ApprovalRequest.deleted_at.is_(None))
    )
    if company_id is not None:
        stmt = stmt.where(ApprovalRequest.company_id == company_id)
    if branch_id is not None:
        stmt = stmt.where(ApprovalRequest.branch_id == branch_id)
    if entity_type is not None:
        stmt = stmt.where(ApprovalRequest.entity_type == entity_type)
    if action_type is not None:
        stmt = stmt.where(ApprovalRequest.action_type == action_type)
    if status is not None:
        stmt = stmt.where(ApprovalRequest.status == status)
    if requested_by is not None:
        stmt = stmt.where(ApprovalRequest.requested_by == requested_by)

    stmt = stmt.order_by(ApprovalRequest.requested_at.asc())
    return list(db.execute(stmt).scalars().all())


# ─── Submit ───

def submit_request(
    db: Session,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    now: datetime | None = None,
) -> ApprovalRequest:
    """Move a draft to submitted and activate its first step.

    Raises:
        NotFound: unknown request.
        InvalidTransition: not a draft (double submit included), or the actor
            is not the requester.
    """
    now = now or datetime.now(timezone.utc)

    with guarded_write(db, request_id):
        request = get_request(db, request_id, for_update=True)

        if request.status != RequestStatus.draft.value:
            raise InvalidTransition(
                f"Only draft requests can be submitted (status={request.status}).",
                request_id=request.id,
            )
        if str(request.requested_by) != str(actor_id):
            raise InvalidTransition(
                "Only the requester can submit this draft.",
                request_id=request.id,
            )

        before = request_snapshot(request)
        request.status = RequestStatus.submitted.value
        request.submitted_at = now
        request.updated_at = now
        first = active_step(request)
        activate_step(first, now)
        db.flush()

        audit_svc.log(
            db=db,
            action="approval_request.submitted",
            entity_type="approval_request",
            entity_id=request.id,
            actor_id=actor_id,
            before=before,
            after={**request_snapshot(request), "active_step": first.step_order, "due_at": first.due_at},
        )

    logger.info(
        "Approval request submitted: id=%s active_step=%s due_at=%s",
        request.id, first.step_order, first.due_at,
    )
    return request


# ─── Cancel ───

def cancel_request(
    db: Session,
    request_id: uuid.UUID,
    actor: Actor,
    reason: str | None = None,
    now: datetime | None = None,
) -> ApprovalRequest:
    """Abandon a request before any approver has signed off.

    Allowed for the requester, or an actor holding the configured cancel
    permission, while the request is a draft or is submitted with no step
    approved yet. Pending steps become skipped.

    Raises:
        NotFound: unknown request.
        InvalidTransition: terminal request, or a step is already approved.
        Unauthorized: actor is neither requester nor holds the permission.
    """
    now = now or datetime.now(timezone.utc)

    with guarded_write(db, request_id):
        request = get_request(db, request_id, for_update=True)

        if request.status not in (RequestStatus.draft.value, RequestStatus.submitted.value):
            raise InvalidTransition(
                f"Cannot cancel request in status {request.status}.",
                request_id=request.id,
            )
        if any(s.status == StepStatus.approved.value for s in request.steps):
            raise InvalidTransition(
                "Cannot cancel a request that already has approved steps.",
                request_id=request.id,
            )
        is_requester = str(request.requested_by) == str(actor.id)
        if not is_requester and not actor.has_permission(settings.GOVERNANCE_CANCEL_PERMISSION):
            raise Unauthorized(
                "Only the requester or an authorized actor can cancel this request.",
                request_id=request.id,
            )

        before = request_snapshot(request)
        request.status = RequestStatus.cancelled.value
        request.updated_at = now
        for step in request.steps:
            if step.status == StepStatus.pending.value:
                step.status = StepStatus.skipped.value
        db.flush()

        audit_svc.log(
            db=db,
            action="approval_request.cancelled",
            entity_type="approval_request",
            entity_id=request.id,
            actor_id=actor.id,
            before=before,
            after=request_snapshot(request),
            notes=reason,
        )

    logger.info("Approval request cancelled: id=%s by=%s", request.id, actor.id)
    return request
