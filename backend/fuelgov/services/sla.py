"""SLA / overdue calculation for approval steps.

Overdue-ness is derived at read time and never stored. Nothing here mutates
state or escalates; ``find_overdue_steps`` only feeds external pollers.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuelgov.models.approval import ApprovalRequest, ApprovalStep, RequestStatus, StepStatus

logger = logging.getLogger(__name__)


def compute_due_at(activated_at: datetime, due_hours: Decimal | float | int | None) -> datetime | None:
    """Due time for a step that became active at ``activated_at``."""
    if due_hours is None:
        return None
    return activated_at + timedelta(hours=float(due_hours))


def is_overdue(step: ApprovalStep, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return (
        step.status == StepStatus.pending.value
        and step.due_at is not None
        and now > step.due_at
    )


def overdue_summary(request: ApprovalRequest, now: datetime | None = None) -> bool:
    """Request-level "Overdue" badge.

    Checks every pending step rather than only the active one.
    """
    now = now or datetime.now(timezone.utc)
    return any(is_overdue(step, now) for step in request.steps)


def find_overdue_steps(
    db: Session,
    now: datetime | None = None,
    company_id: uuid.UUID | None = None,
) -> list[ApprovalStep]:
    """Return pending steps of submitted requests whose due time has passed.

    Args:
        db: Synchronous SQLAlchemy session.
        now: Evaluation time (defaults to current UTC time).
        company_id: Restrict to one company.

    Returns:
        Steps ordered by due_at ascending (most overdue first).
    """
    now = now or datetime.now(timezone.utc)
    stmt = (
        select(ApprovalStep)
        .join(ApprovalRequest, ApprovalStep.approval_request_id == ApprovalRequest.id)
        .where(
            ApprovalRequest.deleted_at.is_(None),
            ApprovalRequest.status == RequestStatus.submitted.value,
            ApprovalStep.status == StepStatus.pending.value,
            ApprovalStep.due_at.is_not(None),
            ApprovalStep.due_at < now,
        )
        .order_by(ApprovalStep.due_at.asc())
    )
    if company_id is not None:
        stmt = stmt.where(ApprovalRequest.company_id == company_id)

    steps = list(db.execute(stmt).scalars().all())
    logger.debug("find_overdue_steps: %d overdue at %s", len(steps), now.isoformat())
    return steps
