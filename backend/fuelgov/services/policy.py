"""Policy store: validated create/update/soft-delete and lookups.

All functions accept a sync SQLAlchemy Session and commit their own
transaction, writing an audit entry alongside each change.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuelgov.core.errors import InvalidPolicy, NotFound
from fuelgov.models.policy import ApprovalPolicy
from fuelgov.services import audit as audit_svc

logger = logging.getLogger(__name__)

# Fields a configurator may change through update_policy
UPDATABLE_FIELDS = (
    "company_id", "branch_id", "entity_type", "action_type",
    "threshold_amount", "threshold_pct", "approval_steps", "is_enabled",
)


# ─── Step template validation ───

def normalize_step(raw: Any) -> dict:
    """Coerce a step template (dict or pydantic model) into its stored JSON shape."""
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    due_hours = raw.get("due_hours")
    return {
        "step_order": raw.get("step_order"),
        "required_role": raw.get("required_role") or None,
        "required_permission": raw.get("required_permission") or None,
        "due_hours": float(due_hours) if due_hours is not None else None,
        "allow_self_approval": bool(raw.get("allow_self_approval", False)),
    }


def validate_steps(steps: list) -> list[dict]:
    """Validate step templates and return them sorted by step_order.

    Raises:
        InvalidPolicy: no steps, a non-positive or duplicate step_order, a
            negative due_hours, or a step gated by neither role nor permission
            (such a step could never be decided).
    """
    if not steps:
        raise InvalidPolicy("Policy must define at least one approval step.")

    normalized = [normalize_step(s) for s in steps]
    seen: set[int] = set()
    for step in normalized:
        order = step["step_order"]
        if not isinstance(order, int) or isinstance(order, bool) or order < 1:
            raise InvalidPolicy(f"step_order must be a positive integer, got {order!r}.")
        if order in seen:
            raise InvalidPolicy(f"Duplicate step_order {order}.", step_order=order)
        seen.add(order)
        if step["required_role"] is None and step["required_permission"] is None:
            raise InvalidPolicy(
                f"Step {order} has neither required_role nor required_permission.",
                step_order=order,
            )
        if step["due_hours"] is not None and step["due_hours"] < 0:
            raise InvalidPolicy(f"Step {order} has negative due_hours.", step_order=order)

    return sorted(normalized, key=lambda s: s["step_order"])


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _validate_thresholds(threshold_amount, threshold_pct) -> None:
    for name, value in (("threshold_amount", threshold_amount), ("threshold_pct", threshold_pct)):
        if value is not None and value < 0:
            raise InvalidPolicy(f"{name} must not be negative.")


def policy_snapshot(policy: ApprovalPolicy) -> dict:
    return {
        "id": str(policy.id) if policy.id else None,
        "company_id": str(policy.company_id),
        "branch_id": str(policy.branch_id) if policy.branch_id else None,
        "entity_type": policy.entity_type,
        "action_type": policy.action_type,
        "threshold_amount": str(policy.threshold_amount) if policy.threshold_amount is not None else None,
        "threshold_pct": str(policy.threshold_pct) if policy.threshold_pct is not None else None,
        "approval_steps": policy.approval_steps,
        "is_enabled": policy.is_enabled,
        "version": policy.version,
    }


# ─── Create / update / delete ───

def create_policy(db: Session, data: dict, actor_id: uuid.UUID | None = None) -> ApprovalPolicy:
    """Create a policy from a dict of fields (see ApprovalPolicy)."""
    steps = validate_steps(data.get("approval_steps") or [])
    threshold_amount = _to_decimal(data.get("threshold_amount"))
    threshold_pct = _to_decimal(data.get("threshold_pct"))
    _validate_thresholds(threshold_amount, threshold_pct)

    policy = ApprovalPolicy(
        company_id=data["company_id"],
        branch_id=data.get("branch_id"),
        entity_type=data["entity_type"],
        action_type=data["action_type"],
        threshold_amount=threshold_amount,
        threshold_pct=threshold_pct,
        approval_steps=steps,
        is_enabled=data.get("is_enabled", True),
        version=1,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(policy)
    db.flush()

    audit_svc.log(
        db=db,
        action="governance_policy.created",
        entity_type="governance_policy",
        entity_id=policy.id,
        actor_id=actor_id,
        after=policy_snapshot(policy),
    )
    db.commit()

    logger.info(
        "Policy created: id=%s %s/%s company=%s branch=%s steps=%d",
        policy.id, policy.entity_type, policy.action_type,
        policy.company_id, policy.branch_id, len(steps),
    )
    return policy


def update_policy(
    db: Session,
    policy_id: uuid.UUID,
    changes: dict,
    actor_id: uuid.UUID | None = None,
) -> ApprovalPolicy:
    """Apply a partial update and bump the policy version.

    In-flight requests are unaffected: they carry a frozen copy of the steps
    they were created with.
    """
    policy = get_policy(db, policy_id)
    before = policy_snapshot(policy)

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InvalidPolicy(f"Unknown policy fields: {', '.join(sorted(unknown))}.")

    if "approval_steps" in changes:
        changes = {**changes, "approval_steps": validate_steps(changes["approval_steps"] or [])}
    for name in ("threshold_amount", "threshold_pct"):
        if name in changes:
            changes = {**changes, name: _to_decimal(changes[name])}
    _validate_thresholds(
        changes.get("threshold_amount", policy.threshold_amount),
        changes.get("threshold_pct", policy.threshold_pct),
    )
    for required in ("company_id", "entity_type", "action_type", "is_enabled"):
        if required in changes and changes[required] is None:
            raise InvalidPolicy(f"{required} cannot be null.")

    for field, value in changes.items():
        setattr(policy, field, value)
    policy.version = (policy.version or 1) + 1
    policy.updated_by = actor_id
    db.flush()

    audit_svc.log(
        db=db,
        action="governance_policy.updated",
        entity_type="governance_policy",
        entity_id=policy.id,
        actor_id=actor_id,
        before=before,
        after=policy_snapshot(policy),
    )
    db.commit()

    logger.info("Policy updated: id=%s version=%s", policy.id, policy.version)
    return policy


def delete_policy(db: Session, policy_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> ApprovalPolicy:
    """Soft-delete a policy so historical requests keep an auditable reference."""
    policy = get_policy(db, policy_id)
    policy.deleted_at = datetime.now(timezone.utc)
    policy.updated_by = actor_id
    db.flush()

    audit_svc.log(
        db=db,
        action="governance_policy.deleted",
        entity_type="governance_policy",
        entity_id=policy.id,
        actor_id=actor_id,
        before=policy_snapshot(policy),
    )
    db.commit()

    logger.info("Policy soft-deleted: id=%s", policy.id)
    return policy


# ─── Lookups ───

def get_policy(db: Session, policy_id: uuid.UUID) -> ApprovalPolicy:
    policy = db.execute(
        select(ApprovalPolicy).where(
            ApprovalPolicy.id == policy_id,
            ApprovalPolicy.deleted_at.is_(None),
        )
    ).scalars().first()
    if policy is None:
        raise NotFound(f"Policy {policy_id} not found.", policy_id=policy_id)
    return policy


def list_policies(
    db: Session,
    company_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
    include_disabled: bool = False,
) -> list[ApprovalPolicy]:
    """Return non-deleted policies, enabled only unless include_disabled."""
    stmt = select(ApprovalPolicy).where(ApprovalPolicy.deleted_at.is_(None))
    if not include_disabled:
        stmt = stmt.where(ApprovalPolicy.is_enabled.is_(True))
    if company_id is not None:
        stmt = stmt.where(ApprovalPolicy.company_id == company_id)
    if branch_id is not None:
        stmt = stmt.where(ApprovalPolicy.branch_id == branch_id)
    if entity_type is not None:
        stmt = stmt.where(ApprovalPolicy.entity_type == entity_type)
    if action_type is not None:
        stmt = stmt.where(ApprovalPolicy.action_type == action_type)

    stmt = stmt.order_by(
        ApprovalPolicy.entity_type,
        ApprovalPolicy.action_type,
        ApprovalPolicy.created_at,
    )
    return list(db.execute(stmt).scalars().all())
