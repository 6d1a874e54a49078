"""Policy matching and threshold evaluation.

``match_policy`` picks the policy that governs an attempted action;
``should_gate`` decides whether that policy's thresholds require approval for
this particular attempt.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from fuelgov.core.config import settings
from fuelgov.models.policy import ApprovalPolicy

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _recency_key(policy: ApprovalPolicy) -> tuple:
    return (policy.created_at or _EPOCH, str(policy.id or ""))


def select_policy(
    candidates: Iterable[ApprovalPolicy],
    branch_id: uuid.UUID | None,
) -> ApprovalPolicy | None:
    """Pick the most specific policy among already-filtered candidates.

    A policy scoped to ``branch_id`` beats a company-global one. Several
    policies at the same specificity are a configuration error; the most
    recently created wins (then the highest id) so the outcome never changes
    between calls.
    """
    branch_specific: list[ApprovalPolicy] = []
    global_: list[ApprovalPolicy] = []
    for policy in candidates:
        if policy.branch_id is None:
            global_.append(policy)
        elif branch_id is not None and policy.branch_id == branch_id:
            branch_specific.append(policy)

    for tier in (branch_specific, global_):
        if not tier:
            continue
        if len(tier) > 1:
            logger.warning(
                "Ambiguous governance policies for %s/%s: %s; using most recent.",
                tier[0].entity_type, tier[0].action_type,
                ", ".join(str(p.id) for p in tier),
            )
        return max(tier, key=_recency_key)
    return None


def match_policy(
    db: Session,
    company_id: uuid.UUID,
    branch_id: uuid.UUID | None,
    entity_type: str,
    action_type: str,
) -> ApprovalPolicy | None:
    """Return the enabled, non-deleted policy governing this action, or None.

    None means the action is ungated and the caller may commit immediately.
    """
    if not settings.GOVERNANCE_ENABLED:
        return None

    branch_filter = ApprovalPolicy.branch_id.is_(None)
    if branch_id is not None:
        branch_filter = or_(ApprovalPolicy.branch_id == branch_id, branch_filter)

    stmt = select(ApprovalPolicy).where(
        ApprovalPolicy.deleted_at.is_(None),
        ApprovalPolicy.is_enabled.is_(True),
        ApprovalPolicy.company_id == company_id,
        ApprovalPolicy.entity_type == entity_type,
        ApprovalPolicy.action_type == action_type,
        branch_filter,
    )
    candidates = list(db.execute(stmt).scalars().all())
    policy = select_policy(candidates, branch_id)

    logger.debug(
        "match_policy: %s/%s company=%s branch=%s -> %s",
        entity_type, action_type, company_id, branch_id,
        policy.id if policy else None,
    )
    return policy


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    value = value if isinstance(value, Decimal) else Decimal(str(value))
    if not value.is_finite():
        raise ValueError(f"Gate inputs must be finite numbers, got {value}.")
    return value


def should_gate(
    policy: ApprovalPolicy,
    amount: Decimal | float | int | None = None,
    percentage: Decimal | float | int | None = None,
) -> bool:
    """Decide whether this attempt needs approval under ``policy``.

    - No thresholds: always gate.
    - threshold_amount: gate when amount >= threshold (no amount, no gate).
    - threshold_pct: gate when percentage >= threshold (ratio, 0.10 = 10%).
    - Both: gate when either is met.

    Raises ValueError for NaN or infinite inputs.
    """
    threshold_amount = _to_decimal(policy.threshold_amount)
    threshold_pct = _to_decimal(policy.threshold_pct)

    if threshold_amount is None and threshold_pct is None:
        return True

    amount = _to_decimal(amount)
    percentage = _to_decimal(percentage)

    amount_met = (
        threshold_amount is not None and amount is not None and amount >= threshold_amount
    )
    pct_met = (
        threshold_pct is not None and percentage is not None and percentage >= threshold_pct
    )
    return amount_met or pct_met
