"""Seed the default governance policies for a company (and optionally a branch)."""
import argparse
import logging
import uuid
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuelgov.core.logging import setup_logging
from fuelgov.db.session import SessionLocal
from fuelgov.models.policy import ApprovalPolicy
from fuelgov.services.policy import create_policy

logger = logging.getLogger(__name__)

# (entity_type, action_type, threshold_amount, threshold_pct, steps)
DEFAULT_POLICIES = [
    (
        "expense_entry", "approve", Decimal("1000"), None,
        [
            {"step_order": 1, "required_permission": "expenses:write", "due_hours": 4},
            {"step_order": 2, "required_permission": "setup:write", "due_hours": 24},
        ],
    ),
    (
        "stock_adjustment", "approve", None, None,
        [
            {"step_order": 1, "required_permission": "adjustments:write", "due_hours": 6},
        ],
    ),
    (
        "sale_transaction", "void", None, None,
        [
            {"step_order": 1, "required_permission": "sales:void", "due_hours": 2},
            {"step_order": 2, "required_permission": "setup:write", "due_hours": 12},
        ],
    ),
    (
        "sale_transaction", "discount_override", None, Decimal("0.10"),
        [
            {"step_order": 1, "required_permission": "sales:void", "due_hours": 2},
        ],
    ),
    (
        "shift", "close_variance", None, None,
        [
            {"step_order": 1, "required_permission": "shifts:approve", "due_hours": 4},
        ],
    ),
]


def seed_default_policies(
    db: Session,
    company_id: uuid.UUID,
    branch_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
) -> list[ApprovalPolicy]:
    """Insert each default policy unless one already exists for its scope.

    Returns the policies created by this call.
    """
    created: list[ApprovalPolicy] = []
    for entity_type, action_type, threshold_amount, threshold_pct, steps in DEFAULT_POLICIES:
        branch_filter = (
            ApprovalPolicy.branch_id.is_(None) if branch_id is None
            else ApprovalPolicy.branch_id == branch_id
        )
        existing = db.execute(
            select(ApprovalPolicy).where(
                ApprovalPolicy.company_id == company_id,
                branch_filter,
                ApprovalPolicy.entity_type == entity_type,
                ApprovalPolicy.action_type == action_type,
                ApprovalPolicy.deleted_at.is_(None),
            )
        ).scalars().first()
        if existing is not None:
            logger.info("Policy already exists: %s/%s, skipping", entity_type, action_type)
            continue

        policy = create_policy(
            db,
            {
                "company_id": company_id,
                "branch_id": branch_id,
                "entity_type": entity_type,
                "action_type": action_type,
                "threshold_amount": threshold_amount,
                "threshold_pct": threshold_pct,
                "approval_steps": steps,
            },
            actor_id=actor_id,
        )
        created.append(policy)
        logger.info("Seeded policy: %s/%s", entity_type, action_type)
    return created


def run_seed(company_id: uuid.UUID, branch_id: uuid.UUID | None = None) -> None:
    with SessionLocal() as db:
        created = seed_default_policies(db, company_id, branch_id)
    logger.info("Seeding complete: %d policies created.", len(created))


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(description="Seed default governance policies.")
    parser.add_argument("company_id", type=uuid.UUID)
    parser.add_argument("--branch-id", type=uuid.UUID, default=None)
    args = parser.parse_args()
    run_seed(args.company_id, args.branch_id)
