"""Approval policy model."""
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fuelgov.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDMixin


class ApprovalPolicy(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """When an action needs approval, and the step chain it must pass.

    ``approval_steps`` holds the step templates as a JSON list, kept sorted by
    ``step_order``::

        [{"step_order": 1, "required_permission": "expenses:write",
          "required_role": None, "due_hours": 4, "allow_self_approval": False}]
    """

    __tablename__ = "governance_policies"
    __table_args__ = (
        Index(
            "ix_gov_policies_scope",
            "company_id", "branch_id", "entity_type", "action_type",
        ),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    branch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)  # null = every branch
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    threshold_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    threshold_pct: Mapped[Decimal | None] = mapped_column(Numeric(10, 4), nullable=True)  # ratio, 0.10 = 10%
    approval_steps: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
