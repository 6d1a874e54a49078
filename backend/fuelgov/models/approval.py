import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fuelgov.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDMixin, UTCDateTime, utcnow


class RequestStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.approved.value, RequestStatus.rejected.value, RequestStatus.cancelled.value}
)


class StepStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    skipped = "skipped"


class ApprovalRequest(Base, UUIDMixin, TimestampMixin, SoftDeleteMixin):
    """One gated business action moving through its policy's step chain."""

    __tablename__ = "governance_approval_requests"
    __table_args__ = (
        Index("ix_gov_requests_scope", "company_id", "branch_id", "entity_type", "action_type"),
        Index("ix_gov_requests_entity", "entity_type", "entity_id"),
    )

    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    branch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    # Audit reference only; behavior comes from the snapshot in meta + steps
    policy_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RequestStatus.draft.value, index=True
    )  # draft, submitted, approved, rejected, cancelled
    requested_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    steps: Mapped[list["ApprovalStep"]] = relationship(
        "ApprovalStep",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ApprovalStep.step_order",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ApprovalStep(Base, UUIDMixin, TimestampMixin):
    """A single link in a request's approval chain."""

    __tablename__ = "governance_approval_steps"
    __table_args__ = (
        Index("ix_gov_steps_request_order", "approval_request_id", "step_order", unique=True),
    )

    approval_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("governance_approval_requests.id", ondelete="CASCADE"), nullable=False
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    required_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    required_permission: Mapped[str | None] = mapped_column(String(128), nullable=True)
    due_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    allow_self_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=StepStatus.pending.value, index=True
    )  # pending, approved, rejected, skipped
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    due_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    decided_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    decision_reason: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    request: Mapped["ApprovalRequest"] = relationship("ApprovalRequest", back_populates="steps")
