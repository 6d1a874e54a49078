"""Pydantic schemas for approval request endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fuelgov.services.approval import active_step
from fuelgov.services import decision as decision_svc
from fuelgov.services.sla import is_overdue, overdue_summary


# ─── Step output ───

class ApprovalStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    step_order: int
    required_role: str | None
    required_permission: str | None
    due_hours: Decimal | None
    allow_self_approval: bool
    status: str
    activated_at: datetime | None
    due_at: datetime | None
    decided_by: uuid.UUID | None
    decided_at: datetime | None
    decision_reason: str | None

    # Derived at read time
    is_overdue: bool = False


# ─── Request output ───

class ApprovalRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    branch_id: uuid.UUID | None
    entity_type: str
    entity_id: uuid.UUID
    action_type: str
    policy_id: uuid.UUID | None
    status: str
    requested_by: uuid.UUID
    requested_at: datetime
    submitted_at: datetime | None
    reason: str | None
    meta: dict[str, Any]
    version: int
    steps: list[ApprovalStepOut]
    active_step_order: int | None = None
    is_overdue: bool = False
    can_decide: bool = False

    @classmethod
    def from_request(cls, request, now: datetime | None = None, actor=None) -> "ApprovalRequestOut":
        """Build the response and fill in the read-time fields.

        ``can_decide`` tells the caller (``actor``) whether they may approve or
        reject the active step right now.
        """
        out = cls.model_validate(request)
        by_order = {s.step_order: s for s in request.steps}
        for step_out in out.steps:
            step_out.is_overdue = is_overdue(by_order[step_out.step_order], now)
        step = active_step(request)
        out.active_step_order = step.step_order if step else None
        out.is_overdue = overdue_summary(request, now)
        out.can_decide = actor is not None and decision_svc.can_decide(request, actor)
        return out


class ApprovalListResponse(BaseModel):
    items: list[ApprovalRequestOut]
    total: int


# ─── Request bodies ───

class ApprovalCreateIn(BaseModel):
    company_id: uuid.UUID
    branch_id: uuid.UUID | None = None
    entity_type: str = Field(min_length=1, max_length=64)
    entity_id: uuid.UUID
    action_type: str = Field(min_length=1, max_length=64)
    amount: Decimal | None = None
    percentage: Decimal | None = None
    reason: str | None = Field(default=None, max_length=1024)
    meta: dict[str, Any] | None = None
    auto_submit: bool = False


class DecisionIn(BaseModel):
    reason: str | None = Field(default=None, max_length=1024)


class UngatedResponse(BaseModel):
    gated: bool = False
