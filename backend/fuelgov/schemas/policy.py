"""Pydantic schemas for governance policy endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ─── Step template ───

class StepTemplate(BaseModel):
    step_order: int
    required_role: str | None = None
    required_permission: str | None = None
    due_hours: float | None = Field(default=None, ge=0)
    allow_self_approval: bool = False


# ─── Policy schemas ───

class PolicyIn(BaseModel):
    company_id: uuid.UUID
    branch_id: uuid.UUID | None = None
    entity_type: str = Field(min_length=1, max_length=64)
    action_type: str = Field(min_length=1, max_length=64)
    threshold_amount: Decimal | None = None
    threshold_pct: Decimal | None = None
    approval_steps: list[StepTemplate]
    is_enabled: bool = True


class PolicyUpdate(BaseModel):
    branch_id: uuid.UUID | None = None
    entity_type: str | None = Field(default=None, min_length=1, max_length=64)
    action_type: str | None = Field(default=None, min_length=1, max_length=64)
    threshold_amount: Decimal | None = None
    threshold_pct: Decimal | None = None
    approval_steps: list[StepTemplate] | None = None
    is_enabled: bool | None = None


class PolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    branch_id: uuid.UUID | None
    entity_type: str
    action_type: str
    threshold_amount: Decimal | None
    threshold_pct: Decimal | None
    approval_steps: list[StepTemplate]
    is_enabled: bool
    version: int
    created_by: uuid.UUID | None
    updated_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime
