"""Approval request API endpoints.

  GET  /approvals                   list (view-all roles see every request, others their own)
  GET  /approvals/{id}              detail with per-step due_at / is_overdue
  POST /approvals                   gate an action; 201 with the request, or 200 {"gated": false}
  POST /approvals/{id}/submit
  POST /approvals/{id}/approve
  POST /approvals/{id}/reject
  POST /approvals/{id}/cancel
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from fuelgov.core.config import settings
from fuelgov.core.deps import get_current_actor
from fuelgov.core.errors import Unauthorized
from fuelgov.db.session import get_session
from fuelgov.schemas.approval import (
    ApprovalCreateIn,
    ApprovalListResponse,
    ApprovalRequestOut,
    DecisionIn,
    UngatedResponse,
)
from fuelgov.services import approval as approval_svc
from fuelgov.services.actors import Actor
from fuelgov.services.decision import decide_step

logger = logging.getLogger(__name__)

router = APIRouter()

CurrentActor = Annotated[Actor, Depends(get_current_actor)]
DbSession = Annotated[Session, Depends(get_session)]


def _sees_all(actor: Actor) -> bool:
    return actor.role is not None and actor.role in settings.view_all_roles


# ─── List / detail ───

@router.get(
    "",
    response_model=ApprovalListResponse,
    summary="List approval requests",
)
def list_approvals(
    db: DbSession,
    actor: CurrentActor,
    company_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    requested_by: uuid.UUID | None = None,
):
    if not _sees_all(actor):
        requested_by = actor.id

    requests = approval_svc.list_requests(
        db,
        company_id=company_id,
        branch_id=branch_id,
        entity_type=entity_type,
        action_type=action_type,
        status=status_filter,
        requested_by=requested_by,
    )
    items = [ApprovalRequestOut.from_request(r, actor=actor) for r in requests]
    return ApprovalListResponse(items=items, total=len(items))


@router.get(
    "/{request_id}",
    response_model=ApprovalRequestOut,
    summary="Get an approval request with computed overdue fields",
)
def get_approval(request_id: uuid.UUID, db: DbSession, actor: CurrentActor):
    request = approval_svc.get_request(db, request_id)
    if not _sees_all(actor) and str(request.requested_by) != str(actor.id):
        raise Unauthorized("You are not allowed to view this approval request.", request_id=request_id)
    return ApprovalRequestOut.from_request(request, actor=actor)


# ─── Create / submit / cancel ───

@router.post(
    "",
    response_model=ApprovalRequestOut | UngatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request approval for a sensitive action",
)
def create_approval(
    body: ApprovalCreateIn,
    response: Response,
    db: DbSession,
    actor: CurrentActor,
):
    request = approval_svc.request_approval(
        db,
        company_id=body.company_id,
        branch_id=body.branch_id,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        action_type=body.action_type,
        requested_by=actor.id,
        reason=body.reason,
        meta=body.meta,
        amount=body.amount,
        percentage=body.percentage,
        auto_submit=body.auto_submit,
    )
    if request is None:
        response.status_code = status.HTTP_200_OK
        return UngatedResponse()
    return ApprovalRequestOut.from_request(request, actor=actor)


@router.post(
    "/{request_id}/submit",
    response_model=ApprovalRequestOut,
    summary="Submit a draft approval request",
)
def submit_approval(request_id: uuid.UUID, db: DbSession, actor: CurrentActor):
    request = approval_svc.submit_request(db, request_id, actor.id)
    return ApprovalRequestOut.from_request(request, actor=actor)


@router.post(
    "/{request_id}/cancel",
    response_model=ApprovalRequestOut,
    summary="Cancel an approval request",
)
def cancel_approval(
    request_id: uuid.UUID,
    db: DbSession,
    actor: CurrentActor,
    body: DecisionIn | None = None,
):
    request = approval_svc.cancel_request(db, request_id, actor, reason=body.reason if body else None)
    return ApprovalRequestOut.from_request(request, actor=actor)


# ─── Decisions ───

@router.post(
    "/{request_id}/approve",
    response_model=ApprovalRequestOut,
    summary="Approve the active step",
)
def approve_step(
    request_id: uuid.UUID,
    db: DbSession,
    actor: CurrentActor,
    body: DecisionIn | None = None,
):
    request = decide_step(db, request_id, actor, "approve", reason=body.reason if body else None)
    return ApprovalRequestOut.from_request(request, actor=actor)


@router.post(
    "/{request_id}/reject",
    response_model=ApprovalRequestOut,
    summary="Reject the active step",
)
def reject_step(
    request_id: uuid.UUID,
    db: DbSession,
    actor: CurrentActor,
    body: DecisionIn | None = None,
):
    request = decide_step(db, request_id, actor, "reject", reason=body.reason if body else None)
    return ApprovalRequestOut.from_request(request, actor=actor)
