"""Governance policy API endpoints (configurators holding the policy permission)."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from fuelgov.core.config import settings
from fuelgov.core.deps import require_permission
from fuelgov.db.session import get_session
from fuelgov.schemas.policy import PolicyIn, PolicyOut, PolicyUpdate
from fuelgov.services import policy as policy_svc
from fuelgov.services.actors import Actor

router = APIRouter()

PolicyAdmin = Annotated[Actor, Depends(require_permission(settings.GOVERNANCE_POLICY_PERMISSION))]


@router.get(
    "",
    response_model=list[PolicyOut],
    summary="List governance policies",
)
def list_policies(
    db: Annotated[Session, Depends(get_session)],
    actor: PolicyAdmin,
    company_id: uuid.UUID | None = None,
    branch_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
    include_disabled: bool = Query(False, description="Also return disabled policies"),
):
    policies = policy_svc.list_policies(
        db,
        company_id=company_id,
        branch_id=branch_id,
        entity_type=entity_type,
        action_type=action_type,
        include_disabled=include_disabled,
    )
    return [PolicyOut.model_validate(p) for p in policies]


@router.post(
    "",
    response_model=PolicyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a governance policy",
)
def create_policy(
    body: PolicyIn,
    db: Annotated[Session, Depends(get_session)],
    actor: PolicyAdmin,
):
    policy = policy_svc.create_policy(db, body.model_dump(), actor_id=actor.id)
    return PolicyOut.model_validate(policy)


@router.get(
    "/{policy_id}",
    response_model=PolicyOut,
    summary="Get a governance policy",
)
def get_policy(
    policy_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    actor: PolicyAdmin,
):
    return PolicyOut.model_validate(policy_svc.get_policy(db, policy_id))


@router.patch(
    "/{policy_id}",
    response_model=PolicyOut,
    summary="Update a governance policy (bumps its version)",
)
def update_policy(
    policy_id: uuid.UUID,
    body: PolicyUpdate,
    db: Annotated[Session, Depends(get_session)],
    actor: PolicyAdmin,
):
    policy = policy_svc.update_policy(
        db, policy_id, body.model_dump(exclude_unset=True), actor_id=actor.id
    )
    return PolicyOut.model_validate(policy)


@router.delete(
    "/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete a governance policy",
)
def delete_policy(
    policy_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    actor: PolicyAdmin,
):
    policy_svc.delete_policy(db, policy_id, actor_id=actor.id)
