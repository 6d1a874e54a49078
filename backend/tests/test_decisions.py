"""Tests for the step decision engine.

Covers sequential progression, rejection short-circuit, the self-approval
rule, role/permission gates, committer hooks and concurrent decisions.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from fuelgov.core.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    NoActiveStep,
    SelfApprovalForbidden,
    Unauthorized,
)
from fuelgov.models.approval import RequestStatus, StepStatus
from fuelgov.models.audit import AuditLog
from fuelgov.services.actors import Actor
from fuelgov.services.approval import active_step, get_request, guarded_write, request_approval
from fuelgov.services.decision import can_decide, check_gate, decide_step

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _submitted(db, ids, requester, steps=None, **policy_kwargs):
    from fuelgov.services.policy import create_policy

    create_policy(db, {
        "company_id": ids.company,
        "entity_type": "expense_entry",
        "action_type": "approve",
        "approval_steps": steps or [
            {"step_order": 1, "required_permission": "expenses:write", "due_hours": 4},
            {"step_order": 2, "required_permission": "setup:write", "due_hours": 24},
        ],
        **policy_kwargs,
    })
    return request_approval(
        db, ids.company, ids.branch_b1, "expense_entry", ids.entity, "approve",
        requested_by=requester.id, amount=Decimal("1500"), auto_submit=True,
    )


# ─── Sequential approval ──────────────────────────────────────────────────────

def test_two_step_chain_approves_in_order(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)

    request = decide_step(db, request.id, actors.supervisor, "approve", reason="Receipt attached", now=T0)
    first, second = request.steps
    assert request.status == RequestStatus.submitted.value
    assert first.status == StepStatus.approved.value
    assert first.decided_by == actors.supervisor.id
    assert first.decision_reason == "Receipt attached"
    assert active_step(request) is second
    assert second.activated_at == T0
    assert second.due_at == T0 + timedelta(hours=24)

    request = decide_step(db, request.id, actors.manager, "approve", now=T0 + timedelta(hours=1))
    assert request.status == RequestStatus.approved.value
    assert active_step(request) is None

    actions = db.execute(
        select(AuditLog.action)
        .where(AuditLog.entity_id == request.id)
        .order_by(AuditLog.created_at)
    ).scalars().all()
    assert actions == [
        "approval_request.draft_created",
        "approval_request.submitted",
        "approval_request.step_approved",
        "approval_request.step_approved",
    ]


def test_only_active_step_is_decidable(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)

    # Holds the grant for step 2 only
    setup_only = Actor.build("9a1f6c2e-5555-4c7b-8d2e-000000000005", "owner", ["setup:write"])
    with pytest.raises(Unauthorized):
        decide_step(db, request.id, setup_only, "approve")

    request = get_request(db, request.id, for_update=True)
    assert all(s.status == StepStatus.pending.value for s in request.steps)


def test_draft_cannot_be_decided(db, ids, actors, make_policy):
    make_policy()
    request = request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve", requested_by=actors.cashier.id,
    )

    with pytest.raises(InvalidTransition) as exc_info:
        decide_step(db, request.id, actors.supervisor, "approve")
    assert not isinstance(exc_info.value, NoActiveStep)


def test_invalid_decision_value(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)
    with pytest.raises(ValueError):
        decide_step(db, request.id, actors.supervisor, "escalate")


# ─── Rejection ────────────────────────────────────────────────────────────────

def test_rejection_short_circuits(db, ids, actors):
    request = _submitted(db, ids, actors.cashier, steps=[
        {"step_order": 1, "required_permission": "expenses:write"},
        {"step_order": 2, "required_permission": "setup:write"},
        {"step_order": 3, "required_role": "owner"},
    ])

    request = decide_step(db, request.id, actors.supervisor, "reject", reason="Duplicate receipt")

    assert request.status == RequestStatus.rejected.value
    assert [s.status for s in request.steps] == [
        StepStatus.rejected.value, StepStatus.skipped.value, StepStatus.skipped.value,
    ]
    with pytest.raises(NoActiveStep):
        decide_step(db, request.id, actors.manager, "approve")


def test_mid_chain_rejection(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)
    decide_step(db, request.id, actors.supervisor, "approve")

    request = decide_step(db, request.id, actors.manager, "reject")

    assert request.status == RequestStatus.rejected.value
    assert [s.status for s in request.steps] == [StepStatus.approved.value, StepStatus.rejected.value]


# ─── Self-approval ────────────────────────────────────────────────────────────

@pytest.mark.parametrize("decision", ["approve", "reject"])
def test_requester_cannot_decide_own_step(db, ids, actors, decision):
    # The manager holds expenses:write, so the gate alone would let them through
    request = _submitted(db, ids, actors.manager)

    with pytest.raises(SelfApprovalForbidden):
        decide_step(db, request.id, actors.manager, decision)

    request = get_request(db, request.id, for_update=True)
    assert request.status == RequestStatus.submitted.value
    assert request.steps[0].status == StepStatus.pending.value


def test_self_approval_allowed_when_step_permits(db, ids, actors):
    request = _submitted(db, ids, actors.manager, steps=[
        {"step_order": 1, "required_permission": "expenses:write", "allow_self_approval": True},
    ])

    request = decide_step(db, request.id, actors.manager, "approve")

    assert request.status == RequestStatus.approved.value


# ─── Gates ────────────────────────────────────────────────────────────────────

def _step(role=None, permission=None):
    return MagicMock(required_role=role, required_permission=permission, step_order=1)


def test_gate_requires_both_role_and_permission(actors):
    step = _step(role="manager", permission="setup:write")

    check_gate(step, actors.manager)
    with pytest.raises(Unauthorized):
        check_gate(step, Actor.build(actors.supervisor.id, "supervisor", ["setup:write"]))
    with pytest.raises(Unauthorized):
        check_gate(step, Actor.build(actors.supervisor.id, "manager", ["expenses:write"]))


def test_gate_role_only(actors):
    check_gate(_step(role="supervisor"), actors.supervisor)
    with pytest.raises(Unauthorized):
        check_gate(_step(role="supervisor"), actors.manager)


def test_step_without_gate_is_undecidable(actors):
    with pytest.raises(Unauthorized):
        check_gate(_step(), actors.manager)


def test_can_decide(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)

    assert can_decide(request, actors.supervisor) is True
    assert can_decide(request, actors.cashier) is False
    assert can_decide(request, actors.auditor) is False


# ─── Committer hooks ──────────────────────────────────────────────────────────

def test_effect_runs_on_final_outcome(db, ids, actors, effect_registry):
    calls = []

    @effect_registry.register_effect("expense_entry", "approve")
    def _record(session, request, outcome, actor):
        calls.append((request.id, outcome, actor.id))

    request = _submitted(db, ids, actors.cashier)
    decide_step(db, request.id, actors.supervisor, "approve")
    assert calls == []

    decide_step(db, request.id, actors.manager, "approve")
    assert calls == [(request.id, "approved", actors.manager.id)]


def test_failing_effect_rolls_back_decision(db, ids, actors, effect_registry):
    @effect_registry.register_effect("expense_entry", "approve")
    def _explode(session, request, outcome, actor):
        raise RuntimeError("expense ledger unavailable")

    request = _submitted(db, ids, actors.cashier, steps=[
        {"step_order": 1, "required_permission": "expenses:write"},
    ])

    with pytest.raises(RuntimeError):
        decide_step(db, request.id, actors.supervisor, "approve")

    request = get_request(db, request.id, for_update=True)
    assert request.status == RequestStatus.submitted.value
    assert request.steps[0].status == StepStatus.pending.value
    assert request.steps[0].decided_by is None


def test_unregistered_effect_no_longer_runs(db, ids, actors, effect_registry):
    calls = []

    @effect_registry.register_effect("expense_entry", "approve")
    def _record(session, request, outcome, actor):
        calls.append(outcome)

    effect_registry.unregister_effect("expense_entry", "approve")
    assert effect_registry.get_effect("expense_entry", "approve") is None

    request = _submitted(db, ids, actors.cashier, steps=[
        {"step_order": 1, "required_permission": "expenses:write"},
    ])
    request = decide_step(db, request.id, actors.supervisor, "approve")

    assert request.status == RequestStatus.approved.value
    assert calls == []


# ─── Refused decisions release the row ────────────────────────────────────────

def test_unauthorized_decision_ends_transaction(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)

    with pytest.raises(Unauthorized):
        decide_step(db, request.id, actors.auditor, "approve")

    assert not db.in_transaction()


@pytest.mark.parametrize("decider", ["cashier", "manager"])
def test_refused_decision_ends_transaction(db, ids, actors, decider):
    # cashier: own request; manager: lacks step 1's role requirement
    request = _submitted(db, ids, actors.cashier, steps=[
        {"step_order": 1, "required_role": "supervisor"},
    ])

    with pytest.raises((SelfApprovalForbidden, Unauthorized)):
        decide_step(db, request.id, getattr(actors, decider), "approve")

    assert not db.in_transaction()
    request = get_request(db, request.id)
    assert request.steps[0].status == StepStatus.pending.value


def test_decision_on_finished_request_ends_transaction(db, ids, actors):
    request = _submitted(db, ids, actors.cashier, steps=[
        {"step_order": 1, "required_permission": "expenses:write"},
    ])
    decide_step(db, request.id, actors.supervisor, "approve")

    with pytest.raises(NoActiveStep):
        decide_step(db, request.id, actors.manager, "reject")

    assert not db.in_transaction()


# ─── Concurrency ──────────────────────────────────────────────────────────────

def test_second_concurrent_decision_fails(session_factory, ids, actors):
    with session_factory() as setup:
        request = _submitted(setup, ids, actors.cashier, steps=[
            {"step_order": 1, "required_permission": "expenses:write"},
        ])

    other = Actor.build("9a1f6c2e-6666-4c7b-8d2e-000000000006", "supervisor", ["expenses:write"])
    with session_factory() as session_a, session_factory() as session_b:
        # Both sessions have the request loaded before either decides
        get_request(session_a, request.id)
        get_request(session_b, request.id)
        session_b.commit()

        decide_step(session_a, request.id, actors.supervisor, "approve")
        with pytest.raises(InvalidTransition):
            decide_step(session_b, request.id, other, "reject")

    with session_factory() as check:
        final = get_request(check, request.id)
        assert final.status == RequestStatus.approved.value
        assert final.steps[0].decided_by == actors.supervisor.id


def test_stale_version_surfaces_as_conflict(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)
    session = MagicMock(wraps=db)
    session.commit.side_effect = StaleDataError("version mismatch")

    with pytest.raises(ConcurrencyConflict):
        with guarded_write(session, request.id):
            request.reason = "edited"

    session.rollback.assert_called_once()


def test_stale_flush_surfaces_as_conflict(db, ids, actors):
    request = _submitted(db, ids, actors.cashier)
    session = MagicMock()

    with pytest.raises(ConcurrencyConflict) as exc_info:
        with guarded_write(session, request.id):
            raise StaleDataError("UPDATE statement expected to update 1 row(s); 0 were matched.")

    assert isinstance(exc_info.value, InvalidTransition)
    session.rollback.assert_called_once()
    session.commit.assert_not_called()


# ─── Actor directory ──────────────────────────────────────────────────────────

def test_actor_resolved_at_decision_time(db, ids, actors):
    from fuelgov.core.errors import NotFound
    from fuelgov.services.actors import StaticActorDirectory

    directory = StaticActorDirectory([actors.cashier, actors.supervisor])
    request = _submitted(db, ids, actors.cashier)

    # Permission revoked after the request was created
    directory.add(Actor.build(actors.supervisor.id, "supervisor", ["sales:void"]))
    with pytest.raises(Unauthorized):
        decide_step(db, request.id, directory.resolve(actors.supervisor.id), "approve")

    with pytest.raises(NotFound):
        directory.resolve(actors.manager.id)
