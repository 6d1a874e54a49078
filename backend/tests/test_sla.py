"""Tests for SLA / overdue calculation."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fuelgov.models.approval import ApprovalStep, StepStatus
from fuelgov.services.approval import request_approval, submit_request
from fuelgov.services.decision import decide_step
from fuelgov.services.sla import compute_due_at, find_overdue_steps, is_overdue, overdue_summary

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def test_compute_due_at():
    assert compute_due_at(T0, None) is None
    assert compute_due_at(T0, 2) == T0 + timedelta(hours=2)
    assert compute_due_at(T0, Decimal("1.5")) == T0 + timedelta(minutes=90)


def test_is_overdue_boundaries():
    step = ApprovalStep(status=StepStatus.pending.value, due_at=T0)

    assert is_overdue(step, T0 - timedelta(seconds=1)) is False
    assert is_overdue(step, T0) is False
    assert is_overdue(step, T0 + timedelta(seconds=1)) is True


def test_decided_or_unscheduled_steps_are_never_overdue():
    late = T0 + timedelta(days=30)
    assert is_overdue(ApprovalStep(status=StepStatus.approved.value, due_at=T0), late) is False
    assert is_overdue(ApprovalStep(status=StepStatus.pending.value, due_at=None), late) is False


def test_single_step_two_hour_sla(db, ids, actors, make_policy):
    make_policy(approval_steps=[{"step_order": 1, "required_permission": "expenses:write", "due_hours": 2}])
    request = request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve", requested_by=actors.cashier.id,
    )
    request = submit_request(db, request.id, actors.cashier.id, now=T0)
    step = request.steps[0]

    assert is_overdue(step, T0 + timedelta(hours=1)) is False
    assert is_overdue(step, T0 + timedelta(hours=3)) is True
    assert overdue_summary(request, T0 + timedelta(hours=3)) is True


def test_next_step_clock_starts_at_activation(db, ids, actors, make_policy):
    make_policy()
    request = request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve",
        requested_by=actors.cashier.id,
    )
    submit_request(db, request.id, actors.cashier.id, now=T0)
    request = decide_step(db, request.id, actors.supervisor, "approve", now=T0 + timedelta(hours=3))

    second = request.steps[1]
    assert second.due_at == T0 + timedelta(hours=27)
    assert overdue_summary(request, T0 + timedelta(hours=26)) is False


def test_find_overdue_steps(db, ids, actors, make_policy):
    make_policy()
    late = request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve",
        requested_by=actors.cashier.id, auto_submit=False,
    )
    submit_request(db, late.id, actors.cashier.id, now=T0)
    fresh = request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve",
        requested_by=actors.cashier.id,
    )
    submit_request(db, fresh.id, actors.cashier.id, now=T0 + timedelta(hours=5))
    request_approval(
        db, ids.company, None, "expense_entry", ids.entity, "approve",
        requested_by=actors.cashier.id,
    )  # draft, no clock yet

    overdue = find_overdue_steps(db, now=T0 + timedelta(hours=6))

    assert [(s.approval_request_id, s.step_order) for s in overdue] == [(late.id, 1)]
    assert find_overdue_steps(db, now=T0 + timedelta(hours=6), company_id=ids.entity) == []
