"""Shared fixtures: a throwaway SQLite database built from the models, plus actors."""
import os

# Must be set before fuelgov.core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "test")

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import fuelgov.models  # noqa: F401 registers every table on Base.metadata
from fuelgov.db.base import Base
from fuelgov.services import effects
from fuelgov.services.actors import Actor
from fuelgov.services.policy import create_policy


@pytest.fixture
def ids():
    return SimpleNamespace(
        company=uuid.UUID("0b6e4a43-6d8c-4f5e-9a55-1c1f0f6b2a01"),
        branch_b1=uuid.UUID("5d2f8d9e-3c1b-4e0a-8f6d-7a9b0c1d2e31"),
        branch_b2=uuid.UUID("5d2f8d9e-3c1b-4e0a-8f6d-7a9b0c1d2e32"),
        entity=uuid.UUID("e3b0c442-98fc-4c14-9afb-f4c8996fb924"),
    )


@pytest.fixture
def actors():
    """Cashier requests; supervisor and manager approve."""
    return SimpleNamespace(
        cashier=Actor.build(
            "9a1f6c2e-1111-4c7b-8d2e-000000000001", "cashier", ["expenses:write", "sales:read"]
        ),
        supervisor=Actor.build(
            "9a1f6c2e-2222-4c7b-8d2e-000000000002", "supervisor",
            ["expenses:write", "sales:void", "adjustments:write"],
        ),
        manager=Actor.build(
            "9a1f6c2e-3333-4c7b-8d2e-000000000003", "manager",
            ["expenses:write", "setup:write", "sales:void", "shifts:approve"],
        ),
        auditor=Actor.build("9a1f6c2e-4444-4c7b-8d2e-000000000004", "auditor", ["reports:read"]),
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'governance.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_policy(db, ids):
    """Factory creating a policy for the test company; steps default to Scenario A's chain."""
    def _make(**overrides):
        data = {
            "company_id": ids.company,
            "branch_id": None,
            "entity_type": "expense_entry",
            "action_type": "approve",
            "threshold_amount": None,
            "threshold_pct": None,
            "approval_steps": [
                {"step_order": 1, "required_permission": "expenses:write", "due_hours": 4},
                {"step_order": 2, "required_permission": "setup:write", "due_hours": 24},
            ],
        }
        data.update(overrides)
        return create_policy(db, data)
    return _make


@pytest.fixture
def effect_registry():
    """Undo hooks registered during the test and restore any it replaced."""
    saved = dict(effects._REGISTRY)
    yield effects
    for key in list(effects._REGISTRY):
        if key not in saved:
            effects.unregister_effect(*key)
    for (entity_type, action_type), fn in saved.items():
        if effects.get_effect(entity_type, action_type) is not fn:
            effects.register_effect(entity_type, action_type)(fn)
