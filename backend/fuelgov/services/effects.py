"""Business action committer hooks.

Modules that own a gated business record (expenses, sales, stock, shifts)
register a callable for their ``(entity_type, action_type)``. When a request
reaches ``approved`` or ``rejected`` the decision engine runs it inside the
same transaction, so a failing commit rolls the decision back too.

    @register_effect("expense_entry", "approve")
    def apply_expense_outcome(db, request, outcome, actor):
        ...
"""
import logging
from typing import Callable

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EffectFn = Callable[[Session, "ApprovalRequest", str, "Actor"], None]

_REGISTRY: dict[tuple[str, str], EffectFn] = {}


def register_effect(entity_type: str, action_type: str) -> Callable[[EffectFn], EffectFn]:
    def decorator(fn: EffectFn) -> EffectFn:
        key = (entity_type, action_type)
        if key in _REGISTRY and _REGISTRY[key] is not fn:
            logger.warning("Replacing decision effect for %s/%s", entity_type, action_type)
        _REGISTRY[key] = fn
        return fn
    return decorator


def unregister_effect(entity_type: str, action_type: str) -> None:
    _REGISTRY.pop((entity_type, action_type), None)


def get_effect(entity_type: str, action_type: str) -> EffectFn | None:
    return _REGISTRY.get((entity_type, action_type))


def apply_effects(db: Session, request, outcome: str, actor) -> bool:
    """Run the registered hook for a finished request.

    Returns True if a hook ran. Exceptions propagate to the caller, which
    rolls back the whole decision.
    """
    fn = get_effect(request.entity_type, request.action_type)
    if fn is None:
        return False
    logger.info(
        "Applying %s effect for %s/%s entity=%s",
        outcome, request.entity_type, request.action_type, request.entity_id,
    )
    fn(db, request, outcome, actor)
    return True
