"""Actor identity as seen by the approval engine.

The engine never looks users up itself. Callers hand it an ``Actor`` resolved
at decision time from whatever directory they trust (token claims in the web
layer, a static mapping in scripts and tests). Nothing about the actor is
cached on the approval request.
"""
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol

from fuelgov.core.errors import NotFound


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def build(cls, actor_id, role: str | None = None, permissions: Iterable[str] = ()) -> "Actor":
        return cls(
            id=uuid.UUID(str(actor_id)),
            role=role,
            permissions=frozenset(permissions),
        )

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


class ActorDirectory(Protocol):
    def resolve(self, actor_id: uuid.UUID) -> Actor:
        """Return the actor's current role and permission set."""
        ...


class StaticActorDirectory:
    """In-memory directory for seed scripts and tests."""

    def __init__(self, actors: Mapping[uuid.UUID, Actor] | Iterable[Actor] = ()):
        if isinstance(actors, Mapping):
            self._actors = dict(actors)
        else:
            self._actors = {a.id: a for a in actors}

    def add(self, actor: Actor) -> None:
        self._actors[actor.id] = actor

    def resolve(self, actor_id: uuid.UUID) -> Actor:
        try:
            return self._actors[uuid.UUID(str(actor_id))]
        except KeyError:
            raise NotFound(f"Actor {actor_id} not found.", actor_id=actor_id) from None
