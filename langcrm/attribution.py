"""Who is performing a mutation.

Services resolve the actor *before* touching the store, so a mutation
without an actor fails cleanly with nothing written.
"""

from typing import Optional, Protocol, runtime_checkable

from langcrm.config import ActorConfig
from langcrm.errors import AttributionError
from langcrm.models import Actor


@runtime_checkable
class AttributionProvider(Protocol):
    """Source of the current actor (session, token, CLI config...)."""

    async def current_actor(self) -> Actor:
        """Return the acting user or raise AttributionError."""
        ...


class StaticAttribution:
    """Always answers with the same actor. Used by the CLI and tests."""

    def __init__(self, actor: Optional[Actor] = None):
        self._actor = actor

    @classmethod
    def from_config(cls, config: ActorConfig) -> "StaticAttribution":
        if not config.id:
            return cls(None)
        return cls(Actor(id=config.id, username=config.username or config.id))

    async def current_actor(self) -> Actor:
        if self._actor is None or not self._actor.id:
            raise AttributionError("No current user; sign in or set actor.id in config")
        return self._actor
