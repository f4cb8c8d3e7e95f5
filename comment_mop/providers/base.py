"""Defines the capability protocols consumed by the mop core."""

from datetime import datetime
from typing import List, Optional, Protocol, Set

from comment_mop.models.audit import AuditEntry
from comment_mop.models.node import ModeratorUser, Node, NodeKind


class ContentProvider(Protocol):
    """
    Read and mutate access to posts and comments.

    Implementations must treat removing an already removed node, or locking an
    already locked node, as a successful no-op.
    """

    async def get_node(self, node_id: str, kind: NodeKind) -> Node:
        """Fetch a single post or comment snapshot by id."""
        ...

    async def list_children(self, node: Node) -> List[Node]:
        """
        Fetch the direct children of a node, in reply order.

        Posts return their top-level comments; comments return their replies.
        """
        ...

    async def remove(self, node: Node) -> None:
        """Remove a post or comment."""
        ...

    async def lock(self, node: Node) -> None:
        """Lock a post or comment."""
        ...


class CacheStore(Protocol):
    """A durable string key/value store with absolute expiry."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, expire_at: datetime) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class AuthorizationSource(Protocol):
    """Lookups against the moderator roster and user service."""

    async def get_current_user(self) -> ModeratorUser:
        """Return the acting user. May raise if the actor cannot be fetched."""
        ...

    async def list_moderators(self, subreddit_name: str) -> List[ModeratorUser]:
        ...

    async def get_mod_permissions(self, user: ModeratorUser, subreddit_name: str) -> Set[str]:
        """Return the permission scope tokens (``all``, ``posts``, ...) of a moderator."""
        ...


class AuditSink(Protocol):
    """Best-effort destination for moderation audit entries."""

    async def append(self, entry: AuditEntry) -> None:
        ...
