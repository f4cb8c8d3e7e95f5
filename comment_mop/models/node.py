"""Data models for discussion nodes, mop configuration and mop results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class NodeKind(str, Enum):
    """Kind of a node in a discussion tree."""

    POST = "post"
    COMMENT = "comment"


@dataclass(frozen=True)
class Node:
    """
    Immutable snapshot of a post or comment taken at collection time.

    Children are not stored on the snapshot; they are fetched on demand
    through a ContentProvider.
    """

    id: str
    kind: NodeKind
    subreddit: str = ""
    is_distinguished: bool = False
    removed: bool = False
    locked: bool = False

    @property
    def is_post(self) -> bool:
        return self.kind is NodeKind.POST


@dataclass(frozen=True)
class ActionConfig:
    """Which actions a mop performs and which nodes it leaves alone."""

    remove: bool = True
    lock: bool = False
    skip_distinguished: bool = False
    skip_already_actioned: bool = True

    def has_action(self) -> bool:
        """Return True if at least one of remove/lock is requested."""
        return self.remove or self.lock

    def keep(self, node: Node) -> bool:
        """Collection predicate: False for nodes excluded from the mop entirely."""
        return not (self.skip_distinguished and node.is_distinguished)

    def should_remove(self, node: Node) -> bool:
        return self.remove and not (self.skip_already_actioned and node.removed)

    def should_lock(self, node: Node) -> bool:
        return self.lock and not (self.skip_already_actioned and node.locked)

    def verb(self) -> str:
        """Past-tense description used in user-facing messages."""
        if self.remove and self.lock:
            return "removed and locked"
        return "locked" if self.lock else "removed"

    def log_verb(self) -> str:
        """Infinitive description used in audit log entries."""
        if self.remove and self.lock:
            return "remove and lock"
        return "lock" if self.lock else "remove"


@dataclass(frozen=True)
class ModeratorUser:
    """A Reddit account as seen by the authorization source."""

    id: str
    username: str


class PermissionDecision(str, Enum):
    """Outcome of a bulk-action permission check."""

    ALLOWED = "allowed"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class MopOutcome(str, Enum):
    """Terminal outcome of a single mop invocation."""

    INVALID = "invalid"
    DENIED = "denied"
    NOTHING_TO_DO = "nothing_to_do"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Verdict of a BatchExecutor run."""

    succeeded: bool
    chunks_total: int = 0
    chunks_completed: int = 0
    remove_calls: int = 0
    lock_calls: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)


@dataclass
class MopSummary:
    """The single terminal result reported for a mop invocation."""

    outcome: MopOutcome
    target_id: Optional[str]
    message: str
    count: int = 0
    gather_seconds: float = 0.0
    action_seconds: float = 0.0
    retryable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is MopOutcome.SUCCEEDED
