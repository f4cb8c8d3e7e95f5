"""Data models shared by the collector, executor and permission components."""

from comment_mop.models.audit import AuditEntry
from comment_mop.models.node import (
    ActionConfig,
    BatchResult,
    ModeratorUser,
    MopOutcome,
    MopSummary,
    Node,
    NodeKind,
    PermissionDecision,
)

__all__ = [
    "ActionConfig",
    "AuditEntry",
    "BatchResult",
    "ModeratorUser",
    "MopOutcome",
    "MopSummary",
    "Node",
    "NodeKind",
    "PermissionDecision",
]
