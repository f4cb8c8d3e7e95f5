"""Audit log entry written after a successful removal mop."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

AUDIT_DETAILS = "comment-mop app"


@dataclass(frozen=True)
class AuditEntry:
    """One moderation log line describing a completed mop."""

    action: str  # "removecomment" for a thread mop, "removelink" for a post mop
    target: str
    moderator: str
    description: str
    details: str = AUDIT_DETAILS
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = self.created_at.isoformat()
        return record
