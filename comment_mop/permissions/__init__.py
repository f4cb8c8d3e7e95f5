"""Permission cache and moderator roster event handling."""

from comment_mop.permissions.permission_cache import PermissionCache
from comment_mop.permissions.roster_events import RosterChangeEvent, RosterEventHandler, RosterWatcher

__all__ = ["PermissionCache", "RosterChangeEvent", "RosterEventHandler", "RosterWatcher"]
