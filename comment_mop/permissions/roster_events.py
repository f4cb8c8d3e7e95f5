"""Invalidation of cached permissions when the moderator roster changes."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set

from comment_mop.permissions.permission_cache import PermissionCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterChangeEvent:
    """A moderator-roster change reported by the moderation log."""

    action: str
    target_user_id: Optional[str]
    target_username: Optional[str] = None
    entry_id: Optional[str] = None


def _normalize_action(action: str) -> str:
    return action.replace("-", "").replace("_", "").lower()


class RosterEventHandler:
    """
    Reacts to roster-change events by dropping the target's cached permissions.

    One method per relevant event kind; ``dispatch`` routes raw mod-log action
    names to them and ignores everything else.
    """

    def __init__(self, permission_cache: PermissionCache):
        self.permission_cache = permission_cache
        self._routes: Dict[str, Callable[[RosterChangeEvent], Awaitable[None]]] = {
            "addmoderator": self.on_add_moderator,
            "invitemoderator": self.on_invite_moderator,
            "permissions": self.on_permissions_changed,
            "permissionschanged": self.on_permissions_changed,
            "removemoderator": self.on_remove_moderator,
        }

    @property
    def relevant_actions(self) -> Set[str]:
        return set(self._routes)

    async def _invalidate(self, event: RosterChangeEvent) -> None:
        await self.permission_cache.invalidate(event.target_user_id)
        logger.info(
            f"Cleared permissions cache for user {event.target_user_id} due to mod action {event.action}"
        )

    async def on_add_moderator(self, event: RosterChangeEvent) -> None:
        await self._invalidate(event)

    async def on_invite_moderator(self, event: RosterChangeEvent) -> None:
        await self._invalidate(event)

    async def on_permissions_changed(self, event: RosterChangeEvent) -> None:
        await self._invalidate(event)

    async def on_remove_moderator(self, event: RosterChangeEvent) -> None:
        await self._invalidate(event)

    async def dispatch(self, event: RosterChangeEvent) -> bool:
        """
        Route an event to its handler.

        Returns:
            True if the event was relevant and handled
        """
        if not event.action or not event.target_user_id:
            return False

        handler = self._routes.get(_normalize_action(event.action))
        if handler is None:
            return False

        await handler(event)
        return True


class RosterWatcher:
    """
    Polls the moderation log and feeds roster changes to a RosterEventHandler.

    Entry ids from the latest poll are remembered so each change is handled
    once per process. The log is read newest first with a fixed limit, so an
    entry that has dropped out of a poll never comes back and its id is
    forgotten.
    """

    def __init__(
        self,
        fetch_events: Callable[[], Awaitable[List[RosterChangeEvent]]],
        handler: RosterEventHandler,
        interval_sec: float = 60.0,
    ):
        """
        Initialize the watcher.

        Args:
            fetch_events: Coroutine function returning recent roster events, newest first
            handler: Handler that invalidates cached permissions
            interval_sec: Seconds between polls
        """
        self.fetch_events = fetch_events
        self.handler = handler
        self.interval_sec = interval_sec
        self.seen_ids: Set[str] = set()
        self.running = False
        self.stats: Dict[str, int] = {"cycles": 0, "handled": 0}

    async def run_once(self) -> int:
        """
        Run a single poll.

        The first poll handles every roster change still in the log window, so
        changes made while the watcher was down are not missed. Invalidating a
        permission twice is harmless.

        Returns:
            Number of events handled
        """
        events = await self.fetch_events()
        new_events = [e for e in events if e.entry_id is None or e.entry_id not in self.seen_ids]
        self.seen_ids = {e.entry_id for e in events if e.entry_id}

        handled = 0
        # Oldest first, so a remove after an add leaves the final state
        for event in reversed(new_events):
            if await self.handler.dispatch(event):
                handled += 1

        self.stats["cycles"] += 1
        self.stats["handled"] += handled
        return handled

    async def run_daemon(self) -> None:
        """Poll the moderation log continuously until ``stop`` is called."""
        self.running = True
        logger.info(f"Starting roster watcher, interval: {self.interval_sec}s")

        try:
            while self.running:
                cycle_start = time.time()

                try:
                    handled = await self.run_once()
                    if handled:
                        logger.info(f"Handled {handled} roster change events")
                except Exception as e:
                    logger.error(f"Error in roster watcher cycle: {str(e)}")

                sleep_time = max(0.0, self.interval_sec - (time.time() - cycle_start))
                if sleep_time > 0 and self.running:
                    await asyncio.sleep(sleep_time)

        except asyncio.CancelledError:
            logger.info("Roster watcher cancelled")
            self.running = False
        finally:
            logger.info(
                f"Roster watcher stopped after {self.stats['cycles']} cycles, "
                f"handled {self.stats['handled']} events"
            )

    def stop(self) -> None:
        """Stop the polling loop."""
        logger.info("Stopping roster watcher")
        self.running = False
