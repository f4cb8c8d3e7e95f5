"""Tests for roster-change handling."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from comment_mop.models.node import ModeratorUser, PermissionDecision
from comment_mop.permissions.permission_cache import PermissionCache
from comment_mop.permissions.roster_events import RosterChangeEvent, RosterEventHandler, RosterWatcher
from comment_mop.storage.cache_store import InMemoryCacheStore
from tests.fakes import FakeAuthorizationSource


class TestRosterEventHandler(unittest.TestCase):
    """Test cases for RosterEventHandler."""

    def setUp(self):
        self.moderator = ModeratorUser(id="mod1", username="mod_one")
        self.source = FakeAuthorizationSource(current_user=self.moderator)
        self.source.moderators = [self.moderator]
        self.source.permissions["mod1"] = {"posts"}
        self.store = InMemoryCacheStore()
        self.cache = PermissionCache(self.store, self.source, "testsub")
        self.handler = RosterEventHandler(self.cache)

    def test_remove_moderator_forces_fresh_lookup(self):
        async def scenario():
            self.assertIs(await self.cache.authorize("mod1"), PermissionDecision.ALLOWED)
            self.source.permissions["mod1"] = set()

            handled = await self.handler.dispatch(RosterChangeEvent("removemoderator", "mod1"))
            self.assertTrue(handled)

            return await self.cache.authorize("mod1")

        self.assertIs(asyncio.run(scenario()), PermissionDecision.DENIED)
        self.assertEqual(self.source.permission_calls, 2)

    def test_relevant_actions_invalidate(self):
        for action in ("addmoderator", "invitemoderator", "permissions", "removemoderator",
                       "add-moderator", "PERMISSIONS_CHANGED", "remove_moderator"):
            asyncio.run(self.cache.authorize("mod1"))
            self.assertIn("permissionsCache:mod1", self.store)

            handled = asyncio.run(self.handler.dispatch(RosterChangeEvent(action, "mod1")))

            self.assertTrue(handled, action)
            self.assertNotIn("permissionsCache:mod1", self.store)

    def test_irrelevant_actions_ignored(self):
        asyncio.run(self.cache.authorize("mod1"))

        for action in ("removecomment", "banuser", "wikirevise", ""):
            handled = asyncio.run(self.handler.dispatch(RosterChangeEvent(action, "mod1")))
            self.assertFalse(handled)

        self.assertIn("permissionsCache:mod1", self.store)

    def test_event_without_target_ignored(self):
        handled = asyncio.run(self.handler.dispatch(RosterChangeEvent("removemoderator", None)))

        self.assertFalse(handled)

    def test_relevant_actions_property(self):
        self.assertIn("removemoderator", self.handler.relevant_actions)
        self.assertNotIn("banuser", self.handler.relevant_actions)


class TestRosterWatcher(unittest.TestCase):
    """Test cases for RosterWatcher."""

    def setUp(self):
        self.handler = MagicMock()
        self.handler.dispatch = AsyncMock(return_value=True)
        self.fetch = AsyncMock(return_value=[])
        self.watcher = RosterWatcher(self.fetch, self.handler, interval_sec=0)

    def test_first_poll_handles_existing_entries(self):
        self.fetch.return_value = [
            RosterChangeEvent("removemoderator", "mod1", entry_id="e2"),
            RosterChangeEvent("addmoderator", "mod1", entry_id="e1"),
        ]

        handled = asyncio.run(self.watcher.run_once())

        self.assertEqual(handled, 2)
        dispatched = [c.args[0].entry_id for c in self.handler.dispatch.await_args_list]
        self.assertEqual(dispatched, ["e1", "e2"])

    def test_new_entries_dispatched_once_oldest_first(self):
        old = RosterChangeEvent("addmoderator", "mod1", entry_id="e1")
        self.fetch.return_value = [old]
        asyncio.run(self.watcher.run_once())
        self.handler.dispatch.reset_mock()

        newer = RosterChangeEvent("removemoderator", "mod2", entry_id="e3")
        middle = RosterChangeEvent("invitemoderator", "mod2", entry_id="e2")
        self.fetch.return_value = [newer, middle, old]

        handled = asyncio.run(self.watcher.run_once())

        self.assertEqual(handled, 2)
        dispatched = [c.args[0] for c in self.handler.dispatch.await_args_list]
        self.assertEqual(dispatched, [middle, newer])

        handled = asyncio.run(self.watcher.run_once())
        self.assertEqual(handled, 0)
        self.assertEqual(self.watcher.stats, {"cycles": 3, "handled": 3})

    def test_seen_ids_limited_to_latest_poll(self):
        self.fetch.return_value = [
            RosterChangeEvent("addmoderator", "mod1", entry_id="e2"),
            RosterChangeEvent("addmoderator", "mod2", entry_id="e1"),
        ]
        asyncio.run(self.watcher.run_once())
        self.assertEqual(self.watcher.seen_ids, {"e1", "e2"})

        # e1 fell out of the log window
        self.fetch.return_value = [
            RosterChangeEvent("removemoderator", "mod3", entry_id="e3"),
            RosterChangeEvent("addmoderator", "mod1", entry_id="e2"),
        ]
        handled = asyncio.run(self.watcher.run_once())

        self.assertEqual(handled, 1)
        self.assertEqual(self.watcher.seen_ids, {"e2", "e3"})

    def test_daemon_survives_fetch_errors_and_stops(self):
        calls = []

        async def flaky_fetch():
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("modlog unavailable")
            if len(calls) >= 3:
                self.watcher.stop()
            return []

        self.watcher.fetch_events = flaky_fetch

        asyncio.run(self.watcher.run_daemon())

        self.assertEqual(len(calls), 3)
        self.assertFalse(self.watcher.running)


if __name__ == "__main__":
    unittest.main()
