"""Time-bounded cache of who may run bulk moderation actions."""

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from comment_mop.models.node import ModeratorUser, PermissionDecision
from comment_mop.providers.base import AuthorizationSource, CacheStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=28)

# Moderator permission scopes that allow removing and locking comments
BULK_ACTION_SCOPES = frozenset({"all", "posts"})


def permissions_cache_key(user_id: str) -> str:
    return f"permissionsCache:{user_id}"


class PermissionCache:
    """
    Answers whether a user may run bulk actions, consulting the cache first.

    Per user the entry is either absent or cached with an expiry. A miss (or an
    expired entry) triggers a fresh roster lookup whose decision is written
    back with a new TTL. ``invalidate`` is the only way to drop an entry early.

    Concurrent misses for the same user may both look up and both write; the
    writes carry the same decision, so no locking is done.
    """

    def __init__(
        self,
        store: CacheStore,
        source: AuthorizationSource,
        subreddit_name: str,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
        prometheus_exporter=None,
    ):
        self.store = store
        self.source = source
        self.subreddit_name = subreddit_name
        self.ttl = ttl
        self.clock = clock
        self.prometheus_exporter = prometheus_exporter

    def _record(self, result: str) -> None:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_permission_lookup(result)

    async def _resolve_user(self, user_id: str) -> Optional[ModeratorUser]:
        """Find the user, first directly and then through the moderator roster."""
        try:
            user = await self.source.get_current_user()
            if user.id == user_id:
                return user
            logger.warning(f"Current user {user.id} does not match requested user {user_id}")
        except Exception as e:
            logger.error(f"Error fetching current user {user_id}: {e}")

        moderators = await self.source.list_moderators(self.subreddit_name)
        return next((moderator for moderator in moderators if moderator.id == user_id), None)

    async def authorize(self, user_id: Optional[str]) -> PermissionDecision:
        """
        Decide whether ``user_id`` may mop comments in the configured subreddit.

        Args:
            user_id: Reddit user id (without the ``t2_`` prefix)

        Returns:
            ALLOWED or DENIED, or UNDETERMINED when the user cannot be resolved
            or a cache or lookup error occurs
        """
        if not user_id:
            logger.error("No user ID supplied for permission check")
            return PermissionDecision.UNDETERMINED

        start = self.clock()
        key = permissions_cache_key(user_id)

        try:
            cached_value = await self.store.get(key)
            cached = None if cached_value is None else bool(json.loads(cached_value))
        except Exception as e:
            logger.error(f"Permission cache read failed for user {user_id}: {e}")
            self._record("error")
            return PermissionDecision.UNDETERMINED

        if cached is not None:
            allowed = cached
            self._record("hit")
            logger.info(
                f"Cache hit for user {user_id}, can mop: {allowed}. "
                f"Cache lookup took {(self.clock() - start) * 1000:.0f}ms"
            )
            return PermissionDecision.ALLOWED if allowed else PermissionDecision.DENIED

        self._record("miss")

        try:
            user = await self._resolve_user(user_id)
            if user is None:
                logger.error(f"User {user_id} could not be retrieved or is not a mod of r/{self.subreddit_name}")
                return PermissionDecision.UNDETERMINED

            scopes = await self.source.get_mod_permissions(user, self.subreddit_name)
        except Exception as e:
            logger.error(f"Permission lookup failed for user {user_id}: {e}", exc_info=True)
            return PermissionDecision.UNDETERMINED

        allowed = bool(BULK_ACTION_SCOPES & set(scopes))
        expire_at = datetime.fromtimestamp(self.clock(), tz=timezone.utc) + self.ttl

        try:
            await self.store.set(permissions_cache_key(user.id), json.dumps(allowed), expire_at)
        except Exception as e:
            logger.error(f"Failed to cache permissions for user {user.username}: {e}")

        logger.info(
            f"Cache miss for user {user.username}, can mop: {allowed}. "
            f"Lookup took {(self.clock() - start) * 1000:.0f}ms"
        )
        return PermissionDecision.ALLOWED if allowed else PermissionDecision.DENIED

    async def invalidate(self, user_id: str) -> None:
        """
        Drop the cached decision for ``user_id`` so the next check looks it up.

        Raises:
            Exception: Whatever the store raises; the caller decides how to report it
        """
        await self.store.delete(permissions_cache_key(user_id))
        logger.info(f"Cleared permissions cache for user {user_id}")
