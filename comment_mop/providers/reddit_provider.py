"""asyncpraw implementations of the content and authorization capabilities."""

import logging
from typing import Any, Dict, List, Optional, Set, Union

from asyncpraw.models import Comment, Submission
from asyncprawcore.exceptions import ResponseException, ServerError, TooManyRequests

from comment_mop.collector.error_handler import with_exponential_backoff
from comment_mop.collector.rate_limiter import RateLimiter
from comment_mop.models.mapping import (
    USER_FULLNAME_PREFIX,
    comment_to_node,
    comments_to_nodes,
    normalize_user_id,
    redditor_to_user,
    submission_to_node,
)
from comment_mop.models.node import ModeratorUser, Node, NodeKind
from comment_mop.permissions.roster_events import RosterChangeEvent
from comment_mop.reddit_client import RedditClient

logger = logging.getLogger(__name__)

Thing = Union[Comment, Submission]

ROSTER_ACTIONS = frozenset({"addmoderator", "invitemoderator", "permissions", "removemoderator"})


class RedditContentProvider:
    """
    ContentProvider backed by asyncpraw.

    Fetched posts and comments are kept by id for the lifetime of the provider.
    Loading a post or a root comment expands its whole reply tree in one go
    (``replace_more(limit=None)``), so listing the replies of any comment found
    below it needs no further request.
    """

    def __init__(self, reddit_client: RedditClient, rate_limiter: RateLimiter):
        self.reddit_client = reddit_client
        self.rate_limiter = rate_limiter
        self._things: Dict[str, Thing] = {}
        self._expanded: Set[str] = set()

    def _update_limits(self) -> None:
        limits = getattr(self.reddit_client.reddit.auth, "limits", None)
        if limits:
            self.rate_limiter.update_from_limits(limits)

    @with_exponential_backoff()
    async def get_node(self, node_id: str, kind: NodeKind) -> Node:
        """Fetch a post or comment and return its snapshot."""
        await self.rate_limiter.pre_request()
        reddit = self.reddit_client.reddit

        if kind is NodeKind.POST:
            submission = await reddit.submission(node_id)
            self._things[submission.id] = submission
            node = submission_to_node(submission)
        else:
            comment = await reddit.comment(node_id)
            self._things[comment.id] = comment
            node = comment_to_node(comment)

        self._update_limits()
        return node

    @with_exponential_backoff()
    async def _expand(self, thing: Thing) -> None:
        """Load every reply below ``thing``, replacing all "load more" stubs."""
        await self.rate_limiter.pre_request()

        if isinstance(thing, Submission):
            forest = thing.comments
        else:
            await thing.refresh()
            forest = thing.replies
        await forest.replace_more(limit=None)

        self._update_limits()
        self._expanded.add(thing.id)

    async def list_children(self, node: Node) -> List[Node]:
        thing = self._things.get(node.id)
        if thing is None:
            await self.get_node(node.id, node.kind)
            thing = self._things[node.id]

        if node.id not in self._expanded:
            await self._expand(thing)

        forest = thing.comments if isinstance(thing, Submission) else thing.replies
        children: List[Comment] = []
        async for child in forest:
            self._things[child.id] = child
            # Already fully loaded by the expansion of an ancestor
            self._expanded.add(child.id)
            children.append(child)
        return comments_to_nodes(children)

    async def _thing_for(self, node: Node) -> Thing:
        thing = self._things.get(node.id)
        if thing is not None:
            return thing
        reddit = self.reddit_client.reddit
        if node.kind is NodeKind.POST:
            thing = await reddit.submission(node.id, fetch=False)
        else:
            thing = await reddit.comment(node.id, fetch=False)
        self._things[node.id] = thing
        return thing

    async def remove(self, node: Node) -> None:
        await self.rate_limiter.pre_request()
        thing = await self._thing_for(node)
        await thing.mod.remove()
        self._update_limits()
        logger.debug(f"Removed {node.kind.value} {node.id}")

    async def lock(self, node: Node) -> None:
        await self.rate_limiter.pre_request()
        thing = await self._thing_for(node)
        await thing.mod.lock()
        self._update_limits()
        logger.debug(f"Locked {node.kind.value} {node.id}")


class RedditAuthorizationSource:
    """AuthorizationSource backed by asyncpraw moderator listings."""

    def __init__(self, reddit_client: RedditClient, rate_limiter: RateLimiter):
        self.reddit_client = reddit_client
        self.rate_limiter = rate_limiter

    @with_exponential_backoff()
    async def get_current_user(self) -> ModeratorUser:
        await self.rate_limiter.pre_request()
        me = await self.reddit_client.reddit.user.me()
        if me is None:
            raise ValueError("Reddit returned no current user")
        return redditor_to_user(me)

    @with_exponential_backoff()
    async def list_moderators(self, subreddit_name: str) -> List[ModeratorUser]:
        await self.rate_limiter.pre_request()
        subreddit = await self.reddit_client.get_subreddit(subreddit_name)
        moderators = await subreddit.moderator()
        return [redditor_to_user(moderator) for moderator in moderators]

    @with_exponential_backoff()
    async def get_mod_permissions(self, user: ModeratorUser, subreddit_name: str) -> Set[str]:
        await self.rate_limiter.pre_request()
        subreddit = await self.reddit_client.get_subreddit(subreddit_name)
        moderators = await subreddit.moderator(redditor=user.username)
        if not moderators:
            return set()
        return set(getattr(moderators[0], "mod_permissions", None) or [])

    @with_exponential_backoff()
    async def resolve_user_id(self, username: str) -> str:
        """Look up the id of an account by username."""
        await self.rate_limiter.pre_request()
        redditor = await self.reddit_client.reddit.redditor(username, fetch=True)
        user_id = redditor_to_user(redditor).id
        if not user_id:
            # Suspended accounts come back without an id
            raise ValueError(f"u/{username} has no visible account id")
        return user_id

    async def _target_user_id(self, entry: Any, user_ids: Dict[str, Optional[str]]) -> Optional[str]:
        fullname = getattr(entry, "target_fullname", None) or ""
        if fullname.startswith(USER_FULLNAME_PREFIX):
            return normalize_user_id(fullname)

        username = entry.target_author
        if username not in user_ids:
            try:
                user_ids[username] = await self.resolve_user_id(username)
            except (ServerError, TooManyRequests):
                raise
            except (ResponseException, ValueError) as e:
                logger.warning(f"Skipping roster entry {entry.id}: cannot resolve u/{username}: {e}")
                user_ids[username] = None
        return user_ids[username]

    @with_exponential_backoff()
    async def fetch_roster_events(self, subreddit_name: str, limit: int = 100) -> List[RosterChangeEvent]:
        """
        Read recent roster changes from the subreddit moderation log, newest first.

        Args:
            subreddit_name: Subreddit whose log is read
            limit: Maximum number of log entries to scan

        Returns:
            Roster change events with resolved target user ids
        """
        await self.rate_limiter.pre_request()
        subreddit = await self.reddit_client.get_subreddit(subreddit_name)

        events: List[RosterChangeEvent] = []
        user_ids: Dict[str, Optional[str]] = {}
        async for entry in subreddit.mod.log(limit=limit):
            if entry.action not in ROSTER_ACTIONS or not entry.target_author:
                continue
            target_user_id = await self._target_user_id(entry, user_ids)
            if target_user_id is None:
                continue
            events.append(RosterChangeEvent(
                action=entry.action,
                target_user_id=target_user_id,
                target_username=entry.target_author,
                entry_id=entry.id,
            ))
        return events
