"""Composition of permission check, tree collection and batched actions into a mop."""

import logging
import time
from typing import Optional

from comment_mop.collector.batch_executor import BatchExecutor
from comment_mop.collector.tree_collector import TreeCollector
from comment_mop.models.audit import AuditEntry
from comment_mop.models.node import (
    ActionConfig,
    ModeratorUser,
    MopOutcome,
    MopSummary,
    Node,
    NodeKind,
    PermissionDecision,
)
from comment_mop.permissions.permission_cache import PermissionCache
from comment_mop.providers.base import AuditSink, ContentProvider

logger = logging.getLogger(__name__)

MSG_NO_ACTION = "You must select either lock or remove."
MSG_NO_TARGET = "No post or comment was given to mop."
MSG_UNDETERMINED = "Could not determine your mod permissions. Please try again later."
MSG_DENIED = "You do not have the correct mod permissions to do this."
MSG_NOTHING_TO_DO = "No comments found to mop."
MSG_FAILED = "Mop failed! Please try again later."
MSG_POST_ALREADY_LOCKED = "The post is already locked. Locking individual comments is not necessary."
MSG_POST_LOCKED = "Rather than locking individual comments, the post has been locked."
MSG_WRONG_SUBREDDIT = "This content is not in the subreddit comment-mop moderates."


def _pluralize(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


class ModerationOrchestrator:
    """
    Runs thread-wide and post-wide mops.

    Every invocation ends in exactly one MopSummary; no exception escapes
    ``mop_thread`` or ``mop_post``.
    """

    def __init__(
        self,
        provider: ContentProvider,
        permission_cache: PermissionCache,
        collector: TreeCollector,
        executor: BatchExecutor,
        audit_sink: Optional[AuditSink] = None,
        lock_post_instead_of_comments: bool = False,
        prometheus_exporter=None,
    ):
        self.provider = provider
        self.permission_cache = permission_cache
        self.collector = collector
        self.executor = executor
        self.audit_sink = audit_sink
        self.lock_post_instead_of_comments = lock_post_instead_of_comments
        self.prometheus_exporter = prometheus_exporter

    async def mop_thread(self, actor: ModeratorUser, root_comment_id: str, config: ActionConfig) -> MopSummary:
        """Mop a comment and every reply below it."""
        return await self._mop(actor, root_comment_id, NodeKind.COMMENT, config)

    async def mop_post(self, actor: ModeratorUser, root_post_id: str, config: ActionConfig) -> MopSummary:
        """Mop every comment of a post."""
        return await self._mop(actor, root_post_id, NodeKind.POST, config)

    async def authorize(self, user_id: Optional[str]) -> PermissionDecision:
        return await self.permission_cache.authorize(user_id)

    def _finish(self, summary: MopSummary) -> MopSummary:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_mop(summary.outcome.value)
        return summary

    async def _mop(self, actor: ModeratorUser, root_id: str, kind: NodeKind, config: ActionConfig) -> MopSummary:
        if not config.has_action():
            return self._finish(MopSummary(MopOutcome.INVALID, root_id, MSG_NO_ACTION))
        if not root_id:
            logger.error(f"No {kind.value} ID supplied")
            return self._finish(MopSummary(MopOutcome.INVALID, root_id, MSG_NO_TARGET))

        decision = await self.permission_cache.authorize(actor.id)
        if decision is PermissionDecision.UNDETERMINED:
            return self._finish(MopSummary(MopOutcome.DENIED, root_id, MSG_UNDETERMINED, retryable=True))
        if decision is PermissionDecision.DENIED:
            return self._finish(MopSummary(MopOutcome.DENIED, root_id, MSG_DENIED))

        start = time.monotonic()
        try:
            return self._finish(await self._run(actor, root_id, kind, config, start))
        except Exception as e:
            logger.error(f"{root_id}: Failed to mop comments after {(time.monotonic() - start) * 1000:.0f}ms: {e}",
                         exc_info=True)
            return self._finish(MopSummary(
                MopOutcome.FAILED, root_id, MSG_FAILED,
                gather_seconds=time.monotonic() - start, retryable=True,
            ))

    async def _lock_post_only(self, root: Node) -> MopSummary:
        if root.locked:
            return MopSummary(MopOutcome.SUCCEEDED, root.id, MSG_POST_ALREADY_LOCKED)
        await self.provider.lock(root)
        logger.info(f"{root.id}: Locked post instead of its comments")
        return MopSummary(MopOutcome.SUCCEEDED, root.id, MSG_POST_LOCKED)

    async def _run(
        self,
        actor: ModeratorUser,
        root_id: str,
        kind: NodeKind,
        config: ActionConfig,
        start: float,
    ) -> MopSummary:
        root = await self.provider.get_node(root_id, kind)

        subreddit_name = self.permission_cache.subreddit_name
        if root.subreddit.lower() != subreddit_name.lower():
            logger.warning(
                f"{root.id}: Refusing to mop content in r/{root.subreddit or '?'}, "
                f"permissions were checked for r/{subreddit_name}"
            )
            return MopSummary(MopOutcome.DENIED, root.id, MSG_WRONG_SUBREDDIT)

        if root.is_post and config.lock and not config.remove and self.lock_post_instead_of_comments:
            return await self._lock_post_only(root)

        nodes = await self.collector.collect(root, config.keep)
        gather_end = time.monotonic()
        gather_seconds = gather_end - start
        if self.prometheus_exporter:
            self.prometheus_exporter.observe_gather(gather_seconds)

        if not nodes:
            logger.info(f"{root.id}: No comments found to mop.")
            return MopSummary(MopOutcome.NOTHING_TO_DO, root.id, MSG_NOTHING_TO_DO, gather_seconds=gather_seconds)

        result = await self.executor.execute(nodes, config)
        action_seconds = time.monotonic() - gather_end
        if self.prometheus_exporter:
            self.prometheus_exporter.observe_action(action_seconds)

        if not result.succeeded:
            return MopSummary(
                MopOutcome.FAILED, root.id, MSG_FAILED,
                gather_seconds=gather_seconds, action_seconds=action_seconds, retryable=True,
            )

        count = len(nodes)
        verb = config.verb()
        logger.info(
            f"{root.id}: /u/{actor.username} successfully {verb} {count} {_pluralize('comment', count)} "
            f"in {action_seconds * 1000:.0f}ms (gathered in {gather_seconds * 1000:.0f}ms)."
        )

        if config.remove:
            await self._write_audit(actor, root, config)

        return MopSummary(
            MopOutcome.SUCCEEDED,
            root.id,
            f"Successfully {verb} {count} {_pluralize('comment', count)}! Refresh the page to see the cleanup.",
            count=count,
            gather_seconds=gather_seconds,
            action_seconds=action_seconds,
        )

    async def _write_audit(self, actor: ModeratorUser, root: Node, config: ActionConfig) -> None:
        """Best-effort audit write; failures are logged and never propagated."""
        if self.audit_sink is None:
            return
        entry = AuditEntry(
            action="removelink" if root.is_post else "removecomment",
            target=root.id,
            moderator=actor.username,
            description=f"{actor.username} used comment-mop to {config.log_verb()} all comments of this post.",
        )
        try:
            await self.audit_sink.append(entry)
        except Exception as e:
            logger.error(f"Failed to add modlog for {root.id}: {e}")
