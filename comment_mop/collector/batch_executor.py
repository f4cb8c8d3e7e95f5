"""Chunked, concurrency-bounded application of remove/lock actions."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from comment_mop.models.node import ActionConfig, BatchResult, Node
from comment_mop.providers.base import ContentProvider

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 30


def chunked(nodes: Sequence[Node], size: int) -> List[Sequence[Node]]:
    """Split ``nodes`` into consecutive slices of at most ``size`` items."""
    return [nodes[i:i + size] for i in range(0, len(nodes), size)]


class BatchExecutor:
    """
    Applies remove and lock actions to collected nodes in sequential chunks.

    At most ``chunk_size`` mutating calls are outstanding at any time. Within a
    chunk every remove settles before any lock is issued, and a chunk settles
    completely before the next one starts.

    Partial failure: all calls dispatched in a phase are allowed to settle. If
    any of them failed, the chunk fails, its lock phase (when the failure was in
    the remove phase) is skipped and no later chunk is attempted. Failed calls
    are never retried.
    """

    def __init__(
        self,
        provider: ContentProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        prometheus_exporter=None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.provider = provider
        self.chunk_size = chunk_size
        self.prometheus_exporter = prometheus_exporter

    async def _run_phase(
        self,
        action: str,
        call: Callable[[Node], Awaitable[None]],
        nodes: Sequence[Node],
    ) -> Optional[BaseException]:
        """
        Dispatch ``call`` for every node concurrently and wait for all of them.

        Returns:
            The first failure, or None if every call succeeded
        """
        if not nodes:
            return None

        results = await asyncio.gather(*(call(node) for node in nodes), return_exceptions=True)

        first_error: Optional[BaseException] = None
        failed = 0
        for node, result in zip(nodes, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error(f"Failed to {action} {node.id}: {result}")
                if first_error is None:
                    first_error = result

        if self.prometheus_exporter:
            self.prometheus_exporter.record_nodes_actioned(action, len(nodes) - failed)
            if failed:
                self.prometheus_exporter.record_action_errors(action, failed)

        return first_error

    async def execute(self, nodes: Sequence[Node], config: ActionConfig) -> BatchResult:
        """
        Apply the configured actions to ``nodes``.

        Args:
            nodes: Collected nodes, in collection order
            config: Requested actions and skip rules

        Returns:
            BatchResult with the overall verdict; errors are reported, not raised
        """
        chunks = chunked(list(nodes), self.chunk_size)
        result = BatchResult(succeeded=True, chunks_total=len(chunks))
        start = time.monotonic()

        for index, chunk in enumerate(chunks, start=1):
            to_remove = [node for node in chunk if config.should_remove(node)]
            to_lock = [node for node in chunk if config.should_lock(node)]

            logger.debug(
                f"Chunk {index}/{len(chunks)}: {len(to_remove)} removes, {len(to_lock)} locks"
            )

            error = await self._run_phase("remove", self.provider.remove, to_remove)
            result.remove_calls += len(to_remove)

            if error is None:
                error = await self._run_phase("lock", self.provider.lock, to_lock)
                result.lock_calls += len(to_lock)

            if error is not None:
                logger.error(f"Chunk {index}/{len(chunks)} failed, abandoning remaining chunks")
                result.succeeded = False
                result.error = error
                break

            result.chunks_completed += 1

        elapsed = time.monotonic() - start
        logger.info(
            f"Executed {result.chunks_completed}/{result.chunks_total} chunks "
            f"({result.remove_calls} removes, {result.lock_calls} locks) in {elapsed * 1000:.0f}ms"
        )
        return result
