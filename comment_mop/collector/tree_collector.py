"""Discovery of every actionable comment below a post or comment."""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

from comment_mop.models.node import Node, NodeKind
from comment_mop.providers.base import ContentProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_FETCHES = 10

KeepPredicate = Callable[[Node], bool]


class CollectionError(Exception):
    """Raised when the comment tree could not be fully fetched."""

    def __init__(self, root_id: str, message: str):
        super().__init__(f"{root_id}: {message}")
        self.root_id = root_id


def _keep_everything(node: Node) -> bool:
    return True


class TreeCollector:
    """
    Collects all nodes reachable from a root through a work list.

    Pending ``(node, depth)`` pairs sit in a queue that a fixed pool of worker
    tasks drains, so the number of outstanding child fetches never exceeds
    ``max_concurrent_fetches`` however wide or deep the tree is. Sibling
    subtrees complete in no particular order.
    """

    def __init__(
        self,
        provider: ContentProvider,
        max_concurrent_fetches: int = DEFAULT_MAX_CONCURRENT_FETCHES,
    ):
        if max_concurrent_fetches < 1:
            raise ValueError("max_concurrent_fetches must be at least 1")
        self.provider = provider
        self.max_concurrent_fetches = max_concurrent_fetches
        self.last_max_depth = 0

    async def collect(self, root: Node, keep: Optional[KeepPredicate] = None) -> List[Node]:
        """
        Collect every node below ``root`` for which ``keep`` holds.

        A comment root is part of the result when kept; a post root never is.
        A node rejected by ``keep`` is left out, but its replies are still
        discovered.

        Args:
            root: Post or comment to start from
            keep: Predicate deciding which discovered nodes are collected

        Returns:
            The collected nodes, in discovery order

        Raises:
            CollectionError: If any child fetch fails
        """
        keep = keep or _keep_everything
        start = time.monotonic()

        collected: List[Node] = []
        if root.kind is NodeKind.COMMENT and keep(root):
            collected.append(root)

        queue: "asyncio.Queue[Tuple[Node, int]]" = asyncio.Queue()
        queue.put_nowait((root, 0))
        failures: List[BaseException] = []
        max_depth = 0

        async def worker() -> None:
            nonlocal max_depth
            while True:
                node, depth = await queue.get()
                try:
                    # Once a fetch has failed the rest of the queue is drained unfetched
                    if failures:
                        continue
                    children = await self.provider.list_children(node)
                    for child in children:
                        if keep(child):
                            collected.append(child)
                        queue.put_nowait((child, depth + 1))
                    if children:
                        max_depth = max(max_depth, depth + 1)
                except Exception as e:
                    logger.error(f"{root.id}: Failed to fetch children of {node.id}: {e}")
                    failures.append(e)
                finally:
                    queue.task_done()

        workers = [asyncio.create_task(worker()) for _ in range(self.max_concurrent_fetches)]
        try:
            await queue.join()
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        self.last_max_depth = max_depth

        if failures:
            raise CollectionError(
                root.id, f"comment tree could not be fetched ({len(failures)} failed fetches)"
            ) from failures[0]

        elapsed = time.monotonic() - start
        logger.info(
            f"{root.id}: Gathered {len(collected)} {'node' if len(collected) == 1 else 'nodes'} "
            f"(max depth {max_depth}) in {elapsed * 1000:.0f}ms"
        )
        return collected
