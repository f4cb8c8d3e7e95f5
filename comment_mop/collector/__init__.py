"""Tree collection and batched action execution."""

from comment_mop.collector.batch_executor import BatchExecutor
from comment_mop.collector.tree_collector import CollectionError, TreeCollector

__all__ = ["BatchExecutor", "CollectionError", "TreeCollector"]
