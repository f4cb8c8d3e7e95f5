"""In-memory fakes for the capability interfaces used by the mop core."""

import asyncio
from typing import Dict, List, Optional, Set

from comment_mop.models.node import ModeratorUser, Node, NodeKind


class FakeContentProvider:
    """
    In-memory ContentProvider.

    Tracks how many mutating calls are in flight at once and which nodes were
    removed or locked. Individual node ids can be made to fail.
    """

    def __init__(self, delay: float = 0.0):
        self.nodes: Dict[str, Node] = {}
        self.children: Dict[str, List[str]] = {}
        self.delay = delay
        self.removed: List[str] = []
        self.locked: List[str] = []
        self.fail_remove: Set[str] = set()
        self.fail_lock: Set[str] = set()
        self.fail_children: Set[str] = set()
        self.fetch_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.fetches_in_flight = 0
        self.max_fetches_in_flight = 0
        self.events: List[str] = []

    def add(self, node: Node, parent: Optional[str] = None) -> Node:
        self.nodes[node.id] = node
        self.children.setdefault(node.id, [])
        if parent is not None:
            self.children.setdefault(parent, []).append(node.id)
        return node

    async def get_node(self, node_id: str, kind: NodeKind) -> Node:
        self.fetch_calls += 1
        if node_id not in self.nodes:
            raise KeyError(node_id)
        return self.nodes[node_id]

    async def list_children(self, node: Node) -> List[Node]:
        self.fetch_calls += 1
        self.fetches_in_flight += 1
        self.max_fetches_in_flight = max(self.max_fetches_in_flight, self.fetches_in_flight)
        try:
            await asyncio.sleep(self.delay)
            if node.id in self.fail_children:
                raise ConnectionError(f"cannot list children of {node.id}")
            return [self.nodes[child_id] for child_id in self.children.get(node.id, [])]
        finally:
            self.fetches_in_flight -= 1

    async def _mutate(self, action: str, node: Node, failing: Set[str], done: List[str]) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(f"{action}:start:{node.id}")
        try:
            await asyncio.sleep(self.delay)
            if node.id in failing:
                raise RuntimeError(f"{action} failed for {node.id}")
            done.append(node.id)
        finally:
            self.in_flight -= 1
            self.events.append(f"{action}:end:{node.id}")

    async def remove(self, node: Node) -> None:
        await self._mutate("remove", node, self.fail_remove, self.removed)

    async def lock(self, node: Node) -> None:
        await self._mutate("lock", node, self.fail_lock, self.locked)


class FakeAuthorizationSource:
    """In-memory AuthorizationSource with call counting."""

    def __init__(self, current_user: Optional[ModeratorUser] = None):
        self.current_user = current_user
        self.moderators: List[ModeratorUser] = []
        self.permissions: Dict[str, Set[str]] = {}
        self.current_user_calls = 0
        self.list_calls = 0
        self.permission_calls = 0
        self.fail_permissions = False

    async def get_current_user(self) -> ModeratorUser:
        self.current_user_calls += 1
        if self.current_user is None:
            raise RuntimeError("current user is not fetchable")
        return self.current_user

    async def list_moderators(self, subreddit_name: str) -> List[ModeratorUser]:
        self.list_calls += 1
        return list(self.moderators)

    async def get_mod_permissions(self, user: ModeratorUser, subreddit_name: str) -> Set[str]:
        self.permission_calls += 1
        if self.fail_permissions:
            raise ConnectionError("roster unavailable")
        return self.permissions.get(user.id, set())


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def comment(node_id: str, **kwargs) -> Node:
    kwargs.setdefault("subreddit", "testsub")
    return Node(id=node_id, kind=NodeKind.COMMENT, **kwargs)


def post(node_id: str, **kwargs) -> Node:
    kwargs.setdefault("subreddit", "testsub")
    return Node(id=node_id, kind=NodeKind.POST, **kwargs)


def build_post_tree(provider: FakeContentProvider, distinguished: Optional[str] = None) -> Node:
    """
    Build a post with three top-level comments, each with one reply.

        p1
        ├── c1 ── r1
        ├── c2 ── r2
        └── c3 ── r3
    """
    root = provider.add(post("p1"))
    for i in (1, 2, 3):
        provider.add(comment(f"c{i}", is_distinguished=(f"c{i}" == distinguished)), parent="p1")
        provider.add(comment(f"r{i}"), parent=f"c{i}")
    return root
