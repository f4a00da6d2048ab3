"""Read-only snapshots of a process tree.

Traversals, challenge validation and the renderers never look at the
live arena.  They get a ``TreeSnapshot``: frozen copies of every node,
taken between actions, so nothing downstream can observe (or cause) a
half-applied mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from py_proctree.errors import UnknownTarget
from py_proctree.tree.node import LIVE_STATES, ProcessState

if TYPE_CHECKING:
    from collections.abc import Iterator

    from py_proctree.tree.node import ProcessNode


@dataclass(frozen=True)
class NodeView:
    """Immutable copy of one ``ProcessNode``."""

    node_id: int
    pid: int
    ppid: int
    parent_id: int | None
    state: ProcessState
    orphan: bool
    children: tuple[int, ...]
    depth: int
    fork_level: int
    created_at: int

    @classmethod
    def of(cls, node: ProcessNode) -> NodeView:
        """Copy a live node."""
        return cls(
            node_id=node.node_id,
            pid=node.pid,
            ppid=node.ppid,
            parent_id=node.parent_id,
            state=node.state,
            orphan=node.orphan,
            children=tuple(node.children),
            depth=node.depth,
            fork_level=node.fork_level,
            created_at=node.created_at,
        )

    @property
    def is_alive(self) -> bool:
        """Return True if the process has not exited."""
        return self.state in LIVE_STATES

    @property
    def display_state(self) -> ProcessState:
        """Return ORPHAN for a live orphan, otherwise the state."""
        if self.orphan and self.is_alive:
            return ProcessState.ORPHAN
        return self.state

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-ready dict."""
        return {
            "id": self.node_id,
            "pid": self.pid,
            "ppid": self.ppid,
            "parent_id": self.parent_id,
            "state": str(self.state),
            "display_state": str(self.display_state),
            "orphan": self.orphan,
            "children": list(self.children),
            "depth": self.depth,
            "fork_level": self.fork_level,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class TreeSnapshot:
    """Immutable copy of a whole tree.

    ``nodes`` is indexed by node id.  An empty snapshot has no nodes and
    ``root_id`` None.
    """

    nodes: tuple[NodeView, ...] = ()
    root_id: int | None = None

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self.nodes)

    def __iter__(self) -> Iterator[NodeView]:
        """Iterate nodes in creation order."""
        return iter(self.nodes)

    @property
    def root(self) -> NodeView | None:
        """Return the root node, or None if the tree is empty."""
        if self.root_id is None:
            return None
        return self.nodes[self.root_id]

    def get(self, node_id: int) -> NodeView:
        """Return the node with *node_id*.

        Raises:
            UnknownTarget: If no such node exists.

        """
        if not 0 <= node_id < len(self.nodes):
            msg = f"Node {node_id} not found"
            raise UnknownTarget(msg)
        return self.nodes[node_id]

    def find_pid(self, pid: int) -> NodeView:
        """Return the node with *pid*.

        Raises:
            UnknownTarget: If no node has that PID.

        """
        for node in self.nodes:
            if node.pid == pid:
                return node
        msg = f"Process {pid} not found"
        raise UnknownTarget(msg)

    def children_of(self, node_id: int) -> list[NodeView]:
        """Return the children of a node in fork order."""
        return [self.nodes[c] for c in self.get(node_id).children]

    def count(self, state: ProcessState) -> int:
        """Return how many nodes are in *state*."""
        return sum(1 for n in self.nodes if n.state is state)

    @property
    def orphans(self) -> list[NodeView]:
        """Return every node flagged as adopted by init."""
        return [n for n in self.nodes if n.orphan]

    @property
    def max_depth(self) -> int:
        """Return the depth of the deepest node (-1 when empty)."""
        return max((n.depth for n in self.nodes), default=-1)

    def degree(self, node_id: int) -> int:
        """Return the number of children of a node."""
        return len(self.get(node_id).children)

    def subtree_size(self, node_id: int) -> int:
        """Return how many nodes the subtree rooted at *node_id* holds, itself included."""
        size = 0
        stack = [node_id]
        while stack:
            size += 1
            stack.extend(self.get(stack.pop()).children)
        return size

    def height(self, node_id: int) -> int:
        """Return the number of edges on the longest path down to a leaf.

        A leaf has height 0.
        """
        top = self.get(node_id).depth
        deepest = top
        stack = [node_id]
        while stack:
            node = self.get(stack.pop())
            deepest = max(deepest, node.depth)
            stack.extend(node.children)
        return deepest - top

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-ready dict."""
        return {
            "root_id": self.root_id,
            "nodes": [n.to_dict() for n in self.nodes],
        }
