"""Tree traversals over a process-tree snapshot.

A traversal turns the tree into a visiting order for the highlighting
UI.  Each one maps to an idea from the operating-systems side:

- **preorder** — a parent exists before any of its children.
- **postorder** — ``wait`` for every child before the parent goes on.
- **levelorder** — one "generation" of forks at a time.
- **inorder** — only meaningful for binary fork trees: left child,
  parent, right child.

Traversals are shape-based, not state-based: zombies, reaped and
orphaned nodes are all visited.  Siblings are always taken in fork
order.  All functions are pure — they read a ``TreeSnapshot`` and never
touch the live tree.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from py_proctree.errors import UnsupportedShape
from py_proctree.tree.process_tree import ProcessTree

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_proctree.tree.snapshot import NodeView, TreeSnapshot

_BINARY = 2


class TraversalType(StrEnum):
    """Supported visiting orders."""

    PREORDER = "preorder"
    POSTORDER = "postorder"
    LEVELORDER = "levelorder"
    INORDER = "inorder"


@dataclass(frozen=True)
class TraversalStep:
    """One visit: which node, and its position in the order."""

    node_id: int
    pid: int
    order: int

    def to_dict(self) -> dict[str, int]:
        """Return a JSON-ready dict."""
        return {"node_id": self.node_id, "pid": self.pid, "order": self.order}


def _as_snapshot(tree: ProcessTree | TreeSnapshot) -> TreeSnapshot:
    return tree.snapshot() if isinstance(tree, ProcessTree) else tree


def _number(nodes: list[NodeView]) -> list[TraversalStep]:
    return [TraversalStep(node_id=n.node_id, pid=n.pid, order=i) for i, n in enumerate(nodes)]


def preorder(tree: ProcessTree | TreeSnapshot) -> list[TraversalStep]:
    """Visit each node, then each child's subtree left to right."""
    snap = _as_snapshot(tree)
    if snap.root is None:
        return []
    visited: list[NodeView] = []
    stack = [snap.root]
    while stack:
        node = stack.pop()
        visited.append(node)
        stack.extend(snap.nodes[c] for c in reversed(node.children))
    return _number(visited)


def postorder(tree: ProcessTree | TreeSnapshot) -> list[TraversalStep]:
    """Visit each child's subtree left to right, then the node."""
    snap = _as_snapshot(tree)
    if snap.root is None:
        return []
    visited: list[NodeView] = []
    stack: list[tuple[NodeView, bool]] = [(snap.root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            visited.append(node)
            continue
        stack.append((node, True))
        stack.extend((snap.nodes[c], False) for c in reversed(node.children))
    return _number(visited)


def levelorder(tree: ProcessTree | TreeSnapshot) -> list[TraversalStep]:
    """Visit breadth-first: by depth, siblings in fork order."""
    snap = _as_snapshot(tree)
    if snap.root is None:
        return []
    visited: list[NodeView] = []
    queue = deque([snap.root])
    while queue:
        node = queue.popleft()
        visited.append(node)
        queue.extend(snap.nodes[c] for c in node.children)
    return _number(visited)


def inorder(tree: ProcessTree | TreeSnapshot) -> list[TraversalStep]:
    """Visit the left child's subtree, the node, then the right child's.

    A node with a single child is visited before that child.

    Raises:
        UnsupportedShape: If any node has more than two children.

    """
    snap = _as_snapshot(tree)
    if snap.root is None:
        return []
    for node in snap:
        if len(node.children) > _BINARY:
            msg = (
                f"Inorder traversal needs a binary tree: "
                f"PID {node.pid} has {len(node.children)} children"
            )
            raise UnsupportedShape(msg)

    visited: list[NodeView] = []
    # (node, expanded): an expanded entry is emitted, a fresh one is split
    # into right half, node, left half (pushed in reverse).
    stack: list[tuple[NodeView, bool]] = [(snap.root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            visited.append(node)
            continue
        mid = len(node.children) // 2
        stack.extend((snap.nodes[c], False) for c in reversed(node.children[mid:]))
        stack.append((node, True))
        stack.extend((snap.nodes[c], False) for c in reversed(node.children[:mid]))
    return _number(visited)


_TRAVERSALS: dict[TraversalType, Callable[[ProcessTree | TreeSnapshot], list[TraversalStep]]] = {
    TraversalType.PREORDER: preorder,
    TraversalType.POSTORDER: postorder,
    TraversalType.LEVELORDER: levelorder,
    TraversalType.INORDER: inorder,
}


def traverse(tree: ProcessTree | TreeSnapshot, kind: TraversalType | str) -> list[TraversalStep]:
    """Return the visiting order of *kind* over *tree*.

    Args:
        tree: A live tree (snapshotted first) or a snapshot.
        kind: A ``TraversalType`` or its string value.

    Raises:
        ValueError: If *kind* is not a known traversal.
        UnsupportedShape: For inorder over a non-binary tree.

    """
    return _TRAVERSALS[TraversalType(kind)](tree)


class TraversalPlayer:
    """Step-by-step cursor over a traversal, for animated highlighting.

    The cursor starts before the first step (position -1) and never
    moves past either end.
    """

    def __init__(self, steps: list[TraversalStep]) -> None:
        """Create a player positioned before the first step."""
        self._steps = list(steps)
        self._position = -1

    @property
    def steps(self) -> list[TraversalStep]:
        """Return the full traversal."""
        return list(self._steps)

    @property
    def position(self) -> int:
        """Return the index of the current step (-1 before the start)."""
        return self._position

    @property
    def current(self) -> TraversalStep | None:
        """Return the current step, or None before the start."""
        if self._position < 0:
            return None
        return self._steps[self._position]

    @property
    def visited(self) -> list[TraversalStep]:
        """Return every step up to and including the current one."""
        return self._steps[: self._position + 1]

    @property
    def finished(self) -> bool:
        """Return True once the last step is current."""
        return self._position == len(self._steps) - 1

    def next(self) -> TraversalStep | None:
        """Advance one step and return the new current step."""
        self._position = min(self._position + 1, len(self._steps) - 1)
        return self.current

    def previous(self) -> TraversalStep | None:
        """Go back one step and return the new current step."""
        self._position = max(self._position - 1, -1)
        return self.current

    def reset(self) -> None:
        """Return to before the first step."""
        self._position = -1
