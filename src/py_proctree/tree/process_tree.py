"""The process tree — an append-only arena of process nodes.

The tree is the single source of truth for the simulation.  It owns
every ``ProcessNode``, allocates PIDs, keeps parent/child links
consistent, and writes an ``EventLog`` entry for each event.

Operations mirror the Unix calls they teach:

- ``create_root()`` — init, PID 1, the ancestor of everything.
- ``fork(parent)`` — a new child appended to the parent's children.
- ``apply_exit(node)`` — the process becomes a zombie; its own children
  are orphaned and adopted by init.
- ``apply_wait(parent, target)`` — reap a zombie child.

Design choices:
    - **Nodes are never deleted.**  Reaped processes stay in the arena
      as TERMINATED, so child id lists can never dangle.
    - **Validate, then mutate.**  Every operation checks all of its
      preconditions before touching a node, so a failed call leaves
      the tree exactly as it was.  ``transaction()`` extends the same
      guarantee to a sequence of calls.
    - **Blocking is declarative.**  A blocking ``wait`` only records
      what the parent is waiting for; a later ``exit`` of that child
      completes it.  Nothing ever blocks the host thread.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import TYPE_CHECKING

from py_proctree.errors import (
    HasLiveChildren,
    InvalidOperation,
    InvalidParentState,
    NoZombieChildren,
    UnknownTarget,
)
from py_proctree.logging import EventLog, LogLevel
from py_proctree.tree.node import ProcessNode, ProcessState
from py_proctree.tree.snapshot import NodeView, TreeSnapshot

if TYPE_CHECKING:
    from collections.abc import Generator

INIT_PID = 1
"""PID of the root (init) process."""

ROOT_PPID = 0
"""Sentinel parent PID recorded on the root."""

ANY_CHILD = -1
"""Wait target meaning "whichever child exits first"."""


class ProcessTree:
    """Arena of simulated processes rooted at init.

    Node ids are arena indices (the root is node 0); PIDs start at
    ``INIT_PID`` and are never reused.  Both are monotonically
    increasing for the lifetime of the tree.
    """

    def __init__(self, *, orphan_on_exit: bool = True) -> None:
        """Create an empty tree.

        Args:
            orphan_on_exit: If True, a process may exit while it still
                has live children, which are then adopted by init.  If
                False, such an exit raises ``HasLiveChildren``.

        """
        self._orphan_on_exit = orphan_on_exit
        self._nodes: list[ProcessNode] = []
        self._next_pid = INIT_PID
        self._tick = 0
        self._log = EventLog()
        self._owner: object | None = None

    # -- Inspection ------------------------------------------------------------

    @property
    def orphan_on_exit(self) -> bool:
        """Return whether exiting with live children orphans them."""
        return self._orphan_on_exit

    @property
    def now(self) -> int:
        """Return the logical tick the next event will be stamped with."""
        return self._tick

    @property
    def log(self) -> EventLog:
        """Return the tree's event log."""
        return self._log

    @property
    def is_empty(self) -> bool:
        """Return True if no root has been created yet."""
        return not self._nodes

    def __len__(self) -> int:
        """Return the number of nodes ever created."""
        return len(self._nodes)

    @property
    def nodes(self) -> list[ProcessNode]:
        """Return every node in creation order."""
        return list(self._nodes)

    @property
    def root(self) -> ProcessNode:
        """Return the root node.

        Raises:
            InvalidOperation: If the tree has no root yet.

        """
        if not self._nodes:
            msg = "Tree has no root process"
            raise InvalidOperation(msg)
        return self._nodes[0]

    def get(self, node_id: int) -> ProcessNode:
        """Return the node with *node_id*.

        Raises:
            UnknownTarget: If no such node exists.

        """
        if not 0 <= node_id < len(self._nodes):
            msg = f"Node {node_id} not found"
            raise UnknownTarget(msg)
        return self._nodes[node_id]

    def find_pid(self, pid: int) -> ProcessNode:
        """Return the node with *pid*.

        Raises:
            UnknownTarget: If no node has that PID.

        """
        for node in self._nodes:
            if node.pid == pid:
                return node
        msg = f"Process {pid} not found"
        raise UnknownTarget(msg)

    def children_of(self, node_id: int) -> list[ProcessNode]:
        """Return the children of a node in fork order."""
        return [self._nodes[c] for c in self.get(node_id).children]

    @property
    def live_nodes(self) -> list[ProcessNode]:
        """Return every running or waiting node in creation order."""
        return [n for n in self._nodes if n.is_alive]

    @property
    def zombies(self) -> list[ProcessNode]:
        """Return every zombie in creation order."""
        return [n for n in self._nodes if n.state is ProcessState.ZOMBIE]

    @property
    def waiting_nodes(self) -> list[ProcessNode]:
        """Return every node blocked in ``wait``."""
        return [n for n in self._nodes if n.state is ProcessState.WAITING]

    def snapshot(self) -> TreeSnapshot:
        """Return an immutable copy of the whole tree."""
        return TreeSnapshot(
            nodes=tuple(NodeView.of(n) for n in self._nodes),
            root_id=0 if self._nodes else None,
        )

    # -- Ownership -------------------------------------------------------------

    @property
    def owner(self) -> object | None:
        """Return the session currently allowed to mutate the tree."""
        return self._owner

    def claim(self, owner: object) -> None:
        """Register *owner* as the tree's single writer.

        Raises:
            InvalidOperation: If a different owner holds the tree.

        """
        if self._owner is not None and self._owner is not owner:
            msg = "Tree is already owned by another session"
            raise InvalidOperation(msg)
        self._owner = owner

    def release(self, owner: object) -> None:
        """Release the tree if *owner* holds it."""
        if self._owner is owner:
            self._owner = None

    @contextmanager
    def transaction(self) -> Generator[ProcessTree]:
        """Roll every change back if the block raises.

        Nodes, the PID counter, the clock and the log are restored to
        their state at entry; the exception is then re-raised.
        """
        saved_nodes = copy.deepcopy(self._nodes)
        saved_pid = self._next_pid
        saved_tick = self._tick
        saved_log = len(self._log)
        try:
            yield self
        except Exception:
            self._nodes = saved_nodes
            self._next_pid = saved_pid
            self._tick = saved_tick
            self._log.truncate(saved_log)
            raise

    # -- Operations ------------------------------------------------------------

    def create_root(self) -> int:
        """Create the init process.

        Returns:
            The root's node id.

        Raises:
            InvalidOperation: If the tree already has a root.

        """
        if self._nodes:
            msg = f"Tree already has a root (PID {self._nodes[0].pid})"
            raise InvalidOperation(msg)
        tick = self._advance()
        root = ProcessNode(
            node_id=0,
            pid=self._allocate_pid(),
            parent_id=None,
            ppid=ROOT_PPID,
            depth=0,
            fork_level=0,
            created_at=tick,
        )
        self._nodes.append(root)
        self._log.log(
            LogLevel.INFO,
            f"Init process (PID {root.pid}) created",
            timestamp=tick,
            pid=root.pid,
        )
        return root.node_id

    def fork(self, parent_id: int) -> int:
        """Fork a child from *parent_id*.

        The child starts RUNNING one level below its parent, and is
        appended after any existing siblings.

        Returns:
            The new child's node id.

        Raises:
            UnknownTarget: If the parent does not exist.
            InvalidParentState: If the parent has already exited.

        """
        parent = self.get(parent_id)
        if not parent.is_alive:
            msg = f"Cannot fork: PID {parent.pid} is {parent.state}"
            raise InvalidParentState(msg)

        tick = self._advance()
        child = ProcessNode(
            node_id=len(self._nodes),
            pid=self._allocate_pid(),
            parent_id=parent.node_id,
            ppid=parent.pid,
            depth=parent.depth + 1,
            fork_level=len(parent.children),
            created_at=tick,
        )
        self._nodes.append(child)
        parent.children.append(child.node_id)
        self._log.log(
            LogLevel.SUCCESS,
            f"fork() called by PID {parent.pid} → child PID {child.pid} created",
            timestamp=tick,
            pid=child.pid,
        )
        return child.node_id

    def apply_exit(self, node_id: int, *, orphan_children: bool | None = None) -> None:
        """Exit a process, leaving it as a zombie.

        Children that have not been reaped are handed to init: each is
        reparented to the root and its subtree's depths recomputed.  Only
        the live ones are flagged as orphans; a zombie child just gets a
        new parent to reap it.  If the exiting process's parent is blocked
        waiting for it, the parent reaps it on the spot.

        Args:
            node_id: The exiting process.
            orphan_children: Override the tree's ``orphan_on_exit``
                setting for this call.

        Raises:
            UnknownTarget: If the node does not exist.
            InvalidOperation: If the node is the root.
            InvalidParentState: If the node has already exited.
            HasLiveChildren: If live children exist and orphaning is off.

        """
        node = self.get(node_id)
        if node.parent_id is None:
            msg = f"Cannot exit: PID {node.pid} is init"
            raise InvalidOperation(msg)
        if not node.is_alive:
            msg = f"Cannot exit: PID {node.pid} is {node.state}"
            raise InvalidParentState(msg)

        allow_orphans = self._orphan_on_exit if orphan_children is None else orphan_children
        adoptees = [
            self._nodes[c]
            for c in node.children
            if self._nodes[c].state is not ProcessState.TERMINATED
        ]
        live = [c for c in adoptees if c.is_alive]
        if live and not allow_orphans:
            msg = f"Cannot exit: PID {node.pid} has {len(live)} live child(ren)"
            raise HasLiveChildren(msg)

        tick = self._advance()
        node.exit()

        root = self._nodes[0]
        if live:
            self._log.log(
                LogLevel.WARNING,
                f"Parent PID {node.pid} exiting → {len(live)} child(ren) become ORPHAN",
                timestamp=tick,
                pid=node.pid,
            )
        for child in adoptees:
            self._adopt(child, tick)

        parent = self._nodes[node.parent_id]
        reaped = self._resolve_wait(parent)
        if reaped is node:
            self._log.log(
                LogLevel.SUCCESS,
                f"exit() called by PID {node.pid} → reaped by waiting parent PID {parent.pid}",
                timestamp=tick,
                pid=node.pid,
            )
        else:
            self._log.log(
                LogLevel.WARNING,
                f"exit() called by PID {node.pid} → became ZOMBIE "
                f"(parent PID {parent.pid} not waiting)",
                timestamp=tick,
                pid=node.pid,
            )

        # Init may already be waiting for an adopted zombie.
        if adoptees and parent is not root:
            adopted = self._resolve_wait(root)
            if adopted is not None:
                self._log_reap(root, adopted, tick)

    def apply_wait(
        self,
        parent_id: int,
        target_id: int | None = None,
        *,
        block: bool = False,
    ) -> int | None:
        """Reap a zombie child of *parent_id*.

        With a *target_id* only that child may be reaped.  Without one
        (or with ``ANY_CHILD``) the earliest-created zombie child is
        reaped.  When nothing can be reaped yet and *block* is True, the
        parent moves to WAITING and is completed by a later exit.

        Returns:
            The reaped child's node id, or None if the parent blocked.

        Raises:
            UnknownTarget: If the parent or target does not exist.
            InvalidParentState: If the parent is not running, or the
                target cannot be reaped now.
            InvalidOperation: If the target is not the parent's child.
            NoZombieChildren: If there is nothing to reap or wait for.

        """
        parent = self.get(parent_id)
        if parent.state is not ProcessState.RUNNING:
            msg = f"Cannot wait: PID {parent.pid} is {parent.state}, expected running"
            raise InvalidParentState(msg)

        if target_id is not None and target_id != ANY_CHILD:
            target = self.get(target_id)
            if target.parent_id != parent.node_id:
                msg = f"PID {target.pid} is not a child of PID {parent.pid}"
                raise InvalidOperation(msg)
            if target.state is ProcessState.ZOMBIE:
                return self._reap(parent, target)
            if target.is_alive and block:
                self._block(parent, target)
                return None
            msg = f"Cannot reap PID {target.pid}: it is {target.state}, expected zombie"
            raise InvalidParentState(msg)

        zombie = self._earliest_zombie(parent)
        if zombie is not None:
            return self._reap(parent, zombie)
        if block and any(self._nodes[c].is_alive for c in parent.children):
            self._block(parent, None)
            return None
        msg = f"PID {parent.pid} has no zombie children to reap"
        raise NoZombieChildren(msg)

    # -- Helpers ---------------------------------------------------------------

    def _advance(self) -> int:
        """Return the current logical tick and move the clock on."""
        tick = self._tick
        self._tick += 1
        return tick

    def _allocate_pid(self) -> int:
        pid = self._next_pid
        self._next_pid += 1
        return pid

    def _earliest_zombie(self, parent: ProcessNode) -> ProcessNode | None:
        zombies = [
            self._nodes[c] for c in parent.children if self._nodes[c].state is ProcessState.ZOMBIE
        ]
        return min(zombies, key=lambda n: n.created_at, default=None)

    def _reap(self, parent: ProcessNode, child: ProcessNode) -> int:
        tick = self._advance()
        child.reap()
        self._log_reap(parent, child, tick)
        return child.node_id

    def _log_reap(self, parent: ProcessNode, child: ProcessNode, tick: int) -> None:
        self._log.log(
            LogLevel.SUCCESS,
            f"wait() called by PID {parent.pid} → reaped child PID {child.pid}",
            timestamp=tick,
            pid=child.pid,
        )

    def _block(self, parent: ProcessNode, target: ProcessNode | None) -> None:
        tick = self._advance()
        if target is None:
            parent.block(ANY_CHILD)
            message = f"wait() called by PID {parent.pid} → waiting for any child"
        else:
            parent.block(target.node_id)
            message = f"wait() called by PID {parent.pid} → waiting for child PID {target.pid}"
        self._log.log(LogLevel.INFO, message, timestamp=tick, pid=parent.pid)

    def _resolve_wait(self, parent: ProcessNode) -> ProcessNode | None:
        """Complete a pending wait on *parent* if a matching zombie exists.

        Returns:
            The reaped child, or None if the parent is not waiting or
            nothing it waits for has exited.

        """
        if parent.state is not ProcessState.WAITING:
            return None
        target = parent.wait_target
        candidates = [
            self._nodes[c]
            for c in parent.children
            if self._nodes[c].state is ProcessState.ZOMBIE and target in {ANY_CHILD, c}
        ]
        child = min(candidates, key=lambda n: n.created_at, default=None)
        if child is None:
            return None
        child.reap()
        parent.wake()
        return child

    def _adopt(self, child: ProcessNode, tick: int) -> None:
        """Reparent *child* (and its subtree) to the root, flagging it if alive."""
        root = self._nodes[0]
        assert child.parent_id is not None  # noqa: S101
        self._nodes[child.parent_id].children.remove(child.node_id)
        child.parent_id = root.node_id
        child.ppid = root.pid
        child.orphan = child.is_alive
        root.children.append(child.node_id)

        stack = [(child, root.depth + 1)]
        while stack:
            node, depth = stack.pop()
            node.depth = depth
            stack.extend((self._nodes[c], depth + 1) for c in node.children)

        self._log.log(
            LogLevel.INFO,
            f"PID {child.pid} adopted by init (PID {root.pid})",
            timestamp=tick,
            pid=child.pid,
        )
