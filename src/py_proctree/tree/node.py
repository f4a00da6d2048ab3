"""Process nodes — one entry in the simulated process table.

A node is the tree's record of a single process: its PID, its parent,
its children, and where it is in its lifecycle.  Nodes live in the
tree's append-only arena and are never removed, even after they are
reaped, just as a zombie lingers in a real process table.

Lifecycle::

    RUNNING ⇄ WAITING
       ↓        ↓
          ZOMBIE → TERMINATED

RUNNING → WAITING happens on a blocking ``wait``; WAITING → RUNNING
when the awaited child is reaped.  ``exit`` moves a live process to
ZOMBIE; the parent's ``wait`` reaps it into TERMINATED.

Orphan status is orthogonal: a node whose parent exits while it is
still alive is adopted by init and flagged, but keeps its own state.
"""

from __future__ import annotations

from enum import StrEnum

from py_proctree.errors import InvalidParentState


class ProcessState(StrEnum):
    """States a process node can be shown in.

    - RUNNING: alive and able to fork, wait or exit.
    - WAITING: blocked in ``wait`` until a child is reaped.
    - ZOMBIE: exited, but the parent has not collected it yet.
    - TERMINATED: exited and reaped.
    - ORPHAN: display-only — a live node adopted by init.  A node's
      lifecycle ``state`` is never ORPHAN; see ``display_state``.
    """

    RUNNING = "running"
    WAITING = "waiting"
    ZOMBIE = "zombie"
    TERMINATED = "terminated"
    ORPHAN = "orphan"


LIVE_STATES: frozenset[ProcessState] = frozenset({ProcessState.RUNNING, ProcessState.WAITING})
"""States in which a process has not exited."""


class ProcessNode:
    """A simulated process in the tree's arena.

    Structural fields (``children``, ``parent_id``, ``depth``) are
    maintained by ``ProcessTree``; the node itself only enforces its own
    state machine.
    """

    def __init__(
        self,
        *,
        node_id: int,
        pid: int,
        parent_id: int | None,
        ppid: int,
        depth: int,
        fork_level: int,
        created_at: int,
    ) -> None:
        """Create a node in the RUNNING state.

        Args:
            node_id: Arena index of the node.
            pid: Simulated process id.
            parent_id: Node id of the parent, or None for the root.
            ppid: PID of the parent (sentinel for the root).
            depth: Distance from the root.
            fork_level: How many children the parent had before this fork.
            created_at: Logical creation tick.

        """
        self.node_id = node_id
        self.pid = pid
        self.parent_id = parent_id
        self.ppid = ppid
        self.depth = depth
        self.fork_level = fork_level
        self.created_at = created_at
        self.children: list[int] = []
        self.orphan = False
        self.wait_target: int | None = None
        self._state = ProcessState.RUNNING

    @property
    def state(self) -> ProcessState:
        """Return the lifecycle state."""
        return self._state

    @property
    def is_alive(self) -> bool:
        """Return True while the process has not exited."""
        return self._state in LIVE_STATES

    @property
    def display_state(self) -> ProcessState:
        """Return the state to show: ORPHAN for a live orphan."""
        if self.orphan and self.is_alive:
            return ProcessState.ORPHAN
        return self._state

    def _transition(
        self,
        action: str,
        expected: frozenset[ProcessState],
        target: ProcessState,
    ) -> None:
        """Enforce a state transition.

        Raises:
            InvalidParentState: If the node is not in an expected state.

        """
        if self._state not in expected:
            allowed = " or ".join(sorted(expected))
            msg = f"Cannot {action}: PID {self.pid} is {self._state}, expected {allowed}"
            raise InvalidParentState(msg)
        self._state = target

    def block(self, target: int) -> None:
        """Transition RUNNING → WAITING, recording what is awaited."""
        self._transition("wait", frozenset({ProcessState.RUNNING}), ProcessState.WAITING)
        self.wait_target = target

    def wake(self) -> None:
        """Transition WAITING → RUNNING."""
        self._transition("wake", frozenset({ProcessState.WAITING}), ProcessState.RUNNING)
        self.wait_target = None

    def exit(self) -> None:
        """Transition RUNNING/WAITING → ZOMBIE."""
        self._transition("exit", LIVE_STATES, ProcessState.ZOMBIE)
        self.wait_target = None

    def reap(self) -> None:
        """Transition ZOMBIE → TERMINATED."""
        self._transition("reap", frozenset({ProcessState.ZOMBIE}), ProcessState.TERMINATED)

    def __repr__(self) -> str:
        """Return a debug-friendly representation."""
        return f"ProcessNode(id={self.node_id}, pid={self.pid}, state={self._state})"
