"""Scenario replay — apply scripted steps to a process tree.

A scenario is an ordered list of ``ScenarioStep`` records ("fork",
"wait", "exit", ...).  The ``ActionInterpreter`` applies them one at a
time, each to completion, against a single ``ProcessTree``:

    steps ──► ActionInterpreter ──► ProcessTree ──► EventLog

Guarantees:
    - **Atomic steps.**  A step either fully succeeds (tree mutated,
      log written) or raises and leaves tree and log exactly as they
      were.  This holds even for steps that make several tree calls.
    - **Single writer.**  An interpreter claims its tree for as long
      as it is open; a second interpreter on the same tree is refused.
    - **Deterministic.**  There is no real concurrency — a blocking
      ``wait`` is recorded on the parent and completed by a later
      ``exit``.  If the script ends with a wait still pending,
      ``finish()`` reports it as ``NoZombieChildren``.

Targets are PIDs, as a learner would write them.  A missing target (or
``ANY_CHILD``) picks a sensible default per action — see
``ActionInterpreter.apply``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Self

from py_proctree.errors import InvalidOperation, NoZombieChildren
from py_proctree.logging import LogLevel
from py_proctree.tree.node import ProcessState
from py_proctree.tree.process_tree import ANY_CHILD, ProcessTree

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import TracebackType

    from py_proctree.logging import LogEntry
    from py_proctree.tree.node import ProcessNode


class ScenarioAction(StrEnum):
    """Actions a scenario step can perform.

    - FORK: one process forks.
    - FORK_ALL: every live process forks once (``fork(); fork();``).
    - WAIT: a parent reaps (or blocks for) a child.
    - EXIT: a process exits.
    - ORPHAN: a process's parent exits while it is still alive.
    - EXPLAIN: no tree change; attach commentary to the log.
    """

    FORK = "fork"
    FORK_ALL = "fork_all"
    WAIT = "wait"
    EXIT = "exit"
    ORPHAN = "orphan"
    EXPLAIN = "explain"


@dataclass(frozen=True)
class ScenarioStep:
    """One scripted action.

    Attributes:
        action: What to do.
        target_pid: The acting process (fork, wait, exit) or the process
            to orphan.  None or ``ANY_CHILD`` selects the default.
        child_pid: For WAIT, a specific child to reap.
        description: Short caption for the step.
        os_explanation: Operating-systems commentary.
        dsa_explanation: Data-structures commentary.

    """

    action: ScenarioAction
    target_pid: int | None = None
    child_pid: int | None = None
    description: str = ""
    os_explanation: str = ""
    dsa_explanation: str = ""


@dataclass(frozen=True)
class StepOutcome:
    """What one applied step did.

    Attributes:
        step: The step that was applied.
        node_ids: Nodes created, reaped, exited or blocked by the step.
        entries: Log entries the step wrote, in order.

    """

    step: ScenarioStep
    node_ids: tuple[int, ...]
    entries: tuple[LogEntry, ...]


class ActionInterpreter:
    """Replay ``ScenarioStep`` lists against one ``ProcessTree``."""

    def __init__(self, tree: ProcessTree, *, block_on_wait: bool = True) -> None:
        """Claim *tree* for this interpreter.

        Args:
            tree: The tree to mutate.  It must not be owned by another
                interpreter.
            block_on_wait: If True, a wait with nothing to reap blocks
                the parent until a later exit; if False it fails fast
                with ``NoZombieChildren``.

        Raises:
            InvalidOperation: If another session owns the tree.

        """
        tree.claim(self)
        self._tree = tree
        self._block_on_wait = block_on_wait
        self._handlers: dict[ScenarioAction, Callable[[ScenarioStep], list[int]]] = {
            ScenarioAction.FORK: self._do_fork,
            ScenarioAction.FORK_ALL: self._do_fork_all,
            ScenarioAction.WAIT: self._do_wait,
            ScenarioAction.EXIT: self._do_exit,
            ScenarioAction.ORPHAN: self._do_orphan,
            ScenarioAction.EXPLAIN: self._do_explain,
        }

    @classmethod
    def replay(
        cls,
        steps: Iterable[ScenarioStep],
        *,
        orphan_on_exit: bool = True,
        block_on_wait: bool = True,
    ) -> tuple[ProcessTree, list[StepOutcome]]:
        """Run *steps* against a fresh tree with an init process.

        Returns:
            The finished tree and the outcome of every step.

        """
        tree = ProcessTree(orphan_on_exit=orphan_on_exit)
        tree.create_root()
        with cls(tree, block_on_wait=block_on_wait) as interpreter:
            outcomes = interpreter.run(steps)
        return tree, outcomes

    @property
    def tree(self) -> ProcessTree:
        """Return the tree this interpreter drives."""
        return self._tree

    def close(self) -> None:
        """Release the tree so another session may claim it."""
        self._tree.release(self)

    def __enter__(self) -> Self:
        """Return self for use as a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Release the tree."""
        self.close()

    def apply(self, step: ScenarioStep) -> StepOutcome:
        """Apply a single step atomically.

        Default targets when ``target_pid`` is omitted:

        - FORK / WAIT: the root.
        - EXIT: the earliest-created running child of the root.
        - ORPHAN: the earliest-created live process whose parent is a
          live process other than the root.

        Raises:
            ProcessTreeError: Any engine error; the tree is unchanged.

        """
        if self._tree.owner is not self:
            msg = "Interpreter is closed"
            raise InvalidOperation(msg)
        start = len(self._tree.log)
        with self._tree.transaction():
            node_ids = self._handlers[step.action](step)
            if step.action != ScenarioAction.EXPLAIN and (
                step.os_explanation or step.dsa_explanation
            ):
                self._explain(step)
        return StepOutcome(
            step=step,
            node_ids=tuple(node_ids),
            entries=tuple(self._tree.log.since(start)),
        )

    def run(self, steps: Iterable[ScenarioStep], *, finish: bool = True) -> list[StepOutcome]:
        """Apply *steps* in order, stopping at the first failure.

        Args:
            steps: The script to replay.
            finish: If True, call ``finish()`` after the last step.

        Returns:
            One outcome per applied step.

        """
        outcomes = [self.apply(step) for step in steps]
        if finish:
            self.finish()
        return outcomes

    def finish(self) -> None:
        """Declare the script complete.

        Raises:
            NoZombieChildren: If a process is still blocked in wait —
                the script never produced the child exit it awaited.

        """
        waiting = self._tree.waiting_nodes
        if waiting:
            pids = ", ".join(str(n.pid) for n in waiting)
            msg = f"Wait never satisfied: PID {pids} still waiting for a child to exit"
            raise NoZombieChildren(msg)

    # -- Target resolution -----------------------------------------------------

    def _resolve(self, pid: int | None, default: Callable[[], ProcessNode]) -> ProcessNode:
        if pid is None or pid == ANY_CHILD:
            return default()
        return self._tree.find_pid(pid)

    def _default_exit(self) -> ProcessNode:
        running = [
            n
            for n in self._tree.children_of(self._tree.root.node_id)
            if n.state is ProcessState.RUNNING
        ]
        if running:
            return min(running, key=lambda n: n.created_at)
        msg = "No running child of init to exit"
        raise InvalidOperation(msg)

    def _default_orphan(self) -> ProcessNode:
        root = self._tree.root
        for node in self._tree.live_nodes:
            if node.parent_id is None or node.parent_id == root.node_id:
                continue
            if self._tree.get(node.parent_id).is_alive:
                return node
        msg = "No live process has a live parent other than init"
        raise InvalidOperation(msg)

    # -- Handlers --------------------------------------------------------------

    def _do_fork(self, step: ScenarioStep) -> list[int]:
        parent = self._resolve(step.target_pid, lambda: self._tree.root)
        return [self._tree.fork(parent.node_id)]

    def _do_fork_all(self, _step: ScenarioStep) -> list[int]:
        # Snapshot the live set first: new children do not fork this round.
        forkers = self._tree.live_nodes
        return [self._tree.fork(node.node_id) for node in forkers]

    def _do_wait(self, step: ScenarioStep) -> list[int]:
        parent = self._resolve(step.target_pid, lambda: self._tree.root)
        target = None
        if step.child_pid is not None and step.child_pid != ANY_CHILD:
            target = self._tree.find_pid(step.child_pid).node_id
        reaped = self._tree.apply_wait(parent.node_id, target, block=self._block_on_wait)
        return [parent.node_id] if reaped is None else [reaped]

    def _do_exit(self, step: ScenarioStep) -> list[int]:
        node = self._resolve(step.target_pid, self._default_exit)
        self._tree.apply_exit(node.node_id)
        return [node.node_id]

    def _do_orphan(self, step: ScenarioStep) -> list[int]:
        child = self._resolve(step.target_pid, self._default_orphan)
        if child.parent_id is None or child.parent_id == self._tree.root.node_id:
            msg = f"PID {child.pid} cannot be orphaned: its parent is init"
            raise InvalidOperation(msg)
        if not child.is_alive:
            msg = f"PID {child.pid} cannot be orphaned: it is {child.state}"
            raise InvalidOperation(msg)
        parent_id = child.parent_id
        self._tree.apply_exit(parent_id, orphan_children=True)
        return [parent_id, child.node_id]

    def _do_explain(self, step: ScenarioStep) -> list[int]:
        self._explain(step)
        return []

    def _explain(self, step: ScenarioStep) -> None:
        self._tree.log.log(
            LogLevel.INFO,
            step.description or f"{step.action} step",
            timestamp=self._tree.now,
            source="interpreter",
            os_explanation=step.os_explanation or None,
            dsa_explanation=step.dsa_explanation or None,
        )

