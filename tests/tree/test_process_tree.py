"""Tests for the process tree — fork, exit, wait and orphan adoption.

The tree is the arena every other component reads from.  These tests
drive it directly through ``fork``, ``apply_exit`` and ``apply_wait``
and check the structural invariants after each step:

- every child sits one level below its parent and records its PID;
- a process is a zombie exactly when it has exited but not been reaped;
- a failed call leaves the tree, the PID counter and the log untouched.
"""

import itertools

import pytest

from py_proctree.errors import (
    HasLiveChildren,
    InvalidOperation,
    InvalidParentState,
    NoZombieChildren,
    UnknownTarget,
)
from py_proctree.logging import LogLevel
from py_proctree.tree import ANY_CHILD, INIT_PID, ROOT_PPID, ProcessState, ProcessTree

# Each entry is the node id that forks next; node ids follow creation order.
_FORK_SEQUENCES = [
    [0, 0, 0],
    [0, 1, 2, 3, 4],
    [0, 0, 1, 1, 2, 2],
    [0, 1, 1, 0, 3, 4, 2, 6],
    [0, 1, 2, 0, 1, 5, 3],
]

_CHILDREN = 3


def _exit_wait_interleavings() -> list[tuple[tuple[str, int], ...]]:
    """Return every order of exit/wait events where each wait follows its exit."""
    events = [("exit", i) for i in range(_CHILDREN)] + [("wait", i) for i in range(_CHILDREN)]
    return [
        order
        for order in itertools.permutations(events)
        if all(order.index(("exit", i)) < order.index(("wait", i)) for i in range(_CHILDREN))
    ]


def _rooted_tree(*, orphan_on_exit: bool = True) -> ProcessTree:
    """Create a tree with init already created."""
    tree = ProcessTree(orphan_on_exit=orphan_on_exit)
    tree.create_root()
    return tree


def _assert_consistent(tree: ProcessTree) -> None:
    """Check parent links, PIDs and depths across the whole tree."""
    root = tree.root
    assert root.depth == 0
    assert root.ppid == ROOT_PPID
    for node in tree.nodes:
        if node.parent_id is None:
            continue
        parent = tree.get(node.parent_id)
        assert node.node_id in parent.children
        assert node.ppid == parent.pid
        assert node.depth == parent.depth + 1


# -- Root ----------------------------------------------------------------------


class TestCreateRoot:
    """Verify init creation."""

    def test_root_is_init(self) -> None:
        """The root should be PID 1 with the sentinel parent PID."""
        tree = _rooted_tree()
        root = tree.root
        assert root.pid == INIT_PID
        assert root.ppid == ROOT_PPID
        assert root.parent_id is None
        assert root.depth == 0
        assert root.state is ProcessState.RUNNING

    def test_second_root_rejected(self) -> None:
        """Creating a root twice should raise InvalidOperation."""
        tree = _rooted_tree()
        with pytest.raises(InvalidOperation, match="already has a root"):
            tree.create_root()
        assert len(tree) == 1

    def test_empty_tree_has_no_root(self) -> None:
        """Asking an empty tree for its root should raise."""
        tree = ProcessTree()
        assert tree.is_empty
        with pytest.raises(InvalidOperation):
            _ = tree.root

    def test_root_creation_is_logged(self) -> None:
        """The first log entry should announce init."""
        tree = _rooted_tree()
        entry = tree.log.entries[0]
        assert entry.message == "Init process (PID 1) created"
        assert entry.level is LogLevel.INFO
        assert entry.timestamp == 0


# -- Fork ----------------------------------------------------------------------


class TestFork:
    """Verify fork creates correctly linked children."""

    def test_fork_creates_running_child(self) -> None:
        """A forked child should be RUNNING one level below its parent."""
        tree = _rooted_tree()
        child = tree.get(tree.fork(0))
        assert child.state is ProcessState.RUNNING
        assert child.pid == INIT_PID + 1
        assert child.ppid == INIT_PID
        assert child.depth == 1
        assert tree.root.children == [child.node_id]

    def test_siblings_keep_fork_order(self) -> None:
        """Children should be listed in the order they were forked."""
        tree = _rooted_tree()
        first = tree.fork(0)
        second = tree.fork(0)
        assert tree.root.children == [first, second]
        assert tree.get(first).fork_level == 0
        assert tree.get(second).fork_level == 1

    def test_pids_and_timestamps_increase(self) -> None:
        """PIDs and creation ticks should be strictly increasing."""
        tree = _rooted_tree()
        a = tree.get(tree.fork(0))
        b = tree.get(tree.fork(a.node_id))
        assert b.pid > a.pid
        assert b.created_at > a.created_at

    def test_fork_is_logged(self) -> None:
        """fork should append one SUCCESS entry about the child."""
        tree = _rooted_tree()
        tree.fork(0)
        entry = tree.log.entries[-1]
        assert entry.message == "fork() called by PID 1 → child PID 2 created"
        assert entry.level is LogLevel.SUCCESS
        assert entry.pid == 2  # noqa: PLR2004

    def test_fork_from_zombie_rejected(self) -> None:
        """A zombie cannot fork, and no PID is consumed."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        log_size = len(tree.log)
        with pytest.raises(InvalidParentState):
            tree.fork(child)
        assert len(tree.log) == log_size
        assert tree.get(tree.fork(0)).pid == 3  # noqa: PLR2004

    def test_fork_unknown_parent(self) -> None:
        """Forking from a node that does not exist should raise UnknownTarget."""
        tree = _rooted_tree()
        with pytest.raises(UnknownTarget):
            tree.fork(42)

    def test_fork_on_empty_tree(self) -> None:
        """An empty tree has nothing to fork from."""
        with pytest.raises(UnknownTarget):
            ProcessTree().fork(0)

    @pytest.mark.parametrize("parents", _FORK_SEQUENCES)
    def test_tree_stays_consistent(self, parents: list[int]) -> None:
        """Depth and parent PID match after every fork, and after orphaning."""
        tree = _rooted_tree()
        for parent in parents:
            tree.fork(parent)
            _assert_consistent(tree)
        tree.apply_exit(1)
        _assert_consistent(tree)


# -- Exit ----------------------------------------------------------------------


class TestExit:
    """Verify exit leaves zombies."""

    def test_exit_makes_zombie(self) -> None:
        """An exited child whose parent is not waiting becomes a zombie."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        assert tree.get(child).state is ProcessState.ZOMBIE
        assert tree.zombies == [tree.get(child)]
        assert tree.log.entries[-1].message == (
            "exit() called by PID 2 → became ZOMBIE (parent PID 1 not waiting)"
        )

    def test_root_cannot_exit(self) -> None:
        """init should refuse to exit."""
        tree = _rooted_tree()
        with pytest.raises(InvalidOperation, match="is init"):
            tree.apply_exit(0)

    def test_exit_twice_rejected(self) -> None:
        """A zombie cannot exit again."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        with pytest.raises(InvalidParentState):
            tree.apply_exit(child)

    def test_exit_unknown_node(self) -> None:
        """Exiting a missing node should raise UnknownTarget."""
        tree = _rooted_tree()
        with pytest.raises(UnknownTarget):
            tree.apply_exit(7)


# -- Wait ----------------------------------------------------------------------


class TestWait:
    """Verify wait reaps zombie children."""

    def test_fork_exit_wait_terminates_child(self) -> None:
        """fork → exit → wait should leave the child TERMINATED."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        assert tree.apply_wait(0) == child
        assert tree.get(child).state is ProcessState.TERMINATED
        assert tree.zombies == []

    def test_reaped_node_stays_in_tree(self) -> None:
        """A reaped child keeps its place in the parent's children."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        tree.apply_wait(0)
        assert tree.root.children == [child]
        assert len(tree) == 2  # noqa: PLR2004

    def test_wait_reaps_earliest_zombie(self) -> None:
        """With several zombies, wait takes the earliest-created one."""
        tree = _rooted_tree()
        first = tree.fork(0)
        second = tree.fork(0)
        tree.apply_exit(second)
        tree.apply_exit(first)
        assert tree.apply_wait(0) == first
        assert tree.apply_wait(0, ANY_CHILD) == second

    def test_wait_specific_child(self) -> None:
        """A target restricts wait to that child."""
        tree = _rooted_tree()
        first = tree.fork(0)
        second = tree.fork(0)
        tree.apply_exit(first)
        tree.apply_exit(second)
        assert tree.apply_wait(0, second) == second
        assert tree.get(first).state is ProcessState.ZOMBIE

    def test_wait_is_logged(self) -> None:
        """A reap should be logged as SUCCESS."""
        tree = _rooted_tree()
        tree.apply_exit(tree.fork(0))
        tree.apply_wait(0)
        entry = tree.log.entries[-1]
        assert entry.message == "wait() called by PID 1 → reaped child PID 2"
        assert entry.level is LogLevel.SUCCESS

    def test_wait_without_zombies_fails_fast(self) -> None:
        """Without zombies, a non-blocking wait raises and changes nothing."""
        tree = _rooted_tree()
        tree.fork(0)
        tick, log_size = tree.now, len(tree.log)
        with pytest.raises(NoZombieChildren):
            tree.apply_wait(0)
        assert tree.root.state is ProcessState.RUNNING
        assert tree.now == tick
        assert len(tree.log) == log_size

    def test_wait_without_children(self) -> None:
        """Even a blocking wait fails when there is nothing to wait for."""
        tree = _rooted_tree()
        with pytest.raises(NoZombieChildren):
            tree.apply_wait(0, block=True)

    def test_wait_on_non_child_rejected(self) -> None:
        """A grandchild is not a valid wait target."""
        tree = _rooted_tree()
        grandchild = tree.fork(tree.fork(0))
        with pytest.raises(InvalidOperation, match="not a child"):
            tree.apply_wait(0, grandchild)

    def test_wait_on_live_target_fails_fast(self) -> None:
        """A running target cannot be reaped without blocking."""
        tree = _rooted_tree()
        child = tree.fork(0)
        with pytest.raises(InvalidParentState):
            tree.apply_wait(0, child)

    def test_wait_on_reaped_target_rejected(self) -> None:
        """A child cannot be reaped twice."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        tree.apply_wait(0, child)
        with pytest.raises(InvalidParentState):
            tree.apply_wait(0, child, block=True)

    def test_zombie_cannot_wait(self) -> None:
        """Only a running process may call wait."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(tree.fork(child))
        tree.apply_exit(child)
        with pytest.raises(InvalidParentState):
            tree.apply_wait(child)


class TestBlockingWait:
    """Verify declarative blocking: the wait is completed by a later exit."""

    def test_block_moves_parent_to_waiting(self) -> None:
        """A blocking wait with live children should park the parent."""
        tree = _rooted_tree()
        tree.fork(0)
        assert tree.apply_wait(0, block=True) is None
        assert tree.root.state is ProcessState.WAITING
        assert tree.root.wait_target == ANY_CHILD
        assert tree.waiting_nodes == [tree.root]

    def test_exit_wakes_waiting_parent(self) -> None:
        """The child's exit should reap it and wake the parent."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_wait(0, block=True)
        tree.apply_exit(child)
        assert tree.get(child).state is ProcessState.TERMINATED
        assert tree.root.state is ProcessState.RUNNING
        assert tree.root.wait_target is None
        assert tree.log.entries[-1].message == (
            "exit() called by PID 2 → reaped by waiting parent PID 1"
        )

    def test_specific_wait_ignores_other_children(self) -> None:
        """A parent waiting for one child stays blocked when a sibling exits."""
        tree = _rooted_tree()
        first = tree.fork(0)
        second = tree.fork(0)
        tree.apply_wait(0, second, block=True)
        tree.apply_exit(first)
        assert tree.get(first).state is ProcessState.ZOMBIE
        assert tree.root.state is ProcessState.WAITING
        tree.apply_exit(second)
        assert tree.get(second).state is ProcessState.TERMINATED
        assert tree.root.state is ProcessState.RUNNING

    def test_waiting_parent_cannot_wait_again(self) -> None:
        """A blocked parent is not RUNNING, so wait is refused."""
        tree = _rooted_tree()
        tree.fork(0)
        tree.apply_wait(0, block=True)
        with pytest.raises(InvalidParentState):
            tree.apply_wait(0)

    def test_block_with_zombie_available_reaps_instead(self) -> None:
        """Blocking is only used when nothing can be reaped right now."""
        tree = _rooted_tree()
        child = tree.fork(0)
        tree.apply_exit(child)
        assert tree.apply_wait(0, block=True) == child
        assert tree.root.state is ProcessState.RUNNING


class TestZombieInterleavings:
    """A child is a zombie exactly when it has exited and not been reaped."""

    @staticmethod
    def _assert_zombies(tree: ProcessTree, children: list[int], zombies: set[int]) -> None:
        for index, child in enumerate(children):
            assert (tree.get(child).state is ProcessState.ZOMBIE) == (index in zombies)

    @pytest.mark.parametrize("events", _exit_wait_interleavings())
    def test_targeted_waits(self, events: tuple[tuple[str, int], ...]) -> None:
        """Every order of exits and targeted waits keeps the zombie set exact."""
        tree = _rooted_tree()
        children = [tree.fork(0) for _ in range(_CHILDREN)]
        exited: set[int] = set()
        reaped: set[int] = set()
        for action, index in events:
            if action == "exit":
                tree.apply_exit(children[index])
                exited.add(index)
            else:
                tree.apply_wait(0, children[index])
                reaped.add(index)
            self._assert_zombies(tree, children, exited - reaped)
        assert all(tree.get(c).state is ProcessState.TERMINATED for c in children)

    @pytest.mark.parametrize("exit_order", list(itertools.permutations(range(_CHILDREN))))
    @pytest.mark.parametrize("wait_after", [(0, 1, 2), (2,), (1, 2), (0, 2)])
    def test_any_child_waits(
        self, exit_order: tuple[int, ...], wait_after: tuple[int, ...]
    ) -> None:
        """Waits for any child reap the earliest-created zombie."""
        tree = _rooted_tree()
        children = [tree.fork(0) for _ in range(_CHILDREN)]
        zombies: set[int] = set()
        for step, index in enumerate(exit_order):
            tree.apply_exit(children[index])
            zombies.add(index)
            self._assert_zombies(tree, children, zombies)
            if step in wait_after:
                reaped = tree.apply_wait(0, ANY_CHILD)
                assert reaped == children[min(zombies)]
                zombies.discard(min(zombies))
                self._assert_zombies(tree, children, zombies)


# -- Orphans -------------------------------------------------------------------


class TestOrphans:
    """Verify that children of an exiting process are adopted by init."""

    def test_children_reparented_to_root(self) -> None:
        """An orphan becomes a child of init at depth 1."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(parent)
        node = tree.get(child)
        assert node.parent_id == 0
        assert node.ppid == INIT_PID
        assert node.depth == 1
        assert node.orphan
        assert tree.root.children == [parent, child]
        assert tree.get(parent).children == []

    def test_orphan_keeps_its_state(self) -> None:
        """A live orphan is RUNNING but displayed as ORPHAN."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(parent)
        node = tree.get(child)
        assert node.state is ProcessState.RUNNING
        assert node.display_state is ProcessState.ORPHAN

    def test_subtree_depths_recomputed(self) -> None:
        """Descendants of an orphan move up along with it."""
        tree = _rooted_tree()
        a = tree.fork(0)
        b = tree.fork(a)
        c = tree.fork(b)
        d = tree.fork(c)
        tree.apply_exit(a)
        assert [tree.get(n).depth for n in (b, c, d)] == [1, 2, 3]
        assert not tree.get(c).orphan
        _assert_consistent(tree)

    def test_orphaning_is_logged(self) -> None:
        """The exit logs the orphaning and each adoption."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        tree.fork(parent)
        tree.apply_exit(parent)
        messages = [e.message for e in tree.log.entries[-3:]]
        assert messages == [
            "Parent PID 2 exiting → 1 child(ren) become ORPHAN",
            "PID 3 adopted by init (PID 1)",
            "exit() called by PID 2 → became ZOMBIE (parent PID 1 not waiting)",
        ]

    def test_zombie_child_adopted_and_reapable(self) -> None:
        """An unreaped zombie moves to init, which can then reap it."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(child)
        tree.apply_exit(parent)
        assert tree.get(child).parent_id == 0
        assert tree.get(child).display_state is ProcessState.ZOMBIE
        assert tree.apply_wait(0, child) == child

    def test_zombie_adoptee_not_flagged_orphan(self) -> None:
        """A child that exited before its parent is not an orphan."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(child)
        tree.apply_exit(parent)
        assert tree.get(child).orphan is False
        assert tree.snapshot().orphans == []
        messages = [e.message for e in tree.log.entries]
        assert not any("become ORPHAN" in m for m in messages)
        assert "PID 3 adopted by init (PID 1)" in messages

    def test_orphan_warning_counts_live_children(self) -> None:
        """Only live children are counted as becoming orphans."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        tree.apply_exit(tree.fork(parent))
        tree.fork(parent)
        tree.apply_exit(parent)
        assert "Parent PID 2 exiting → 1 child(ren) become ORPHAN" in [
            e.message for e in tree.log.entries
        ]
        assert [n.pid for n in tree.snapshot().orphans] == [4]

    def test_terminated_children_not_adopted(self) -> None:
        """Reaped children stay where they are."""
        tree = _rooted_tree()
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(child)
        tree.apply_wait(parent)
        tree.apply_exit(parent)
        assert tree.get(child).parent_id == parent
        assert not tree.get(child).orphan

    def test_waiting_init_reaps_adopted_zombie(self) -> None:
        """init blocked in wait collects a zombie it just adopted."""
        tree = _rooted_tree()
        a = tree.fork(0)
        b = tree.fork(a)
        tree.fork(0)
        grandchild = tree.fork(b)
        tree.apply_exit(grandchild)
        tree.apply_wait(0, block=True)
        tree.apply_exit(b)
        # b was a's child: its zombie child goes to init, which is waiting.
        assert tree.get(grandchild).state is ProcessState.TERMINATED
        assert tree.root.state is ProcessState.RUNNING
        assert tree.get(b).state is ProcessState.ZOMBIE

    def test_orphaning_disabled_refuses_exit(self) -> None:
        """With orphaning off, exit with live children raises."""
        tree = _rooted_tree(orphan_on_exit=False)
        parent = tree.fork(0)
        tree.fork(parent)
        with pytest.raises(HasLiveChildren):
            tree.apply_exit(parent)
        assert tree.get(parent).state is ProcessState.RUNNING

    def test_orphaning_override(self) -> None:
        """A per-call override allows the exit anyway."""
        tree = _rooted_tree(orphan_on_exit=False)
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(parent, orphan_children=True)
        assert tree.get(child).orphan

    def test_orphaning_disabled_allows_zombie_children(self) -> None:
        """Only live children block the exit."""
        tree = _rooted_tree(orphan_on_exit=False)
        parent = tree.fork(0)
        child = tree.fork(parent)
        tree.apply_exit(child)
        tree.apply_exit(parent)
        assert tree.get(child).parent_id == 0


# -- Transactions and ownership ------------------------------------------------


class TestTransaction:
    """Verify multi-step rollback."""

    def test_rollback_on_error(self) -> None:
        """A failing block restores nodes, PIDs, clock and log."""
        tree = _rooted_tree()
        tick, log_size = tree.now, len(tree.log)
        with pytest.raises(NoZombieChildren), tree.transaction():
            child = tree.fork(0)
            tree.apply_wait(child)
        assert len(tree) == 1
        assert tree.root.children == []
        assert tree.now == tick
        assert len(tree.log) == log_size
        assert tree.get(tree.fork(0)).pid == 2  # noqa: PLR2004

    def test_commit_on_success(self) -> None:
        """A clean block keeps its changes."""
        tree = _rooted_tree()
        with tree.transaction():
            tree.fork(0)
            tree.fork(0)
        assert len(tree) == 3  # noqa: PLR2004


class TestOwnership:
    """Verify the single-writer claim."""

    def test_second_owner_refused(self) -> None:
        """A second owner cannot claim a held tree."""
        tree = _rooted_tree()
        first, second = object(), object()
        tree.claim(first)
        with pytest.raises(InvalidOperation):
            tree.claim(second)

    def test_reclaim_and_release(self) -> None:
        """The owner may re-claim; a stranger's release is ignored."""
        tree = _rooted_tree()
        owner, stranger = object(), object()
        tree.claim(owner)
        tree.claim(owner)
        tree.release(stranger)
        assert tree.owner is owner
        tree.release(owner)
        assert tree.owner is None


class TestLookup:
    """Verify node and PID lookups."""

    def test_find_pid(self) -> None:
        """find_pid should return the node with that PID."""
        tree = _rooted_tree()
        child = tree.fork(0)
        assert tree.find_pid(2).node_id == child

    def test_find_missing_pid(self) -> None:
        """An unknown PID should raise UnknownTarget."""
        tree = _rooted_tree()
        with pytest.raises(UnknownTarget, match="Process 9 not found"):
            tree.find_pid(9)

    def test_live_nodes_excludes_exited(self) -> None:
        """live_nodes should list only running and waiting processes."""
        tree = _rooted_tree()
        a = tree.fork(0)
        tree.fork(0)
        tree.apply_exit(a)
        assert [n.pid for n in tree.live_nodes] == [1, 3]
