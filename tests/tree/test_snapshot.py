"""Tests for immutable tree snapshots."""

import dataclasses

import pytest

from py_proctree.errors import UnknownTarget
from py_proctree.tree import ProcessState, ProcessTree, TreeSnapshot


def _small_tree() -> ProcessTree:
    """Create init with one zombie child and one orphaned grandchild."""
    tree = ProcessTree()
    tree.create_root()
    parent = tree.fork(0)
    tree.fork(parent)
    tree.apply_exit(parent)
    return tree


class TestSnapshot:
    """Verify snapshots copy the tree and stay frozen."""

    def test_snapshot_is_detached(self) -> None:
        """Later forks should not appear in an earlier snapshot."""
        tree = _small_tree()
        snap = tree.snapshot()
        tree.fork(0)
        assert len(snap) == 3  # noqa: PLR2004
        assert len(tree.snapshot()) == 4  # noqa: PLR2004

    def test_views_are_frozen(self) -> None:
        """A node view cannot be modified."""
        view = _small_tree().snapshot().get(0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            view.pid = 99  # type: ignore[misc]

    def test_children_copied_as_tuple(self) -> None:
        """Children should be an immutable tuple in fork order."""
        snap = _small_tree().snapshot()
        assert snap.get(0).children == (1, 2)

    def test_counts_and_orphans(self) -> None:
        """count and orphans should summarise the tree."""
        snap = _small_tree().snapshot()
        assert snap.count(ProcessState.ZOMBIE) == 1
        assert snap.count(ProcessState.RUNNING) == 2  # noqa: PLR2004
        assert [n.pid for n in snap.orphans] == [3]
        assert snap.find_pid(3).display_state is ProcessState.ORPHAN
        assert snap.max_depth == 1

    def test_lookup_errors(self) -> None:
        """Unknown ids and PIDs raise UnknownTarget."""
        snap = _small_tree().snapshot()
        with pytest.raises(UnknownTarget):
            snap.get(10)
        with pytest.raises(UnknownTarget):
            snap.find_pid(10)

    def test_empty_snapshot(self) -> None:
        """An empty tree snapshots to no nodes and no root."""
        snap = ProcessTree().snapshot()
        assert snap == TreeSnapshot()
        assert snap.root is None
        assert snap.max_depth == -1

    def test_to_dict(self) -> None:
        """to_dict should be JSON-ready."""
        data = _small_tree().snapshot().to_dict()
        assert data["root_id"] == 0
        nodes = data["nodes"]
        assert isinstance(nodes, list)
        assert nodes[2] == {
            "id": 2,
            "pid": 3,
            "ppid": 1,
            "parent_id": 0,
            "state": "running",
            "display_state": "orphan",
            "orphan": True,
            "children": [],
            "depth": 1,
            "fork_level": 0,
            "created_at": 2,
        }


class TestNodeInfo:
    """Verify per-node height, subtree size and degree."""

    @staticmethod
    def _lopsided() -> TreeSnapshot:
        """init → (A → (C → E, D), B)."""
        tree = ProcessTree()
        tree.create_root()
        a = tree.fork(0)
        tree.fork(0)
        c = tree.fork(a)
        tree.fork(a)
        tree.fork(c)
        return tree.snapshot()

    @pytest.mark.parametrize(
        ("node_id", "height", "size", "degree"),
        [(0, 3, 6, 2), (1, 2, 4, 2), (2, 0, 1, 0), (3, 1, 2, 1), (5, 0, 1, 0)],
    )
    def test_node_info(self, node_id: int, height: int, size: int, degree: int) -> None:
        """Each node reports its own subtree's measurements."""
        snap = self._lopsided()
        assert snap.height(node_id) == height
        assert snap.subtree_size(node_id) == size
        assert snap.degree(node_id) == degree

    def test_root_height_is_max_depth(self) -> None:
        """Measured from init, height and max_depth agree."""
        snap = self._lopsided()
        assert snap.height(0) == snap.max_depth

    def test_subtree_follows_adoption(self) -> None:
        """An orphan counts towards init's subtree, not its dead parent's."""
        snap = _small_tree().snapshot()
        assert snap.subtree_size(1) == 1
        assert snap.height(1) == 0
        assert snap.degree(0) == 2  # noqa: PLR2004

    def test_unknown_node(self) -> None:
        """Measuring a missing node raises UnknownTarget."""
        with pytest.raises(UnknownTarget):
            self._lopsided().subtree_size(42)
