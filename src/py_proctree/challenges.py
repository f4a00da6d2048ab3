"""Challenge validation — does the learner's tree have the right shape?

A challenge never names concrete PIDs: many different fork orders give
the same shape.  Instead the target is an ``ExpectedShape``, a set of
conditions over the finished tree:

- **counts** — how many children the root has (and in which state),
  how many nodes, zombies, reaped processes and orphans exist;
- **structure** — a perfect binary tree of a given depth, or a linear
  chain of a given length.

``validate`` checks counts first, then structure, and reports the
first condition that fails so the learner gets a useful hint rather
than a bare "wrong".

Shapes can be written as the short phrases used in the challenge
catalog (``"root with 3 children"``, ``"binary tree depth 2"``) and
parsed with ``parse_expected_tree``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from py_proctree.tree.node import ProcessState
from py_proctree.tree.process_tree import ProcessTree
from py_proctree.tree.snapshot import TreeSnapshot

_BINARY = 2


class TreeStructure(StrEnum):
    """Structural families a challenge can require."""

    ANY = "any"
    PERFECT_BINARY = "perfect_binary"
    LINEAR_CHAIN = "linear_chain"


@dataclass(frozen=True)
class ExpectedShape:
    """Conditions a finished tree must satisfy.

    Every field left as None is not checked.

    Attributes:
        child_count: Exact number of children of the root.
        child_state: State every child of the root must be in.
        node_count: Exact number of nodes, root included.
        zombie_count: Exact number of zombies anywhere in the tree.
        terminated_count: Exact number of reaped processes.
        orphan_count: Exact number of processes adopted by init.
        structure: Structural family to check.
        depth: Parameter of the structure — the leaf depth of a perfect
            binary tree, or the number of processes in a linear chain.

    """

    child_count: int | None = None
    child_state: ProcessState | None = None
    node_count: int | None = None
    zombie_count: int | None = None
    terminated_count: int | None = None
    orphan_count: int | None = None
    structure: TreeStructure = TreeStructure.ANY
    depth: int | None = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of checking a tree against an ``ExpectedShape``."""

    passed: bool
    reason: str

    def __bool__(self) -> bool:
        """Truthiness follows ``passed``."""
        return self.passed

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-ready dict."""
        return {"passed": self.passed, "reason": self.reason}


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _check_counts(snap: TreeSnapshot, shape: ExpectedShape) -> str | None:
    root = snap.root
    assert root is not None  # noqa: S101
    children = snap.children_of(root.node_id)

    if shape.child_count is not None and len(children) != shape.child_count:
        return (
            f"Root should have {_plural(shape.child_count, 'child', 'children')}, "
            f"found {len(children)}"
        )
    if shape.child_state is not None:
        for child in children:
            if child.state is not shape.child_state:
                return f"Child PID {child.pid} is {child.state}, expected {shape.child_state}"

    checks = [
        (shape.node_count, len(snap), "process", "processes"),
        (shape.zombie_count, snap.count(ProcessState.ZOMBIE), "zombie", "zombies"),
        (
            shape.terminated_count,
            snap.count(ProcessState.TERMINATED),
            "terminated process",
            "terminated processes",
        ),
        (shape.orphan_count, len(snap.orphans), "orphan", "orphans"),
    ]
    for expected, actual, singular, plural in checks:
        if expected is not None and actual != expected:
            return f"Expected {_plural(expected, singular, plural)}, found {actual}"
    return None


def _check_perfect_binary(snap: TreeSnapshot, depth: int) -> str | None:
    for node in snap:
        count = len(node.children)
        if count not in {0, _BINARY}:
            return (
                f"PID {node.pid} has {_plural(count, 'child', 'children')}; "
                "a perfect binary tree needs 0 or 2"
            )
        if count == 0 and node.depth != depth:
            return (
                f"Leaf PID {node.pid} is at depth {node.depth}, "
                f"expected every leaf at depth {depth}"
            )
    return None


def _check_linear_chain(snap: TreeSnapshot, length: int) -> str | None:
    for node in snap:
        if len(node.children) > 1:
            return f"PID {node.pid} has {len(node.children)} children; a chain allows at most 1"
    if len(snap) != length:
        return f"Chain has {len(snap)} processes, expected {length}"
    return None


def validate(tree: ProcessTree | TreeSnapshot, shape: ExpectedShape) -> ValidationResult:
    """Check *tree* against *shape*.

    Args:
        tree: The finished tree (a live tree is snapshotted first).
        shape: The conditions to check.

    Returns:
        A passing result, or a failing one naming the first violated
        condition.  Count conditions are checked before structure.

    """
    snap = tree.snapshot() if isinstance(tree, ProcessTree) else tree
    if snap.root is None:
        return ValidationResult(passed=False, reason="Tree has no root process")

    reason = _check_counts(snap, shape)
    if reason is None and shape.structure is TreeStructure.PERFECT_BINARY:
        depth = shape.depth if shape.depth is not None else snap.max_depth
        reason = _check_perfect_binary(snap, depth)
    if reason is None and shape.structure is TreeStructure.LINEAR_CHAIN:
        length = shape.depth if shape.depth is not None else len(snap)
        reason = _check_linear_chain(snap, length)

    if reason is not None:
        return ValidationResult(passed=False, reason=reason)
    return ValidationResult(passed=True, reason="Tree matches the expected shape")


# -- Parsing catalog phrases ---------------------------------------------------

_ROOT_WITH = re.compile(
    r"^root with (?P<count>\d+) (?:(?P<state>zombie|terminated|running|waiting) )?child(?:ren)?$"
)
_BINARY_TREE = re.compile(r"^(?:perfect )?binary tree depth (?P<depth>\d+)$")
_CHAIN = re.compile(r"^linear chain depth (?P<depth>\d+)$")
_ZERO = re.compile(r"^(?:zero|no) (?P<what>zombies|orphans)$")


def parse_expected_tree(text: str) -> ExpectedShape:
    """Parse a catalog phrase into an ``ExpectedShape``.

    Recognised phrases (case-insensitive), optionally followed by
    ``, zero zombies`` and/or ``, zero orphans``:

    - ``root with N child``/``children``
    - ``root with N <state> child``/``children``
    - ``binary tree depth D``
    - ``linear chain depth N``

    A stated child state also pins the matching global count, so
    ``root with 1 zombie child`` means exactly one zombie anywhere, and
    ``root with 2 terminated children`` means no zombies remain.

    Raises:
        ValueError: If the phrase is not recognised.

    """
    head, *modifiers = [part.strip() for part in text.strip().lower().split(",")]
    fields: dict[str, object] = {}

    if match := _ROOT_WITH.match(head):
        count = int(match["count"])
        fields["child_count"] = count
        if match["state"]:
            state = ProcessState(match["state"])
            fields["child_state"] = state
            if state is ProcessState.ZOMBIE:
                fields["zombie_count"] = count
            elif state is ProcessState.TERMINATED:
                fields["zombie_count"] = 0
    elif match := _BINARY_TREE.match(head):
        fields["structure"] = TreeStructure.PERFECT_BINARY
        fields["depth"] = int(match["depth"])
    elif match := _CHAIN.match(head):
        fields["structure"] = TreeStructure.LINEAR_CHAIN
        fields["depth"] = int(match["depth"])
    else:
        msg = f"Unrecognised expected tree: {text!r}"
        raise ValueError(msg)

    for modifier in modifiers:
        zero = _ZERO.match(modifier)
        if zero is None:
            msg = f"Unrecognised expected tree: {text!r}"
            raise ValueError(msg)
        key = "zombie_count" if zero["what"] == "zombies" else "orphan_count"
        fields[key] = 0

    return ExpectedShape(**fields)  # type: ignore[arg-type]
