"""Process-tree subsystem — nodes, the arena, and snapshots.

Re-exports public symbols so callers can write::

    from py_proctree.tree import ProcessTree, ProcessState
"""

from py_proctree.tree.node import LIVE_STATES, ProcessNode, ProcessState
from py_proctree.tree.process_tree import ANY_CHILD, INIT_PID, ROOT_PPID, ProcessTree
from py_proctree.tree.snapshot import NodeView, TreeSnapshot

__all__ = [
    "ANY_CHILD",
    "INIT_PID",
    "LIVE_STATES",
    "ROOT_PPID",
    "NodeView",
    "ProcessNode",
    "ProcessState",
    "ProcessTree",
    "TreeSnapshot",
]
