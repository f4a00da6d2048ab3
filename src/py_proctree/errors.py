"""Errors raised by the process-tree engine.

Every failure is local to one operation: the tree is left exactly as it
was before the call, and the caller may carry on with a corrected
action.  All engine errors share the ``ProcessTreeError`` base so the
shell and web layers can catch them in one place.

- **InvalidOperation** — structural misuse (second root, exiting init,
  waiting on a process that is not your child).
- **InvalidParentState** — the process (or wait target) is not in a
  state that allows the action.
- **HasLiveChildren** — exit refused because orphaning is disabled.
- **NoZombieChildren** — nothing to reap and nothing to wait for.
- **UnknownTarget** — a PID or node id that does not exist.
- **UnsupportedShape** — inorder requested on a non-binary tree.
"""


class ProcessTreeError(Exception):
    """Base class for all process-tree engine errors."""


class InvalidOperation(ProcessTreeError):  # noqa: N818
    """Raised when an operation misuses the tree structure."""


class InvalidParentState(ProcessTreeError):  # noqa: N818
    """Raised when a process is not in a state eligible for the action."""


class HasLiveChildren(ProcessTreeError):  # noqa: N818
    """Raised when a process with live children exits and orphaning is off."""


class NoZombieChildren(ProcessTreeError):  # noqa: N818
    """Raised when a wait cannot reap a child and cannot block either."""


class UnknownTarget(ProcessTreeError):  # noqa: N818
    """Raised when a PID or node id does not refer to any process."""


class UnsupportedShape(ProcessTreeError):  # noqa: N818
    """Raised when a traversal is undefined for the tree's shape."""
