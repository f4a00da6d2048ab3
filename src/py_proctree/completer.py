"""Tab completion for the sandbox shell.

Two layers:

- ``completions(text, line)`` decides the candidates from the whole
  line typed so far.  It has no I/O, so tests call it directly.
- ``complete(text, state)`` is the function handed to readline, which
  asks for candidate 0, 1, 2, ... until it gets ``None``.

The first word completes to a command.  After that the candidates
depend on the command: traversal types for ``traverse``, catalog ids
for ``scenario`` and ``challenge``, level names for ``log``, and live
PIDs for the process commands.
"""

from __future__ import annotations

import readline
from typing import TYPE_CHECKING

from py_proctree.catalog import CHALLENGES, SCENARIOS
from py_proctree.logging import LogLevel
from py_proctree.traversal import TraversalType

if TYPE_CHECKING:
    from py_proctree.shell import Shell

# Commands whose arguments are PIDs.
_PID_COMMANDS: frozenset[str] = frozenset({"fork", "wait", "exit", "orphan"})


class Completer:
    """Suggest commands and arguments for a ``Shell``."""

    def __init__(self, shell: Shell) -> None:
        """Bind the completer to *shell*.

        The shell is read on every call, so commands like ``reset``
        that swap the tree are picked up immediately.
        """
        self._shell = shell

    def complete(self, text: str, state: int) -> str | None:
        """Return candidate number *state* for *text*, or None when done."""
        matches = self.completions(text, readline.get_line_buffer())
        return matches[state] if state < len(matches) else None

    def completions(self, text: str, line: str) -> list[str]:
        """List the candidates for the word being typed.

        Args:
            text: The word under the cursor (possibly empty).
            line: Everything typed on the line so far.

        Returns:
            Matching candidates in sorted order.

        """
        words = line.split()
        typing_command = not words or (len(words) == 1 and not line.endswith(" "))
        if typing_command:
            return [name for name in self._shell.command_names if name.startswith(text)]
        return sorted(c for c in self._argument_candidates(words[0]) if c.startswith(text))

    def _argument_candidates(self, command: str) -> list[str]:
        if command == "traverse":
            return [str(t) for t in TraversalType]
        if command == "scenario":
            return [s.scenario_id for s in SCENARIOS]
        if command == "challenge":
            return [c.challenge_id for c in CHALLENGES]
        if command == "log":
            return [level.name.lower() for level in LogLevel]
        if command in _PID_COMMANDS:
            return [str(n.pid) for n in self._shell.tree.live_nodes]
        return []
