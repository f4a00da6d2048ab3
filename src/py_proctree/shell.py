"""The sandbox shell — a command interpreter over a process tree.

The shell is the learner's hands-on interface: type ``fork 1``, watch
a child appear; ``exit 2``, watch it become a zombie; ``wait 1``, watch
it get reaped.  It also replays catalog scenarios and checks
challenges against the tree the learner built.

Design choices:
    - **Returns strings, not prints.**  The shell is fully testable;
      the REPL and the web app decide how to display output.
    - **Command dispatch via a dict.**  Adding a command means writing
      a method and adding one dict entry.
    - **Engine errors become messages.**  Any ``ProcessTreeError`` is
      rendered as ``Error: ...`` and the tree is unchanged, so the
      learner can simply try again.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from py_proctree.catalog import CHALLENGES, SCENARIOS, get_challenge, get_scenario
from py_proctree.challenges import validate
from py_proctree.errors import ProcessTreeError
from py_proctree.interpreter import ActionInterpreter, ScenarioAction, ScenarioStep
from py_proctree.logging import LogEntry, LogLevel
from py_proctree.parser import parse_code
from py_proctree.traversal import TraversalType, traverse
from py_proctree.tree.process_tree import ProcessTree

# A handler receives the words after the command name and returns output.
_Handler: TypeAlias = Callable[[list[str]], str]


class Shell:
    """Command interpreter that operates on one process tree.

    If no tree is given the shell starts a fresh one with init
    already created, ready for ``fork 1``.
    """

    EXIT_SENTINEL = "__EXIT__"

    def __init__(self, *, tree: ProcessTree | None = None, block_on_wait: bool = False) -> None:
        """Create a shell attached to a tree.

        Args:
            tree: The tree to operate on.  A fresh tree is created if
                omitted (or if the given tree has no root yet).
            block_on_wait: If True, ``wait`` with nothing to reap blocks
                the parent instead of failing.

        """
        if tree is None:
            tree = ProcessTree()
        if tree.is_empty:
            tree.create_root()
        self._tree = tree
        self._block_on_wait = block_on_wait

        # Dispatch: command name → handler.
        self._commands: dict[str, _Handler] = {
            "help": self._cmd_help,
            "reset": self._cmd_reset,
            "fork": self._cmd_fork,
            "forkall": self._cmd_forkall,
            "wait": self._cmd_wait,
            "exit": self._cmd_exit,
            "orphan": self._cmd_orphan,
            "ps": self._cmd_ps,
            "pstree": self._cmd_pstree,
            "traverse": self._cmd_traverse,
            "log": self._cmd_log,
            "scenarios": self._cmd_scenarios,
            "scenario": self._cmd_scenario,
            "run": self._cmd_run,
            "challenges": self._cmd_challenges,
            "challenge": self._cmd_challenge,
            "quit": self._cmd_quit,
        }

    @property
    def tree(self) -> ProcessTree:
        """Return the tree the shell currently operates on."""
        return self._tree

    @property
    def command_names(self) -> list[str]:
        """Return sorted list of available command names."""
        return sorted(self._commands)

    def execute(self, command: str) -> str:
        """Parse and execute a shell command.

        Args:
            command: The raw command string (e.g. ``"fork 1"``).

        Returns:
            The command output, or an error message.

        """
        parts = command.split()
        if not parts:
            return ""
        name, args = parts[0], parts[1:]
        handler = self._commands.get(name)
        if handler is None:
            return f"Unknown command: {name}"
        try:
            return handler(args)
        except ProcessTreeError as e:
            return f"Error: {e}"

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    def _parse_pid(raw: str) -> int | None:
        try:
            return int(raw)
        except ValueError:
            return None

    def _run_logged(self, action: Callable[[], object]) -> str:
        """Run *action* and return the log entries it produced."""
        start = len(self._tree.log)
        action()
        return "\n".join(e.message for e in self._tree.log.since(start))

    @staticmethod
    def _format_entry(entry: LogEntry) -> str:
        lines = [str(entry)]
        if entry.os_explanation:
            lines.append(f"    OS:  {entry.os_explanation}")
        if entry.dsa_explanation:
            lines.append(f"    DSA: {entry.dsa_explanation}")
        return "\n".join(lines)

    # -- Commands --------------------------------------------------------------

    def _cmd_help(self, _args: list[str]) -> str:
        """List available commands."""
        return "\n".join(
            [
                "Commands:",
                "  fork <pid>            fork a child from <pid>",
                "  forkall               every live process forks once",
                "  wait <pid> [child]    <pid> reaps a zombie child",
                "  exit <pid>            <pid> exits (its children are orphaned)",
                "  orphan <pid>          the parent of <pid> exits, orphaning it",
                "  ps                    list every process",
                "  pstree                show the process tree",
                "  traverse <type>       preorder | postorder | levelorder | inorder",
                "  log [level]           show the event log (info, success, warning, error)",
                "  scenarios             list guided scenarios",
                "  scenario <id>         replay a scenario on a fresh tree",
                "  run <code>            replay fork/wait/exit code on a fresh tree",
                "  challenges            list challenges",
                "  challenge <id>        check the current tree against a challenge",
                "  reset                 start again with only init",
                "  quit                  leave the shell",
            ]
        )

    def _cmd_reset(self, _args: list[str]) -> str:
        """Replace the tree with a fresh one holding only init."""
        self._tree = ProcessTree(orphan_on_exit=self._tree.orphan_on_exit)
        self._tree.create_root()
        return "Tree reset: init (PID 1) running."

    def _cmd_fork(self, args: list[str]) -> str:
        """Fork a child from a process."""
        if not args:
            return "Usage: fork <pid>"
        pid = self._parse_pid(args[0])
        if pid is None:
            return f"Error: invalid PID '{args[0]}'"
        node = self._tree.find_pid(pid)
        return self._run_logged(lambda: self._tree.fork(node.node_id))

    def _cmd_forkall(self, _args: list[str]) -> str:
        """Fork once from every live process."""
        with ActionInterpreter(self._tree) as interpreter:
            outcome = interpreter.apply(ScenarioStep(action=ScenarioAction.FORK_ALL))
        return "\n".join(e.message for e in outcome.entries)

    def _cmd_wait(self, args: list[str]) -> str:
        """Reap a zombie child: ``wait <pid>`` or ``wait <pid> <child>``."""
        if not args:
            return "Usage: wait <pid> [child_pid]"
        pids: list[int] = []
        for raw in args[:2]:
            pid = self._parse_pid(raw)
            if pid is None:
                return f"Error: invalid PID '{raw}'"
            pids.append(pid)
        parent = self._tree.find_pid(pids[0])
        target = self._tree.find_pid(pids[1]).node_id if len(pids) > 1 else None
        return self._run_logged(
            lambda: self._tree.apply_wait(parent.node_id, target, block=self._block_on_wait)
        )

    def _cmd_exit(self, args: list[str]) -> str:
        """Exit a process."""
        if not args:
            return "Usage: exit <pid>"
        pid = self._parse_pid(args[0])
        if pid is None:
            return f"Error: invalid PID '{args[0]}'"
        node = self._tree.find_pid(pid)
        return self._run_logged(lambda: self._tree.apply_exit(node.node_id))

    def _cmd_orphan(self, args: list[str]) -> str:
        """Make the parent of a process exit while the process lives on."""
        if not args:
            return "Usage: orphan <pid>"
        pid = self._parse_pid(args[0])
        if pid is None:
            return f"Error: invalid PID '{args[0]}'"
        with ActionInterpreter(self._tree) as interpreter:
            outcome = interpreter.apply(ScenarioStep(action=ScenarioAction.ORPHAN, target_pid=pid))
        return "\n".join(e.message for e in outcome.entries)

    def _cmd_ps(self, _args: list[str]) -> str:
        """List every process with its parent, state and depth."""
        lines = [f"{'PID':<6} {'PPID':<6} {'STATE':<11} DEPTH"]
        lines.extend(
            f"{n.pid:<6} {n.ppid:<6} {n.display_state!s:<11} {n.depth}"
            for n in self._tree.snapshot()
        )
        return "\n".join(lines)

    def _cmd_pstree(self, _args: list[str]) -> str:
        """Draw the tree with box characters, one process per line."""
        snap = self._tree.snapshot()
        root = snap.root
        if root is None:
            return "No processes."

        lines = [f"init (pid={root.pid}) [{root.display_state}]"]

        def _walk(node_id: int, prefix: str) -> None:
            kids = snap.get(node_id).children
            for i, child_id in enumerate(kids):
                child = snap.get(child_id)
                is_last = i == len(kids) - 1
                connector = "└── " if is_last else "├── "
                lines.append(f"{prefix}{connector}pid={child.pid} [{child.display_state}]")
                _walk(child_id, prefix + ("    " if is_last else "│   "))

        _walk(root.node_id, "")
        return "\n".join(lines)

    def _cmd_traverse(self, args: list[str]) -> str:
        """Show a traversal order by PID."""
        if not args:
            return "Usage: traverse <preorder|postorder|levelorder|inorder>"
        try:
            kind = TraversalType(args[0])
        except ValueError:
            return f"Error: unknown traversal '{args[0]}'"
        steps = traverse(self._tree, kind)
        return f"{kind}: " + " → ".join(str(s.pid) for s in steps)

    def _cmd_log(self, args: list[str]) -> str:
        """Show the event log, optionally from a minimum level."""
        min_level = None
        if args:
            try:
                min_level = LogLevel[args[0].upper()]
            except KeyError:
                return f"Error: unknown level '{args[0]}'"
        entries = self._tree.log.filter(min_level=min_level)
        if not entries:
            return "Log is empty."
        return "\n".join(self._format_entry(e) for e in entries)

    def _cmd_scenarios(self, _args: list[str]) -> str:
        """List the guided scenarios."""
        return "\n".join(
            f"{s.scenario_id:<16} [{s.difficulty}] {s.title} — {s.description}" for s in SCENARIOS
        )

    def _cmd_scenario(self, args: list[str]) -> str:
        """Replay a scenario on a fresh tree and show its log."""
        if not args:
            return "Usage: scenario <id>"
        try:
            scenario = get_scenario(args[0])
        except KeyError:
            return f"Error: unknown scenario '{args[0]}'"
        tree, _outcomes = ActionInterpreter.replay(
            scenario.steps, orphan_on_exit=self._tree.orphan_on_exit
        )
        self._tree = tree
        lines = [f"=== {scenario.title} ===", scenario.code, ""]
        lines.extend(self._format_entry(e) for e in tree.log.entries)
        return "\n".join(lines)

    def _cmd_run(self, args: list[str]) -> str:
        """Replay a fork program, e.g. ``run fork(); fork();``, on a fresh tree."""
        if not args:
            return "Usage: run <code>"
        try:
            steps = parse_code(" ".join(args))
        except ValueError as e:
            return f"Error: {e}"
        tree, _outcomes = ActionInterpreter.replay(steps, orphan_on_exit=self._tree.orphan_on_exit)
        self._tree = tree
        return "\n".join(self._format_entry(e) for e in tree.log.entries)

    def _cmd_challenges(self, _args: list[str]) -> str:
        """List the challenges."""
        return "\n".join(
            f"{c.challenge_id:<12} [{c.difficulty}] {c.title} — {c.objective}" for c in CHALLENGES
        )

    def _cmd_challenge(self, args: list[str]) -> str:
        """Check the current tree against a challenge."""
        if not args:
            return "Usage: challenge <id>"
        try:
            challenge = get_challenge(args[0])
        except KeyError:
            return f"Error: unknown challenge '{args[0]}'"
        result = validate(self._tree, challenge.shape)
        verdict = "PASS" if result.passed else "FAIL"
        return f"{verdict}: {challenge.title} — {result.reason}"

    def _cmd_quit(self, _args: list[str]) -> str:
        """Leave the shell."""
        return self.EXIT_SENTINEL
