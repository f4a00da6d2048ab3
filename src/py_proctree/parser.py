"""Turn a short C-style fork program into scenario steps.

Learners type the kind of snippet a textbook shows::

    pid_t pid = fork();
    if (pid == 0) {
        exit(0);
    } else {
        wait(NULL);
    }

``parse_code`` recognises three system calls and the branch they sit
in:

- ``fork()`` — every process running that line forks once.
- ``wait(...)`` / ``waitpid(...)`` — the process reaps (or blocks for)
  a child.
- ``exit(...)`` — inside the child branch (``if (pid == 0)`` or
  ``if (fork() == 0)``) the child exits; anywhere else the parent
  exits and its running children are handed to init.

Everything else (``printf``, ``sleep``, declarations, comments) is
ignored.  The result replays with ``ActionInterpreter`` like any
catalog scenario.

Init cannot exit, so a program whose parent side calls ``exit`` is
first started as a child of init; otherwise the program runs as init
itself, matching the catalog scenarios.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum

from py_proctree.interpreter import ScenarioAction, ScenarioStep
from py_proctree.tree.process_tree import INIT_PID

_STRING = re.compile(r'"(?:[^"\\]|\\.)*"')
_LINE_COMMENT = re.compile(r"//.*$")
_TOKEN = re.compile(r"[{}]|\bfork\s*\(\s*\)|\bwait(?:pid)?\s*\(|\b_?exit\s*\(")
_CHILD_TEST = re.compile(r"\bif\s*\(\s*(?:\w+\s*==\s*0|fork\s*\(\s*\)\s*==\s*0)\s*\)")
_PARENT_TEST = re.compile(r"\bif\s*\(\s*\w+\s*(?:>|!=)\s*0\s*\)")
_ELSE = re.compile(r"\belse\b")
_FUNCTION = re.compile(r"^\s*(?:static\s+)?\w+[\s*]+(\w+)\s*\([^;]*\)\s*\{?\s*$")
_CONTROL = frozenset({"if", "else", "while", "for", "switch", "return", "main"})


class Branch(StrEnum):
    """Which side of a fork a statement runs on."""

    BOTH = "both"
    CHILD = "child"
    PARENT = "parent"


class Call(StrEnum):
    """System calls the parser understands."""

    FORK = "fork"
    WAIT = "wait"
    EXIT = "exit"


@dataclass(frozen=True)
class Statement:
    """One recognised system call and where it sits."""

    call: Call
    branch: Branch
    line: int


def scan(text: str) -> list[Statement]:
    """Return the recognised system calls in *text*, in source order.

    Raises:
        ValueError: If the code defines its own functions (recursion
            cannot be replayed line by line) or its braces do not
            balance.

    """
    statements: list[Statement] = []
    stack = [Branch.BOTH]
    popped: Branch | None = None
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _LINE_COMMENT.sub("", _STRING.sub('""', raw))
        stripped = line.strip()
        if not stripped or stripped.startswith(("/*", "*")):
            continue
        func = _FUNCTION.match(line)
        if func and func.group(1) not in _CONTROL:
            msg = f"Line {lineno}: function definitions are not supported ({func.group(1)})"
            raise ValueError(msg)

        # Text since the last brace decides which branch a "{" opens.
        after_brace = 0
        for m in _TOKEN.finditer(line):
            token = m.group()
            if token == "}":
                if len(stack) == 1:
                    msg = f"Line {lineno}: unmatched '}}'"
                    raise ValueError(msg)
                popped = stack.pop()
                after_brace = m.end()
            elif token == "{":
                stack.append(_opened(line[after_brace : m.start()], stack[-1], popped))
                after_brace = m.end()
            else:
                statements.append(Statement(call=_call(token), branch=stack[-1], line=lineno))
    if len(stack) != 1:
        msg = "Unbalanced braces: missing '}'"
        raise ValueError(msg)
    return statements


def _call(token: str) -> Call:
    if token.startswith("fork"):
        return Call.FORK
    if token.startswith("wait"):
        return Call.WAIT
    return Call.EXIT


def _opened(prefix: str, current: Branch, popped: Branch | None) -> Branch:
    """Return the branch a '{' opens, given the text before it on the line."""
    if _CHILD_TEST.search(prefix):
        return Branch.CHILD
    if _PARENT_TEST.search(prefix):
        return Branch.PARENT
    if _ELSE.search(prefix) and popped is not None and popped is not Branch.BOTH:
        return Branch.PARENT if popped is Branch.CHILD else Branch.CHILD
    return current


@dataclass
class _Program:
    """Which PIDs run the program, tracked while steps are emitted."""

    launched: bool
    next_pid: int
    live: list[int]
    children: dict[int, list[int]] = field(default_factory=dict)
    unreaped: dict[int, int] = field(default_factory=dict)
    forkers: list[int] = field(default_factory=list)
    forked: list[int] = field(default_factory=list)
    fork_count: int = 0
    steps: list[ScenarioStep] = field(default_factory=list)

    def actors(self, statement: Statement) -> list[int]:
        """Return the live PIDs that execute *statement*."""
        if statement.branch is Branch.BOTH:
            return list(self.live)
        if not self.forked:
            msg = f"Line {statement.line}: {statement.call}() in a fork branch before any fork()"
            raise ValueError(msg)
        side = self.forked if statement.branch is Branch.CHILD else self.forkers
        return [pid for pid in side if pid in self.live]

    def live_children(self, pid: int) -> list[int]:
        """Return the children of *pid* that have not exited."""
        return [c for c in self.children.get(pid, []) if c in self.live]

    def run_fork(self, actors: list[int]) -> None:
        """Fork every actor once."""
        self.fork_count += 1
        before = len(self.live)
        new = list(range(self.next_pid, self.next_pid + len(actors)))
        description = (
            f"fork() #{self.fork_count}: each running process creates one child"
            f" ({before} → {before + len(new)})"
        )
        if not self.launched and actors == self.live:
            self.steps.append(
                ScenarioStep(
                    action=ScenarioAction.FORK_ALL,
                    description=description,
                    os_explanation=(
                        "fork() returns 0 in the child and the child's PID in the parent."
                    ),
                )
            )
        else:
            self.steps.extend(
                ScenarioStep(
                    action=ScenarioAction.FORK,
                    target_pid=pid,
                    description=f"fork() #{self.fork_count}: PID {pid} creates a child",
                )
                for pid in actors
            )
        for parent, child in zip(actors, new, strict=True):
            self.children.setdefault(parent, []).append(child)
            self.unreaped[parent] = self.unreaped.get(parent, 0) + 1
        self.next_pid += len(new)
        self.live.extend(new)
        self.forkers, self.forked = actors, new

    def run_wait(self, actors: list[int]) -> None:
        """Let every actor with a child left to reap wait for one."""
        for pid in actors:
            if not self.unreaped.get(pid):
                continue
            self.unreaped[pid] -= 1
            self.steps.append(
                ScenarioStep(
                    action=ScenarioAction.WAIT,
                    target_pid=pid,
                    description=f"PID {pid} calls wait()",
                    os_explanation="wait() reaps a zombie child, or blocks until one exits.",
                )
            )

    def run_exit(self, actors: list[int], branch: Branch) -> None:
        """Exit every actor; a parent-side exit orphans its running children."""
        for pid in actors:
            orphans = self.live_children(pid) if branch is not Branch.CHILD else []
            if orphans:
                self.steps.append(
                    ScenarioStep(
                        action=ScenarioAction.ORPHAN,
                        target_pid=orphans[0],
                        description=f"PID {pid} exits while its children still run",
                        os_explanation="Running children of an exiting process are adopted "
                        "by init.",
                    )
                )
            else:
                self.steps.append(
                    ScenarioStep(
                        action=ScenarioAction.EXIT,
                        target_pid=pid,
                        description=f"PID {pid} calls exit()",
                        os_explanation="The process stays a zombie until its parent calls "
                        "wait().",
                    )
                )
            self.live.remove(pid)


def parse_code(text: str) -> list[ScenarioStep]:
    """Translate a fork program into steps for ``ActionInterpreter``.

    Args:
        text: C-style source; statements may share a line.

    Returns:
        The steps, in execution order.  Replay them on a tree holding
        only init.

    Raises:
        ValueError: If the code holds no fork, wait or exit, uses an
            unsupported construct, or acts in a fork branch before any
            fork.

    """
    statements = scan(text)
    if not statements:
        msg = "No fork(), wait() or exit() calls found"
        raise ValueError(msg)

    launched = any(s.call is Call.EXIT and s.branch is not Branch.CHILD for s in statements)
    program = _Program(launched=launched, next_pid=INIT_PID + 1, live=[INIT_PID])
    if launched:
        program.steps.append(
            ScenarioStep(
                action=ScenarioAction.FORK,
                target_pid=INIT_PID,
                description="init starts the program",
            )
        )
        program.live = [program.next_pid]
        program.next_pid += 1

    for statement in statements:
        actors = program.actors(statement)
        if statement.call is Call.FORK:
            program.run_fork(actors)
        elif statement.call is Call.WAIT:
            program.run_wait(actors)
        else:
            program.run_exit(actors, statement.branch)
    return program.steps
