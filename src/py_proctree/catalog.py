"""Built-in scenarios and challenges.

Scenarios are guided walkthroughs: a C snippet plus the scripted steps
that replay it on a process tree, each with an operating-systems and a
data-structures explanation.  Challenges state a goal ("create a
zombie") and the tree shape that proves it was met.

PIDs in scenario steps assume a fresh tree: init is PID 1 and each
fork takes the next PID in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from py_proctree.challenges import ExpectedShape, parse_expected_tree
from py_proctree.interpreter import ScenarioAction, ScenarioStep


class Difficulty(StrEnum):
    """How hard a scenario or challenge is."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class Scenario:
    """A guided walkthrough of one process-creation pattern."""

    scenario_id: str
    title: str
    description: str
    os_concept: str
    dsa_concept: str
    difficulty: Difficulty
    code: str
    steps: tuple[ScenarioStep, ...]


@dataclass(frozen=True)
class Challenge:
    """A goal the learner must reach by building a tree."""

    challenge_id: str
    title: str
    description: str
    objective: str
    expected_tree: str
    time_limit: int
    difficulty: Difficulty

    @property
    def shape(self) -> ExpectedShape:
        """Return the parsed shape predicate for ``expected_tree``."""
        return parse_expected_tree(self.expected_tree)


SCENARIOS: tuple[Scenario, ...] = (
    Scenario(
        scenario_id="single-fork",
        title="Single Fork",
        description="Basic fork() call - process duplication",
        os_concept="fork() System Call",
        dsa_concept="Tree Node Creation",
        difficulty=Difficulty.BEGINNER,
        code=(
            "pid_t pid = fork();\n"
            "if (pid == 0) {\n"
            "    // Child process (fork returns 0)\n"
            '    printf("Child: PID = %d\\n", getpid());\n'
            "} else {\n"
            "    // Parent process (fork returns child PID)\n"
            '    printf("Parent: PID = %d\\n", getpid());\n'
            "}"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK,
                description="Parent process duplicates itself via fork()",
                os_explanation=(
                    "fork() creates an exact copy of the calling process. Returns child PID "
                    "to parent, 0 to child. Both processes continue execution from fork()."
                ),
                dsa_explanation=(
                    "A new child node is added to the parent. The tree grows by one node "
                    "per fork() call."
                ),
            ),
        ),
    ),
    Scenario(
        scenario_id="multiple-fork",
        title="Multiple Fork (Exponential)",
        description="Each fork() doubles the total process count",
        os_concept="Exponential Process Growth",
        dsa_concept="Binary Tree Expansion",
        difficulty=Difficulty.BEGINNER,
        code=(
            "fork(); // All processes execute this\n"
            "fork(); // Now 2 processes each fork\n"
            "fork(); // Now 4 processes each fork\n"
            "// Result: 2^3 = 8 processes"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK_ALL,
                description="First fork() - process count: 1 → 2",
                os_explanation=(
                    "First fork() duplicates the single process. Now 2 processes exist "
                    "(parent + child)."
                ),
                dsa_explanation="Root node creates one child. Total nodes = 2.",
            ),
            ScenarioStep(
                action=ScenarioAction.FORK_ALL,
                description="Second fork() - process count: 2 → 4",
                os_explanation=(
                    "BOTH existing processes execute fork(). Each creates one child. Total = 4."
                ),
                dsa_explanation="Each existing node creates one child. Total nodes = 4.",
            ),
            ScenarioStep(
                action=ScenarioAction.FORK_ALL,
                description="Third fork() - process count: 4 → 8",
                os_explanation=(
                    "All 4 processes execute fork(). Each creates one child. Total = 2³ = 8."
                ),
                dsa_explanation="Each existing node creates one child. Total nodes = 8.",
            ),
        ),
    ),
    Scenario(
        scenario_id="parent-wait",
        title="Parent Wait",
        description="Parent waits for child to complete - prevents zombie",
        os_concept="wait() System Call",
        dsa_concept="Postorder Traversal",
        difficulty=Difficulty.BEGINNER,
        code=(
            "pid_t pid = fork();\n"
            "if (pid == 0) {\n"
            "    // Child work\n"
            "    sleep(1);\n"
            "    exit(0);  // Child terminates\n"
            "} else {\n"
            "    wait(NULL);  // Parent blocks until child exits\n"
            '    printf("Child completed\\n");\n'
            "}"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK,
                description="Create child process",
                os_explanation=(
                    "fork() creates child. Parent continues, child also continues from fork()."
                ),
                dsa_explanation="New leaf node created under parent.",
            ),
            ScenarioStep(
                action=ScenarioAction.WAIT,
                description="Parent calls wait() - blocks until child exits",
                os_explanation=(
                    "wait() blocks parent until ANY child terminates. Collects exit status, "
                    "preventing zombie."
                ),
                dsa_explanation=(
                    "Like postorder traversal: children processed before parent can continue."
                ),
            ),
            ScenarioStep(
                action=ScenarioAction.EXIT,
                target_pid=2,
                description="Child exits - parent is waiting",
                os_explanation=(
                    "Child terminates NORMALLY because parent called wait(). No zombie created."
                ),
                dsa_explanation="Leaf node is marked finished; the parent resumes.",
            ),
        ),
    ),
    Scenario(
        scenario_id="zombie-process",
        title="Zombie Process",
        description="Child exits but parent does NOT call wait() → ZOMBIE",
        os_concept="Zombie Process State",
        dsa_concept="Orphaned Node Reference",
        difficulty=Difficulty.INTERMEDIATE,
        code=(
            "pid_t pid = fork();\n"
            "if (pid == 0) {\n"
            "    exit(0);  // Child exits immediately\n"
            "} else {\n"
            "    // Parent does NOT call wait()!\n"
            "    sleep(10);  // Parent keeps running\n"
            "}\n"
            "// Child is now a ZOMBIE until parent calls wait()"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK,
                description="Create child process",
                os_explanation=(
                    "fork() creates child process. Both parent and child are now running."
                ),
                dsa_explanation="New child node added to parent.",
            ),
            ScenarioStep(
                action=ScenarioAction.EXIT,
                target_pid=-1,
                description="Child exits - but parent is NOT waiting!",
                os_explanation=(
                    "ZOMBIE CREATED: Child has TERMINATED but parent never called wait(). "
                    "Process entry remains in kernel table until parent collects exit status."
                ),
                dsa_explanation=(
                    'Node is marked "dead" but remains in tree - parent still holds reference.'
                ),
            ),
            ScenarioStep(
                action=ScenarioAction.EXPLAIN,
                description="The zombie stays until its parent calls wait()",
                os_explanation=(
                    "A zombie holds only its PID and exit status. Too many zombies exhaust "
                    "the process table, which is why parents must reap their children."
                ),
                dsa_explanation="The node is never removed from the tree, only its state changes.",
            ),
        ),
    ),
    Scenario(
        scenario_id="orphan-process",
        title="Orphan Process",
        description="Parent exits while child is STILL RUNNING → ORPHAN",
        os_concept="Orphan Process (Adopted by init)",
        dsa_concept="Parent Node Deletion + Reparenting",
        difficulty=Difficulty.INTERMEDIATE,
        code=(
            "pid_t pid = fork();\n"
            "if (pid == 0) {\n"
            "    sleep(5);  // Child keeps running\n"
            '    printf("Orphan: PPID is now 1 (init)\\n");\n'
            "} else {\n"
            "    exit(0);  // Parent exits immediately!\n"
            "}\n"
            "// Child is now an ORPHAN - adopted by init (PID 1)"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK,
                description="init starts the parent process",
                os_explanation="init (PID 1) forks the program's process, PID 2.",
                dsa_explanation="Root gains its first child.",
            ),
            ScenarioStep(
                action=ScenarioAction.FORK,
                target_pid=2,
                description="Create child process",
                os_explanation="fork() creates child. Both processes are running.",
                dsa_explanation="Child node attached to parent.",
            ),
            ScenarioStep(
                action=ScenarioAction.ORPHAN,
                target_pid=3,
                description="Parent exits while child is STILL RUNNING",
                os_explanation=(
                    "ORPHAN CREATED: Child is STILL RUNNING but parent exited. Kernel adopts "
                    "child to init (PID 1). Child's PPID changes to 1."
                ),
                dsa_explanation="Parent node exits. Child node reparented to root (init).",
            ),
        ),
    ),
    Scenario(
        scenario_id="recursive-fork",
        title="Recursive Forking",
        description="Each child creates its own child - forms a chain",
        os_concept="Recursive fork() Pattern",
        dsa_concept="Linear Tree (Linked List)",
        difficulty=Difficulty.ADVANCED,
        code=(
            "void recursive_fork(int depth) {\n"
            "    if (depth <= 0) return;\n"
            "    if (fork() == 0) {\n"
            "        // Only child recurses\n"
            "        recursive_fork(depth - 1);\n"
            "        exit(0);\n"
            "    }\n"
            "    wait(NULL);  // Parent waits for child\n"
            "}\n"
            "recursive_fork(3);"
        ),
        steps=(
            ScenarioStep(
                action=ScenarioAction.FORK,
                description="Level 1: Root creates first child",
                os_explanation="Root process forks. Child will recursively call fork() again.",
                dsa_explanation="First level of tree: root → child₁",
            ),
            ScenarioStep(
                action=ScenarioAction.FORK,
                target_pid=2,
                description="Level 2: First child creates second child",
                os_explanation="Child₁ forks to create Child₂. Forms a chain.",
                dsa_explanation="Second level: root → child₁ → child₂",
            ),
            ScenarioStep(
                action=ScenarioAction.FORK,
                target_pid=3,
                description="Level 3: Second child creates third child",
                os_explanation="Child₂ forks to create Child₃. Maximum depth reached.",
                dsa_explanation="Third level (chain): root → child₁ → child₂ → child₃",
            ),
        ),
    ),
)


CHALLENGES: tuple[Challenge, ...] = (
    Challenge(
        challenge_id="challenge-1",
        title="Create a Child",
        description="Create a simple parent-child process relationship",
        objective="Use fork() to create exactly one child process",
        expected_tree="root with 1 child",
        time_limit=30,
        difficulty=Difficulty.BEGINNER,
    ),
    Challenge(
        challenge_id="challenge-2",
        title="Three Children",
        description="Create a parent with exactly three children",
        objective="Fork three times from the root process",
        expected_tree="root with 3 children",
        time_limit=45,
        difficulty=Difficulty.BEGINNER,
    ),
    Challenge(
        challenge_id="challenge-3",
        title="Create a Zombie",
        description="Demonstrate zombie process creation",
        objective="Create a child and have it exit without the parent waiting",
        expected_tree="root with 1 zombie child",
        time_limit=45,
        difficulty=Difficulty.INTERMEDIATE,
    ),
    Challenge(
        challenge_id="challenge-4",
        title="Proper Cleanup",
        description="Create children and properly wait for them",
        objective="Create 2 children, wait for each, no zombies",
        expected_tree="root with 2 terminated children, zero zombies",
        time_limit=60,
        difficulty=Difficulty.INTERMEDIATE,
    ),
    Challenge(
        challenge_id="challenge-5",
        title="Binary Tree",
        description="Create a perfect binary tree of depth 2",
        objective="Each process forks exactly twice",
        expected_tree="binary tree depth 2",
        time_limit=90,
        difficulty=Difficulty.ADVANCED,
    ),
    Challenge(
        challenge_id="challenge-6",
        title="Chain of Processes",
        description="Create a linear chain of 4 processes",
        objective="Each child creates one grandchild, forming a chain",
        expected_tree="linear chain depth 4",
        time_limit=90,
        difficulty=Difficulty.ADVANCED,
    ),
)


def get_scenario(scenario_id: str) -> Scenario:
    """Return the scenario with *scenario_id*.

    Raises:
        KeyError: If no scenario has that id.

    """
    for scenario in SCENARIOS:
        if scenario.scenario_id == scenario_id:
            return scenario
    msg = f"Unknown scenario: {scenario_id}"
    raise KeyError(msg)


def get_challenge(challenge_id: str) -> Challenge:
    """Return the challenge with *challenge_id*.

    Raises:
        KeyError: If no challenge has that id.

    """
    for challenge in CHALLENGES:
        if challenge.challenge_id == challenge_id:
            return challenge
    msg = f"Unknown challenge: {challenge_id}"
    raise KeyError(msg)


def scenarios_by_difficulty(difficulty: Difficulty) -> list[Scenario]:
    """Return the scenarios at *difficulty*, in catalog order."""
    return [s for s in SCENARIOS if s.difficulty is difficulty]


def challenges_by_difficulty(difficulty: Difficulty) -> list[Challenge]:
    """Return the challenges at *difficulty*, in catalog order."""
    return [c for c in CHALLENGES if c.difficulty is difficulty]
