"""Terminal front end for the sandbox shell.

``run()`` owns all the I/O: it wires up readline completion, prints the
banner, then feeds each line the learner types to ``Shell.execute`` and
prints whatever comes back.  It stops on ``quit``, end of input or an
interrupt.

``format_banner`` and ``build_prompt`` return strings and are tested on
their own.
"""

import readline

from py_proctree.completer import Completer
from py_proctree.shell import Shell

_BANNER_WIDTH = 40


def format_banner() -> str:
    """Return the welcome banner shown when the REPL starts."""
    rule = "=" * _BANNER_WIDTH
    return (
        f"\n  {rule}\n             py-proctree\n"
        f"   fork / wait / exit, one node at a time\n  {rule}\n\n"
        "init (PID 1) is running. Type 'help' for commands, 'quit' to leave.\n"
    )


def build_prompt(shell: Shell) -> str:
    """Return a prompt with the number of live processes, e.g. ``proctree[3 live] $ ``."""
    return f"proctree[{len(shell.tree.live_nodes)} live] $ "


def run() -> None:
    """Run the interactive loop on a fresh tree.

    This is the ``py-proctree`` console entry point.
    """
    shell = Shell()

    readline.set_completer(Completer(shell).complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(format_banner())  # noqa: T201

    try:
        while True:
            try:
                line = input(build_prompt(shell))
            except EOFError:
                print()  # noqa: T201
                break

            output = shell.execute(line)
            if output == Shell.EXIT_SENTINEL:
                break
            if output:
                print(output)  # noqa: T201
    except KeyboardInterrupt:
        print("\nInterrupted.")  # noqa: T201
    finally:
        print("Bye.")  # noqa: T201
