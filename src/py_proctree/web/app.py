"""Flask application factory for the py-proctree web API.

The ``create_app`` function creates a shell over a process tree and
returns a Flask app whose endpoints drive and inspect it.  Every
endpoint reads ``shell.tree`` at request time, because ``reset`` and
``scenario`` replace the shell's tree.
"""

from __future__ import annotations

from flask import Flask, Response, jsonify, request

from py_proctree.catalog import CHALLENGES, get_challenge
from py_proctree.challenges import validate
from py_proctree.errors import UnsupportedShape
from py_proctree.logging import LogLevel
from py_proctree.shell import Shell
from py_proctree.traversal import TraversalType, traverse
from py_proctree.tree.process_tree import ProcessTree

_HTTP_BAD_REQUEST = 400
_HTTP_NOT_FOUND = 404


def create_app(tree: ProcessTree | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        tree: The tree to serve.  A fresh tree with init is created if
            omitted.

    Returns:
        A configured Flask application ready to serve.

    """
    shell = Shell(tree=tree)

    app = Flask(__name__)

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Execute a shell command and return JSON output.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output`` and ``tree`` fields.

        """
        data = request.get_json(silent=True)
        if data is None or "command" not in data:
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST

        command: str = data["command"]
        result = shell.execute(command)
        if result == Shell.EXIT_SENTINEL:
            result = "Use reset to start over; the web session stays open."
        return jsonify({"output": result, "tree": shell.tree.snapshot().to_dict()})

    @app.route("/api/tree")
    def tree_view() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return a snapshot of the current tree."""
        return jsonify(shell.tree.snapshot().to_dict())

    @app.route("/api/traversal/<kind>")
    def traversal(  # pyright: ignore[reportUnusedFunction]
        kind: str,
    ) -> tuple[Response, int] | Response:
        """Return the visit order for *kind*.

        Returns:
            JSON with ``kind`` and ``steps``, or 400 for an unknown
            traversal or a tree the traversal cannot handle.

        """
        try:
            traversal_type = TraversalType(kind)
        except ValueError:
            return jsonify({"error": f"Unknown traversal '{kind}'"}), _HTTP_BAD_REQUEST
        try:
            steps = traverse(shell.tree, traversal_type)
        except UnsupportedShape as e:
            return jsonify({"error": str(e)}), _HTTP_BAD_REQUEST
        return jsonify({"kind": str(traversal_type), "steps": [s.to_dict() for s in steps]})

    @app.route("/api/log")
    def log() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Return the event log, optionally filtered by ``?level=``."""
        min_level = None
        level = request.args.get("level")
        if level:
            try:
                min_level = LogLevel[level.upper()]
            except KeyError:
                return jsonify({"error": f"Unknown level '{level}'"}), _HTTP_BAD_REQUEST
        entries = shell.tree.log.filter(min_level=min_level)
        return jsonify({"entries": [e.to_dict() for e in entries]})

    @app.route("/api/challenges")
    def challenges() -> Response:  # pyright: ignore[reportUnusedFunction]
        """List the challenges."""
        return jsonify(
            {
                "challenges": [
                    {
                        "id": c.challenge_id,
                        "title": c.title,
                        "description": c.description,
                        "objective": c.objective,
                        "expected_tree": c.expected_tree,
                        "time_limit": c.time_limit,
                        "difficulty": str(c.difficulty),
                    }
                    for c in CHALLENGES
                ]
            }
        )

    @app.route("/api/challenges/<challenge_id>/validate", methods=["POST"])
    def validate_challenge(  # pyright: ignore[reportUnusedFunction]
        challenge_id: str,
    ) -> tuple[Response, int] | Response:
        """Check the current tree against a challenge."""
        try:
            challenge = get_challenge(challenge_id)
        except KeyError:
            return jsonify({"error": f"Unknown challenge '{challenge_id}'"}), _HTTP_NOT_FOUND
        result = validate(shell.tree, challenge.shape)
        return jsonify({"id": challenge.challenge_id, **result.to_dict()})

    return app


def main() -> None:
    """Run the web API development server.

    This is the ``py-proctree-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
