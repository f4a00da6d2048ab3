"""Browser-facing JSON API for py-proctree.

This package provides a Flask application that exposes the sandbox
shell and the tree inspectors over HTTP.  It is an **optional** extra —
install with::

    pip install py-proctree[web]

The ``create_app`` factory in ``app.py`` wraps one shell and serves:

- ``POST /api/execute`` — execute a shell command and return JSON.
- ``GET /api/tree`` — snapshot of the current tree.
- ``GET /api/traversal/<kind>`` — visit order for a traversal type.
- ``GET /api/log`` — the event log.
- ``GET /api/challenges`` and ``POST /api/challenges/<id>/validate``.
"""
