"""py-proctree — learn fork, wait and exit by growing a process tree.

The engine models Unix process creation as a tree: init at the root,
``fork`` adding children, ``exit`` leaving zombies and orphans, and
``wait`` reaping them.  Around it sit tree traversals, scripted
scenarios, shape-checking challenges, a shell, and an optional web API.
"""

__version__ = "0.1.0"
