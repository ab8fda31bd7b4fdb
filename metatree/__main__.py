"""Module entrypoint for ``python -m metatree``.

A thin wrapper around :func:`metatree.cli.main`: all argument parsing and task editing
happen in the CLI module, and ``SystemExit(main())`` turns its return code into the
process exit status. Equivalent to the ``metatree`` console script.

Environment
-----------
- ``METATREE_CONTROL_ROOT``: if set, ``--tasks-json`` is resolved relative to this
  directory; otherwise the current working directory is used.

Outputs
-------
- The rendered tree (``show``) or the affected task id (other commands) on stdout.
- Progress lines on stderr, prefixed with ``[metatree]``.
- The task JSON file (default ``.metatree/tasks.json``) is created or rewritten by every
  mutating command.

Failure modes
-------------
Unknown task ids and store failures return exit status 1. Argument errors exit with 2
(``argparse``). A task file that is not valid JSON, or not an object with a ``tasks``
list, surfaces as an uncaught ``ValueError``.
"""

from __future__ import annotations

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
