"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~gift_calc.exceptions.GiftCalcError` subclass.
External tooling (CI scripts, shell wrappers) can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ gift-calc hooks validate
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the hooks section did not validate
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred, or a hook failed with ``failOnError`` set."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or invalid configuration."""

EXIT_CANCELLED = 130
"""The user interrupted the command (Ctrl-C)."""
