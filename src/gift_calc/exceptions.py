"""Exception hierarchy for gift-calc.

All exceptions inherit from :class:`GiftCalcError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`gift_calc.exit_codes`.
The top-level error handler in :func:`gift_calc.app.main` catches
``GiftCalcError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

The hooks pipeline never lets its own errors escape as exceptions: the
loader and executor return them as data (see
:class:`~gift_calc.hooks.loader.LoadResult` and
:class:`~gift_calc.hooks.executor.HookOutcome`). The :class:`HookError`
subclasses exist so that those returned errors can be classified.

Subclass hierarchy::

    GiftCalcError (exit 1)
    +-- ConfigError            (exit 1)
    +-- HookError              (exit 1)
        +-- ConfigValidationError
        +-- PathValidationError
        +-- ModuleLoadError
        +-- SignatureError
        +-- HookTimeoutError
        +-- PluginRuntimeError
"""

from __future__ import annotations

from typing import Optional

from gift_calc.exit_codes import EXIT_GENERIC_FAILURE


class GiftCalcError(Exception):
    """Base exception for all gift-calc errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`gift_calc.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(GiftCalcError):
    """Raised for host configuration problems (unreadable file, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE


class HookError(GiftCalcError):
    """Base class for every failure produced by the hooks pipeline.

    Args:
        message: Human-readable error description.
        hook_name: Display name of the offending hook script, when known.
    """

    def __init__(self, message: str, hook_name: Optional[str] = None):
        super().__init__(message)
        self.hook_name = hook_name


class ConfigValidationError(HookError):
    """Raised for a malformed ``hooks`` configuration section.

    Always recovered locally: invalid fields fall back to their defaults.
    """


class PathValidationError(HookError):
    """Raised when a hook script path is relative, missing, not a file, or has an unsupported extension."""


class ModuleLoadError(HookError):
    """Raised when importing or executing a hook script's top-level code fails."""


class SignatureError(HookError):
    """Raised when a hook script exports no usable callable, or one with the wrong arity."""


class HookTimeoutError(HookError):
    """Raised when a hook does not finish within its phase's ``timeoutMs`` budget.

    Named with a ``Hook`` prefix to avoid shadowing the built-in
    ``TimeoutError``.
    """


class PluginRuntimeError(HookError):
    """Raised when a hook raises, or returns a value of an invalid shape.

    Args:
        message: Human-readable error description.
        hook_name: Display name of the hook.
        original_error: The exception raised by the hook itself, if any.
    """

    def __init__(
        self,
        message: str,
        hook_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, hook_name=hook_name)
        self.original_error = original_error
