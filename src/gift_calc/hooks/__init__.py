"""Hooks system for gift-calc -- user scripts around every command.

Users list Python scripts in the ``hooks`` section of the gift-calc
configuration. Before a command runs, the before-command scripts may
adjust the configuration the command will see; after it has run, the
after-command scripts observe its output and result. A broken, slow or
misbehaving script never crashes or stalls the host unless the user asked
for that with ``failOnError``.

Modules, leaves first:

* :mod:`~gift_calc.hooks.config` -- validate and normalise the section.
* :mod:`~gift_calc.hooks.loader` -- resolve, load and check hook scripts.
* :mod:`~gift_calc.hooks.executor` -- bounded calls and the config fold.
* :mod:`~gift_calc.hooks.pipeline` -- the host-facing entry points.

Example:
    Typical usage from a host command::

        from gift_calc.hooks import apply_after_command, apply_before_command

        config = apply_before_command(args, config, "calc")
        output, result = calculate(config)
        apply_after_command(args, config, output, result, "calc")
"""

from gift_calc.hooks.config import (
    DEFAULT_HOOKS_CONFIG,
    default_hooks_config,
    is_phase_active,
    merge_with_defaults,
    validate_hooks_config,
)
from gift_calc.hooks.executor import (
    NOT_SET,
    ExecutionContext,
    HookOutcome,
    PhaseOutcome,
    create_hook_context,
    execute_hook,
    execute_hooks,
    format_hook_results,
)
from gift_calc.hooks.loader import (
    HookScriptLoader,
    LoadReport,
    LoadResult,
    create_hook_wrapper,
    load_hook_script,
    load_hook_scripts,
    resolve_script_paths,
)
from gift_calc.hooks.pipeline import (
    HooksValidation,
    apply_after_command,
    apply_after_command_async,
    apply_before_command,
    apply_before_command_async,
    are_hooks_configured,
    initialize_hooks_config,
    run_command_with_hooks,
    validate_hooks_configuration,
)

__all__ = [
    "DEFAULT_HOOKS_CONFIG",
    "NOT_SET",
    "ExecutionContext",
    "HookOutcome",
    "HookScriptLoader",
    "HooksValidation",
    "LoadReport",
    "LoadResult",
    "PhaseOutcome",
    "apply_after_command",
    "apply_after_command_async",
    "apply_before_command",
    "apply_before_command_async",
    "are_hooks_configured",
    "create_hook_context",
    "create_hook_wrapper",
    "default_hooks_config",
    "execute_hook",
    "execute_hooks",
    "format_hook_results",
    "initialize_hooks_config",
    "is_phase_active",
    "load_hook_script",
    "load_hook_scripts",
    "merge_with_defaults",
    "resolve_script_paths",
    "validate_hooks_config",
    "validate_hooks_configuration",
]
