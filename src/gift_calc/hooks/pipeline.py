"""Hooks pipeline entry points used by the host commands.

The host calls two functions around every command::

    config = apply_before_command(args, config, "calc")
    output, result = run_the_command(config)
    apply_after_command(args, config, output, result, "calc")

or lets :func:`run_command_with_hooks` do both. Each call builds the hooks
configuration afresh from the host config, returns at once when its phase
is inactive, and otherwise resolves, loads (concurrently) and executes
(sequentially) the phase's scripts.

Failure policy is decided here and only here. With ``failOnError`` off
(the default) a broken hook is reported only in verbose mode and the host
command behaves exactly as if hooks were not configured; the
before-command phase hands back the original config if anything in the
pipeline itself goes wrong. With ``failOnError`` on, the first load or
execution failure prints a diagnostic and exits the process with status 1.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Callable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, TypeVar

from gift_calc.exit_codes import EXIT_GENERIC_FAILURE
from gift_calc.hooks.config import (
    DEFAULT_HOOKS_CONFIG,
    HOOKS_SECTION,
    default_hooks_config,
    extract_hooks_config,
    is_phase_active,
    validate_hooks_config,
)
from gift_calc.hooks.executor import (
    NOT_SET,
    ExecutionContext,
    PhaseOutcome,
    create_hook_context,
    execute_hooks,
    format_hook_results,
)
from gift_calc.hooks.loader import (
    create_hook_wrapper,
    load_hook_scripts,
    resolve_script_paths,
)
from gift_calc.models import HooksConfig, Phase
from gift_calc.output import error, info

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class HooksValidation:
    """Result of :func:`validate_hooks_configuration`."""

    is_valid: bool
    hooks_config: HooksConfig = DEFAULT_HOOKS_CONFIG
    errors: list[str] = field(default_factory=list)


def _config_dir(config_dir: str | os.PathLike[str] | None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    from gift_calc.config import config_dir_path

    return config_dir_path()


def _fail(message: str) -> None:
    """Report *message* and terminate the host process."""
    error(message)
    sys.exit(EXIT_GENERIC_FAILURE)


def _run_sync(main: Coroutine[Any, Any, T]) -> T:
    """Drive *main* to completion from synchronous code.

    A caller already inside an event loop (an async host) cannot use
    :func:`asyncio.run`, so the phase then gets a private loop on a worker
    thread and the caller blocks until it finishes. ``SystemExit`` raised
    under ``failOnError`` is re-raised in the calling thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(main)

    logger.debug("Event loop already running; running hooks on a worker thread")
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="gift-calc-hooks") as pool:
        return pool.submit(asyncio.run, main).result()


async def _run_phase(
    phase: Phase,
    hooks_config: HooksConfig,
    context: ExecutionContext,
    config_dir: str | os.PathLike[str] | None,
) -> Optional[PhaseOutcome]:
    """Resolve, load and execute one phase. ``None`` means nothing ran."""
    verbose = hooks_config.verbose
    label = phase.label
    if verbose:
        info(f"Applying {label} hooks...")

    script_paths = resolve_script_paths(hooks_config, phase, _config_dir(config_dir))
    if not script_paths:
        if verbose:
            info(f"No {label} hook scripts configured")
        return None

    report = await load_hook_scripts(script_paths, verbose=verbose, validate_signature=True)
    if report.errors and hooks_config.fail_on_error:
        _fail(f"Failed to load {label} hooks: {', '.join(str(e) for e in report.errors)}")

    if not report.hook_functions:
        if verbose:
            info(f"No {label} hooks loaded successfully")
        return None

    names = [os.path.basename(p) for p in report.successful_paths]
    wrapped = [create_hook_wrapper(fn, name) for fn, name in zip(report.hook_functions, names)]

    outcome = await execute_hooks(
        wrapped,
        context,
        timeout_ms=hooks_config.phase(phase).timeout_ms,
        fail_on_error=hooks_config.fail_on_error,
        hook_names=names,
        verbose=verbose,
    )

    if outcome.errors:
        message = f"{label.capitalize()} hook errors: {', '.join(str(e) for e in outcome.errors)}"
        if hooks_config.fail_on_error:
            _fail(message)
        elif verbose:
            error(message)

    if verbose:
        info(format_hook_results(outcome, include_details=True))
    return outcome


async def apply_before_command_async(
    args: Any,
    config: Any,
    command: Optional[str] = None,
    *,
    config_dir: str | os.PathLike[str] | None = None,
) -> Any:
    """Coroutine form of :func:`apply_before_command`."""
    hooks_config = extract_hooks_config(config)
    if not is_phase_active(hooks_config, Phase.BEFORE):
        return config

    try:
        context = create_hook_context(args, config, command)
        outcome = await _run_phase(Phase.BEFORE, hooks_config, context, config_dir)
    except Exception as exc:
        error(f"Error in before-command hooks system: {exc}")
        if hooks_config.fail_on_error:
            sys.exit(EXIT_GENERIC_FAILURE)
        return config

    if outcome is None:
        return config
    return outcome.final_config


async def apply_after_command_async(
    args: Any,
    config: Any,
    output: Any,
    result: Any,
    command: Optional[str] = None,
    *,
    config_dir: str | os.PathLike[str] | None = None,
) -> None:
    """Coroutine form of :func:`apply_after_command`."""
    hooks_config = extract_hooks_config(config)
    if not is_phase_active(hooks_config, Phase.AFTER):
        return

    try:
        context = create_hook_context(args, config, command, output=output, result=result)
        await _run_phase(Phase.AFTER, hooks_config, context, config_dir)
    except Exception as exc:
        error(f"Error in after-command hooks system: {exc}")
        if hooks_config.fail_on_error:
            sys.exit(EXIT_GENERIC_FAILURE)


def apply_before_command(
    args: Any,
    config: Any,
    command: Optional[str] = None,
    *,
    config_dir: str | os.PathLike[str] | None = None,
) -> Any:
    """Run the before-command hooks and return the configuration they produced.

    Each hook receives ``(args, config, command)`` with the config as left
    by the hooks before it, and may return ``{"config": {...}}`` to merge
    keys into it.

    Args:
        args: Command-line arguments of the host command.
        config: The host configuration (including its ``hooks`` section).
        command: Logical command name passed through to the hooks.
        config_dir: Base directory for relative script paths; defaults to
            the gift-calc config directory.

    Returns:
        The folded configuration, or *config* itself (the very same object)
        when the phase is inactive, nothing loaded, or the pipeline failed
        with ``failOnError`` off.

    Raises:
        SystemExit: With status 1 on any hook failure when ``failOnError``
            is set.
    """
    if not is_phase_active(extract_hooks_config(config), Phase.BEFORE):
        return config
    return _run_sync(
        apply_before_command_async(args, config, command, config_dir=config_dir)
    )


def apply_after_command(
    args: Any,
    config: Any,
    output: Any,
    result: Any,
    command: Optional[str] = None,
    *,
    config_dir: str | os.PathLike[str] | None = None,
) -> None:
    """Run the after-command hooks for an already finished command.

    Each hook receives ``(args, config, output, result, command)``. The
    hooks can only observe: whatever they return, the command's outcome is
    unchanged.

    Raises:
        SystemExit: With status 1 on any hook failure when ``failOnError``
            is set.
    """
    if not is_phase_active(extract_hooks_config(config), Phase.AFTER):
        return
    _run_sync(
        apply_after_command_async(args, config, output, result, command, config_dir=config_dir)
    )


def run_command_with_hooks(
    command: Optional[str],
    args: Any,
    config: Any,
    action: Callable[[Any], tuple[Any, Any]],
    *,
    config_dir: str | os.PathLike[str] | None = None,
) -> tuple[Any, Any]:
    """Run *action* between the before- and after-command phases.

    Args:
        command: Logical command name.
        args: Command-line arguments.
        config: The host configuration.
        action: The command itself: called with the configuration produced
            by the before-command hooks, returns ``(output, result)``.
        config_dir: Base directory for relative script paths.

    Returns:
        The ``(output, result)`` pair returned by *action*.
    """
    effective = apply_before_command(args, config, command, config_dir=config_dir)
    output, result = action(effective)
    apply_after_command(args, effective, output, result, command, config_dir=config_dir)
    return output, result


def are_hooks_configured(config: Any) -> bool:
    """Cheap check: are hooks enabled with at least one active phase?

    Does no file I/O, so the host can skip the pipeline entirely when this
    is ``False``.
    """
    try:
        hooks_config = extract_hooks_config(config)
    except Exception:
        return False
    return hooks_config.enabled and (
        is_phase_active(hooks_config, Phase.BEFORE) or is_phase_active(hooks_config, Phase.AFTER)
    )


def validate_hooks_configuration(config: Any) -> HooksValidation:
    """Validate the ``hooks`` section of a host configuration.

    A host config without a ``hooks`` section is valid and yields the
    defaults; a host config that is not a mapping is invalid.
    """
    if not isinstance(config, dict):
        return HooksValidation(is_valid=False, errors=["Configuration must be an object"])

    section = config.get(HOOKS_SECTION)
    if not section:
        return HooksValidation(is_valid=True)

    hooks_config, errors = validate_hooks_config(section)
    return HooksValidation(is_valid=not errors, hooks_config=hooks_config, errors=errors)


def initialize_hooks_config() -> dict[str, Any]:
    """Return a default ``hooks`` section, ready to be stored in the host config."""
    return default_hooks_config()


__all__ = [
    "NOT_SET",
    "HooksValidation",
    "apply_after_command",
    "apply_after_command_async",
    "apply_before_command",
    "apply_before_command_async",
    "are_hooks_configured",
    "initialize_hooks_config",
    "run_command_with_hooks",
    "validate_hooks_configuration",
]
