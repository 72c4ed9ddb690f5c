"""Hook execution engine: bounded calls and the sequential phase fold.

Two layers:

* :func:`execute_hook` calls one hook with the positional arguments of
  its phase, races the call against the phase's time budget, and turns
  whatever happens (a return value, an exception, a timeout) into a
  :class:`HookOutcome`. It never raises.
* :func:`execute_hooks` runs a phase's hooks strictly one after another.
  Each hook sees the configuration as changed by the hooks before it: the
  initial config is shallow-merged with every successful delta, in order.

Timeouts abandon the *wait*, not the work. A sync hook runs on a daemon
thread and an async hook as a task; when the budget runs out the outcome
is a :class:`~gift_calc.exceptions.HookTimeoutError` and the pipeline
moves on, but the hook itself keeps running and may still cause side
effects. Its late result is discarded. An ``async def`` hook that blocks
the event loop without awaiting cannot be interrupted at all.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from gift_calc.exceptions import HookTimeoutError, PluginRuntimeError
from gift_calc.models import DEFAULT_TIMEOUT_MS
from gift_calc.output import debug, info

logger = logging.getLogger(__name__)


class _NotSet:
    """Marker type for context fields that belong to the other phase."""

    def __repr__(self) -> str:
        return "NOT_SET"


NOT_SET: Any = _NotSet()
"""Default for :attr:`ExecutionContext.output` and :attr:`ExecutionContext.result`."""


@dataclass
class ExecutionContext:
    """Data handed to every hook call of a phase.

    ``output`` and ``result`` are only set for the after-command phase;
    their presence is what selects the five-argument call. ``None`` is a
    legitimate after-phase value, hence the :data:`NOT_SET` marker.

    Attributes:
        args: Command-line arguments of the host command.
        config: Host configuration as seen by the current hook.
        command: Logical command name, or ``None``.
        output: Text the command produced (after-phase only).
        result: Structured command result (after-phase only).
    """

    args: list[str] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    command: Optional[str] = None
    output: Any = NOT_SET
    result: Any = NOT_SET

    @property
    def is_after_phase(self) -> bool:
        return self.output is not NOT_SET or self.result is not NOT_SET

    def call_args(self) -> tuple[Any, ...]:
        """Positional arguments for a hook call in this context's phase."""
        if self.is_after_phase:
            output = None if self.output is NOT_SET else self.output
            result = None if self.result is NOT_SET else self.result
            return (self.args, self.config, output, result, self.command)
        return (self.args, self.config, self.command)

    def copy(self, config: Optional[dict[str, Any]] = None) -> "ExecutionContext":
        """Return a defensive copy, optionally with a different ``config``."""
        return replace(
            self,
            args=list(self.args),
            config=copy.deepcopy(self.config if config is None else config),
        )


@dataclass
class HookOutcome:
    """Outcome of a single hook call.

    Attributes:
        success: ``True`` when the hook finished in time without an error.
        config: Config delta returned by a before-phase hook, if any.
        error: The failure, if any.
        elapsed_ms: Wall-clock time from invocation to outcome.
        hook_name: Display name used in diagnostics.
    """

    success: bool
    config: Optional[dict[str, Any]] = None
    error: Optional[BaseException] = None
    elapsed_ms: float = 0.0
    hook_name: str = "unknown"


@dataclass
class PhaseOutcome:
    """Aggregate outcome of running one phase's hooks."""

    all_succeeded: bool
    results: list[HookOutcome] = field(default_factory=list)
    final_config: dict[str, Any] = field(default_factory=dict)
    errors: list[BaseException] = field(default_factory=list)
    total_elapsed_ms: float = 0.0


def create_hook_context(
    args: Any,
    config: Any,
    command: Optional[str] = None,
    output: Any = NOT_SET,
    result: Any = NOT_SET,
) -> ExecutionContext:
    """Build an :class:`ExecutionContext` holding copies of the caller's data.

    Hooks must not be able to mutate the caller's live objects, so *args*
    is copied and *config* deep-copied. Non-list arguments become an empty
    list and a non-mapping config an empty dict.
    """
    return ExecutionContext(
        args=list(args) if isinstance(args, (list, tuple)) else [],
        config=copy.deepcopy(dict(config)) if isinstance(config, Mapping) else {},
        command=command or None,
        output=output,
        result=result,
    )


# ------------------------------------------------------------------ #
# Invocation
# ------------------------------------------------------------------ #


def _settle(future: asyncio.Future, value: Any, exc: Optional[BaseException]) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(value)


def _exit_error(exc: SystemExit) -> PluginRuntimeError:
    error = PluginRuntimeError(f"Hook called sys.exit({exc.code!r})", original_error=exc)
    error.__cause__ = exc
    return error


def _run_on_daemon_thread(fn: Callable[..., Any], args: tuple[Any, ...]) -> asyncio.Future:
    """Run a sync callable on a daemon thread and expose it as a future.

    A daemon thread never keeps the process alive, so a hook that blocks
    forever cannot stall the host's exit.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _target() -> None:
        outcome: tuple[Any, Optional[BaseException]]
        try:
            value = fn(*args)
        # A SystemExit set on the future would be re-raised out of the loop.
        except SystemExit as exc:
            outcome = (None, _exit_error(exc))
        except BaseException as exc:  # noqa: BLE001 - forwarded to the awaiting loop
            outcome = (None, exc)
        else:
            outcome = (value, None)
        try:
            loop.call_soon_threadsafe(_settle, future, *outcome)
        except RuntimeError:
            # The loop closed while the hook was still running.
            logger.debug("Discarding result of %r: event loop closed", fn)

    threading.Thread(target=_target, name="gift-calc-hook", daemon=True).start()
    return future


async def invoke_hook(fn: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async hook without blocking the event loop.

    Coroutine functions are awaited directly. Anything else runs on a
    daemon thread; if it returns an awaitable, that is awaited too. A hook
    calling ``sys.exit()`` fails with a
    :class:`~gift_calc.exceptions.PluginRuntimeError` instead of ending
    the host process.
    """
    try:
        if inspect.iscoroutinefunction(fn):
            return await fn(*args)
        value = await _run_on_daemon_thread(fn, args)
        if inspect.isawaitable(value):
            value = await value
        return value
    except SystemExit as exc:
        raise _exit_error(exc) from exc


def _discard_late_result(future: asyncio.Future) -> None:
    """Consume the outcome of an abandoned call so asyncio does not report it."""
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Abandoned hook finished with an error: %s", future.exception())


def _normalize_result(value: Any, hook_name: str) -> tuple[Optional[dict[str, Any]], Optional[BaseException]]:
    """Turn a hook's return value into ``(config_delta, error)``."""
    if value is None:
        return None, None

    if isinstance(value, BaseException):
        return None, value

    if not isinstance(value, Mapping):
        return None, PluginRuntimeError(
            f"Hook {hook_name} returned invalid result type: {type(value).__name__}",
            hook_name=hook_name,
        )

    delta = value.get("config") or None
    error = value.get("error") or None

    if delta is not None and not isinstance(delta, Mapping):
        return None, PluginRuntimeError(
            f"Hook {hook_name} returned invalid config type: {type(delta).__name__}",
            hook_name=hook_name,
        )
    if error is not None and not isinstance(error, BaseException):
        error = PluginRuntimeError(f"Hook {hook_name} reported an error: {error}", hook_name=hook_name)
    if error is not None or delta is None:
        return None, error

    # The delta joins the fold accumulator, which is deep-copied for every later hook.
    try:
        return copy.deepcopy(dict(delta)), None
    except Exception as exc:
        return None, PluginRuntimeError(
            f"Hook {hook_name} returned a config that cannot be copied: {exc}",
            hook_name=hook_name,
        )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


async def execute_hook(
    hook_function: Any,
    context: ExecutionContext,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    hook_name: str = "unknown",
    verbose: bool = False,
) -> HookOutcome:
    """Execute one hook with a time budget.

    Before-phase hooks are called as ``hook(args, config, command)`` and
    after-phase hooks as ``hook(args, config, output, result, command)``.

    Args:
        hook_function: The hook to call, sync or async.
        context: The execution context for this call.
        timeout_ms: Wall-clock budget for the call.
        hook_name: Display name used in diagnostics.
        verbose: Report progress on stderr.

    Returns:
        A :class:`HookOutcome`. Failures (exceptions, timeouts, invalid
        return values, returned errors) are reported in ``error`` with
        ``success=False``; nothing is raised.
    """
    start = time.perf_counter()
    if verbose:
        info(f"Executing hook: {hook_name}")

    try:
        if not callable(hook_function):
            raise PluginRuntimeError(
                f"Hook is not a function: {type(hook_function).__name__}", hook_name=hook_name
            )

        call = asyncio.ensure_future(invoke_hook(hook_function, *context.call_args()))
        done, _ = await asyncio.wait({call}, timeout=timeout_ms / 1000)
        if call not in done:
            call.add_done_callback(_discard_late_result)
            raise HookTimeoutError(
                f"Hook execution timed out after {timeout_ms}ms", hook_name=hook_name
            )

        delta, error = _normalize_result(call.result(), hook_name)
    except Exception as exc:
        elapsed = _elapsed_ms(start)
        logger.debug("Hook %s failed after %sms: %s", hook_name, elapsed, exc)
        if verbose:
            info(f"Hook {hook_name} failed after {elapsed:.0f}ms: {exc}")
        return HookOutcome(success=False, error=exc, elapsed_ms=elapsed, hook_name=hook_name)

    elapsed = _elapsed_ms(start)
    if error is not None:
        logger.debug("Hook %s reported an error: %s", hook_name, error)
        if verbose:
            info(f"Hook {hook_name} reported an error after {elapsed:.0f}ms: {error}")
        return HookOutcome(success=False, error=error, elapsed_ms=elapsed, hook_name=hook_name)

    if verbose:
        info(f"Hook {hook_name} completed in {elapsed:.0f}ms")
    return HookOutcome(success=True, config=delta, elapsed_ms=elapsed, hook_name=hook_name)


async def execute_hooks(
    hook_functions: Sequence[Any],
    context: ExecutionContext,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    fail_on_error: bool = False,
    hook_names: Sequence[str] = (),
    verbose: bool = False,
) -> PhaseOutcome:
    """Execute a phase's hooks in list order, folding config deltas.

    Before each call the context's ``config`` is replaced by the running
    accumulator. A failure is recorded and, when *fail_on_error* is set,
    stops the loop; otherwise the remaining hooks still run and their
    deltas are still folded in.

    Returns:
        A :class:`PhaseOutcome`. ``all_succeeded`` is ``True`` only if no
        error was recorded.
    """
    start = time.perf_counter()
    results: list[HookOutcome] = []
    errors: list[BaseException] = []
    current_config: dict[str, Any] = dict(context.config)

    if verbose and hook_functions:
        info(f"Executing {len(hook_functions)} hook(s)")

    for index, hook_function in enumerate(hook_functions):
        name = hook_names[index] if index < len(hook_names) and hook_names[index] else f"hook-{index}"
        outcome = await execute_hook(
            hook_function,
            context.copy(config=current_config),
            timeout_ms=timeout_ms,
            hook_name=name,
            verbose=verbose,
        )
        results.append(outcome)

        if not outcome.success:
            errors.append(outcome.error)
            if fail_on_error:
                if verbose:
                    info(f"Stopping hook execution due to error in {name}")
                break
        elif outcome.config:
            current_config = {**current_config, **outcome.config}

    total = _elapsed_ms(start)
    debug(f"Hook phase finished: {len(results) - len(errors)}/{len(results)} succeeded in {total:.0f}ms")

    return PhaseOutcome(
        all_succeeded=not errors,
        results=results,
        final_config=current_config,
        errors=errors,
        total_elapsed_ms=total,
    )


def format_hook_results(outcome: PhaseOutcome, include_details: bool = False) -> str:
    """Render a human-readable summary of a phase run.

    Example output::

        Hook execution: 1/2 succeeded (12ms total)
        Errors: 1
          1. Hook execution timed out after 100ms
        Individual results:
          ✓ adjust.py (3ms)
          ✗ slow.py (101ms) - Hook execution timed out after 100ms
    """
    succeeded = sum(1 for r in outcome.results if r.success)
    lines = [
        f"Hook execution: {succeeded}/{len(outcome.results)} succeeded"
        f" ({outcome.total_elapsed_ms:.0f}ms total)"
    ]

    if not outcome.all_succeeded:
        lines.append(f"Errors: {len(outcome.errors)}")
        if include_details:
            lines.extend(f"  {i}. {err}" for i, err in enumerate(outcome.errors, start=1))

    if include_details and outcome.results:
        lines.append("Individual results:")
        for result in outcome.results:
            status = "✓" if result.success else "✗"
            line = f"  {status} {result.hook_name} ({result.elapsed_ms:.0f}ms)"
            if not result.success and result.error is not None:
                line += f" - {result.error}"
            lines.append(line)

    return "\n".join(lines)
