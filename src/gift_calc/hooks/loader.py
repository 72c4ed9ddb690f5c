"""Hook script resolution, loading, and validation.

Hook scripts are ordinary Python files configured by absolute path (or by
a path relative to the gift-calc config directory, resolved by
:func:`resolve_script_paths` before loading). Loading turns such a file
into a single callable:

1. **Path validation** -- :func:`validate_script_path` insists on an
   absolute path to an existing regular file with a supported extension.
   Relative paths are always rejected here.
2. **Format detection** -- :func:`detect_module_format`. ``.pyc`` files are
   imported as modules and ``.pyw`` files are run as scripts. A plain
   ``.py`` file is imported as a module only if the nearest enclosing
   ``pyproject.toml`` says so::

       [tool.gift-calc]
       hook-format = "module"

   Otherwise it is run as a script, the backward-compatible default.
3. **Loading** -- through the :class:`HookScriptLoader` registered for
   the format. Every load is fresh: modules are imported under a unique
   name, so nothing from an earlier load of the same file is reused.
4. **Extraction** -- :func:`extract_hook_function` looks for a
   ``default`` attribute, then a callable module object, then the
   conventional names in :data:`HOOK_FUNCTION_NAMES`.
5. **Signature check** -- :func:`is_valid_hook_function` accepts 3 to 5
   positional parameters.

Every failure is returned inside a :class:`LoadResult`; nothing escapes
:func:`load_hook_script` as an exception.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import itertools
import logging
import os
import runpy
import sys
import threading
import tomllib
import types
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from importlib.machinery import SourceFileLoader, SourcelessFileLoader
from pathlib import Path
from typing import Any, Optional

from gift_calc.exceptions import (
    HookError,
    ModuleLoadError,
    PathValidationError,
    PluginRuntimeError,
    SignatureError,
)
from gift_calc.hooks.executor import invoke_hook
from gift_calc.models import HooksConfig, ModuleFormat, Phase
from gift_calc.output import info

logger = logging.getLogger(__name__)

MODULE_EXTENSIONS = (".pyc",)
"""Extensions that are always imported as modules."""

SCRIPT_EXTENSIONS = (".pyw",)
"""Extensions that are always run as scripts."""

AMBIGUOUS_EXTENSIONS = (".py",)
"""Extensions whose format is decided by the nearest ``pyproject.toml``."""

SUPPORTED_EXTENSIONS = MODULE_EXTENSIONS + SCRIPT_EXTENSIONS + AMBIGUOUS_EXTENSIONS

MANIFEST_FILENAME = "pyproject.toml"
MANIFEST_TOOL_KEY = "gift-calc"
MANIFEST_FORMAT_KEY = "hook-format"

HOOK_FUNCTION_NAMES = ("hookFunction", "hook", "default", "main", "execute")
"""Conventional export names, tried in order after ``default`` and a callable module."""

MIN_HOOK_PARAMS = 3
MAX_HOOK_PARAMS = 5

_load_counter = itertools.count()
_RUN_PATH_LOCK = threading.Lock()


@dataclass
class LoadResult:
    """Outcome of loading one hook script.

    Attributes:
        success: Whether a valid hook callable was obtained.
        hook_function: The extracted callable, or ``None`` on failure.
        error: The failure, or ``None`` on success.
        script_path: The path that was requested.
        module_format: The detected format, or ``None`` if loading failed
            before detection.
    """

    success: bool
    hook_function: Optional[Callable[..., Any]] = None
    error: Optional[HookError] = None
    script_path: str = ""
    module_format: Optional[ModuleFormat] = None


@dataclass
class LoadReport:
    """Aggregate outcome of :func:`load_hook_scripts`.

    ``results`` keeps the configured order; ``hook_functions`` and
    ``successful_paths`` are aligned with each other.
    """

    all_succeeded: bool
    results: list[LoadResult] = field(default_factory=list)
    hook_functions: list[Callable[..., Any]] = field(default_factory=list)
    errors: list[HookError] = field(default_factory=list)
    successful_paths: list[str] = field(default_factory=list)


# ------------------------------------------------------------------ #
# Loaders
# ------------------------------------------------------------------ #


class HookScriptLoader(ABC):
    """Capability interface: turn a hook file into an export namespace."""

    module_format: ModuleFormat

    @abstractmethod
    def load(self, path: Path) -> Any:
        """Load *path* and return the object hook callables are looked up on.

        Raises:
            Exception: Anything raised by the script's top-level code.
        """


class _FreshSourceLoader(SourceFileLoader):
    """Compile straight from source; bytecode caches are neither read nor written."""

    def get_code(self, fullname: str) -> types.CodeType:
        return self.source_to_code(self.get_data(self.path), self.path)


class ModuleHookLoader(HookScriptLoader):
    """Import the file as a real module under a unique name."""

    module_format = ModuleFormat.MODULE

    def load(self, path: Path) -> types.ModuleType:
        module_name = f"gift_calc_hook_{path.stem}_{next(_load_counter)}"
        loader_cls = SourcelessFileLoader if path.suffix.lower() == ".pyc" else _FreshSourceLoader
        loader = loader_cls(module_name, str(path))
        spec = importlib.util.spec_from_file_location(module_name, str(path), loader=loader)
        if spec is None or spec.loader is None:
            raise ImportError(f"Could not create a module spec for {path}")

        module = importlib.util.module_from_spec(spec)
        # Registered while executing so dataclasses and pickling can find
        # the module, then removed: no state survives to the next load.
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        finally:
            sys.modules.pop(module_name, None)
        return module


class ScriptHookLoader(HookScriptLoader):
    """Run the file as a script; its resulting globals are the exports."""

    module_format = ModuleFormat.SCRIPT

    def load(self, path: Path) -> types.SimpleNamespace:
        run_name = f"gift_calc_hook_{path.stem}_{next(_load_counter)}"
        # run_path swaps sys.argv[0] while the script runs.
        with _RUN_PATH_LOCK:
            namespace = runpy.run_path(str(path), run_name=run_name)
        return types.SimpleNamespace(**namespace)


LOADERS: dict[ModuleFormat, HookScriptLoader] = {
    ModuleFormat.MODULE: ModuleHookLoader(),
    ModuleFormat.SCRIPT: ScriptHookLoader(),
}


# ------------------------------------------------------------------ #
# Validation and detection
# ------------------------------------------------------------------ #


def validate_script_path(script_path: Any) -> Path:
    """Check that *script_path* may be loaded.

    Returns:
        The stripped path as a :class:`~pathlib.Path`.

    Raises:
        PathValidationError: If the path is not a non-empty string, is
            relative, does not exist, is not a regular file, or has an
            unsupported extension.
    """
    if not isinstance(script_path, str):
        raise PathValidationError("Script path must be a non-empty string")
    stripped = script_path.strip()
    if not stripped:
        raise PathValidationError("Script path cannot be empty")
    if not os.path.isabs(stripped):
        raise PathValidationError(f"Script path must be absolute for security: {stripped}")

    path = Path(stripped)
    if not path.exists():
        raise PathValidationError(f"Script file does not exist: {stripped}")
    if not path.is_file():
        raise PathValidationError(f"Script path is not a file: {stripped}")
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise PathValidationError(f"Unsupported script extension: {path.suffix or '(none)'}")
    return path


def find_manifest(script_path: Path) -> Optional[Path]:
    """Return the nearest ``pyproject.toml`` above *script_path*, if any."""
    for directory in (script_path.parent, *script_path.parent.parents):
        candidate = directory / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate
    return None


def detect_module_format(script_path: Path) -> ModuleFormat:
    """Decide how *script_path* is loaded.

    Unreadable or malformed manifests fall back to the script format.
    """
    suffix = script_path.suffix.lower()
    if suffix in MODULE_EXTENSIONS:
        return ModuleFormat.MODULE
    if suffix in SCRIPT_EXTENSIONS:
        return ModuleFormat.SCRIPT

    manifest = find_manifest(script_path)
    if manifest is None:
        return ModuleFormat.SCRIPT
    try:
        with manifest.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.debug("Ignoring unreadable manifest %s: %s", manifest, exc)
        return ModuleFormat.SCRIPT

    tool = data.get("tool", {})
    section = tool.get(MANIFEST_TOOL_KEY, {}) if isinstance(tool, dict) else {}
    if isinstance(section, dict) and section.get(MANIFEST_FORMAT_KEY) == ModuleFormat.MODULE.value:
        return ModuleFormat.MODULE
    return ModuleFormat.SCRIPT


def extract_hook_function(namespace: Any, script_path: str) -> Callable[..., Any]:
    """Find the hook callable exported by a loaded script.

    Raises:
        SignatureError: If no export matches any convention.
    """
    default = getattr(namespace, "default", None)
    if callable(default):
        return default

    if callable(namespace):
        return namespace

    for name in HOOK_FUNCTION_NAMES:
        candidate = getattr(namespace, name, None)
        if callable(candidate):
            return candidate

    raise SignatureError(
        f"No valid hook function found in {script_path}. Expected a 'default' export, "
        f"a callable module, or a function named ({', '.join(HOOK_FUNCTION_NAMES)})"
    )


def count_positional_params(fn: Callable[..., Any]) -> Optional[int]:
    """Return the number of declared positional parameters, or ``None`` if unknown."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return None
    return sum(
        1
        for param in signature.parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    )


def is_valid_hook_function(fn: Any) -> bool:
    """Coarse arity check: callables declaring 3 to 5 positional parameters.

    Before-command hooks take ``(args, config, command)``; after-command
    hooks take ``(args, config, output, result, command)``.
    """
    if not callable(fn):
        return False
    count = count_positional_params(fn)
    return count is not None and MIN_HOOK_PARAMS <= count <= MAX_HOOK_PARAMS


# ------------------------------------------------------------------ #
# Loading
# ------------------------------------------------------------------ #


def _display_name(script_path: Any) -> str:
    if isinstance(script_path, str) and script_path.strip():
        return os.path.basename(script_path.strip())
    return repr(script_path)


def _load_sync(script_path: Any, validate_signature: bool) -> LoadResult:
    module_format: Optional[ModuleFormat] = None
    try:
        path = validate_script_path(script_path)
        module_format = detect_module_format(path)
        try:
            namespace = LOADERS[module_format].load(path)
        # Top-level code calling sys.exit() is a load failure, not a host exit.
        except (Exception, SystemExit) as exc:
            raise ModuleLoadError(f"Failed to load hook script {path}: {exc}") from exc

        hook_function = extract_hook_function(namespace, str(path))
        if validate_signature and not is_valid_hook_function(hook_function):
            raise SignatureError(
                f"Hook function has invalid signature: {path} (declares "
                f"{count_positional_params(hook_function)} positional parameters, "
                f"expected {MIN_HOOK_PARAMS}-{MAX_HOOK_PARAMS})"
            )
    except HookError as exc:
        if exc.hook_name is None:
            exc.hook_name = _display_name(script_path)
        return LoadResult(
            success=False,
            error=exc,
            script_path=script_path if isinstance(script_path, str) else repr(script_path),
            module_format=module_format,
        )

    return LoadResult(
        success=True,
        hook_function=hook_function,
        script_path=script_path,
        module_format=module_format,
    )


async def load_hook_script(
    script_path: Any,
    *,
    verbose: bool = False,
    validate_signature: bool = True,
) -> LoadResult:
    """Load a single hook script.

    The file system checks and the import itself run in a worker thread,
    so several loads can proceed concurrently.

    Args:
        script_path: Absolute path to the hook script.
        verbose: Report progress on stderr.
        validate_signature: Apply the 3-to-5 parameter arity check.

    Returns:
        A :class:`LoadResult`; failures are reported in ``error``.
    """
    if verbose:
        info(f"Loading hook script: {script_path}")

    try:
        result = await asyncio.to_thread(_load_sync, script_path, validate_signature)
    except Exception as exc:
        result = LoadResult(
            success=False,
            error=ModuleLoadError(
                f"Failed to load hook script {script_path}: {exc}",
                hook_name=_display_name(script_path),
            ),
            script_path=script_path if isinstance(script_path, str) else repr(script_path),
        )

    if result.success:
        logger.debug("Loaded %s hook %s", result.module_format.value, script_path)
        if verbose:
            info(f"Successfully loaded {result.module_format.value} hook: {script_path}")
    else:
        logger.debug("Failed to load hook script %s: %s", script_path, result.error)
        if verbose:
            info(f"Failed to load hook script {script_path}: {result.error}")
    return result


async def load_hook_scripts(
    script_paths: Sequence[Any],
    *,
    verbose: bool = False,
    validate_signature: bool = True,
) -> LoadReport:
    """Load several hook scripts concurrently.

    A failed load never prevents the others from completing. The
    returned ``results`` follow the order of *script_paths*, whatever the
    order in which the loads finished.
    """
    if verbose and script_paths:
        info(f"Loading {len(script_paths)} hook script(s)")

    results = await asyncio.gather(
        *(
            load_hook_script(path, verbose=verbose, validate_signature=validate_signature)
            for path in script_paths
        )
    )

    loaded = [r for r in results if r.success]
    errors = [r.error for r in results if not r.success and r.error is not None]

    if verbose:
        info(f"Hook loading completed: {len(loaded)}/{len(results)} succeeded")

    return LoadReport(
        all_succeeded=not errors,
        results=list(results),
        hook_functions=[r.hook_function for r in loaded],
        errors=errors,
        successful_paths=[r.script_path for r in loaded],
    )


def resolve_script_paths(
    config: HooksConfig,
    phase: Phase,
    base_dir: str | os.PathLike[str] | None = None,
) -> list[str]:
    """Return the absolute script paths configured for *phase*.

    Absolute entries are kept as they are; relative ones are resolved
    against *base_dir* (the current directory if omitted). Non-string and
    blank entries are dropped.
    """
    if config is None:
        return []
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    paths: list[str] = []
    for entry in config.phase(phase).scripts:
        if not isinstance(entry, str) or not entry.strip():
            continue
        stripped = entry.strip()
        if os.path.isabs(stripped):
            paths.append(stripped)
        else:
            paths.append(os.path.normpath(os.path.join(os.path.abspath(base), stripped)))
    return paths


def create_hook_wrapper(hook_function: Callable[..., Any], hook_name: str) -> Callable[..., Any]:
    """Wrap a hook for execution by :func:`~gift_calc.hooks.executor.execute_hook`.

    The wrapper is always a coroutine function. It refuses calls with fewer
    than three positional arguments, runs sync hooks off the event loop,
    and re-raises any failure as a
    :class:`~gift_calc.exceptions.PluginRuntimeError` naming the hook.
    """

    async def wrapped_hook(*args: Any) -> Any:
        try:
            if len(args) < MIN_HOOK_PARAMS:
                raise PluginRuntimeError(
                    f"Hook {hook_name} called with insufficient arguments: {len(args)}",
                    hook_name=hook_name,
                )
            return await invoke_hook(hook_function, *args)
        except Exception as exc:
            raise PluginRuntimeError(
                f"Hook {hook_name} failed: {exc}",
                hook_name=hook_name,
                original_error=exc,
            ) from exc

    wrapped_hook.__name__ = f"wrapped_{hook_name}"
    wrapped_hook.__qualname__ = wrapped_hook.__name__
    return wrapped_hook
