"""Shared test fixtures for gift-calc.

Provides isolated config environments, output state management, hook
script factories, and a CLI runner. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from gift_calc.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Forces XDG path resolution, points XDG_CONFIG_HOME and XDG_DATA_HOME
    at subdirectories of tmp_path, clears GIFT_CALC_CONFIG and changes the
    working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("gift_calc.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.delenv("GIFT_CALC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a PLAIN-format, colourless OutputManager.

    Colourless diagnostics are written with ``print`` to whatever
    ``sys.stderr`` is at call time, so ``capsys``/``capfd`` see them.
    """
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Hook script fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hooks_dir(tmp_path: Path) -> Path:
    """Directory for hook scripts written by :func:`write_hook`."""
    path = tmp_path / "hooks"
    path.mkdir()
    return path


@pytest.fixture
def write_hook(hooks_dir: Path) -> Callable[..., Path]:
    """Factory writing a hook script and returning its absolute path.

    Usage::

        path = write_hook("tag.py", '''
            def hook(args, config, command):
                return {"config": {"tag": "seen"}}
        ''')
    """

    def _write(name: str, source: str, directory: Optional[Path] = None) -> Path:
        target = (directory or hooks_dir) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
        return target.resolve()

    return _write


def make_hooks_section(
    before: Optional[list[str]] = None,
    after: Optional[list[str]] = None,
    *,
    timeout_ms: int = 1000,
    fail_on_error: bool = False,
    verbose: bool = False,
) -> dict[str, Any]:
    """Build an enabled ``hooks`` section for the given script lists."""
    return {
        "enabled": True,
        "beforePhase": {
            "enabled": bool(before),
            "scripts": [str(p) for p in before or []],
            "timeoutMs": timeout_ms,
        },
        "afterPhase": {
            "enabled": bool(after),
            "scripts": [str(p) for p in after or []],
            "timeoutMs": timeout_ms,
        },
        "failOnError": fail_on_error,
        "verbose": verbose,
    }


@pytest.fixture
def hooks_section() -> Callable[..., dict[str, Any]]:
    """Expose :func:`make_hooks_section` to tests as a fixture."""
    return make_hooks_section


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
