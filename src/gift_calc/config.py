"""Host configuration management with XDG paths and atomic writes.

This module handles the persistent configuration of gift-calc:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.gift-calc/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`. Relative hook script paths are resolved against
  the config directory.
* **Host config** -- A single JSON object stored as ``.config.json`` in
  the config directory. Its gift-amount keys belong to the host commands;
  the ``hooks`` section is read by :mod:`gift_calc.hooks`. The file is
  kept as a plain ``dict`` because hooks fold partial dicts into it.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from gift_calc.exceptions import ConfigError

_APP_NAME = "gift-calc"
_CONFIG_FILENAME = ".config.json"
_CONFIG_PATH_ENV = "GIFT_CALC_CONFIG"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def config_dir_path() -> Path:
    """Return the configuration directory path without touching the filesystem.

    On Linux/BSD: ``$XDG_CONFIG_HOME/gift-calc/`` (default ``~/.config/gift-calc/``).
    On macOS/Windows: ``~/.gift-calc/``.

    The hooks pipeline uses this as the base for relative script paths, so
    it must stay free of side effects.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    return _fallback_base_dir()


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    path = config_dir_path()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/gift-calc/`` (default ``~/.local/share/gift-calc/``).
    On macOS/Windows: ``~/.gift-calc/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Return the host config file path.

    ``$GIFT_CALC_CONFIG`` overrides the default
    ``<config dir>/.config.json`` location.
    """
    override = os.environ.get(_CONFIG_PATH_ENV, "")
    if override:
        return Path(override).expanduser()
    return config_dir_path() / _CONFIG_FILENAME


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Host config ---


def load_config() -> dict[str, Any]:
    """Load the host configuration file.

    Returns:
        The parsed JSON object. An empty dict is returned if the file does
        not exist.

    Raises:
        ConfigError: If the file exists but cannot be read, contains
            invalid JSON, or is not a JSON object.
    """
    path = get_config_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: expected a JSON object")
    return data


def save_config(config: dict[str, Any]) -> Path:
    """Persist the host configuration atomically to disk.

    Args:
        config: The configuration object to save.

    Returns:
        The path that was written.
    """
    path = get_config_path()
    _atomic_write(path, json.dumps(config, indent=2, default=str) + "\n")
    return path
