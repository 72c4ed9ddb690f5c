"""Validation and normalisation of the ``hooks`` configuration section.

The validator is deliberately forgiving: it never raises, it never rejects
the section as a whole, and it drops each invalid field individually so
that one typo cannot silently disable every other hook setting. Every
dropped field is reported as a human-readable error string, e.g.::

    >>> config, errors = validate_hooks_config({"enabled": "yes"})
    >>> config.enabled
    False
    >>> errors
    ['hooks.enabled must be a boolean']

The defaults live in :data:`DEFAULT_HOOKS_CONFIG`, a frozen model that is
safe to share. :func:`default_hooks_config` hands out editable JSON-shaped
copies for callers that want to write a fresh section into the host file.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from gift_calc.models import (
    MAX_TIMEOUT_MS,
    HookPhaseConfig,
    HooksConfig,
    Phase,
)

logger = logging.getLogger(__name__)

HOOKS_SECTION = "hooks"
"""Key of the hooks section inside the host configuration object."""

DEFAULT_HOOKS_CONFIG = HooksConfig()
"""Immutable default configuration: everything disabled, 5000 ms per hook."""

_FLAG_FIELDS = (
    ("enabled", "enabled"),
    ("failOnError", "fail_on_error"),
    ("verbose", "verbose"),
)


def default_hooks_config() -> dict[str, Any]:
    """Return a fresh, editable copy of the defaults in host-file JSON shape."""
    return DEFAULT_HOOKS_CONFIG.to_json()


def validate_hooks_config(raw: Any) -> tuple[HooksConfig, list[str]]:
    """Normalise a raw ``hooks`` section.

    Args:
        raw: The section as read from the host configuration. A
            :class:`~gift_calc.models.HooksConfig` is accepted too and
            re-validated from its JSON shape.

    Returns:
        A tuple of ``(config, errors)``. *config* always satisfies the type
        and range constraints of :class:`~gift_calc.models.HooksConfig`;
        *errors* is empty when *raw* was fully valid.
    """
    if isinstance(raw, HooksConfig):
        raw = raw.to_json()
    if not isinstance(raw, Mapping):
        return DEFAULT_HOOKS_CONFIG, ["Hook configuration must be an object"]

    errors: list[str] = []
    values: dict[str, Any] = {}

    for key, attr in _FLAG_FIELDS:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, bool):
            values[attr] = value
        else:
            errors.append(f"hooks.{key} must be a boolean")

    for phase in Phase:
        phase_raw = raw.get(phase.value)
        # Falsy sections ({} included) count as absent.
        if not phase_raw:
            continue
        phase_config, phase_errors = _validate_phase(phase_raw, phase.value)
        values[_phase_attr(phase)] = phase_config
        errors.extend(phase_errors)

    return HooksConfig(**values), errors


def _phase_attr(phase: Phase) -> str:
    return "before_phase" if phase is Phase.BEFORE else "after_phase"


def _validate_phase(raw: Any, name: str) -> tuple[HookPhaseConfig, list[str]]:
    """Validate one phase section, keeping every field that is valid."""
    if not isinstance(raw, Mapping):
        return HookPhaseConfig(), [f"hooks.{name} must be an object"]

    errors: list[str] = []
    values: dict[str, Any] = {}

    enabled = raw.get("enabled")
    if enabled is not None:
        if isinstance(enabled, bool):
            values["enabled"] = enabled
        else:
            errors.append(f"hooks.{name}.enabled must be a boolean")

    scripts = raw.get("scripts")
    if scripts is not None:
        if isinstance(scripts, (list, tuple)):
            kept: list[str] = []
            for index, script in enumerate(scripts):
                if isinstance(script, str) and script.strip():
                    kept.append(script.strip())
                else:
                    errors.append(f"hooks.{name}.scripts[{index}] must be a non-empty string")
            values["scripts"] = tuple(kept)
        else:
            errors.append(f"hooks.{name}.scripts must be an array")

    if raw.get("timeoutMs") is not None:
        timeout = _coerce_timeout(raw["timeoutMs"])
        if timeout is None:
            errors.append(
                f"hooks.{name}.timeoutMs must be a positive integer <= {MAX_TIMEOUT_MS}ms"
            )
        else:
            values["timeout_ms"] = timeout

    return HookPhaseConfig(**values), errors


def _coerce_timeout(value: Any) -> int | None:
    """Return *value* as an in-range integer timeout, or ``None`` if it is not one.

    Integers, integral floats and integer strings are accepted; booleans
    are not.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int):
        return None
    if 0 < value <= MAX_TIMEOUT_MS:
        return value
    return None


def merge_with_defaults(partial: Any) -> HooksConfig:
    """Return a complete configuration for *partial*, discarding validation errors."""
    config, _ = validate_hooks_config(partial)
    return config


def is_phase_active(config: HooksConfig | None, phase: Phase) -> bool:
    """Return True when hooks should run for *phase*.

    The master switch, the phase switch, and a non-empty script list are
    all required.
    """
    if config is None or not config.enabled:
        return False
    phase_config = config.phase(phase)
    return phase_config.enabled and len(phase_config.scripts) > 0


def extract_hooks_config(host_config: Any) -> HooksConfig:
    """Read and normalise the ``hooks`` section of the host configuration.

    A missing or malformed host config, or a missing section, yields the
    defaults. Validation errors are logged as a single warning and the
    valid remainder of the section is kept.
    """
    if not isinstance(host_config, Mapping):
        return DEFAULT_HOOKS_CONFIG
    section = host_config.get(HOOKS_SECTION)
    if not section:
        return DEFAULT_HOOKS_CONFIG

    config, errors = validate_hooks_config(section)
    if errors:
        logger.warning("Hook configuration validation errors: %s", ", ".join(errors))
    return config
