"""Canonical Pydantic models for the gift-calc hooks configuration.

The host configuration file is a free-form JSON object (its gift-amount
settings belong to the host commands), but the ``hooks`` section inside it
has a fixed shape owned by the hooks pipeline::

    {
      "hooks": {
        "enabled": true,
        "beforePhase": {"enabled": true, "scripts": ["adjust.py"], "timeoutMs": 5000},
        "afterPhase": {"enabled": false, "scripts": [], "timeoutMs": 5000},
        "failOnError": false,
        "verbose": false
      }
    }

The models below hold that section once it has been normalised by
:func:`~gift_calc.hooks.config.validate_hooks_config`. They are frozen, so
the module-level defaults can be shared without anyone mutating them.
Python attributes are snake_case; the JSON keys are camelCase through an
alias generator, and ``model_dump(by_alias=True)`` reproduces the file
shape exactly.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


DEFAULT_TIMEOUT_MS = 5000
"""Per-hook time budget used when a phase does not set ``timeoutMs``."""

MAX_TIMEOUT_MS = 60000
"""Largest accepted ``timeoutMs`` value."""


class Phase(str, enum.Enum):
    """Lifecycle points at which hooks run.

    The values are the JSON keys of the phase sections.
    """

    BEFORE = "beforePhase"
    AFTER = "afterPhase"

    @property
    def label(self) -> str:
        """Human-readable phase name used in diagnostics."""
        return "before-command" if self is Phase.BEFORE else "after-command"


class ModuleFormat(str, enum.Enum):
    """How a hook script file is turned into Python objects.

    * ``MODULE`` -- imported as a real module via :mod:`importlib`.
    * ``SCRIPT`` -- executed as a plain script via :func:`runpy.run_path`;
      its resulting globals are the exports. This is the backward-compatible
      default.
    """

    MODULE = "module"
    SCRIPT = "script"


class HookPhaseConfig(BaseModel):
    """Settings for one lifecycle phase."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    enabled: bool = False
    scripts: tuple[str, ...] = ()
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, ge=1, le=MAX_TIMEOUT_MS)


class HooksConfig(BaseModel):
    """The normalised ``hooks`` section of the host configuration.

    A phase only runs when :attr:`enabled`, the phase's own ``enabled``
    flag, and a non-empty script list are all present; see
    :func:`~gift_calc.hooks.config.is_phase_active`.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    enabled: bool = False
    before_phase: HookPhaseConfig = Field(default_factory=HookPhaseConfig)
    after_phase: HookPhaseConfig = Field(default_factory=HookPhaseConfig)
    fail_on_error: bool = False
    verbose: bool = False

    def phase(self, phase: Phase) -> HookPhaseConfig:
        """Return the settings for *phase*."""
        return self.before_phase if phase is Phase.BEFORE else self.after_phase

    def to_json(self) -> dict:
        """Return the section in its host-file JSON shape (camelCase keys, lists)."""
        return self.model_dump(mode="json", by_alias=True)
