"""Hooks commands -- inspect and exercise the hooks pipeline.

Provides the ``gift-calc hooks`` sub-command group. ``show`` and
``validate`` read the ``hooks`` section of the host configuration,
``init`` writes a default section, ``scripts`` lists the resolved hook
files, and ``test`` runs the configured scripts around a no-op command
so users can check their hooks without computing anything.
"""

from __future__ import annotations

import json
from typing import Optional

import typer

from gift_calc.exit_codes import EXIT_INVALID_USAGE
from gift_calc.output import error, format_response, info, print_table, success, warning


hooks_app = typer.Typer(no_args_is_help=True)


@hooks_app.command("show")
def hooks_show() -> None:
    """Show the normalised hooks configuration.

    Invalid fields are replaced by their defaults in the output; use
    ``gift-calc hooks validate`` to list them.

    Example::

        gift-calc hooks show
        gift-calc --json hooks show
    """
    from gift_calc.config import config_dir_path, get_config_path, load_config
    from gift_calc.hooks import validate_hooks_configuration

    config = load_config()
    validation = validate_hooks_configuration(config)
    info(f"Config directory: {config_dir_path()}")
    info(f"Config file: {get_config_path()}")
    format_response(validation.hooks_config.to_json())


@hooks_app.command("validate")
def hooks_validate() -> None:
    """Validate the hooks section of the configuration file.

    Raises:
        typer.Exit: With code 2 if the section has invalid fields.

    Example::

        gift-calc hooks validate
    """
    from gift_calc.config import load_config
    from gift_calc.hooks import are_hooks_configured, validate_hooks_configuration

    config = load_config()
    validation = validate_hooks_configuration(config)
    if not validation.is_valid:
        for message in validation.errors:
            error(message)
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    success("Hook configuration is valid.")
    if not are_hooks_configured(config):
        info("Hooks are disabled or no phase has scripts configured.")


@hooks_app.command("init")
def hooks_init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing hooks section."
    ),
) -> None:
    """Write a default hooks section into the configuration file.

    Everything starts disabled; edit the file to add scripts and turn the
    phases on.

    Raises:
        typer.Exit: With code 2 if a hooks section exists and ``--force``
            was not given.

    Example::

        gift-calc hooks init
        gift-calc hooks init --force
    """
    from gift_calc.config import load_config, save_config
    from gift_calc.hooks import initialize_hooks_config
    from gift_calc.hooks.config import HOOKS_SECTION

    config = load_config()
    if HOOKS_SECTION in config and not force:
        error("A hooks section already exists. Use --force to overwrite it.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    config[HOOKS_SECTION] = initialize_hooks_config()
    path = save_config(config)
    success(f"Hooks configuration written to {path}")


@hooks_app.command("test")
def hooks_test(
    args: Optional[list[str]] = typer.Argument(
        None, help="Arguments passed to the hooks."
    ),
    command: str = typer.Option(
        "test", "--command", "-c", help="Command name passed to the hooks."
    ),
) -> None:
    """Run the configured hooks around a no-op command.

    The before-command hooks run against the current configuration and
    the resulting configuration is printed. The after-command hooks then
    receive that configuration both as the command's output (JSON text)
    and as its result.

    Example::

        gift-calc hooks test
        gift-calc hooks test --command calc -- 100 --friend
    """
    from gift_calc.config import load_config
    from gift_calc.hooks import are_hooks_configured, run_command_with_hooks

    config = load_config()
    if not are_hooks_configured(config):
        warning("Hooks are disabled or no phase has scripts configured.")

    def _noop_command(effective: dict) -> tuple[str, dict]:
        format_response(effective)
        return json.dumps(effective, default=str), effective

    run_command_with_hooks(command, list(args or []), config, _noop_command)
    success("Hooks test completed.")


@hooks_app.command("scripts")
def hooks_scripts() -> None:
    """List the configured hook scripts with their resolved paths.

    Relative entries are resolved against the config directory, exactly
    as they are when the hooks run. The status column shows whether the
    file would pass path validation and, if so, how it would be loaded.

    Example::

        gift-calc hooks scripts
        gift-calc --json hooks scripts
    """
    from gift_calc.config import config_dir_path, load_config
    from gift_calc.exceptions import PathValidationError
    from gift_calc.hooks import resolve_script_paths
    from gift_calc.hooks.config import extract_hooks_config
    from gift_calc.hooks.loader import detect_module_format, validate_script_path
    from gift_calc.models import Phase

    hooks_config = extract_hooks_config(load_config())
    base_dir = config_dir_path()
    rows: list[list[str]] = []
    for phase in Phase:
        for script_path in resolve_script_paths(hooks_config, phase, base_dir):
            try:
                status = detect_module_format(validate_script_path(script_path)).value
            except PathValidationError as exc:
                status = f"invalid: {exc}"
            rows.append([phase.label, script_path, status])

    if not rows:
        info("No hook scripts configured.")
    print_table(["Phase", "Script", "Status"], rows, title="Hook Scripts")
