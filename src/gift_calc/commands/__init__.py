"""Built-in CLI sub-commands for gift-calc.

* :mod:`~gift_calc.commands.hooks` -- inspect, validate, initialise and
  dry-run the hooks pipeline.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`gift_calc.app` mounts on the root app.
"""
