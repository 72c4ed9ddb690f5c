"""gift-calc -- gift-amount suggestions with a scriptable hooks pipeline.

The command-line tool suggests gift amounts from a handful of numeric
inputs. Around every command it runs an optional *hooks pipeline*: user
scripts loaded from disk that can rewrite the configuration before a
command runs and observe its output afterwards, without being able to
crash or stall the host process.

Typical setup::

    gift-calc hooks init      # write the default hooks section
    gift-calc hooks validate  # check the hooks section of the config
    gift-calc hooks scripts   # list the resolved hook files
    gift-calc hooks test      # dry-run the configured hook scripts

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for the hooks configuration.
    config: XDG-aware host configuration loading and saving.
    hooks: The hooks pipeline (validator, loader, executor, orchestrator).
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.4.0"
