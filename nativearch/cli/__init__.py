"""nativearch CLI: Typer-based command-line interface.

Provides the ``nativearch`` command with subcommands for single build
instances, the merge stage, full local runs and artifact housekeeping.

All output uses Rich for formatted terminal display.
"""
