# File: erdfix/__main__.py
"""
NexaFlow ERDFix — Module entry point.

Allows running the engine directly via::

    python -m erdfix --diagram model.mmd --fix autoFixableOnly

This module simply delegates to the CLI entry point defined in ``erdfix.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from erdfix.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
