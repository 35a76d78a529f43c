"""Operator CLI for the SES SMTP credentials stack.

Commands are built with Typer and Rich; payload output stays JSON so it can
be piped into other tooling.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
