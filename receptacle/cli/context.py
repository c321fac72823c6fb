"""
Shared CLI context and error handling.
"""

import functools
import logging
import sys
import traceback
from dataclasses import dataclass

import click

from receptacle.config import ReceptacleConfig
from receptacle.exceptions import ReceptacleError


@dataclass
class CLIContext:
    """State shared by all commands of one invocation."""
    config: ReceptacleConfig
    verbose: bool = False


pass_context = click.make_pass_decorator(CLIContext)


def handle_receptacle_error(func):
    """
    Decorator to handle ReceptacleError exceptions in CLI commands.

    Prints a one-line message to stderr and exits with status 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ReceptacleError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except click.ClickException:
            raise
        except Exception as e:
            click.echo(f"Unexpected error: {e}", err=True)
            if logging.getLogger("receptacle").isEnabledFor(logging.DEBUG):
                traceback.print_exc()
            sys.exit(1)

    return wrapper
