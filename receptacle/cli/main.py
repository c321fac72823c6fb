"""
Entry point for the ``receptacle`` command.
"""

from pathlib import Path
from typing import Optional

import click

from receptacle._version import __version__
from receptacle.cli.context import CLIContext
from receptacle.cli.rules import evaluate, match_attachment
from receptacle.config import load_config
from receptacle.exceptions import ConfigurationError
from receptacle.logging_config import setup_logging


@click.group()
@click.version_option(__version__, prog_name='receptacle')
@click.option(
    '--config',
    '-c',
    'config_path',
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar='RECEPTACLE_CONFIG',
    help='Path to config.yaml',
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    default=None,
    help='Override the configured log level',
)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_path: Optional[Path], log_level: Optional[str], verbose: bool):
    """Receptacle retention rule tools."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if verbose:
        config.logging.level = "DEBUG"
    elif log_level:
        config.logging.level = log_level.upper()

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
    )

    ctx.obj = CLIContext(config=config, verbose=verbose)


cli.add_command(evaluate)
cli.add_command(match_attachment)


if __name__ == '__main__':
    cli()
