import logging
import os
from logging import Logger

import click
from rich.console import Console
from rich.logging import RichHandler

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("cli")


def cli_logger_config(instrument_logger: Logger, verbose: bool = False) -> Console:
    """Attaches a rich handler to the logger, and returns the console used for command output"""
    rich_console = Console()
    instrument_logger.handlers.clear()

    instrument_logger.addHandler(RichHandler(show_path=False, console=rich_console))
    instrument_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return rich_console


def group_options(*options):
    """Decorator to group multiple click options together"""

    def wrapper(function):
        for option in reversed(options):
            function = option(function)
        return function

    return wrapper


# -------------------------------------------------------
#    CLI Secrets, Connections, and Configurations
# -------------------------------------------------------
json_rpc_option = click.option(
    "--json-rpc",
    "-rpc",
    "json_rpc",
    default=os.environ.get("JSON_RPC"),
    help="RPC url used to fetch transactions.  If not provided, will use the JSON_RPC environment variable",
)
config_file_option = click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a txray config file.  Defaults to ~/.config/txray/config.json",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Print debug logs",
)


# -------------------------------------------------------
#    Decoding Parameters
# -------------------------------------------------------
abi_source_option = click.option(
    "--abi",
    "abi_sources",
    type=click.Path(exists=True),
    multiple=True,
    help="JSON ABI file or directory to add to the interface catalog.  Can be input multiple times",
)
decoder_dir_option = click.option(
    "--decoders",
    "decoder_dirs",
    type=click.Path(exists=True),
    multiple=True,
    help="Directory of *_decoder.py plugin modules.  Can be input multiple times",
)
labels_option = click.option(
    "--labels",
    "labels_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file of address -> label.  Takes precedence over the user and project label files",
)
offline_option = click.option(
    "--offline",
    is_flag=True,
    default=None,
    help="Only use the local selector cache for unknown selectors.  Overrides TXRAY_OFFLINE",
)
output_format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(["pretty", "json"]),
    default=None,
    help="Output format.  Defaults to the configured output format",
)
max_depth_option = click.option(
    "--max-depth",
    "max_depth",
    type=int,
    default=None,
    help="Maximum depth of nested call decoding",
)
prefer_signature_option = click.option(
    "--prefer-signature",
    "prefer_signature",
    type=click.Choice(["last", "shortest"]),
    default=None,
    help="Signature to report when the signature database returns several candidates for a selector",
)
full_signatures_option = click.option(
    "--full-signatures",
    is_flag=True,
    default=False,
    help="Show full function and event signatures instead of names",
)
