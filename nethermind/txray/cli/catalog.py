import logging

import click

from nethermind.txray.cli.utils import (
    abi_source_option,
    config_file_option,
    decoder_dir_option,
    full_signatures_option,
    group_options,
)

# isort: skip_file
# pylint: disable=import-outside-toplevel

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("cli")


@click.command("decoders")
@group_options(decoder_dir_option, config_file_option)
def list_decoders(decoder_dirs: tuple[str, ...], config_file: str | None):
    """Lists decoder plugins in match order"""
    from pathlib import Path

    from rich.table import Table

    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.decoding.registry import DecoderPluginRegistry

    console = cli_logger_config(root_logger)
    config = load_config(config_file)

    registry = DecoderPluginRegistry()
    registry.load([*(Path(p) for p in decoder_dirs), *config.decoder_dirs])
    registry.load_entry_points()

    if not len(registry):
        console.print("[yellow]No decoder plugins found")
        console.print(f"[dim]Searched: {', '.join(str(d) for d in [*decoder_dirs, *config.decoder_dirs])}")
        return

    decoder_table = Table(box=None)
    decoder_table.add_column("Decoder", style="bold")
    decoder_table.add_column("Priority")
    decoder_table.add_column("Class")
    for decoder in registry.list():
        decoder_table.add_row(decoder.name, str(decoder.priority), decoder.__class__.__name__)

    console.print(decoder_table)


@click.command("abis")
@group_options(abi_source_option, full_signatures_option, config_file_option)
def list_abis(abi_sources: tuple[str, ...], full_signatures: bool, config_file: str | None):
    """Lists the ABIs in the interface catalog, and the functions, events and errors each ABI decodes"""
    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.decoding.catalog import InterfaceCatalog

    console = cli_logger_config(root_logger)
    config = load_config(config_file)

    catalog = InterfaceCatalog(sources=[*config.abi_dirs, *abi_sources])
    console.print(catalog.decoder_table(full_signatures=full_signatures))


@click.group("cache", short_help="Selector Signature Cache")
def cache_group():
    """Manages the local selector signature cache"""


@cache_group.command("clear")
@group_options(config_file_option)
def clear_cache(config_file: str | None):
    """Removes every cached selector"""
    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.signatures.cache import SelectorResolutionCache

    console = cli_logger_config(root_logger)
    cache = SelectorResolutionCache(cache_path=load_config(config_file).cache_path)
    cached_count = len(cache)
    cache.clear()

    console.print(f"[green]Cleared {cached_count} selectors from {cache.cache_path}")


@cache_group.command("path")
@group_options(config_file_option)
def cache_path(config_file: str | None):
    """Prints the location of the selector cache"""
    from nethermind.txray.config import load_config

    click.echo(str(load_config(config_file).cache_path))
