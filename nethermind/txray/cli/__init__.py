import click

from nethermind.txray.cli.catalog import cache_group, list_abis, list_decoders
from nethermind.txray.cli.decode import decode_command, revert_command, selector_command


@click.group()
def txray_cli():
    """Command Line Interface for txray calldata decoding"""


# Adding Commands
txray_cli.add_command(decode_command, name="decode")
txray_cli.add_command(selector_command, name="selector")
txray_cli.add_command(revert_command, name="revert")
txray_cli.add_command(list_decoders, name="decoders")
txray_cli.add_command(list_abis, name="abis")
txray_cli.add_command(cache_group, name="cache")
