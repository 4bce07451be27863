import logging

import click

from nethermind.txray.cli.utils import (
    abi_source_option,
    config_file_option,
    decoder_dir_option,
    group_options,
    json_rpc_option,
    labels_option,
    max_depth_option,
    offline_option,
    output_format_option,
    prefer_signature_option,
    verbose_option,
)

# isort: skip_file
# pylint: disable=too-many-arguments,import-outside-toplevel,too-many-locals

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("cli")


def fetch_transaction(json_rpc: str, tx_hash: str) -> tuple[str, str | None, int]:
    """
    Fetches the input data of a transaction from an RPC node

    :return: (0x prefixed calldata, to address, chain id)
    """
    from web3 import Web3

    w3 = Web3(Web3.HTTPProvider(json_rpc))
    transaction = w3.eth.get_transaction(tx_hash)  # type: ignore[arg-type]
    return "0x" + bytes(transaction["input"]).hex(), transaction.get("to"), w3.eth.chain_id


def fetch_receipt_logs(json_rpc: str, tx_hash: str) -> list[tuple[str, list[bytes], bytes]]:
    """Fetches the logs emitted by a transaction as (address, topics, data)"""
    from web3 import Web3

    w3 = Web3(Web3.HTTPProvider(json_rpc))
    receipt = w3.eth.get_transaction_receipt(tx_hash)  # type: ignore[arg-type]
    return [(log["address"], [bytes(topic) for topic in log["topics"]], bytes(log["data"])) for log in receipt["logs"]]


@click.command("decode")
@click.argument("calldata", required=False)
@click.option("--tx", "tx_hash", default=None, help="Transaction hash to fetch and decode instead of raw calldata")
@click.option("--to", "to_address", default=None, help="Address of the called contract, shown with its label")
@click.option("--logs", "show_logs", is_flag=True, default=False, help="Also decode the events emitted by --tx")
@group_options(
    json_rpc_option,
    abi_source_option,
    decoder_dir_option,
    labels_option,
    offline_option,
    output_format_option,
    max_depth_option,
    prefer_signature_option,
    config_file_option,
    verbose_option,
)
def decode_command(
    calldata: str | None,
    tx_hash: str | None,
    to_address: str | None,
    show_logs: bool,
    json_rpc: str | None,
    abi_sources: tuple[str, ...],
    decoder_dirs: tuple[str, ...],
    labels_file: str | None,
    offline: bool | None,
    output_format: str | None,
    max_depth: int | None,
    prefer_signature: str | None,
    config_file: str | None,
    verbose: bool,
):
    """Decodes calldata, or the input data of a transaction, into a call tree"""
    import asyncio
    from dataclasses import replace
    from pathlib import Path

    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.decoding.resolver import CalldataResolver
    from nethermind.txray.exceptions import InvalidCalldata
    from nethermind.txray.formatting import (
        decoded_call_to_json,
        format_decoded_call,
        format_decoded_event,
        format_value,
        source_label,
    )
    from nethermind.txray.labels import load_labels

    console = cli_logger_config(root_logger, verbose)

    if calldata is None and tx_hash is None:
        raise click.UsageError("Provide CALLDATA or --tx")
    if show_logs and tx_hash is None:
        raise click.UsageError("--logs requires --tx")

    config = load_config(config_file)
    config = replace(
        config,
        abi_dirs=[*config.abi_dirs, *(Path(p) for p in abi_sources)],
        decoder_dirs=[*(Path(p) for p in decoder_dirs), *config.decoder_dirs],
        offline=config.offline if offline is None else offline,
        output_format=output_format or config.output_format,
        max_depth=config.max_depth if max_depth is None else max_depth,
        prefer_signature=prefer_signature or config.prefer_signature,
    )

    chain_id: int | None = config.default_chain
    if tx_hash:
        if json_rpc is None:
            logger.error("RPC URL not specified... Set with '--json-rpc' option or 'JSON_RPC' environment variable")
            raise SystemExit(1)
        calldata, tx_to, chain_id = fetch_transaction(json_rpc, tx_hash)
        to_address = to_address or tx_to

    resolver = CalldataResolver.from_config(config)
    labels = load_labels(resolver.catalog.load().known_contracts, config.label_files, labels_file)

    try:
        if config.offline:
            decoded = resolver.resolve_offline(calldata, labels=labels, address=to_address, chain_id=chain_id)
        else:
            decoded = asyncio.run(resolver.resolve(calldata, labels=labels, address=to_address, chain_id=chain_id))
    except InvalidCalldata as e:
        logger.error(e)
        raise SystemExit(1) from e

    if config.output_format == "json":
        click.echo(decoded_call_to_json(decoded))
        return

    if to_address:
        console.print(f"[dim]to:[/dim] {format_value(to_address, labels)}")
    console.print(format_decoded_call(decoded, labels))
    console.print(f"[dim]resolved by {source_label(decoded)}[/dim]")

    if show_logs and json_rpc and tx_hash:
        logs = fetch_receipt_logs(json_rpc, tx_hash)
        console.print(f"[dim]events ({len(logs)}):[/dim]")
        for log_address, topics, log_data in logs:
            event = resolver.catalog.resolve_event(topics, log_data, address=log_address)
            console.print(format_decoded_event(event, labels, indent=1))


@click.command("revert")
@click.argument("revert_data")
@group_options(abi_source_option, labels_option, config_file_option, verbose_option)
def revert_command(
    revert_data: str,
    abi_sources: tuple[str, ...],
    labels_file: str | None,
    config_file: str | None,
    verbose: bool,
):
    """Decodes the revert data of a failed call with the error descriptors in the interface catalog"""
    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.decoding.catalog import InterfaceCatalog
    from nethermind.txray.decoding.utils import to_calldata_bytes
    from nethermind.txray.exceptions import InvalidCalldata
    from nethermind.txray.formatting import format_decoded_error
    from nethermind.txray.labels import load_labels

    console = cli_logger_config(root_logger, verbose)

    try:
        payload = to_calldata_bytes(revert_data)
    except InvalidCalldata as e:
        logger.error(e)
        raise SystemExit(1) from e

    config = load_config(config_file)
    catalog = InterfaceCatalog(sources=[*config.abi_dirs, *abi_sources])
    decoded = catalog.resolve_error(payload)
    if decoded is None:
        console.print(f"[yellow]Unknown error selector 0x{payload[:4].hex()}")
        return

    console.print(format_decoded_error(decoded, load_labels(catalog.known_contracts, config.label_files, labels_file)))


@click.command("selector")
@click.argument("selector")
@group_options(offline_option, config_file_option, verbose_option)
def selector_command(selector: str, offline: bool | None, config_file: str | None, verbose: bool):
    """Looks up the function signatures matching a 4 byte selector"""
    import asyncio

    from nethermind.txray.cli.utils import cli_logger_config
    from nethermind.txray.config import load_config
    from nethermind.txray.decoding.catalog import InterfaceCatalog
    from nethermind.txray.signatures.cache import SelectorResolutionCache, normalize_selector

    console = cli_logger_config(root_logger, verbose)

    key = normalize_selector(selector)
    if key is None:
        logger.error(f"Invalid selector {selector}.  Expected 4 bytes of hex, ie 0xa9059cbb")
        raise SystemExit(1)

    config = load_config(config_file)
    catalog = InterfaceCatalog(sources=config.abi_dirs)
    for decoder in catalog.functions():
        if "0x" + decoder.selector == key:
            console.print(f"[cyan]{decoder.function_signature}[/cyan] [dim]({decoder.abi_name})[/dim]")

    cache = SelectorResolutionCache(cache_path=config.cache_path, lookup_timeout=config.lookup_timeout)
    if offline or (offline is None and config.offline):
        signatures = cache.lookup_cached(key) or []
    else:
        signatures = asyncio.run(cache.lookup(key))

    if not signatures:
        console.print(f"[yellow]No signatures found for {key}")
        return

    for signature in signatures:
        console.print(f"{signature} [dim](signature database)[/dim]")
