from typing import Any, Mapping

from eth_utils import from_wei
from rich.markup import escape
from rich.text import Text

from nethermind.txray.types.decoding import DecodedCall, DecodedError, DecodedEvent, ResolutionSource
from nethermind.txray.types.utils import dataclass_to_json
from nethermind.txray.utils import shorten_hex

ETHER_HINT_RANGE = (10**15, 10**30)
""" Integers strictly inside this range are annotated with their value at 18 decimals """

MAX_INLINE_ITEMS = 5
INLINE_WIDTH = 60


def _pad(indent: int) -> str:
    return "  " * indent


def _visible_len(markup: str) -> int:
    return len(Text.from_markup(markup).plain)


def format_value(value: Any, labels: Mapping[str, str], indent: int = 0) -> str:
    """
    Renders a decoded argument value as rich markup.  Addresses are followed by their label if one is known,
    long hex strings are elided, and large integers carry an ether hint.
    """
    pad = _pad(indent)

    match value:
        case bool():
            return f"[cyan]{value}[/cyan]"
        case int():
            if ETHER_HINT_RANGE[0] < value < ETHER_HINT_RANGE[1]:
                return f"[magenta]{value}[/magenta] [dim]({from_wei(value, 'ether')} if 18 decimals)[/dim]"
            return f"[magenta]{value}[/magenta]"
        case bytes() | bytearray():
            return format_value("0x" + bytes(value).hex(), labels, indent)
        case str():
            if value.startswith("0x") and len(value) == 42:
                label = labels.get(value.lower())
                return f"{escape(value)} [yellow]({escape(label)})[/yellow]" if label else escape(value)
            if value.startswith("0x") and len(value) > 10:
                return f"[dim]{shorten_hex(value)}[/dim]"
            return escape(value)
        case list() | tuple():
            if not value:
                return "[dim]\\[][/dim]"
            if len(value) > MAX_INLINE_ITEMS:
                return f"[dim]\\[{len(value)} items][/dim]"
            items = [format_value(item, labels, indent + 1) for item in value]
            if _visible_len(", ".join(items)) < INLINE_WIDTH:
                return f"\\[{', '.join(items)}]"
            return "\\[\n" + ",\n".join(f"{pad}  {item}" for item in items) + f"\n{pad}]"
        case dict():
            if not value:
                return "[dim]{}[/dim]"
            entries = [
                f"[dim]{escape(str(k))}:[/dim] {format_value(v, labels, indent + 1)}" for k, v in value.items()
            ]
            if _visible_len(", ".join(entries)) < INLINE_WIDTH:
                return "{ " + ", ".join(entries) + " }"
            return "{\n" + ",\n".join(f"{pad}  {entry}" for entry in entries) + f"\n{pad}}}"

    return escape(str(value))


def format_decoded_call(decoded: DecodedCall, labels: Mapping[str, str] | None = None, indent: int = 0) -> str:
    """
    Renders a DecodedCall tree as indented rich markup.  Nested calls are rendered recursively beneath a
    ``nested calls:`` heading.

    :param decoded: Resolved call
    :param labels: Lowercase address -> display name
    :param indent: Indentation level of the call header
    """
    labels = labels or {}
    pad = _pad(indent)
    lines = []

    if decoded.function_name:
        header = f"[cyan]{escape(decoded.function_name)}[/cyan][dim](0x{decoded.selector})[/dim]"
    else:
        header = f"[yellow]0x{decoded.selector}[/yellow]"
    if decoded.truncated:
        header += " [red](nesting limit reached)[/red]"
    lines.append(f"{pad}{header}")

    if decoded.description:
        lines.append(f"{pad}  [italic]{escape(decoded.description)}[/italic]")

    if decoded.signature:
        lines.append(f"{pad}  [dim]sig:[/dim] {escape(decoded.signature)}")

    for arg in decoded.args:
        lines.append(
            f"{pad}  [dim]{escape(arg.name)} ({escape(arg.type)}):[/dim] {format_value(arg.value, labels, indent + 1)}"
        )

    if decoded.nested:
        lines.append(f"{pad}  [dim]nested calls:[/dim]")
        for nested in decoded.nested:
            lines.append(format_decoded_call(nested, labels, indent + 2))

    return "\n".join(lines)


def format_decoded_event(event: DecodedEvent, labels: Mapping[str, str] | None = None, indent: int = 0) -> str:
    """Renders a decoded log as rich markup.  Logs without a known topic are shown by topic"""
    labels = labels or {}
    pad = _pad(indent)

    header = f"[cyan]{escape(event.name)}[/cyan]" if event.name else f"[yellow]{shorten_hex(event.topic)}[/yellow]"
    if event.address:
        header += f" [dim]@[/dim] {format_value(event.address, {**_event_label(event), **labels})}"
    lines = [f"{pad}{header}"]

    for arg in event.args:
        lines.append(
            f"{pad}  [dim]{escape(arg.name)} ({escape(arg.type)}):[/dim] {format_value(arg.value, labels, indent + 1)}"
        )
    return "\n".join(lines)


def _event_label(event: DecodedEvent) -> dict[str, str]:
    if event.address and event.address_label:
        return {event.address.lower(): event.address_label}
    return {}


def format_decoded_error(error: DecodedError, labels: Mapping[str, str] | None = None) -> str:
    """Renders decoded revert data as rich markup"""
    labels = labels or {}
    lines = [f"[red]{escape(error.name)}[/red][dim](0x{error.selector})[/dim]"]
    for arg in error.args:
        lines.append(f"  [dim]{escape(arg.name)} ({escape(arg.type)}):[/dim] {format_value(arg.value, labels, 1)}")
    return "\n".join(lines)


def source_label(decoded: DecodedCall) -> str:
    """Short description of the stage that resolved a call"""
    match decoded.source:
        case ResolutionSource.plugin:
            return "decoder plugin"
        case ResolutionSource.catalog:
            return "interface catalog"
        case ResolutionSource.signature:
            return "signature database"
    return "unresolved"


def decoded_call_to_json(decoded: DecodedCall, indent: int | None = 2) -> str:
    """Serializes a DecodedCall tree to JSON.  Bytes are encoded as 0x prefixed hex"""
    return dataclass_to_json(decoded, indent=indent)
