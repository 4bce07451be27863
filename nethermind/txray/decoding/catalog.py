import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any, Iterable, Sequence, TypedDict

from eth_typing import ABI
from rich.table import Table

from nethermind.txray.exceptions import CatalogSourceError, DecodingError
from nethermind.txray.types.decoding import (
    DecodedArg,
    DecodedCall,
    DecodedError,
    DecodedEvent,
    ResolutionSource,
)
from nethermind.txray.utils import pprint_list

from .event_decoders import EVMEventDecoder
from .function_decoders import EVMErrorDecoder, EVMFunctionDecoder
from .utils import SELECTOR_LENGTH, filter_errors, filter_events, filter_functions

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("decoding")

BUILTIN_ABI_DIR = Path(__file__).parent.parent / "abi"

BUILTIN_SOURCES = ("errors", "erc20", "erc721", "erc1155", "multicall", "safe", "known")
""" Built-in ABI resources, in catalog order.  Earlier sources win selector collisions """

_TOPIC_MAP_KEYS = ("known_topics", "topics")
_CONTRACT_MAP_KEYS = ("known_contracts", "contracts")


class GroupedAbi(TypedDict):
    """Grouped Abi Data Helper Class for Visualizing the InterfaceCatalog to console"""

    functions: list[EVMFunctionDecoder]
    events: list[EVMEventDecoder]
    errors: list[EVMErrorDecoder]


class InterfaceCatalog:
    """

    Aggregates function, event and error descriptors, along with the topic -> name and address -> name maps, from
    the built-in ABIs and any number of JSON sources.  Sources are loaded lazily on first use, and the catalog is
    append-only afterwards.

    """

    match_selectors: bool
    """
    If True (default), only descriptors whose selector equals the payload's selector are tried.  If False,
    every function descriptor is tried in catalog order and the first structurally valid decode wins.
    """

    loaded_abis: list[str]
    """ Names of every ABI merged into the catalog, in load order """

    function_decoders: list[EVMFunctionDecoder]
    """ Function descriptors in catalog order """

    event_decoders: dict[bytes, list[EVMEventDecoder]]
    """ Event topic -> descriptors sharing that topic, in catalog order """

    error_decoders: dict[bytes, list[EVMErrorDecoder]]

    known_topics: dict[str, str]
    """ Lowercase 0x prefixed topic -> event name """

    known_contracts: dict[str, str]
    """ Lowercase address -> contract name """

    def __init__(
        self,
        sources: Sequence[Path | str] = (),
        include_builtins: bool = True,
        match_selectors: bool = True,
    ):
        self.match_selectors = match_selectors
        self._reset()

        self._pending_sources = [Path(s) for s in sources]
        self._include_builtins = include_builtins
        self._loaded = False
        self._lock = threading.RLock()

    def _reset(self) -> None:
        self.loaded_abis = []
        self.function_decoders = []
        self.event_decoders = {}
        self.error_decoders = {}
        self.known_topics = {}
        self.known_contracts = {}
        self._selector_index: dict[bytes, list[EVMFunctionDecoder]] = {}

    # -------------------------------------------------------
    #    Aggregation
    # -------------------------------------------------------

    def load(self) -> "InterfaceCatalog":
        """
        Merges the built-in ABIs and every configured source into the catalog.  Safe to call multiple times,
        sources are only aggregated once.  Malformed sources are skipped with a warning.
        """
        if self._loaded:
            return self

        with self._lock:
            if self._loaded:
                return self

            try:
                if self._include_builtins:
                    for builtin_name in BUILTIN_SOURCES:
                        raw = BUILTIN_ABI_DIR.joinpath(f"{builtin_name}.json").read_text()
                        self._merge_source(f"builtin:{builtin_name}", json.loads(raw))

                for source_path in self._pending_sources:
                    self._load_path(source_path)
            except Exception:
                # A failed aggregation is retried from scratch on the next load()
                self._reset()
                raise
            self._loaded = True

            logger.info(
                f"Loaded {len(self.function_decoders)} functions, {len(self.event_decoders)} event topics and "
                f"{len(self.error_decoders)} errors from {len(self.loaded_abis)} ABIs"
            )
        return self

    def add_source(self, source: Path | str) -> None:
        """Adds a JSON file, or every JSON file in a directory, to the catalog"""
        with self._lock:
            if not self._loaded:
                self._pending_sources.append(Path(source))
                return
            self._load_path(Path(source))

    def add_abi(self, abi_name: str, abi_data: ABI) -> None:
        """
        Adds ABI to the catalog.  Descriptors are appended after all previously loaded descriptors, so earlier
        ABIs win selector collisions.

        :param abi_name: Name of ABI
        :param abi_data: ABI data as a list of ABI element dicts
        """
        with self._lock:
            self.load()
            self._add_abi(abi_name, abi_data)

    def _load_path(self, source_path: Path) -> None:
        if not source_path.exists():
            logger.debug(f"Interface source {source_path} does not exist.  Skipping...")
            return

        paths = sorted(source_path.glob("*.json")) if source_path.is_dir() else [source_path]
        for path in paths:
            try:
                raw = json.loads(path.read_text())
                self._merge_source(path.stem, raw)
            except (OSError, json.JSONDecodeError, CatalogSourceError) as e:
                logger.warning(f"Skipping interface source {path}: {e}")
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Skipping interface source {path}: {e.__class__.__name__}({e})")

    def _merge_source(self, source_name: str, raw: Any) -> None:
        """Merges a parsed JSON source.  Name maps from later sources overwrite earlier keys"""
        match raw:
            case list():
                self._add_abi(source_name, raw)
            case dict():
                for key, value in raw.items():
                    if key.lower() in _TOPIC_MAP_KEYS and isinstance(value, dict):
                        self.known_topics.update(_lowercase_name_map(value))
                    elif key.lower() in _CONTRACT_MAP_KEYS and isinstance(value, dict):
                        self.known_contracts.update(_lowercase_name_map(value))
                    elif isinstance(value, list):
                        self._add_abi(f"{source_name}:{key}", value)
                    else:
                        logger.debug(f"Ignoring key {key} in interface source {source_name}")
            case _:
                raise CatalogSourceError(f"Expected a JSON array or object, found {type(raw).__name__}")

    def _add_abi(self, abi_name: str, abi_data: ABI) -> None:
        elements = [element for element in abi_data if isinstance(element, dict)]
        if len(elements) != len(abi_data):
            logger.warning(f"ABI {abi_name} contains {len(abi_data) - len(elements)} non-object entries.  Skipping...")

        added = 0
        for abi_function in filter_functions(elements):
            try:
                decoder = EVMFunctionDecoder(abi_function, abi_name)
            except (DecodingError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed function descriptor in {abi_name}: {e}")
                continue
            if decoder.signature in self._selector_index:
                logger.debug(
                    f"Function {decoder.function_signature} from {abi_name} shares selector 0x{decoder.selector} "
                    f"with {self._selector_index[decoder.signature][0].abi_name}"
                )
            self.function_decoders.append(decoder)
            self._selector_index.setdefault(decoder.signature, []).append(decoder)
            added += 1

        for abi_event in filter_events(elements):
            try:
                event_decoder = EVMEventDecoder(abi_event, abi_name)
            except (DecodingError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed event descriptor in {abi_name}: {e}")
                continue
            self.event_decoders.setdefault(event_decoder.signature, []).append(event_decoder)
            self.known_topics.setdefault(event_decoder.topic, event_decoder.name)
            added += 1

        for abi_error in filter_errors(elements):
            try:
                error_decoder = EVMErrorDecoder(abi_error, abi_name)
            except (DecodingError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed error descriptor in {abi_name}: {e}")
                continue
            self.error_decoders.setdefault(error_decoder.signature, []).append(error_decoder)
            added += 1

        self.loaded_abis.append(abi_name)
        logger.debug(f"Added {added} descriptors from ABI {abi_name}")

    # -------------------------------------------------------
    #    Resolution
    # -------------------------------------------------------

    def candidates_for(self, data: bytes) -> Iterable[EVMFunctionDecoder]:
        """Function descriptors to try against a payload, in catalog order"""
        self.load()
        if self.match_selectors:
            return self._selector_index.get(data[:SELECTOR_LENGTH], [])
        return self.function_decoders

    def resolve_by_catalog(self, data: bytes) -> DecodedCall | None:
        """
        Decodes calldata with the first function descriptor whose parameter list fits the payload.  Returns None
        if no descriptor decodes, which is not an error.

        :param data: Full calldata, including the 4 byte selector
        """
        if len(data) < SELECTOR_LENGTH:
            return None

        for decoder in self.candidates_for(data):
            args = decoder.decode(data[SELECTOR_LENGTH:])
            if args is None:
                continue
            return DecodedCall(
                selector=data[:SELECTOR_LENGTH].hex(),
                function_name=decoder.name,
                args=args,
                source=ResolutionSource.catalog,
            )
        return None

    def resolve_error(self, data: bytes) -> DecodedError | None:
        """Decodes revert data with the error descriptors sharing its selector"""
        self.load()
        if len(data) < SELECTOR_LENGTH:
            return None

        for decoder in self.error_decoders.get(data[:SELECTOR_LENGTH], []):
            args = decoder.decode(data[SELECTOR_LENGTH:])
            if args is not None:
                return DecodedError(
                    selector=decoder.selector,
                    name=decoder.name,
                    error_signature=decoder.function_signature,
                    args=args,
                )
        return None

    def resolve_event(self, topics: list[bytes], data: bytes, address: str | None = None) -> DecodedEvent:
        """
        Decodes a log with the event descriptors sharing its first topic.  Descriptors with the same topic but a
        different number of indexed parameters (ie, ERC20 and ERC721 Transfer) are told apart by the topic count.
        If no descriptor fits, falls back to the known topic name.
        """
        self.load()
        topic = "0x" + topics[0].hex() if topics else ""
        address_label = self.contract_name(address) if address else None

        for decoder in self.event_decoders.get(topics[0], []) if topics else []:
            args = decoder.decode(topics, data)
            if args is not None:
                return DecodedEvent(
                    topic=topic,
                    name=decoder.name,
                    event_signature=decoder.event_signature,
                    args=args,
                    address=address,
                    address_label=address_label,
                )

        return DecodedEvent(
            topic=topic,
            name=self.event_name(topic) if topic else None,
            args=[DecodedArg(name="data", type="bytes", value=data)] if data else [],
            address=address,
            address_label=address_label,
        )

    @property
    def sources(self) -> list[str]:
        """Names of every ABI merged into the catalog, in load order"""
        self.load()
        return list(self.loaded_abis)

    def functions(self) -> list[EVMFunctionDecoder]:
        self.load()
        return list(self.function_decoders)

    def events(self) -> list[EVMEventDecoder]:
        self.load()
        return [decoder for decoders in self.event_decoders.values() for decoder in decoders]

    def errors(self) -> list[EVMErrorDecoder]:
        self.load()
        return [decoder for decoders in self.error_decoders.values() for decoder in decoders]

    def event_name(self, topic: str) -> str | None:
        """Name of the event with the given 0x prefixed topic"""
        self.load()
        return self.known_topics.get(topic.lower())

    def contract_name(self, address: str) -> str | None:
        """Name of a well known contract"""
        self.load()
        return self.known_contracts.get(address.lower())

    # -------------------------------------------------------
    #    Console Output
    # -------------------------------------------------------

    def _group_abis(self) -> dict[str, GroupedAbi]:
        output_dict: dict[str, GroupedAbi] = {
            name: {"functions": [], "events": [], "errors": []} for name in self.loaded_abis
        }

        for func in self.function_decoders:
            output_dict[func.abi_name]["functions"].append(func)

        for events in self.event_decoders.values():
            for event in events:
                output_dict[event.abi_name]["events"].append(event)

        for errors in self.error_decoders.values():
            for error in errors:
                output_dict[error.abi_name]["errors"].append(error)

        return output_dict

    def decoder_table(self, full_signatures: bool = False) -> Table:
        """
        Returns a rich table with all the currently loaded ABIs, and their functions, events and errors.
        Used for printing out catalog information in the CLI
        """
        self.load()
        fs = full_signatures
        term_width = shutil.get_terminal_size().columns
        abi_table = Table(title="[bold magenta]Interface Catalog", min_width=80, show_lines=True)

        abi_table.add_column("Name")
        abi_table.add_column("Functions")
        abi_table.add_column("Events")
        abi_table.add_column("Errors")

        for abi_name, abi_params in self._group_abis().items():
            if not any(abi_params.values()):
                continue
            abi_table.add_row(
                abi_name,
                "\n".join(pprint_list(sorted(f.id_str(fs) for f in abi_params["functions"]), int(term_width * 0.4))),
                "\n".join(pprint_list(sorted(e.id_str(fs) for e in abi_params["events"]), int(term_width * 0.25))),
                "\n".join(pprint_list(sorted(e.id_str(fs) for e in abi_params["errors"]), int(term_width * 0.15))),
            )

        return abi_table


def _lowercase_name_map(raw: dict[str, Any]) -> dict[str, str]:
    return {str(key).lower(): value for key, value in raw.items() if isinstance(value, str)}
