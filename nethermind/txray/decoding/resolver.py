import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Literal, Mapping, Sequence

from nethermind.txray.types.decoding import (
    DecodeContext,
    DecodedArg,
    DecodedCall,
    DecodedData,
    ResolutionSource,
)

from .catalog import InterfaceCatalog
from .nested import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_NESTED_CALLS,
    NestedCallDetector,
    NestingBudget,
)
from .registry import DecoderPluginRegistry
from .utils import SELECTOR_LENGTH, selector_hex, to_calldata_bytes

if TYPE_CHECKING:
    from nethermind.txray.config import TxrayConfig
    from nethermind.txray.signatures.cache import SelectorResolutionCache

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("decoding")

SignaturePreference = Literal["last", "shortest"]


def choose_signature(signatures: Sequence[str], prefer: SignaturePreference = "last") -> str | None:
    """
    Picks the signature reported for a selector.  Signature databases return every known collision for a
    selector, and there is no ranking between them.

    :param signatures: Candidate text signatures, in the order returned by the signature database
    :param prefer: "last" takes the final candidate.  "shortest" takes the shortest, ties broken alphabetically
    """
    if not signatures:
        return None
    if prefer == "shortest":
        return min(signatures, key=lambda sig: (len(sig), sig))
    return signatures[-1]


class CalldataResolver:
    """

    Resolves calldata to a DecodedCall.  Stages are tried strictly in order, and the first success wins:

        1. Decoder plugins, by priority
        2. Interface catalog, followed by nested call detection on the decoded arguments
        3. Selector signature database (remote, cached on disk)
        4. Opaque fallback exposing only the selector and the raw arguments

    Resolution never fails for payloads of at least 4 bytes.

    """

    catalog: InterfaceCatalog
    registry: DecoderPluginRegistry
    selector_cache: "SelectorResolutionCache | None"

    max_depth: int
    """ Maximum nesting depth below the top-level call """

    max_nested_calls: int
    """ Maximum number of nested calls in a single decoded tree """

    prefer_signature: SignaturePreference

    def __init__(
        self,
        catalog: InterfaceCatalog | None = None,
        registry: DecoderPluginRegistry | None = None,
        selector_cache: "SelectorResolutionCache | None" = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_nested_calls: int = DEFAULT_MAX_NESTED_CALLS,
        prefer_signature: SignaturePreference = "last",
    ):
        self.catalog = catalog if catalog is not None else InterfaceCatalog()
        self.registry = registry if registry is not None else DecoderPluginRegistry()
        self.selector_cache = selector_cache
        self.max_depth = max_depth
        self.max_nested_calls = max_nested_calls
        self.prefer_signature = prefer_signature
        self.nested_detector = NestedCallDetector(self)

    @classmethod
    def from_config(cls, config: "TxrayConfig", load_plugins: bool = True) -> "CalldataResolver":
        """
        Builds a resolver with the catalog sources, decoder directories and selector cache described by a config.
        Used for the CLI
        """
        from nethermind.txray.signatures.cache import SelectorResolutionCache

        registry = DecoderPluginRegistry()
        if load_plugins:
            registry.load(config.decoder_dirs)
            registry.load_entry_points()

        return cls(
            catalog=InterfaceCatalog(sources=config.abi_dirs),
            registry=registry,
            selector_cache=SelectorResolutionCache(
                cache_path=config.cache_path,
                lookup_timeout=config.lookup_timeout,
            ),
            max_depth=config.max_depth,
            max_nested_calls=config.max_nested_calls,
            prefer_signature=config.prefer_signature,
        )

    # -------------------------------------------------------
    #    Entry Points
    # -------------------------------------------------------

    async def resolve(
        self,
        data: bytes | str,
        labels: Mapping[str, str] | None = None,
        address: str | None = None,
        chain_id: int | None = None,
    ) -> DecodedCall:
        """
        Resolves calldata through every stage, including the selector signature database.

        :param data: Calldata bytes, or a 0x prefixed hex string
        :param labels: Lowercase address -> display name, passed to decoder plugins
        :param address: Address of the called contract, if known
        :param chain_id: Chain the call was made on, if known
        :raises InvalidCalldata: if the payload is shorter than 4 bytes or not valid hex
        """
        payload, context = self._prepare(data, labels, address, chain_id)

        decoded = self.resolve_local(payload, context, self._new_budget())
        if decoded is not None:
            return decoded

        if self.selector_cache is not None:
            signatures = await self.selector_cache.lookup(context.selector)
            signature = choose_signature(signatures, self.prefer_signature)
            if signature is not None:
                logger.debug(f"Selector 0x{context.selector} resolved to {signature} from signature database")
                return dataclasses.replace(
                    self.opaque_call(payload),
                    signature=signature,
                    source=ResolutionSource.signature,
                )

        return self.opaque_call(payload)

    def resolve_offline(
        self,
        data: bytes | str,
        labels: Mapping[str, str] | None = None,
        address: str | None = None,
        chain_id: int | None = None,
    ) -> DecodedCall:
        """Resolves calldata without the signature database stage.  Never performs I/O"""
        payload, context = self._prepare(data, labels, address, chain_id)

        decoded = self.resolve_local(payload, context, self._new_budget())
        if decoded is not None:
            return decoded

        if self.selector_cache is not None:
            cached = self.selector_cache.lookup_cached(context.selector) or []
            signature = choose_signature(cached, self.prefer_signature)
            if signature is not None:
                return dataclasses.replace(
                    self.opaque_call(payload), signature=signature, source=ResolutionSource.signature
                )
        return self.opaque_call(payload)

    async def resolve_many(
        self,
        payloads: Sequence[bytes | str],
        labels: Mapping[str, str] | None = None,
        chain_id: int | None = None,
    ) -> list[DecodedCall | BaseException]:
        """
        Resolves several payloads concurrently.  Each outcome is collected independently, so an invalid payload
        returns its InvalidCalldata exception in place without failing the batch.
        """
        return [
            *await asyncio.gather(
                *[self.resolve(payload, labels=labels, chain_id=chain_id) for payload in payloads],
                return_exceptions=True,
            )
        ]

    # -------------------------------------------------------
    #    Resolution Stages
    # -------------------------------------------------------

    def resolve_local(self, data: bytes, context: DecodeContext, budget: NestingBudget) -> DecodedCall | None:
        """
        Runs the synchronous stages: decoder plugins, then the interface catalog with nested call detection.
        Returns None if neither stage could assign a name.
        """
        if len(data) < SELECTOR_LENGTH:
            return None

        plugin_result = self.registry.decode_with_plugins(data, context)
        if plugin_result is not None:
            return self._from_plugin(plugin_result, selector_hex(data))

        decoded = self.catalog.resolve_by_catalog(data)
        if decoded is None:
            return None

        nested = self.nested_detector.detect(decoded.args, context, budget)
        if nested:
            return dataclasses.replace(decoded, nested=nested)
        return decoded

    def opaque_call(self, data: bytes, truncated: bool = False) -> DecodedCall:
        """DecodedCall exposing only the selector and the undecoded argument bytes"""
        body = data[SELECTOR_LENGTH:]
        return DecodedCall(
            selector=selector_hex(data),
            args=[DecodedArg(name="data", type="bytes", value=body)] if body else [],
            source=ResolutionSource.opaque,
            truncated=truncated,
        )

    def _from_plugin(self, result: DecodedData, selector: str) -> DecodedCall:
        """Plugins supply their own nested calls, so nested call detection is not run on plugin output"""
        return DecodedCall(
            selector=selector,
            function_name=result.name,
            args=[DecodedArg.from_param(param) for param in result.params],
            nested=[self._from_plugin(n, (n.selector or "").removeprefix("0x").lower()) for n in result.nested or []],
            source=ResolutionSource.plugin,
            description=result.description,
        )

    def _prepare(
        self,
        data: bytes | str,
        labels: Mapping[str, str] | None,
        address: str | None,
        chain_id: int | None,
    ) -> tuple[bytes, DecodeContext]:
        payload = to_calldata_bytes(data)
        context = DecodeContext(
            labels={k.lower(): v for k, v in (labels or {}).items()},
            selector=selector_hex(payload),
            address=address,
            chain_id=chain_id,
        )
        return payload, context

    def _new_budget(self) -> NestingBudget:
        return NestingBudget(max_depth=self.max_depth, max_nodes=self.max_nested_calls)

