import logging
from typing import TYPE_CHECKING, Any, Iterator

from nethermind.txray.types.decoding import DecodeContext, DecodedArg, DecodedCall

from .utils import is_calldata_candidate

if TYPE_CHECKING:
    from .resolver import CalldataResolver

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("decoding")

DEFAULT_MAX_DEPTH = 8
DEFAULT_MAX_NESTED_CALLS = 256


class NestingBudget:
    """
    Bounds recursive nested call detection.  Depth is tracked per branch, while the node count is shared by the
    whole tree of a single top-level decode.
    """

    max_depth: int
    max_nodes: int
    depth: int

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, max_nodes: int = DEFAULT_MAX_NESTED_CALLS):
        self.max_depth = max_depth
        self.max_nodes = max_nodes
        self.depth = 0
        self._node_count = [0]

    def descend(self) -> "NestingBudget":
        """Budget for the children of the current node"""
        child = NestingBudget(self.max_depth, self.max_nodes)
        child.depth = self.depth + 1
        child._node_count = self._node_count  # pylint: disable=protected-access
        return child

    @property
    def nodes(self) -> int:
        """Nested nodes created so far in this tree"""
        return self._node_count[0]

    @property
    def exhausted(self) -> bool:
        return self.depth > self.max_depth or self._node_count[0] >= self.max_nodes

    def consume(self) -> None:
        self._node_count[0] += 1


def iter_calldata_candidates(args: list[DecodedArg]) -> Iterator[bytes]:
    """
    Yields byte strings that could hold embedded calldata, in argument order.  Searches top level argument values,
    the elements of array arguments, and the fields of records inside array arguments.
    """
    for arg in args:
        value: Any = arg.value
        if is_calldata_candidate(value):
            yield bytes(value)
            continue

        if not isinstance(value, (list, tuple)):
            continue

        for item in value:
            if is_calldata_candidate(item):
                yield bytes(item)
            elif isinstance(item, dict):
                for field_value in item.values():
                    if is_calldata_candidate(field_value):
                        yield bytes(field_value)


class NestedCallDetector:
    """
    Discovers call-like byte strings inside decoded arguments, and resolves them recursively through the plugin
    and catalog stages of the resolver.  A nested entry is only recorded when a plugin or the catalog assigned it
    a name, so opaque blobs never show up as nested calls.
    """

    def __init__(self, resolver: "CalldataResolver"):
        self.resolver = resolver

    def detect(self, args: list[DecodedArg], context: DecodeContext, budget: NestingBudget) -> list[DecodedCall]:
        """
        Resolves every calldata candidate in the argument list, depth first.

        :param args: Arguments of the parent call
        :param context: Context of the top-level decode, passed through unchanged
        :param budget: Budget of the parent call.  Children are resolved one level deeper
        :return: Nested calls in argument order
        """
        nested: list[DecodedCall] = []
        child_budget = budget.descend()

        for candidate in iter_calldata_candidates(args):
            if child_budget.exhausted:
                logger.debug(
                    f"Nesting budget exhausted at depth {child_budget.depth} after {child_budget.nodes} nested "
                    f"calls.  Leaving 0x{candidate[:4].hex()} unresolved"
                )
                nested.append(self.resolver.opaque_call(candidate, truncated=True))
                child_budget.consume()
                continue

            decoded = self.resolver.resolve_local(candidate, context, child_budget)
            if decoded is None or not decoded.is_resolved:
                continue

            child_budget.consume()
            nested.append(decoded)

        return nested
