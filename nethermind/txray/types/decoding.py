from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

# pylint: disable=invalid-name


class ResolutionSource(Enum):
    """Resolution stage that produced a DecodedCall"""

    plugin = "plugin"
    catalog = "catalog"
    signature = "signature"
    opaque = "opaque"


@dataclass(frozen=True)
class DecodedArg:
    """Single decoded argument.  Tuples are decoded to dicts keyed by component name"""

    name: str
    type: str
    value: Any

    @classmethod
    def from_param(cls, param: "DecodedArg | Mapping[str, Any]") -> "DecodedArg":
        """Accepts either a DecodedArg or a {name, type, value} mapping returned by a decoder plugin"""
        if isinstance(param, DecodedArg):
            return param
        return cls(name=str(param.get("name", "")), type=str(param.get("type", "unknown")), value=param.get("value"))


@dataclass(frozen=True)
class DecodedCall:
    """Calldata Resolution Result"""

    selector: str
    """ First 4 bytes of the payload as 8 lowercase hex characters, without 0x prefix """

    function_name: str | None = None

    signature: str | None = None
    """ Text signature from the selector database.  Only set when no structural decode succeeded """

    args: list[DecodedArg] = field(default_factory=list)

    nested: list["DecodedCall"] = field(default_factory=list)
    """ Calls discovered inside the arguments of this call, in argument order """

    source: ResolutionSource = ResolutionSource.opaque

    truncated: bool = False
    """ True if the nesting budget ran out before this node could be resolved """

    description: str | None = None

    @property
    def is_resolved(self) -> bool:
        """True if a plugin or the interface catalog assigned a function name"""
        return self.function_name is not None


@dataclass
class DecodedData:
    """Structured result returned by a decoder plugin"""

    name: str
    params: list[DecodedArg | Mapping[str, Any]] = field(default_factory=list)
    description: str | None = None
    nested: list["DecodedData"] | None = None
    selector: str | None = None


@dataclass(frozen=True)
class DecodeContext:
    """Context shared by every stage of a single top-level decode, including nested decodes"""

    labels: Mapping[str, str]
    """ Lowercase address -> display name """

    selector: str
    address: str | None = None
    chain_id: int | None = None

    def label_for(self, address: str) -> str | None:
        """Returns the display name for an address, if one is known"""
        return self.labels.get(address.lower())


@dataclass(frozen=True)
class DecodedEvent:
    """Event Decoding Result"""

    topic: str
    name: str | None = None
    event_signature: str | None = None
    args: list[DecodedArg] = field(default_factory=list)
    address: str | None = None
    address_label: str | None = None


@dataclass(frozen=True)
class DecodedError:
    """Revert data decoded with an error descriptor"""

    selector: str
    name: str
    error_signature: str
    args: list[DecodedArg] = field(default_factory=list)
