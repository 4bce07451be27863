import logging
import re
import traceback
from typing import Any, Mapping

from eth_abi import decode as eth_abi_decode
from eth_abi.exceptions import DecodingError as AbiDecodingError
from eth_abi.exceptions import InsufficientDataBytes, NonEmptyPaddingBytes
from eth_typing import ABI, ABIError, ABIEvent, ABIFunction
from eth_utils import is_hex, remove_0x_prefix, to_checksum_address

from nethermind.txray.exceptions import DecodingError, InvalidCalldata

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("decoding")

SELECTOR_LENGTH = 4

_ARRAY_SUFFIX = re.compile(r"\[\d*\]$")


def abi_to_signature(abi: ABIFunction | ABIEvent | ABIError) -> str:
    """
    Converts ABI to signature.

    >>> from nethermind.txray.decoding.utils import abi_to_signature
    >>> abi_to_signature({
    ...     "type": "function",
    ...     "name": "transferFrom",
    ...     "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
    ... })
    'transferFrom(address,uint256)'

    """
    collapsed = [collapse_if_tuple(abi_input) for abi_input in abi.get("inputs") or []]
    return f"{abi['name']}({','.join(collapsed)})"


def collapse_if_tuple(abi_params: Mapping[str, Any]) -> str:
    """
    Converts a tuple from a dict to a parenthesized list of its types.

    >>> from nethermind.txray.decoding.utils import collapse_if_tuple
    >>> collapse_if_tuple(
    ...     {
    ...         'components': [
    ...             {'name': 'anAddress', 'type': 'address'},
    ...             {'name': 'anInt', 'type': 'uint256'},
    ...             {'name': 'someBytes', 'type': 'bytes'},
    ...         ],
    ...         'type': 'tuple',
    ...     }
    ... )
    '(address,uint256,bytes)'
    """

    typ = abi_params["type"]
    if not isinstance(typ, str):
        raise TypeError(f"The 'type' must be a string, but got {typ} of type {type(typ)}")

    if not typ.startswith("tuple"):
        return typ

    delimited = ",".join(collapse_if_tuple(c) for c in abi_params["components"])
    # Whatever comes after "tuple" is the array dims.  The ABI spec states that
    # this will have the form "", "[]", or "[k]".
    array_dim = typ[5:]
    collapsed = f"({delimited}){array_dim}"

    return collapsed


def check_abi_params(params: Any, abi_name: str) -> list[dict]:
    """
    Checks the shape of a descriptor's parameter list, and returns each parameter as a dict.  Tuple parameters
    are checked recursively through their components.

    :raises DecodingError: if a parameter is not an object or has no string type
    """
    if not isinstance(params, list):
        raise DecodingError(f"Parameter list in {abi_name} must be an array, found {type(params).__name__}")

    checked = []
    for param in params:
        if not isinstance(param, Mapping) or not isinstance(param.get("type"), str):
            raise DecodingError(f"Malformed parameter {param!r} in {abi_name}")
        if param["type"].startswith("tuple"):
            check_abi_params(param.get("components"), abi_name)
        checked.append(dict(param))
    return checked


def filter_functions(contract_abi: ABI) -> list[ABIFunction]:
    """Filters out all non-function ABIs"""
    return [abi for abi in contract_abi if abi.get("type") == "function"]


def filter_events(contract_abi: ABI) -> list[ABIEvent]:
    """Filters out all non-event ABIs"""
    return [abi for abi in contract_abi if abi.get("type") == "event"]


def filter_errors(contract_abi: ABI) -> list[ABIError]:
    """Filters out all non-error ABIs"""
    return [abi for abi in contract_abi if abi.get("type") == "error"]


def to_calldata_bytes(data: bytes | bytearray | str) -> bytes:
    """
    Normalizes a calldata payload to bytes.  Hex strings may be 0x prefixed.

    :raises InvalidCalldata: if the payload is not valid hex, or shorter than a 4 byte selector
    """
    if isinstance(data, str):
        if not is_hex(data):
            raise InvalidCalldata(f"Calldata {data[:24]!r} is not a valid hex string")
        hex_str = remove_0x_prefix(data)  # type: ignore[arg-type]
        if len(hex_str) % 2:
            raise InvalidCalldata(f"Calldata hex string has odd length ({len(hex_str)} characters)")
        payload = bytes.fromhex(hex_str)
    else:
        payload = bytes(data)

    if len(payload) < SELECTOR_LENGTH:
        raise InvalidCalldata(
            f"Calldata must be at least {SELECTOR_LENGTH} bytes to contain a function selector, got {len(payload)}"
        )
    return payload


def selector_hex(data: bytes) -> str:
    """Returns the selector of a payload as 8 lowercase hex characters"""
    return data[:SELECTOR_LENGTH].hex()


def is_calldata_candidate(value: Any) -> bool:
    """True if a value is a byte string long enough to hold a selector and a body"""
    return isinstance(value, (bytes, bytearray)) and len(value) > SELECTOR_LENGTH


def decode_evm_abi_from_types(types: list[str], data: bytes | bytearray) -> tuple[Any, ...] | None:
    """
    Decodes ABI data from types and data bytes.  Properly Handles various decoding errors by logging and
    returning none.

    :param types:
    :param data:
    :return:
    """
    try:
        return eth_abi_decode(types, data)
    except InsufficientDataBytes:
        logger.debug(f"Insufficient data bytes while decoding {data.hex()} for types {types}")
        return None
    except NonEmptyPaddingBytes:
        logger.debug(f"Non-empty padding bytes while decoding {data.hex()} for types {types}")
        return None
    except AbiDecodingError as e:
        logger.debug(f"{e.__class__.__name__} while decoding {data.hex()} for types {types}: {e}")
        return None
    except (OverflowError, ValueError) as e:
        logger.debug(f"{e.__class__.__name__} while decoding {data.hex()} for types {types}")
        return None
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error(
            f"Unknown error while decoding {data.hex()} for types {types}: "
            f"{traceback.format_exception(type(e), e, e.__traceback__)}"
        )
        return None


def format_abi_value(value: Any, abi_param: Mapping[str, Any]) -> Any:
    """
    Converts a value returned by eth_abi into the shape used by DecodedArg.  Addresses are checksummed,
    arrays become lists, and tuples become dicts keyed by component name.

    >>> format_abi_value((1, (2, 3)), {
    ...     "type": "tuple",
    ...     "components": [{"name": "amount", "type": "uint256"}, {"name": "", "type": "uint8[]"}],
    ... })
    {'amount': 1, 'field1': [2, 3]}
    """
    typ = abi_param["type"]

    if _ARRAY_SUFFIX.search(typ):
        element_param = {**abi_param, "type": _ARRAY_SUFFIX.sub("", typ)}
        return [format_abi_value(item, element_param) for item in value]

    if typ == "tuple":
        components = abi_param.get("components", [])
        return {
            component.get("name") or f"field{index}": format_abi_value(item, component)
            for index, (item, component) in enumerate(zip(value, components, strict=True))
        }

    if typ == "address":
        return to_checksum_address(value)

    return value
