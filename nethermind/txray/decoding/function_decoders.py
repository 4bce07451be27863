import logging

from eth_typing import ABIError, ABIFunction
from eth_utils.abi import function_signature_to_4byte_selector

from nethermind.txray.exceptions import DecodingError
from nethermind.txray.types.decoding import DecodedArg

from .utils import (
    abi_to_signature,
    check_abi_params,
    collapse_if_tuple,
    decode_evm_abi_from_types,
    format_abi_value,
)

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("decoding")


class EVMFunctionDecoder:
    """
    Represents a single EVM function descriptor.  Parses input types once to efficiently decode
    calldata with its parameter list
    """

    name: str
    abi_name: str
    function_signature: str
    signature: bytes
    """ 4 byte selector derived from the function signature """

    _inputs: list[dict]
    _input_types: list[str]

    def __init__(self, abi_function: ABIFunction | ABIError, abi_name: str):
        if not isinstance(abi_function.get("name"), str):
            raise DecodingError(f"{abi_function.get('type', 'function')} descriptor in {abi_name} has no name")

        self.abi_name = abi_name
        self.name = abi_function["name"]

        self._inputs = check_abi_params(abi_function.get("inputs") or [], abi_name)
        self._input_types = [collapse_if_tuple(param) for param in self._inputs]

        self.function_signature = abi_to_signature(abi_function)
        self.signature = function_signature_to_4byte_selector(self.function_signature)

    @property
    def selector(self) -> str:
        """4 byte selector as 8 lowercase hex characters"""
        return self.signature.hex()

    @property
    def input_types(self) -> list[str]:
        """Declared ABI types of each input, as written in the descriptor"""
        return [param["type"] for param in self._inputs]

    def decode(self, calldata: bytes) -> list[DecodedArg] | None:
        """
        Applies the descriptor's parameter list to the calldata body.

        :param calldata: ABI encoded arguments, excluding the 4 byte selector
        :return: Decoded arguments in declaration order, or None if the bytes do not fit the parameter types
        """
        decoded_input = decode_evm_abi_from_types(self._input_types, calldata)
        if decoded_input is None:
            logger.debug(f"Error Decoding {self.function_signature} For Input 0x{calldata.hex()}")
            return None

        return [
            DecodedArg(
                name=param.get("name") or f"arg{index}",
                type=param["type"],
                value=format_abi_value(value, param),
            )
            for index, (param, value) in enumerate(zip(self._inputs, decoded_input, strict=True))
        ]

    def id_str(self, full_signature: bool = True) -> str:
        """
        Returns ID string for function.  If full_signature is True, returns the function name & parameter types.
        If full_signature is false, returns function name
        """
        if full_signature:
            return self.function_signature
        return self.name


class EVMErrorDecoder(EVMFunctionDecoder):
    """
    Custom error descriptor.  Revert data is laid out like calldata, with a 4 byte selector followed by the
    ABI encoded error parameters.
    """
