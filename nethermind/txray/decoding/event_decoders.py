import logging
from typing import Any, Mapping

from eth_typing import ABIEvent
from eth_utils.abi import event_signature_to_log_topic

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

_HASHED_TOPIC_PARAM = {"type": "bytes32"}


def _is_hashed_topic(param: Mapping[str, Any]) -> bool:
    """Indexed dynamic values are stored in the topic as their keccak hash"""
    typ = param["type"]
    return typ in ("string", "bytes") or typ.startswith("tuple") or typ.endswith("]")


class EVMEventDecoder:
    """
    Represents a single EVM event descriptor.  Splits the parameters between topics and data so logs can be
    decoded without re-parsing the ABI
    """

    name: str
    abi_name: str
    event_signature: str
    signature: bytes
    """ 32 byte topic derived from the event signature """

    indexed_params: int

    _params: list[dict]
    _topic_params: list[dict]
    _data_params: list[dict]

    def __init__(self, abi_event: ABIEvent, abi_name: str):
        if not isinstance(abi_event.get("name"), str):
            raise DecodingError(f"Event descriptor in {abi_name} has no name")

        self.abi_name = abi_name
        self.name = abi_event["name"]
        self._params = check_abi_params(abi_event.get("inputs") or [], abi_name)

        self._topic_params = [
            _HASHED_TOPIC_PARAM | {"name": p.get("name", "")} if _is_hashed_topic(p) else p
            for p in self._params
            if p.get("indexed")
        ]
        self._data_params = [p for p in self._params if not p.get("indexed")]
        self.indexed_params = len(self._topic_params)

        topic_names = {p.get("name") for p in self._topic_params if p.get("name")}
        duplicate_names = topic_names.intersection(p.get("name") for p in self._data_params if p.get("name"))
        if duplicate_names:
            raise DecodingError(
                f"Cannot have overlapping names between topics and data.  {self.abi_name} -> {self.name} "
                f"Has duplicate names: {list(duplicate_names)}"
            )

        self.event_signature = abi_to_signature(abi_event)
        self.signature = event_signature_to_log_topic(self.event_signature)

        logger.debug(
            f"Adding Event Decoder for {self.event_signature} with {self.indexed_params} indexed params and "
            f"{len(self._data_params)} data params"
        )

    @property
    def topic(self) -> str:
        """Event topic as 0x prefixed lowercase hex"""
        return "0x" + self.signature.hex()

    def decode(self, topics: list[bytes], data: bytes) -> list[DecodedArg] | None:
        """
        Decodes Event topics and data.

        :param topics: List of full Topic Bytes, including the signature at index 0
        :param data: ABI encoded non-indexed parameters
        :return: Decoded arguments in declaration order, or None if the log does not fit this descriptor
        """
        if len(topics) - 1 != self.indexed_params:
            return None

        topic_types = [collapse_if_tuple(p) for p in self._topic_params]
        data_types = [collapse_if_tuple(p) for p in self._data_params]

        decoded_topics = decode_evm_abi_from_types(topic_types, b"".join(topics[1:]))
        decoded_data = decode_evm_abi_from_types(data_types, data)
        if decoded_topics is None or decoded_data is None:
            logger.debug(f"Error Decoding Event {self.event_signature}")
            return None

        values: dict[int, tuple[dict, Any]] = {}
        topic_iter = iter(zip(self._topic_params, decoded_topics))
        data_iter = iter(zip(self._data_params, decoded_data))
        for index, param in enumerate(self._params):
            values[index] = next(topic_iter) if param.get("indexed") else next(data_iter)

        return [
            DecodedArg(
                name=self._params[index].get("name") or f"arg{index}",
                type=self._params[index]["type"],
                value=format_abi_value(value, decode_param),
            )
            for index, (decode_param, value) in values.items()
        ]

    def id_str(self, full_signature: bool = True) -> str:
        """Returns the event signature if full_signature is True, otherwise the event name"""
        if full_signature:
            return self.event_signature
        return self.name
