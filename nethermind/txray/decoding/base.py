from abc import ABC, abstractmethod

from nethermind.txray.types.decoding import DecodeContext, DecodedData


class CalldataDecoder(ABC):
    """
    Base class for Decoder Plugins.  Plugins claim calldata with ``match`` and interpret it with ``decode``
    ahead of the interface catalog.

    >>> class TransferDecoder(CalldataDecoder):
    ...     name = "erc20-transfer"
    ...     priority = 10
    ...
    ...     def match(self, data, context):
    ...         return data[:4] == bytes.fromhex("a9059cbb")
    ...
    ...     def decode(self, data, context):
    ...         return DecodedData(name="ERC20 Transfer", params=[])

    """

    name: str
    """ Name of the plugin, used in log messages and the CLI """

    priority: int = 0
    """ Higher priority plugins are matched first.  Negative priority is lower than default """

    @abstractmethod
    def match(self, data: bytes, context: DecodeContext) -> bool:
        """Returns True if this plugin should decode the payload"""
        raise NotImplementedError()

    @abstractmethod
    def decode(self, data: bytes, context: DecodeContext) -> DecodedData | None:
        """Decodes the full payload, including the selector.  Returning None falls through to the catalog"""
        raise NotImplementedError()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, priority={self.priority})"
