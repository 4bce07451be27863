class DecodingError(Exception):
    """

    Raised when issues occur with ABI decoding, or when interface descriptors cannot be loaded into the catalog

    """


class InvalidCalldata(DecodingError):
    """
    Raised when a payload cannot be resolved as calldata.  The following conditions will result in this error:

        * Payload is shorter than the 4 byte function selector
        * Hex string payloads that are not valid hexadecimal

    This is the only error the CalldataResolver raises to its caller.  Every other failure degrades the
    resolution to a less informative DecodedCall.
    """


class CatalogSourceError(DecodingError):
    """Raised when an interface catalog source cannot be parsed, or does not have the expected shape"""


class PluginLoadError(Exception):
    """

    Raised when a decoder plugin module cannot be imported, or exports objects that are not CalldataDecoders

    """


class SignatureLookupError(Exception):
    """Raised when a remote signature database returns an error, an unexpected status, or malformed JSON"""
