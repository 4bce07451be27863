import logging
from abc import ABC, abstractmethod
from typing import Any

from aiohttp import ClientSession
from aiohttp.client_exceptions import ContentTypeError

from nethermind.txray.exceptions import SignatureLookupError

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("signatures")

FOURBYTE_API = "https://www.4byte.directory/api/v1/signatures/"
OPENCHAIN_API = "https://api.openchain.xyz/signature-database/v1/lookup"


class SignatureSource(ABC):
    """Remote database mapping 4 byte selectors to candidate text signatures"""

    name: str

    @abstractmethod
    async def fetch(self, session: ClientSession, selector: str) -> list[str]:
        """
        Queries the database for a selector.

        :param session: Open aiohttp session.  The session carries the request timeout
        :param selector: 0x prefixed, lowercase 4 byte selector
        :return: Candidate signatures in the order returned by the database.  Empty if none are known
        :raises SignatureLookupError: if the service responds with an error
        """
        raise NotImplementedError()


class FourByteDirectory(SignatureSource):
    """https://www.4byte.directory"""

    name = "4byte.directory"

    def __init__(self, api_url: str = FOURBYTE_API):
        self.api_url = api_url

    async def fetch(self, session: ClientSession, selector: str) -> list[str]:
        async with session.get(self.api_url, params={"hex_signature": selector}) as response:
            if response.status != 200:
                raise SignatureLookupError(f"{self.name} responded with status {response.status}")
            try:
                response_json = await response.json()
            except ContentTypeError as e:
                raise SignatureLookupError(f"{self.name} returned non-JSON content") from e

        return parse_4byte_response(response_json)


class OpenchainSignatures(SignatureSource):
    """https://openchain.xyz signature database"""

    name = "openchain"

    def __init__(self, api_url: str = OPENCHAIN_API):
        self.api_url = api_url

    async def fetch(self, session: ClientSession, selector: str) -> list[str]:
        async with session.get(self.api_url, params={"function": selector}) as response:
            if response.status != 200:
                raise SignatureLookupError(f"{self.name} responded with status {response.status}")
            try:
                response_json = await response.json()
            except ContentTypeError as e:
                raise SignatureLookupError(f"{self.name} returned non-JSON content") from e

        return parse_openchain_response(response_json, selector)


def parse_4byte_response(response_json: Any) -> list[str]:
    """
    Extracts text signatures from a 4byte.directory response

    >>> parse_4byte_response({"count": 1, "results": [{"id": 145, "text_signature": "transfer(address,uint256)"}]})
    ['transfer(address,uint256)']
    """
    results = response_json.get("results") if isinstance(response_json, dict) else None
    if not isinstance(results, list):
        return []

    return [
        result["text_signature"]
        for result in results
        if isinstance(result, dict) and isinstance(result.get("text_signature"), str)
    ]


def parse_openchain_response(response_json: Any, selector: str) -> list[str]:
    """
    Extracts text signatures from an openchain lookup response.  Unknown selectors map to null

    >>> parse_openchain_response({"ok": True, "result": {"function": {"0x12345678": None}}}, "0x12345678")
    []
    """
    result = response_json.get("result") if isinstance(response_json, dict) else None
    functions = result.get("function") if isinstance(result, dict) else None
    entries = functions.get(selector.lower()) if isinstance(functions, dict) else None
    if not isinstance(entries, list):
        return []

    return [
        entry["name"]
        for entry in entries
        if isinstance(entry, dict) and isinstance(entry.get("name"), str)
    ]


def default_signature_sources() -> list[SignatureSource]:
    """Remote sources in query order"""
    return [FourByteDirectory(), OpenchainSignatures()]
