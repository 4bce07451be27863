import random
from typing import Any

import pytest
from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from nethermind.txray.decoding.base import CalldataDecoder
from nethermind.txray.decoding.catalog import InterfaceCatalog
from nethermind.txray.signatures.remote import SignatureSource
from nethermind.txray.types.decoding import DecodedArg, DecodedData


class FakeSignatureSource(SignatureSource):
    """In-process signature database.  Records every selector it is queried for"""

    def __init__(
        self,
        signatures: dict[str, list[str]] | None = None,
        name: str = "fake",
        error: Exception | None = None,
    ):
        self.name = name
        self.signatures = signatures or {}
        self.error = error
        self.queries: list[str] = []

    async def fetch(self, session, selector: str) -> list[str]:
        self.queries.append(selector)
        if self.error is not None:
            raise self.error
        return list(self.signatures.get(selector, []))


class ERC20TransferDecoder(CalldataDecoder):
    name = "erc20-transfer"
    priority = 10

    def match(self, data, context):
        return data[:4] == bytes.fromhex("a9059cbb")

    def decode(self, data, context):
        from eth_abi import decode

        to_address, amount = decode(["address", "uint256"], data[4:])
        return DecodedData(
            name="ERC20 Transfer",
            params=[
                DecodedArg(name="to", type="address", value=to_checksum_address(to_address)),
                {"name": "amount", "type": "uint256", "value": amount},
            ],
        )


@pytest.fixture(name="random_address")
def fixture_random_address():
    def _generate_random_address():
        return to_checksum_address(random.randbytes(20).hex())

    return _generate_random_address


@pytest.fixture(name="encode_call")
def fixture_encode_call():
    def _encode_call(signature: str, types: list[str], values: list[Any]) -> bytes:
        return function_signature_to_4byte_selector(signature) + encode(types, values)

    return _encode_call


@pytest.fixture(name="catalog")
def fixture_catalog() -> InterfaceCatalog:
    return InterfaceCatalog()


@pytest.fixture(name="fake_source")
def fixture_fake_source():
    return FakeSignatureSource


@pytest.fixture(name="transfer_decoder")
def fixture_transfer_decoder():
    return ERC20TransferDecoder


@pytest.fixture(name="selector_cache_path")
def fixture_selector_cache_path(tmp_path):
    return tmp_path / "cache" / "selectors.json"
