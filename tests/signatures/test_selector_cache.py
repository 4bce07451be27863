import asyncio
import json

from aiohttp import ClientConnectionError

from nethermind.txray.decoding.resolver import CalldataResolver
from nethermind.txray.exceptions import SignatureLookupError
from nethermind.txray.signatures.cache import SelectorResolutionCache, normalize_selector
from nethermind.txray.types.decoding import ResolutionSource


class SlowSource:
    """Signature source that yields to the event loop before answering"""

    name = "slow"

    def __init__(self):
        self.queries = []

    async def fetch(self, session, selector):
        self.queries.append(selector)
        await asyncio.sleep(0.05)
        return ["slow()"]


def test_normalize_selector():
    assert normalize_selector("0xA9059CBB") == "0xa9059cbb"
    assert normalize_selector("a9059cbb") == "0xa9059cbb"
    assert normalize_selector("0xa9059cb") is None
    assert normalize_selector("0xa9059cbbcc") is None
    assert normalize_selector("0xnothexxx") is None


def test_cache_hit_skips_remote(fake_source, selector_cache_path):
    selector_cache_path.parent.mkdir(parents=True)
    selector_cache_path.write_text(json.dumps({"0xA9059CBB": ["transfer(address,uint256)"], "0xdeadbeef": []}))
    source = fake_source({"0xdeadbeef": ["should_not_be_used()"]})
    cache = SelectorResolutionCache(selector_cache_path, sources=[source])

    assert asyncio.run(cache.lookup("a9059cbb")) == ["transfer(address,uint256)"]
    # a cached empty list is a known miss
    assert asyncio.run(cache.lookup("0xdeadbeef")) == []
    assert source.queries == []


def test_sources_queried_in_order(fake_source, selector_cache_path):
    first = fake_source({}, name="first")
    second = fake_source({"0x12345678": ["foo()", "bar()"]}, name="second")
    third = fake_source({"0x12345678": ["never()"]}, name="third")
    cache = SelectorResolutionCache(selector_cache_path, sources=[first, second, third])

    assert asyncio.run(cache.lookup("0x12345678")) == ["foo()", "bar()"]
    assert first.queries == ["0x12345678"]
    assert second.queries == ["0x12345678"]
    assert third.queries == []

    assert json.loads(selector_cache_path.read_text()) == {"0x12345678": ["foo()", "bar()"]}


def test_failures_are_cached_as_empty(fake_source, selector_cache_path):
    failing = fake_source(error=SignatureLookupError("status 503"))
    offline = fake_source(error=ClientConnectionError("no route to host"))
    timeout = fake_source(error=asyncio.TimeoutError())
    cache = SelectorResolutionCache(selector_cache_path, sources=[failing, offline, timeout])

    assert asyncio.run(cache.lookup("0x12345678")) == []
    assert asyncio.run(cache.lookup("0x12345678")) == []
    assert len(failing.queries) == 1
    assert cache.lookup_cached("0x12345678") == []

    reloaded = SelectorResolutionCache(selector_cache_path, sources=[])
    assert reloaded.lookup_cached("0x12345678") == []
    assert reloaded.lookup_cached("0x87654321") is None


def test_malformed_selector_skips_io(fake_source, selector_cache_path):
    source = fake_source({})
    cache = SelectorResolutionCache(selector_cache_path, sources=[source])

    assert asyncio.run(cache.lookup("0x1234")) == []
    assert source.queries == []
    assert not selector_cache_path.exists()


def test_corrupt_cache_file_starts_empty(fake_source, selector_cache_path, caplog):
    selector_cache_path.parent.mkdir(parents=True)
    selector_cache_path.write_text("{truncated")
    cache = SelectorResolutionCache(selector_cache_path, sources=[fake_source({"0x12345678": ["foo()"]})])

    assert cache.lookup_cached("0x12345678") is None
    assert "unreadable" in caplog.text
    # nothing was modified, so the file is left as is
    assert selector_cache_path.read_text() == "{truncated"

    assert asyncio.run(cache.lookup("0x12345678")) == ["foo()"]
    assert json.loads(selector_cache_path.read_text()) == {"0x12345678": ["foo()"]}


def test_concurrent_lookups_share_one_query(selector_cache_path):
    source = SlowSource()
    cache = SelectorResolutionCache(selector_cache_path, sources=[source])  # type: ignore[list-item]

    async def _lookup_many():
        return await asyncio.gather(*[cache.lookup("0x12345678") for _ in range(5)])

    results = asyncio.run(_lookup_many())

    assert results == [["slow()"]] * 5
    assert source.queries == ["0x12345678"]


def test_clear(selector_cache_path):
    cache = SelectorResolutionCache(selector_cache_path, sources=[])
    cache.store("0x12345678", ["foo()"])
    assert len(cache) == 1

    cache.clear()

    assert len(cache) == 0
    assert json.loads(selector_cache_path.read_text()) == {}
    assert cache.cache_path == selector_cache_path


class MalformedSource:
    """Signature source whose response handling fails with an unexpected exception"""

    name = "malformed"

    async def fetch(self, session, selector):
        return {"result": "error"}.get("result").get("function")


def test_unexpected_source_errors_resolve_empty(fake_source, selector_cache_path):
    fallback = fake_source({"0x12345678": ["foo()"]}, name="fallback")
    cache = SelectorResolutionCache(selector_cache_path, sources=[MalformedSource(), fallback])

    assert asyncio.run(cache.lookup("0x12345678")) == ["foo()"]

    resolver = CalldataResolver(
        selector_cache=SelectorResolutionCache(selector_cache_path.with_name("other.json"), sources=[MalformedSource()])
    )
    decoded = asyncio.run(resolver.resolve("0xdeadbeef01"))

    assert decoded.source == ResolutionSource.opaque
    assert decoded.selector == "deadbeef"
