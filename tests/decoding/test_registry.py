import textwrap

import pytest

from nethermind.txray.decoding.base import CalldataDecoder
from nethermind.txray.decoding.registry import DecoderPluginRegistry
from nethermind.txray.exceptions import PluginLoadError
from nethermind.txray.types.decoding import DecodeContext, DecodedData

CONTEXT = DecodeContext(labels={}, selector="a9059cbb")


class StaticDecoder(CalldataDecoder):
    def __init__(self, name: str, priority: int = 0, matches: bool = True):
        self.name = name
        self.priority = priority
        self.matches = matches

    def match(self, data, context):
        return self.matches

    def decode(self, data, context):
        return DecodedData(name=self.name)


class ExplodingDecoder(CalldataDecoder):
    name = "exploding"
    priority = 100

    def __init__(self, fail_in: str):
        self.fail_in = fail_in

    def match(self, data, context):
        if self.fail_in == "match":
            raise RuntimeError("match failed")
        return True

    def decode(self, data, context):
        raise ValueError("decode failed")


def test_priority_order_is_stable():
    registry = DecoderPluginRegistry(
        [StaticDecoder("low", -1), StaticDecoder("first", 5), StaticDecoder("high", 10), StaticDecoder("second", 5)]
    )

    assert [d.name for d in registry.list()] == ["high", "first", "second", "low"]


def test_register_resorts_and_list_is_a_snapshot():
    registry = DecoderPluginRegistry([StaticDecoder("base", 1)])
    snapshot = registry.list()

    registry.register(StaticDecoder("urgent", 50))

    assert [d.name for d in snapshot] == ["base"]
    assert [d.name for d in registry.list()] == ["urgent", "base"]
    assert len(registry) == 2


def test_higher_priority_plugin_wins():
    registry = DecoderPluginRegistry([StaticDecoder("five", 5), StaticDecoder("ten", 10)])

    result = registry.decode_with_plugins(bytes.fromhex("a9059cbb"), CONTEXT)

    assert result.name == "ten"


def test_non_matching_plugins_are_skipped():
    registry = DecoderPluginRegistry([StaticDecoder("never", 10, matches=False), StaticDecoder("always")])

    assert registry.find_decoder(b"\x00" * 4, CONTEXT).name == "always"
    assert DecoderPluginRegistry().decode_with_plugins(b"\x00" * 4, CONTEXT) is None


def test_match_exception_treated_as_no_match(caplog):
    registry = DecoderPluginRegistry([ExplodingDecoder("match"), StaticDecoder("fallback")])

    assert registry.decode_with_plugins(b"\x00" * 4, CONTEXT).name == "fallback"
    assert "exploding" in caplog.text


def test_decode_exception_is_contained(caplog):
    registry = DecoderPluginRegistry([ExplodingDecoder("decode"), StaticDecoder("fallback")])

    assert registry.decode_with_plugins(b"\x00" * 4, CONTEXT) is None
    assert "decode failed" in caplog.text


def test_rejects_non_decoders():
    with pytest.raises(PluginLoadError):
        DecoderPluginRegistry([object()])  # type: ignore[list-item]

    with pytest.raises(PluginLoadError):
        DecoderPluginRegistry().register("decoder")  # type: ignore[arg-type]

    with pytest.raises(PluginLoadError):
        DecoderPluginRegistry().register(StaticDecoder("ranked", "high"))  # type: ignore[arg-type]


def test_load_decoder_directory(tmp_path, caplog):
    (tmp_path / "approve_decoder.py").write_text(
        textwrap.dedent(
            """
            from nethermind.txray.decoding.base import CalldataDecoder
            from nethermind.txray.types.decoding import DecodedData


            class ApproveDecoder(CalldataDecoder):
                name = "approve"
                priority = 3

                def match(self, data, context):
                    return data[:4] == bytes.fromhex("095ea7b3")

                def decode(self, data, context):
                    return DecodedData(name="Approve")


            approve_decoder = ApproveDecoder()
            alias = approve_decoder
            """
        )
    )
    (tmp_path / "listed_decoder.py").write_text(
        textwrap.dedent(
            """
            from nethermind.txray.decoding.base import CalldataDecoder
            from nethermind.txray.types.decoding import DecodedData


            class Listed(CalldataDecoder):
                def __init__(self, name):
                    self.name = name

                def match(self, data, context):
                    return False

                def decode(self, data, context):
                    return None


            DECODERS = [Listed("listed-a"), "not a decoder", Listed("listed-b")]
            """
        )
    )
    (tmp_path / "ranked_decoder.py").write_text(
        textwrap.dedent(
            """
            from nethermind.txray.decoding.base import CalldataDecoder


            class Ranked(CalldataDecoder):
                def __init__(self, name, priority):
                    self.name = name
                    self.priority = priority

                def match(self, data, context):
                    return False

                def decode(self, data, context):
                    return None


            DECODERS = [Ranked("ranked-high", "high"), Ranked("ranked-none", None), Ranked("ranked-low", -1)]
            """
        )
    )
    (tmp_path / "broken_decoder.py").write_text("raise ImportError('missing dependency')\n")
    (tmp_path / "helpers.py").write_text("raise AssertionError('only *_decoder.py modules are loaded')\n")

    registry = DecoderPluginRegistry()
    loaded = registry.load([tmp_path, tmp_path / "does-not-exist"])

    assert loaded == 5
    assert [d.name for d in registry.list()] == ["approve", "listed-a", "listed-b", "ranked-none", "ranked-low"]
    assert "priority 'high'" in caplog.text
    assert "broken_decoder.py" in caplog.text
    assert registry.decode_with_plugins(bytes.fromhex("095ea7b3"), CONTEXT).name == "Approve"


def test_load_entry_points_with_no_plugins_installed():
    registry = DecoderPluginRegistry()

    assert registry.load_entry_points(group="txray.decoders.tests-nothing-registered") == 0
    assert len(registry) == 0
