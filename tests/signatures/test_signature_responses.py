from nethermind.txray.signatures.remote import (
    FourByteDirectory,
    OpenchainSignatures,
    default_signature_sources,
    parse_4byte_response,
    parse_openchain_response,
)

FOURBYTE_RESPONSE = {
    "count": 2,
    "next": None,
    "previous": None,
    "results": [
        {
            "id": 31781,
            "created_at": "2018-05-11T08:39:29.708250Z",
            "text_signature": "many_msg_babbage(bytes1)",
            "hex_signature": "0xa9059cbb",
            "bytes_signature": "",
        },
        {
            "id": 145,
            "created_at": "2016-07-09T03:58:28.234977Z",
            "text_signature": "transfer(address,uint256)",
            "hex_signature": "0xa9059cbb",
            "bytes_signature": "",
        },
    ],
}

OPENCHAIN_RESPONSE = {
    "ok": True,
    "result": {
        "event": {},
        "function": {
            "0xa9059cbb": [
                {"name": "transfer(address,uint256)", "filtered": False},
                {"name": "many_msg_babbage(bytes1)", "filtered": True},
            ]
        },
    },
}


def test_parse_4byte_response():
    assert parse_4byte_response(FOURBYTE_RESPONSE) == ["many_msg_babbage(bytes1)", "transfer(address,uint256)"]
    assert parse_4byte_response({"count": 0, "results": []}) == []
    assert parse_4byte_response({"detail": "Not found."}) == []
    assert parse_4byte_response(["unexpected"]) == []


def test_parse_openchain_response():
    assert parse_openchain_response(OPENCHAIN_RESPONSE, "0xA9059CBB") == [
        "transfer(address,uint256)",
        "many_msg_babbage(bytes1)",
    ]
    assert parse_openchain_response({"ok": True, "result": {"function": {"0x12345678": None}}}, "0x12345678") == []
    assert parse_openchain_response({"ok": False, "error": "invalid hash"}, "0x12345678") == []


def test_default_sources_order():
    sources = default_signature_sources()

    assert [type(s) for s in sources] == [FourByteDirectory, OpenchainSignatures]
    assert sources[0].api_url == "https://www.4byte.directory/api/v1/signatures/"


def test_unexpected_response_shapes_are_empty():
    assert parse_4byte_response({"results": "none"}) == []
    assert parse_4byte_response({"results": {"text_signature": "foo()"}}) == []

    assert parse_openchain_response({"ok": False, "result": "error"}, "0x12345678") == []
    assert parse_openchain_response({"ok": True, "result": {"function": []}}, "0x12345678") == []
    assert parse_openchain_response({"ok": True, "result": {"function": {"0x12345678": "foo()"}}}, "0x12345678") == []
