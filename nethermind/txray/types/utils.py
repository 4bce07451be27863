import json
from dataclasses import asdict
from enum import Enum


class HexEnabledJsonEncoder(json.JSONEncoder):
    """JSON Encoder that converts bytes to 0x prefixed hex, and enums to their values"""

    def default(self, o):
        if isinstance(o, (bytes, bytearray)):
            return "0x" + bytes(o).hex()
        if isinstance(o, Enum):
            return o.value
        return json.JSONEncoder.default(self, o)


def dataclass_to_json(obj, indent: int | None = 4) -> str:
    """Converts a dataclass to json"""
    return json.dumps(asdict(obj), cls=HexEnabledJsonEncoder, indent=indent)
