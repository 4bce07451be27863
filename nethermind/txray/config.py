import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal, Mapping

from nethermind.txray.decoding.nested import DEFAULT_MAX_DEPTH, DEFAULT_MAX_NESTED_CALLS
from nethermind.txray.signatures.cache import DEFAULT_CACHE_PATH, DEFAULT_LOOKUP_TIMEOUT

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("config")

USER_CONFIG_DIR = Path.home() / ".config" / "txray"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.json"


def _default_abi_dirs() -> list[Path]:
    return [Path.cwd() / "abi", USER_CONFIG_DIR / "abi"]


def _default_decoder_dirs() -> list[Path]:
    return [Path.cwd() / "decoders", USER_CONFIG_DIR / "decoders"]


def _default_label_files() -> list[Path]:
    return [USER_CONFIG_DIR / "labels.json", Path.cwd() / "labels.json"]


@dataclass
class TxrayConfig:
    """
    Runtime configuration.  Values are resolved from the defaults, then the user config file, then ``TXRAY_*``
    environment variables.
    """

    cache_path: Path = DEFAULT_CACHE_PATH
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT
    """ Total timeout in seconds for each remote signature query """

    max_depth: int = DEFAULT_MAX_DEPTH
    max_nested_calls: int = DEFAULT_MAX_NESTED_CALLS
    offline: bool = False
    """ If True, the signature database is only read from the local cache """

    default_chain: int = 1
    output_format: Literal["pretty", "json"] = "pretty"
    prefer_signature: Literal["last", "shortest"] = "last"

    abi_dirs: list[Path] = field(default_factory=_default_abi_dirs)
    """ Interface catalog sources, project directory first """

    decoder_dirs: list[Path] = field(default_factory=_default_decoder_dirs)
    """ Decoder plugin directories, project directory first """

    label_files: list[Path] = field(default_factory=_default_label_files)
    """ Address label files, lowest precedence first """


_ENV_OVERRIDES: dict[str, str] = {
    "TXRAY_CACHE_PATH": "cache_path",
    "TXRAY_LOOKUP_TIMEOUT": "lookup_timeout",
    "TXRAY_MAX_DEPTH": "max_depth",
    "TXRAY_MAX_NESTED": "max_nested_calls",
    "TXRAY_OFFLINE": "offline",
    "TXRAY_DEFAULT_CHAIN": "default_chain",
    "TXRAY_OUTPUT_FORMAT": "output_format",
}

_FILE_KEYS: dict[str, str] = {
    "cachePath": "cache_path",
    "lookupTimeout": "lookup_timeout",
    "maxDepth": "max_depth",
    "maxNestedCalls": "max_nested_calls",
    "defaultChain": "default_chain",
    "outputFormat": "output_format",
    "preferSignature": "prefer_signature",
}


def _coerce(field_name: str, raw: Any) -> Any:
    match field_name:
        case "cache_path":
            return Path(raw).expanduser()
        case "lookup_timeout":
            return float(raw)
        case "max_depth" | "max_nested_calls" | "default_chain":
            return int(raw)
        case "offline":
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in ("1", "true", "yes", "on")
        case "output_format":
            if raw not in ("pretty", "json"):
                raise ValueError(f"Invalid output format {raw!r}.  Use 'pretty' or 'json'")
            return raw
        case "prefer_signature":
            if raw not in ("last", "shortest"):
                raise ValueError(f"Invalid signature preference {raw!r}.  Use 'last' or 'shortest'")
            return raw
        case "abi_dirs" | "decoder_dirs" | "label_files":
            return [Path(p).expanduser() for p in raw]
    raise KeyError(field_name)


def _apply(config: TxrayConfig, overrides: Mapping[str, Any], origin: str) -> TxrayConfig:
    valid = {}
    for field_name, raw in overrides.items():
        try:
            valid[field_name] = _coerce(field_name, raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid value {raw!r} for {field_name} from {origin}: {e}")
    return replace(config, **valid)


def load_config(
    config_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> TxrayConfig:
    """
    Loads the txray configuration.  A missing config file is not an error, and an unreadable one is logged
    and ignored.

    :param config_file: JSON config file.  Defaults to ``~/.config/txray/config.json``
    :param environ: Environment mapping.  Defaults to ``os.environ``
    """
    config = TxrayConfig()
    path = Path(config_file) if config_file is not None else USER_CONFIG_FILE
    env = os.environ if environ is None else environ

    if path.exists():
        try:
            file_config = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read config file {path}: {e}")
            file_config = {}

        if isinstance(file_config, dict):
            field_names = {f.name for f in fields(TxrayConfig)}
            file_overrides = {}
            for key, value in file_config.items():
                field_name = _FILE_KEYS.get(key, key)
                if field_name in field_names:
                    file_overrides[field_name] = value
                else:
                    logger.debug(f"Unknown config key {key} in {path}")
            config = _apply(config, file_overrides, str(path))
        else:
            logger.warning(f"Config file {path} is not a JSON object.  Ignoring")

    env_overrides = {field_name: env[var] for var, field_name in _ENV_OVERRIDES.items() if env.get(var)}
    return _apply(config, env_overrides, "environment")
