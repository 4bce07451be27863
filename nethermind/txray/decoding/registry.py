import importlib.util
import logging
import threading
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType
from typing import Iterable, Sequence

from nethermind.txray.exceptions import PluginLoadError
from nethermind.txray.types.decoding import DecodeContext, DecodedData

from .base import CalldataDecoder

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("plugins")

DECODER_MODULE_GLOB = "*_decoder.py"
ENTRY_POINT_GROUP = "txray.decoders"


class DecoderPluginRegistry:
    """

    Holds decoder plugins in priority order.  Plugins are supplied explicitly, or collected from decoder
    directories and package entry points.  Equal priorities keep the order plugins were added in.

    """

    _decoders: list[CalldataDecoder]

    def __init__(self, decoders: Sequence[CalldataDecoder] = ()):
        self._lock = threading.Lock()
        self._decoders = []
        for decoder in decoders:
            _check_decoder(decoder)
            self._decoders.append(decoder)
        self._sort()

    def _sort(self):
        # list.sort is stable, so equal priorities keep discovery order
        self._decoders.sort(key=lambda d: getattr(d, "priority", 0) or 0, reverse=True)

    def register(self, decoder: CalldataDecoder) -> None:
        """Adds a decoder at runtime and re-sorts the registry"""
        _check_decoder(decoder)
        with self._lock:
            self._decoders.append(decoder)
            self._sort()
        logger.debug(f"Registered decoder {decoder.name} with priority {decoder.priority}")

    def list(self) -> list[CalldataDecoder]:
        """Snapshot of the registered decoders in match order"""
        return list(self._decoders)

    def __len__(self) -> int:
        return len(self._decoders)

    def load(self, sources: Iterable[Path | str]) -> int:
        """
        Collects decoders from one or more decoder directories, in the order given (ie, project directory then
        user directory).  Modules that fail to import are skipped with a warning.

        :param sources: Directories containing ``*_decoder.py`` modules, or individual module paths
        :return: Number of decoders added
        """
        loaded: list[CalldataDecoder] = []
        for source in sources:
            loaded.extend(load_decoders_from_path(Path(source)))

        with self._lock:
            self._decoders.extend(loaded)
            self._sort()

        if loaded:
            logger.info(f"Loaded {len(loaded)} decoder plugins: {', '.join(d.name for d in loaded)}")
        return len(loaded)

    def load_entry_points(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Collects decoders registered by installed packages under the ``txray.decoders`` entry point group.
        Entry points may reference a CalldataDecoder instance or a subclass with a no-argument constructor.
        """
        loaded: list[CalldataDecoder] = []
        for entry_point in entry_points(group=group):
            try:
                target = entry_point.load()
                decoder = target() if isinstance(target, type) and issubclass(target, CalldataDecoder) else target
                _check_decoder(decoder)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Failed to load decoder entry point {entry_point.name}: {e}")
                continue
            loaded.append(decoder)

        with self._lock:
            self._decoders.extend(loaded)
            self._sort()
        return len(loaded)

    def find_decoder(self, data: bytes, context: DecodeContext) -> CalldataDecoder | None:
        """Returns the first decoder, in priority order, whose match returns True"""
        for decoder in self.list():
            try:
                if decoder.match(data, context):
                    return decoder
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Decoder {decoder.name} raised {e.__class__.__name__} in match(): {e}")
        return None

    def decode_with_plugins(self, data: bytes, context: DecodeContext) -> DecodedData | None:
        """
        Decodes with the first matching plugin.  Exceptions raised by the plugin are logged and treated as no
        result, so a defective plugin never aborts resolution.
        """
        decoder = self.find_decoder(data, context)
        if decoder is None:
            return None

        try:
            result = decoder.decode(data, context)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(f"Decoder {decoder.name} failed to decode 0x{data[:4].hex()}: {e.__class__.__name__}({e})")
            return None

        if result is not None and not isinstance(result, DecodedData):
            logger.warning(f"Decoder {decoder.name} returned {type(result).__name__} instead of DecodedData")
            return None
        return result


def _check_decoder(decoder: object) -> None:
    if not isinstance(decoder, CalldataDecoder):
        raise PluginLoadError(f"{decoder!r} is not a CalldataDecoder instance")
    if not isinstance(getattr(decoder, "name", None), str):
        raise PluginLoadError(f"{decoder.__class__.__name__} does not define a name")
    priority = getattr(decoder, "priority", 0)
    if priority is not None and (isinstance(priority, bool) or not isinstance(priority, int)):
        raise PluginLoadError(f"{decoder.name} has priority {priority!r}.  Priority must be an integer")


def _import_module(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"txray_decoders.{path.stem}", path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Cannot import decoder module {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:  # pylint: disable=broad-exception-caught
        raise PluginLoadError(f"{e.__class__.__name__}: {e}") from e
    return module


def decoders_from_module(module: ModuleType) -> list[CalldataDecoder]:
    """
    Returns the decoders exported by a module.  A module level ``DECODERS`` list takes precedence, otherwise every
    CalldataDecoder instance defined at module level is collected in definition order.  Entries in ``DECODERS``
    that are not CalldataDecoders are skipped with a warning.
    """
    exported = getattr(module, "DECODERS", None)
    if exported is None:
        candidates = [value for value in vars(module).values() if isinstance(value, CalldataDecoder)]
    else:
        candidates = list(exported)

    decoders: list[CalldataDecoder] = []
    for candidate in candidates:
        if any(candidate is existing for existing in decoders):
            continue
        try:
            _check_decoder(candidate)
        except PluginLoadError as e:
            logger.warning(f"Skipping entry in {module.__name__}: {e}")
            continue
        decoders.append(candidate)
    return decoders


def load_decoders_from_path(path: Path) -> list[CalldataDecoder]:
    """Loads decoders from a directory of ``*_decoder.py`` modules, or from a single module path"""
    if not path.exists():
        logger.debug(f"Decoder directory {path} does not exist.  Skipping...")
        return []

    module_paths = sorted(path.glob(DECODER_MODULE_GLOB)) if path.is_dir() else [path]
    decoders: list[CalldataDecoder] = []
    for module_path in module_paths:
        try:
            module = _import_module(module_path)
        except PluginLoadError as e:
            logger.warning(f"Failed to load decoder from {module_path.name}: {e}")
            continue
        decoders.extend(decoders_from_module(module))
    return decoders
