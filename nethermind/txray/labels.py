import json
import logging
from pathlib import Path
from typing import Iterable, Mapping

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("labels")


def load_labels_file(path: Path) -> dict[str, str]:
    """
    Reads a JSON object of address -> display name.  Addresses are lowercased, and non-string names are
    dropped.  Missing files return an empty map, unreadable files are logged.
    """
    if not path.exists():
        return {}

    try:
        parsed = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load labels from {path}: {e}")
        return {}

    if not isinstance(parsed, dict):
        logger.warning(f"Invalid labels file at {path} (expected object)")
        return {}

    return {str(address).lower(): name for address, name in parsed.items() if isinstance(name, str)}


def load_labels(
    builtin: Mapping[str, str] | None = None,
    label_files: Iterable[Path | str] = (),
    custom_path: Path | str | None = None,
) -> dict[str, str]:
    """
    Merges address labels.  Later sources take precedence: built-in contract names, then each label file in
    order (user file, then project file), then the custom file.

    :param builtin: Address -> name map, usually ``InterfaceCatalog.known_contracts``
    :param label_files: Label files in ascending precedence
    :param custom_path: Label file passed on the command line
    """
    labels = {address.lower(): name for address, name in (builtin or {}).items()}

    for path in label_files:
        labels.update(load_labels_file(Path(path)))

    if custom_path is not None:
        labels.update(load_labels_file(Path(custom_path).expanduser().resolve()))

    return labels
