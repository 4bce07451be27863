import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Sequence

import aiohttp
from aiohttp.client_exceptions import ClientError

from nethermind.txray.exceptions import SignatureLookupError

from .remote import SignatureSource, default_signature_sources

root_logger = logging.getLogger("nethermind")
logger = root_logger.getChild("txray").getChild("signatures")

DEFAULT_CACHE_PATH = Path.home() / ".cache" / "txray" / "selectors.json"
DEFAULT_LOOKUP_TIMEOUT = 5.0

_SELECTOR_PATTERN = re.compile(r"^0x[0-9a-f]{8}$")


def normalize_selector(selector: str) -> str | None:
    """
    Normalizes a selector to the cache key format.  Returns None for malformed selectors

    >>> normalize_selector("A9059CBB")
    '0xa9059cbb'
    >>> normalize_selector("0xa9059c") is None
    True
    """
    key = selector.strip().lower()
    if not key.startswith("0x"):
        key = "0x" + key
    return key if _SELECTOR_PATTERN.match(key) else None


class SelectorResolutionCache:
    """

    Persistent selector -> candidate signature map.  Misses are resolved by querying remote signature databases
    in order, and every outcome is cached, including an empty result.  A cached empty list means the selector is
    unknown, and no remote query is made for it again.

    The cache file is read once on first use, and rewritten after every new entry.

    """

    sources: list[SignatureSource]
    lookup_timeout: float
    """ Total timeout in seconds for each remote query """

    def __init__(
        self,
        cache_path: Path | str | None = None,
        sources: Sequence[SignatureSource] | None = None,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
    ):
        self._cache_path = Path(cache_path) if cache_path is not None else DEFAULT_CACHE_PATH
        self.sources = list(sources) if sources is not None else default_signature_sources()
        self.lookup_timeout = lookup_timeout

        self._entries: dict[str, list[str]] | None = None
        self._pending: dict[str, asyncio.Task] = {}

    @property
    def cache_path(self) -> Path:
        return self._cache_path

    def _load(self) -> dict[str, list[str]]:
        if self._entries is not None:
            return self._entries

        self._entries = {}
        if not self._cache_path.exists():
            return self._entries

        try:
            raw = json.loads(self._cache_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Selector cache {self._cache_path} is unreadable, starting with an empty cache: {e}")
            return self._entries

        if not isinstance(raw, dict):
            logger.warning(f"Selector cache {self._cache_path} is not a JSON object, starting with an empty cache")
            return self._entries

        for selector, signatures in raw.items():
            key = normalize_selector(str(selector))
            if key is None or not isinstance(signatures, list):
                continue
            self._entries[key] = [sig for sig in signatures if isinstance(sig, str)]

        logger.debug(f"Loaded {len(self._entries)} selectors from {self._cache_path}")
        return self._entries

    def _save(self) -> None:
        if self._entries is None:
            return
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_text(json.dumps(self._entries, indent=2))
        except OSError as e:
            logger.warning(f"Could not write selector cache to {self._cache_path}: {e}")

    def __len__(self) -> int:
        return len(self._load())

    def lookup_cached(self, selector: str) -> list[str] | None:
        """Returns the cached signatures for a selector without querying remote sources.  None on a miss"""
        key = normalize_selector(selector)
        if key is None:
            return None
        cached = self._load().get(key)
        return list(cached) if cached is not None else None

    def store(self, selector: str, signatures: list[str]) -> None:
        """Writes an entry to the cache and flushes it to disk"""
        key = normalize_selector(selector)
        if key is None:
            raise ValueError(f"Invalid selector {selector!r}")
        self._load()[key] = list(signatures)
        self._save()

    def clear(self) -> None:
        """Removes every cached selector, and writes the empty cache to disk"""
        self._entries = {}
        self._save()

    async def lookup(self, selector: str) -> list[str]:
        """
        Returns candidate signatures for a selector.  Cache hits return without I/O.  On a miss, remote sources
        are queried in order and the first non-empty answer is cached and returned.  Concurrent lookups of the
        same selector share a single remote query.

        :param selector: 4 byte selector as hex, with or without 0x prefix
        :return: Candidate signatures.  Empty if the selector is malformed or unknown
        """
        key = normalize_selector(selector)
        if key is None:
            logger.debug(f"Malformed selector {selector!r}.  Skipping lookup")
            return []

        cached = self._load().get(key)
        if cached is not None:
            return list(cached)

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve_remote(key))
            self._pending[key] = task
            task.add_done_callback(lambda _: self._pending.pop(key, None))

        return list(await asyncio.shield(task))

    async def _resolve_remote(self, key: str) -> list[str]:
        signatures: list[str] = []

        if self.sources:
            timeout = aiohttp.ClientTimeout(total=self.lookup_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                for source in self.sources:
                    signatures = await self._query_source(source, session, key)
                    if signatures:
                        logger.debug(f"Resolved {key} to {len(signatures)} signatures from {source.name}")
                        break

        self.store(key, signatures)
        return signatures

    @staticmethod
    async def _query_source(source: SignatureSource, session: aiohttp.ClientSession, key: str) -> list[str]:
        try:
            return await source.fetch(session, key)
        except asyncio.TimeoutError:
            logger.debug(f"Timeout querying {source.name} for {key}")
        except (ClientError, SignatureLookupError, ValueError) as e:
            logger.debug(f"Error querying {source.name} for {key}: {e.__class__.__name__}({e})")
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.debug(f"Unexpected error querying {source.name} for {key}: {e.__class__.__name__}({e})")
        return []
