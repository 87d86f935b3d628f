"""
Durable price cache stores.
Key-value stores of MeterPrice keyed by (region, meter_key) with point lookup and upsert.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Tuple

from costengine.domain.cost_models import MeterPrice


logger = logging.getLogger(__name__)


class PriceStore:
    """Interface for the durable layer of the price cache."""

    async def get(self, region: str, meter_key: str) -> Optional[MeterPrice]:
        raise NotImplementedError

    async def upsert(self, price: MeterPrice) -> None:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError


class InMemoryPriceStore(PriceStore):
    """Process-local store, used in tests and when no cache directory is configured."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], MeterPrice] = {}

    async def get(self, region: str, meter_key: str) -> Optional[MeterPrice]:
        return self._entries.get((region.lower(), meter_key))

    async def upsert(self, price: MeterPrice) -> None:
        self._entries[price.identity] = price

    def count(self) -> int:
        return len(self._entries)


class JsonFilePriceStore(PriceStore):
    """
    Store backed by one JSON file per region.

    Layout::

        <cache_dir>/
            eastus.json      {meter_key: MeterPrice.to_dict(), ...}
            westeurope.json

    Each upsert rewrites the region file through a temporary file and
    ``os.replace`` so a reader never sees a half-written file.
    """

    def __init__(self, cache_dir: str):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        # Loaded region files: region -> {meter_key: MeterPrice}
        self._regions: Dict[str, Dict[str, MeterPrice]] = {}

    def _region_path(self, region: str) -> Path:
        return self.cache_dir / f"{region.lower()}.json"

    def _load_region(self, region: str) -> Dict[str, MeterPrice]:
        region = region.lower()
        if region in self._regions:
            return self._regions[region]

        entries: Dict[str, MeterPrice] = {}
        path = self._region_path(region)
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
                for meter_key, data in raw.items():
                    entries[meter_key] = MeterPrice.from_dict(data)
            except (json.JSONDecodeError, OSError, KeyError, ValueError) as e:
                logger.error(f"Error loading price cache file {path}: {e}")
                entries = {}
        self._regions[region] = entries
        return entries

    async def get(self, region: str, meter_key: str) -> Optional[MeterPrice]:
        return self._load_region(region).get(meter_key)

    async def upsert(self, price: MeterPrice) -> None:
        region = price.region.lower()
        entries = dict(self._load_region(region))
        entries[price.meter_key] = price

        path = self._region_path(region)
        payload = {key: entry.to_dict() for key, entry in entries.items()}
        fd, tmp_name = tempfile.mkstemp(dir=str(self.cache_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        self._regions[region] = entries

    def count(self) -> int:
        return sum(len(self._load_region(path.stem)) for path in self.cache_dir.glob("*.json"))


def create_price_store(cache_dir: Optional[str] = None) -> PriceStore:
    """
    Create the durable store: file-backed when a directory is configured, in-memory otherwise.

    Args:
        cache_dir: Directory for region files (empty or None selects the in-memory store)
    """
    if cache_dir:
        logger.info(f"Using file-backed price cache at {cache_dir}")
        return JsonFilePriceStore(cache_dir)
    return InMemoryPriceStore()
