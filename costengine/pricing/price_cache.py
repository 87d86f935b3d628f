"""
Layered price cache.

Lookup order for a (region, meter_key):
    1. in-memory layer (short TTL, seconds)
    2. durable store (long TTL, about a day)
    3. upstream retail price list, which repopulates both layers

Entries are frozen MeterPrice values assigned whole, so concurrent refreshes
of the same key simply race and the last successful one wins. Expiry is
checked lazily on read.
"""
from typing import Callable, Dict, Any, List, Optional, Tuple
import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from costengine.core.config import config
from costengine.domain.cost_models import MeterPrice
from costengine.pricing.azure_retail_prices_client import AzureRetailPricesClient, AzureRetailPricesError
from costengine.pricing.meter_keys import PriceQuery
from costengine.pricing.price_store import PriceStore, InMemoryPriceStore


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceCache:
    """Resolves unit prices through memory, durable store and upstream price list."""

    def __init__(
        self,
        client: Optional[AzureRetailPricesClient] = None,
        store: Optional[PriceStore] = None,
        memory_ttl_seconds: Optional[int] = None,
        durable_ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize price cache.

        Args:
            client: Upstream retail price list client
            store: Durable layer (in-memory store if omitted)
            memory_ttl_seconds: Lifetime of in-memory entries
            durable_ttl_seconds: Lifetime written into durable entries' expires_at
            clock: Time source, injectable for tests
        """
        self.client = client or AzureRetailPricesClient()
        self.store = store or InMemoryPriceStore()
        self.memory_ttl = timedelta(seconds=memory_ttl_seconds or config.PRICE_MEMORY_CACHE_TTL_SECONDS)
        self.durable_ttl = timedelta(seconds=durable_ttl_seconds or config.PRICE_DURABLE_CACHE_TTL_SECONDS)
        self._clock = clock or _utcnow
        # "region:meter_key" -> (price, cached_at)
        self._memory: Dict[str, Tuple[MeterPrice, datetime]] = {}

    @staticmethod
    def _memory_key(region: str, meter_key: str) -> str:
        return f"{region.lower()}:{meter_key}"

    def _remember(self, price: MeterPrice) -> None:
        self._memory[self._memory_key(price.region, price.meter_key)] = (price, self._clock())

    async def resolve(
        self,
        region: str,
        meter_key: str,
        query: Optional[PriceQuery] = None
    ) -> Optional[MeterPrice]:
        """
        Resolve the unit price for a meter.

        A cached price of zero is never a hit; it forces a refresh. When the
        upstream is unavailable the freshest expired entry is returned with
        ``degraded=True``.

        Args:
            region: ARM region name
            meter_key: Key built by the meter_keys functions
            query: Upstream query that would populate this key; without one no refresh is attempted

        Returns:
            MeterPrice, or None when no usable price exists
        """
        now = self._clock()
        memory_key = self._memory_key(region, meter_key)
        stale: Optional[MeterPrice] = None

        cached = self._memory.get(memory_key)
        if cached is not None:
            price, cached_at = cached
            if now - cached_at < self.memory_ttl and price.is_usable and not price.is_expired(now):
                return price
            self._memory.pop(memory_key, None)
            if price.is_usable:
                stale = price

        durable = await self._read_store(region, meter_key)
        if durable is not None:
            if durable.is_usable and not durable.is_expired(now):
                self._remember(durable)
                return durable
            if not durable.is_usable:
                logger.info(f"Zero-priced cache entry for {memory_key}, forcing refresh")
            elif stale is None or durable.fetched_at > stale.fetched_at:
                stale = durable

        if query is not None:
            try:
                refreshed = await self.refresh(region, query)
            except AzureRetailPricesError as error:
                logger.warning(f"Price refresh for {memory_key} failed: {error}")
                refreshed = []
            for price in refreshed:
                if price.meter_key == meter_key and price.is_usable:
                    return price

        if stale is not None:
            logger.warning(
                f"Serving expired price for {memory_key} (fetched {stale.fetched_at.isoformat()}), degraded"
            )
            return replace(stale, degraded=True)

        logger.warning(f"No price available for {memory_key}")
        return None

    async def refresh(self, region: str, query: PriceQuery) -> List[MeterPrice]:
        """
        Query the upstream price list and repopulate both cache layers.

        Args:
            region: ARM region name the query targets
            query: Query and meter-key parser

        Returns:
            The MeterPrice entries that were cached

        Raises:
            AzureRetailPricesError: If the upstream query fails
        """
        items = await self.client.query(query.filter_expression)
        fetched_at = self._clock()
        expires_at = fetched_at + self.durable_ttl

        by_key: Dict[str, MeterPrice] = {}
        skipped = 0
        for item in items:
            if (item.get("type") or "Consumption") != "Consumption":
                continue
            meter_key = query.key_for(item)
            if not meter_key:
                skipped += 1
                logger.debug(
                    f"Skipping unrecognized meter '{item.get('meterName')}' (sku '{item.get('skuName')}')"
                )
                continue
            price = self._build_price(region, meter_key, query.resource_type, item, fetched_at, expires_at)
            if price is None:
                continue
            existing = by_key.get(meter_key)
            if existing is not None and existing.is_usable and not price.is_usable:
                continue
            by_key[meter_key] = price

        for price in by_key.values():
            await self._write_store(price)
            self._remember(price)

        logger.info(
            f"Refreshed {query.description or query.resource_type} pricing for {region}: "
            f"cached {len(by_key)} meters, skipped {skipped}"
        )
        return list(by_key.values())

    def _build_price(
        self,
        region: str,
        meter_key: str,
        resource_type: str,
        item: Dict[str, Any],
        fetched_at: datetime,
        expires_at: datetime
    ) -> Optional[MeterPrice]:
        try:
            unit_price = float(item.get("retailPrice", item.get("unitPrice")))
        except (TypeError, ValueError):
            logger.warning(f"Price item '{item.get('meterName')}' has no numeric price, skipping")
            return None
        return MeterPrice(
            region=region.lower(),
            meter_key=meter_key,
            unit_price=unit_price,
            unit_of_measure=item.get("unitOfMeasure", ""),
            currency=item.get("currencyCode", "USD"),
            source_meter_name=item.get("meterName", ""),
            fetched_at=fetched_at,
            expires_at=expires_at,
            resource_type=resource_type,
            sku_name=item.get("skuName", ""),
            product_name=item.get("productName", ""),
            meter_id=item.get("meterId", ""),
            effective_date=item.get("effectiveStartDate"),
        )

    async def _read_store(self, region: str, meter_key: str) -> Optional[MeterPrice]:
        try:
            return await self.store.get(region, meter_key)
        except Exception as error:
            logger.error(f"Error reading durable price cache for {region}:{meter_key}: {error}", exc_info=True)
            return None

    async def _write_store(self, price: MeterPrice) -> None:
        try:
            await self.store.upsert(price)
        except Exception as error:
            logger.error(f"Error writing durable price cache for {price.meter_key}: {error}", exc_info=True)

    def clear_memory(self) -> None:
        self._memory.clear()

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics (for debugging/monitoring).

        Returns:
            Dictionary with stats
        """
        return {
            "memory_entries": len(self._memory),
            "durable_entries": self.store.count(),
            "memory_ttl_seconds": self.memory_ttl.total_seconds(),
            "durable_ttl_seconds": self.durable_ttl.total_seconds(),
        }


async def resolve_prices(
    price_cache: PriceCache,
    region: str,
    wanted: Dict[str, Tuple[str, PriceQuery]]
) -> Dict[str, Optional[MeterPrice]]:
    """
    Resolve several named meter keys.

    Keys sharing one upstream query are resolved one after another, so a cold
    cache refreshes that query once and the later keys hit memory. Distinct
    queries run concurrently.

    Args:
        price_cache: Cache to resolve through
        region: ARM region name
        wanted: name -> (meter_key, query populating it)

    Returns:
        name -> MeterPrice, or None where no usable price exists
    """
    by_query: Dict[str, List[Tuple[str, str, PriceQuery]]] = {}
    for name, (meter_key, query) in wanted.items():
        by_query.setdefault(query.filter_expression, []).append((name, meter_key, query))

    async def resolve_group(group: List[Tuple[str, str, PriceQuery]]) -> Dict[str, Optional[MeterPrice]]:
        return {name: await price_cache.resolve(region, meter_key, query) for name, meter_key, query in group}

    resolved: Dict[str, Optional[MeterPrice]] = {}
    for prices in await asyncio.gather(*(resolve_group(group) for group in by_query.values())):
        resolved.update(prices)
    return resolved
