"""
Azure Retail Prices API client.
Uses public REST API (no authentication required) and follows NextPageLink pagination.
"""
from typing import Dict, Any, List, Optional
import logging
import httpx

from costengine.core.config import config
from costengine.resilience.circuit_breaker import get_circuit_breaker, CircuitBreaker


logger = logging.getLogger(__name__)


class AzureRetailPricesError(Exception):
    """Raised when the retail price list cannot be queried."""
    pass


class AzureRetailPricesClient:
    """Client for querying the Azure Retail Prices API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        max_records: Optional[int] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize retail prices client.

        Args:
            base_url: Price list endpoint (defaults to config)
            api_version: API version query parameter
            timeout: Per-request timeout in seconds
            max_records: Stop following pages once more than this many items were collected
            circuit_breaker: Breaker guarding the upstream (shared "azure_retail_prices" by default)
        """
        self.base_url = base_url or config.RETAIL_PRICES_API_URL
        self.api_version = api_version or config.RETAIL_PRICES_API_VERSION
        self.timeout = timeout or config.RETAIL_PRICES_TIMEOUT
        self.max_records = max_records or config.RETAIL_PRICES_MAX_RECORDS
        self.circuit_breaker = circuit_breaker or get_circuit_breaker("azure_retail_prices")

    async def query(self, filter_expression: str) -> List[Dict[str, Any]]:
        """
        Fetch all price items matching an OData filter.

        Args:
            filter_expression: OData $filter, e.g. "armRegionName eq 'eastus' and ..."

        Returns:
            Raw price items (dicts with meterName, skuName, retailPrice, unitOfMeasure, ...)

        Raises:
            AzureRetailPricesError: If the circuit is open or the first page fails
        """
        if not self.circuit_breaker.allow_request():
            raise AzureRetailPricesError("Azure retail prices circuit breaker is open")

        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = self.base_url
        params: Optional[Dict[str, str]] = {
            "api-version": self.api_version,
            "$filter": filter_expression,
        }
        page = 0

        async with httpx.AsyncClient() as client:
            while next_url:
                try:
                    response = await client.get(next_url, params=params, timeout=self.timeout)
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as error:
                    self.circuit_breaker.record_failure()
                    if page == 0:
                        logger.error(f"Azure retail prices query failed: {error}")
                        raise AzureRetailPricesError(
                            f"Failed to query Azure retail prices: {error}"
                        ) from error
                    logger.warning(
                        f"Azure retail prices page {page + 1} failed, keeping {len(items)} items: {error}"
                    )
                    return items

                items.extend(data.get("Items") or [])
                page += 1
                # NextPageLink already carries the query string
                next_url = data.get("NextPageLink")
                params = None

                if len(items) > self.max_records:
                    logger.warning(
                        f"Retrieved more than {self.max_records} price items, stopping pagination"
                    )
                    break

        self.circuit_breaker.record_success()
        logger.info(f"Retrieved {len(items)} price items in {page} page(s)")
        return items
