"""
Cost Management query client.
Fetches actual daily costs per meter for one billing scope.
"""
from typing import Awaitable, Callable, Dict, Any, List, Optional
from datetime import date, datetime, timedelta
import logging
import re
import httpx

from costengine.core.config import config
from costengine.domain.cost_models import MeterCostEntry
from costengine.resilience.circuit_breaker import get_circuit_breaker, CircuitBreaker
from costengine.services.meter_classifier import classify_meter


logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]

_SUBSCRIPTION_PATTERN = re.compile(r"/subscriptions/([^/]+)", re.IGNORECASE)


class CostManagementError(Exception):
    """Raised when actual costs cannot be queried."""
    pass


def subscription_id_from(resource_id: str) -> str:
    match = _SUBSCRIPTION_PATTERN.search(resource_id or "")
    if not match:
        raise CostManagementError(f"Cannot determine subscription from resource id '{resource_id}'")
    return match.group(1)


def _parse_usage_date(value: Any) -> Optional[date]:
    """UsageDate comes back as a yyyymmdd number."""
    if value is None:
        return None
    text = str(value).split(".")[0]
    try:
        return datetime.strptime(text[:8], "%Y%m%d").date()
    except ValueError:
        logger.debug(f"Unparseable UsageDate '{value}'")
        return None


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class CostManagementClient:
    """Client for the Cost Management query API."""

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize Cost Management client.

        Args:
            token_provider: Async callable returning a bearer token for management.azure.com
            access_token: Static bearer token, used when no provider is given (defaults to config)
            base_url: Management endpoint
            api_version: Query API version
            timeout: Request timeout in seconds
            circuit_breaker: Breaker guarding the upstream (shared "cost_management" by default)
        """
        self.token_provider = token_provider
        self.access_token = access_token or config.AZURE_MANAGEMENT_TOKEN
        self.base_url = (base_url or config.COST_MANAGEMENT_BASE_URL).rstrip("/")
        self.api_version = api_version or config.COST_MANAGEMENT_API_VERSION
        self.timeout = timeout or config.COST_MANAGEMENT_TIMEOUT
        self.circuit_breaker = circuit_breaker or get_circuit_breaker("cost_management")

    async def _token(self) -> str:
        if self.token_provider is not None:
            return await self.token_provider()
        if not self.access_token:
            raise CostManagementError("No Azure management token configured (AZURE_MANAGEMENT_TOKEN)")
        return self.access_token

    @staticmethod
    def build_query(scope_resource_id: str, period_start: datetime, period_end: datetime) -> Dict[str, Any]:
        """ActualCost query summing cost per resource, meter and subcategory per day over [start, end)."""
        return {
            "type": "ActualCost",
            "timeframe": "Custom",
            "timePeriod": {
                "from": period_start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "to": (period_end - timedelta(seconds=1)).strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            "dataset": {
                "granularity": "Daily",
                "aggregation": {
                    "totalCost": {"name": "Cost", "function": "Sum"},
                    "totalCostUSD": {"name": "CostUSD", "function": "Sum"},
                    "totalQuantity": {"name": "UsageQuantity", "function": "Sum"},
                },
                "grouping": [
                    {"type": "Dimension", "name": "ResourceId"},
                    {"type": "Dimension", "name": "Meter"},
                    {"type": "Dimension", "name": "MeterSubcategory"},
                ],
                "filter": {
                    "dimensions": {
                        "name": "ResourceId",
                        "operator": "In",
                        "values": [scope_resource_id],
                    }
                },
            },
        }

    async def query_meter_costs(
        self,
        scope_resource_id: str,
        period_start: datetime,
        period_end: datetime
    ) -> List[MeterCostEntry]:
        """
        Query actual costs of one billing scope, grouped by meter and day.

        Args:
            scope_resource_id: Resource id costs are billed under (see billing_scope)
            period_start: First day of the period
            period_end: Last day of the period

        Returns:
            MeterCostEntry rows, classified by component type

        Raises:
            CostManagementError: If the scope is invalid, the circuit is open or the query fails
        """
        subscription_id = subscription_id_from(scope_resource_id)
        # Token first: a HALF_OPEN trial slot is only taken by a call that reaches the upstream
        token = await self._token()
        if not self.circuit_breaker.allow_request():
            raise CostManagementError("Cost Management circuit breaker is open")

        url: Optional[str] = (
            f"{self.base_url}/subscriptions/{subscription_id}/providers/Microsoft.CostManagement/query"
        )
        params: Optional[Dict[str, str]] = {"api-version": self.api_version}
        body = self.build_query(scope_resource_id, period_start, period_end)
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        entries: List[MeterCostEntry] = []

        async with httpx.AsyncClient() as client:
            while url:
                try:
                    response = await client.post(url, params=params, json=body, headers=headers, timeout=self.timeout)
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as error:
                    self.circuit_breaker.record_failure()
                    logger.error(f"Cost Management query for {scope_resource_id} failed: {error}")
                    raise CostManagementError(f"Failed to query Cost Management: {error}") from error

                properties = data.get("properties") or {}
                entries.extend(self._map_rows(properties, scope_resource_id))
                # nextLink already carries the api-version
                url = properties.get("nextLink")
                params = None

        self.circuit_breaker.record_success()
        logger.info(f"Retrieved {len(entries)} cost rows for {scope_resource_id}")
        return entries

    @staticmethod
    def _map_rows(properties: Dict[str, Any], scope_resource_id: str) -> List[MeterCostEntry]:
        columns = [column.get("name") for column in properties.get("columns") or []]
        index = {name.lower(): position for position, name in enumerate(columns) if name}

        def cell(row: List[Any], name: str) -> Any:
            position = index.get(name.lower())
            return row[position] if position is not None and position < len(row) else None

        entries = []
        for row in properties.get("rows") or []:
            meter = cell(row, "Meter") or ""
            subcategory = cell(row, "MeterSubcategory") or ""
            quantity = cell(row, "UsageQuantity")
            entries.append(MeterCostEntry(
                resource_id=cell(row, "ResourceId") or scope_resource_id,
                meter=meter,
                meter_subcategory=subcategory,
                cost=_as_float(cell(row, "Cost")),
                cost_usd=_as_float(cell(row, "CostUSD")),
                currency=cell(row, "Currency") or "USD",
                usage_date=_parse_usage_date(cell(row, "UsageDate")),
                quantity=_as_float(quantity) if quantity is not None else None,
                component_type=classify_meter(meter, subcategory),
            ))
        return entries
