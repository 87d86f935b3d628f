"""
Main FastAPI application bootstrap.
Wires the pricing, billing and assumption services and includes routers.
"""
import logging

from fastapi import FastAPI

from costengine.core.config import config
from costengine.api.estimates import router as estimates_router
from costengine.api.metrics import router as metrics_router
from costengine.api.assumptions import router as assumptions_router
from costengine.billing.cost_management_client import CostManagementClient
from costengine.pricing.azure_retail_prices_client import AzureRetailPricesClient
from costengine.pricing.price_cache import PriceCache
from costengine.pricing.price_store import create_price_store
from costengine.services.cool_data_assumptions import CoolDataAssumptionsResolver
from costengine.services.cost_formula_engine import CostFormulaEngine
from costengine.services.cost_reconciler import CostReconciler
from costengine.services.metrics_normalizer import MetricsNormalizer
from costengine.services.storage_cost_calculators import AzureFilesCostCalculator, ManagedDiskCostCalculator


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Build the application with its shared services on ``app.state``.

    Raises:
        RuntimeError: If the configuration is invalid
    """
    try:
        config.validate()
    except ValueError as error:
        raise RuntimeError(f"Configuration error: {error}") from error

    app = FastAPI(
        title="Storage Cost Engine",
        description="Retail pricing, billing reconciliation and usage normalization for Azure storage",
    )

    price_cache = PriceCache(
        client=AzureRetailPricesClient(),
        store=create_price_store(config.PRICE_CACHE_DIR),
    )
    app.state.price_cache = price_cache
    app.state.cost_engine = CostFormulaEngine(price_cache)
    app.state.azure_files_calculator = AzureFilesCostCalculator(price_cache)
    app.state.managed_disk_calculator = ManagedDiskCostCalculator(price_cache)
    app.state.cost_reconciler = CostReconciler()
    app.state.cost_management_client = CostManagementClient()
    app.state.metrics_normalizer = MetricsNormalizer()
    app.state.assumptions_resolver = CoolDataAssumptionsResolver()

    app.include_router(estimates_router)
    app.include_router(metrics_router)
    app.include_router(assumptions_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "price_cache": price_cache.stats()}

    if not config.AZURE_MANAGEMENT_TOKEN:
        logger.info("AZURE_MANAGEMENT_TOKEN not set; reconciliation requests will keep retail estimates")
    return app


app = create_app()
