"""
Configuration module for loading environment variables.
Cache lifetimes, upstream endpoints and normalization defaults are read once at import.
"""
import os
from typing import Optional


class Config:
    """Application configuration loaded from environment variables."""

    # Retail price list (public, no authentication)
    RETAIL_PRICES_API_URL: str = os.getenv(
        "RETAIL_PRICES_API_URL",
        "https://prices.azure.com/api/retail/prices"
    )
    RETAIL_PRICES_API_VERSION: str = os.getenv("RETAIL_PRICES_API_VERSION", "2023-01-01-preview")
    RETAIL_PRICES_TIMEOUT: float = float(os.getenv("RETAIL_PRICES_TIMEOUT", "10.0"))
    RETAIL_PRICES_MAX_RECORDS: int = int(os.getenv("RETAIL_PRICES_MAX_RECORDS", "1000"))

    # Price cache layers
    PRICE_MEMORY_CACHE_TTL_SECONDS: int = int(os.getenv("PRICE_MEMORY_CACHE_TTL_SECONDS", "60"))
    PRICE_DURABLE_CACHE_TTL_SECONDS: int = int(os.getenv("PRICE_DURABLE_CACHE_TTL_SECONDS", "86400"))  # 24 hours
    PRICE_CACHE_DIR: str = os.getenv("PRICE_CACHE_DIR", "")  # empty -> in-memory durable store

    # Billing aggregator (Cost Management query API)
    COST_MANAGEMENT_BASE_URL: str = os.getenv("COST_MANAGEMENT_BASE_URL", "https://management.azure.com")
    COST_MANAGEMENT_API_VERSION: str = os.getenv("COST_MANAGEMENT_API_VERSION", "2023-03-01")
    COST_MANAGEMENT_TIMEOUT: float = float(os.getenv("COST_MANAGEMENT_TIMEOUT", "30.0"))
    AZURE_MANAGEMENT_TOKEN: Optional[str] = os.getenv("AZURE_MANAGEMENT_TOKEN")

    # Cost calculation
    DEFAULT_BILLING_PERIOD_DAYS: int = int(os.getenv("DEFAULT_BILLING_PERIOD_DAYS", "30"))
    HOURS_PER_DAY: int = 24
    DAYS_PER_MONTH: int = 30  # monthly retail prices are prorated over 30-day months

    # Metrics normalization
    STEADY_STATE_LOOKBACK_DAYS: int = int(os.getenv("STEADY_STATE_LOOKBACK_DAYS", "7"))
    STEADY_STATE_CHANGE_THRESHOLD: float = float(os.getenv("STEADY_STATE_CHANGE_THRESHOLD", "0.20"))
    STEADY_STATE_RECENT_DAYS: int = 3

    # Cool data assumptions (global defaults)
    DEFAULT_COOL_DATA_PERCENTAGE: float = float(os.getenv("DEFAULT_COOL_DATA_PERCENTAGE", "80.0"))
    DEFAULT_COOL_RETRIEVAL_PERCENTAGE: float = float(os.getenv("DEFAULT_COOL_RETRIEVAL_PERCENTAGE", "15.0"))
    ASSUMPTIONS_CACHE_TTL_SECONDS: int = int(os.getenv("ASSUMPTIONS_CACHE_TTL_SECONDS", "300"))  # 5 minutes

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are within usable ranges.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if not cls.RETAIL_PRICES_API_URL.startswith(("http://", "https://")):
            raise ValueError(
                f"RETAIL_PRICES_API_URL must be a valid URL (got: {cls.RETAIL_PRICES_API_URL})"
            )
        if cls.PRICE_MEMORY_CACHE_TTL_SECONDS <= 0:
            raise ValueError("PRICE_MEMORY_CACHE_TTL_SECONDS must be positive")
        if cls.PRICE_DURABLE_CACHE_TTL_SECONDS < cls.PRICE_MEMORY_CACHE_TTL_SECONDS:
            raise ValueError(
                "PRICE_DURABLE_CACHE_TTL_SECONDS must not be shorter than PRICE_MEMORY_CACHE_TTL_SECONDS"
            )
        if cls.RETAIL_PRICES_MAX_RECORDS <= 0:
            raise ValueError("RETAIL_PRICES_MAX_RECORDS must be positive")
        if cls.DEFAULT_BILLING_PERIOD_DAYS <= 0:
            raise ValueError("DEFAULT_BILLING_PERIOD_DAYS must be positive")
        if not 0 < cls.STEADY_STATE_CHANGE_THRESHOLD < 1:
            raise ValueError("STEADY_STATE_CHANGE_THRESHOLD must be between 0 and 1")
        for name in ("DEFAULT_COOL_DATA_PERCENTAGE", "DEFAULT_COOL_RETRIEVAL_PERCENTAGE"):
            value = getattr(cls, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100 (got: {value})")


config = Config()
