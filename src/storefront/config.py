"""Runtime settings for pricing, payments and local cart storage.

Values are read from the environment once per session. Tax rate is a single
named setting consumed only by the totals calculator.
"""

import os

from pydantic import BaseModel, Field


class StorefrontSettings(BaseModel):
    """Deployment-specific storefront configuration."""

    model_config = {"frozen": True}

    tax_rate: float = Field(default=0.16, ge=0, le=1)
    free_shipping_threshold: float = Field(default=1000.0, ge=0)
    flat_shipping_fee: float = Field(default=150.0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    min_card_amount: float = Field(default=0.50, ge=0)
    cart_storage_key: str = "storefront-cart"

    @classmethod
    def from_env(cls) -> "StorefrontSettings":
        """Build settings from ``STOREFRONT_*`` environment variables."""
        values = {}
        env_map = {
            "tax_rate": "STOREFRONT_TAX_RATE",
            "free_shipping_threshold": "STOREFRONT_FREE_SHIPPING_THRESHOLD",
            "flat_shipping_fee": "STOREFRONT_FLAT_SHIPPING_FEE",
            "currency": "STOREFRONT_CURRENCY",
            "min_card_amount": "STOREFRONT_MIN_CARD_AMOUNT",
            "cart_storage_key": "STOREFRONT_CART_STORAGE_KEY",
        }
        for field_name, env_var in env_map.items():
            raw = os.environ.get(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw
        return cls(**values)


_settings: StorefrontSettings | None = None


def get_settings() -> StorefrontSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = StorefrontSettings.from_env()
    return _settings


def set_settings(settings: StorefrontSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Drop cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
