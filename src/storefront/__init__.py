"""Storefront — cart consistency and checkout order orchestration."""
