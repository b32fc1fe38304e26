"""
Catalog Package

In-memory shop catalogs (locations, zones, rules, templates, config)
and the slot generation entry point.
"""

from slotwise.catalog.registry import ShopRegistry

__all__ = ["ShopRegistry"]
