"""
Shop Catalog Registry

In-memory home of every shop's catalog snapshot and capacity ledger.

Responsibilities:
- Validate shop configuration and catalog references at the boundary
  (ConfigurationError before any ledger mutation)
- Swap catalog snapshots atomically on change
- Generate slots for the shop's horizon and register them in the ledger;
  regeneration keeps booked counts because slot ids are deterministic

Usage:
    registry = ShopRegistry()
    registry.register_shop({"shop_id": "shop-1"}, locations=[...], zones=[...],
                           rules=[...], templates=[...])
    catalog = registry.catalog("shop-1")
    ledger = registry.ledger("shop-1")
"""

import json
import logging
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from slotwise.algorithms.eligibility import resolve_effective_rule
from slotwise.algorithms.slot_generator import generate_slots
from slotwise.booking.ledger import CapacityLedger
from slotwise.core.errors import ConfigurationError, NotFoundError, field_issue, issues_from_pydantic
from slotwise.schemas.domain import (
    EffectiveRule,
    Location,
    Rule,
    ShopCatalog,
    ShopConfig,
    Slot,
    SlotTemplate,
    Zone,
    load_shop_config,
)

logger = logging.getLogger(__name__)


def _validate_items(model, items: Iterable[Any], field: str) -> list:
    validated = []
    issues = []
    for index, item in enumerate(items or []):
        if isinstance(item, model):
            validated.append(item)
            continue
        try:
            validated.append(model.model_validate(item))
        except PydanticValidationError as exc:
            issues.extend(issues_from_pydantic(exc.errors(), prefix=f"{field}[{index}]"))
    if issues:
        raise ConfigurationError(f"Invalid {field}", details=issues)
    return validated


def _check_references(catalog: ShopCatalog) -> None:
    issues = []
    zone_ids = {zone.id for zone in catalog.zones}
    for zone in catalog.zones:
        for location_id in zone.location_ids:
            if location_id not in catalog.locations:
                issues.append(field_issue(f"zones.{zone.id}.location_ids", f"unknown location {location_id}"))
        radius_center = getattr(zone.coverage, "location_id", None)
        if radius_center is not None:
            center = catalog.location(radius_center)
            if center is None or center.coordinates() is None:
                issues.append(field_issue(f"zones.{zone.id}.coverage", "radius center needs a located location"))
    for rule in catalog.rules:
        if rule.zone_id is not None and rule.zone_id not in zone_ids:
            issues.append(field_issue(f"rules.{rule.id}.zone_id", f"unknown zone {rule.zone_id}"))
        if rule.location_id is not None and rule.location_id not in catalog.locations:
            issues.append(field_issue(f"rules.{rule.id}.location_id", f"unknown location {rule.location_id}"))
    for template in catalog.templates:
        if template.location_id not in catalog.locations:
            issues.append(field_issue(f"templates.{template.id}.location_id", f"unknown location {template.location_id}"))
    if issues:
        raise ConfigurationError(f"Inconsistent catalog for shop {catalog.shop_id}", details=issues)


def location_rules(catalog: ShopCatalog) -> Dict[str, EffectiveRule]:
    """
    Effective rule per location, used for slot generation.

    A location inherits zone defaults from the highest-priority active zone
    that lists it (same tie-break as eligibility).
    """
    rules = {}
    for location_id in catalog.locations:
        zones = [z for z in catalog.active_zones() if location_id in z.location_ids]
        zone = max(zones, key=lambda z: (z.priority, z.created_at, z.id)) if zones else None
        rules[location_id] = resolve_effective_rule(catalog.rules, zone.id if zone else None, location_id)
    return rules


class ShopRegistry:
    """
    Catalog snapshots and ledgers for all shops served by this process.
    """

    def __init__(self):
        self._catalogs: Dict[str, ShopCatalog] = {}
        self._ledgers: Dict[str, CapacityLedger] = {}
        self._slots: Dict[str, List[Slot]] = {}
        self._lock = threading.Lock()

    # ==================== Registration ====================

    def register_shop(
        self,
        config: Union[ShopConfig, Dict[str, Any]],
        locations: Iterable[Any] = (),
        zones: Iterable[Any] = (),
        rules: Iterable[Any] = (),
        templates: Iterable[Any] = (),
        today: Optional[date] = None,
    ) -> ShopCatalog:
        """
        Validate and install (or replace) a shop's catalog, then regenerate slots.

        Raises:
            ConfigurationError: invalid config, malformed items or dangling references
        """
        shop_config = config if isinstance(config, ShopConfig) else load_shop_config(config)
        location_models: List[Location] = _validate_items(Location, locations, "locations")
        catalog = ShopCatalog(
            config=shop_config,
            locations={loc.id: loc for loc in location_models},
            zones=_validate_items(Zone, zones, "zones"),
            rules=_validate_items(Rule, rules, "rules"),
            templates=_validate_items(SlotTemplate, templates, "templates"),
        )
        _check_references(catalog)

        with self._lock:
            self._catalogs[shop_config.shop_id] = catalog
            self._ledgers.setdefault(shop_config.shop_id, CapacityLedger())

        logger.info(
            f"Registered shop {shop_config.shop_id}: {len(catalog.locations)} locations, "
            f"{len(catalog.zones)} zones, {len(catalog.rules)} rules, {len(catalog.templates)} templates"
        )
        self.regenerate_slots(shop_config.shop_id, today=today)
        return catalog

    def update_config(self, shop_id: str, changes: Dict[str, Any]) -> ShopConfig:
        """Apply config changes (weights, toggles, top-K...) without touching slots."""
        catalog = self.catalog(shop_id)
        merged = {**catalog.config.model_dump(), **changes, "shop_id": shop_id}
        new_config = load_shop_config(merged)
        with self._lock:
            self._catalogs[shop_id] = catalog.model_copy(update={"config": new_config})
        return new_config

    def regenerate_slots(self, shop_id: str, today: Optional[date] = None) -> int:
        """
        Expand templates over [today, today + horizon_days) and upsert into the ledger.
        Unbooked ledger entries dated before today are dropped.

        Returns:
            Number of slots in the new generation
        """
        catalog = self.catalog(shop_id)
        ledger = self.ledger(shop_id)
        start = today or datetime.now(timezone.utc).date()
        end = start + timedelta(days=catalog.config.horizon_days - 1)

        slots = generate_slots(
            catalog.templates,
            location_rules(catalog),
            start,
            end,
            locations=catalog.locations,
        )
        ledger.register_many(slots)
        pruned = ledger.prune_before(start)
        with self._lock:
            self._slots[shop_id] = slots

        logger.info(f"Generated {len(slots)} slots for shop {shop_id} ({start}..{end}), pruned {pruned}")
        return len(slots)

    # ==================== Lookups ====================

    def catalog(self, shop_id: str) -> ShopCatalog:
        catalog = self._catalogs.get(shop_id)
        if catalog is None:
            raise NotFoundError(f"Unknown shop {shop_id}", details=[field_issue("shopId", "unknown shop")])
        return catalog

    def ledger(self, shop_id: str) -> CapacityLedger:
        ledger = self._ledgers.get(shop_id)
        if ledger is None:
            raise NotFoundError(f"Unknown shop {shop_id}", details=[field_issue("shopId", "unknown shop")])
        return ledger

    def slots(
        self,
        shop_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        location_id: Optional[str] = None,
        fulfillment_type: Optional[str] = None,
    ) -> List[Slot]:
        """Current generation of slots, filtered; always in chronological order."""
        self.catalog(shop_id)
        result = []
        for slot in self._slots.get(shop_id, []):
            if start_date is not None and slot.date < start_date:
                continue
            if end_date is not None and slot.date > end_date:
                continue
            if location_id is not None and slot.location_id != location_id:
                continue
            if fulfillment_type is not None and slot.fulfillment_type != fulfillment_type:
                continue
            result.append(slot)
        return result

    def shop_ids(self) -> List[str]:
        return sorted(self._catalogs)

    # ==================== Loading ====================

    def load_file(self, path: Union[str, Path], today: Optional[date] = None) -> List[str]:
        """
        Register every shop in a JSON catalog file.

        Expected shape:
            {"shops": [{"config": {...}, "locations": [...], "zones": [...],
                        "rules": [...], "templates": [...]}]}
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read catalog file {path}: {e}") from e

        registered = []
        for shop in raw.get("shops", []):
            catalog = self.register_shop(
                shop.get("config", {}),
                locations=shop.get("locations", []),
                zones=shop.get("zones", []),
                rules=shop.get("rules", []),
                templates=shop.get("templates", []),
                today=today,
            )
            registered.append(catalog.shop_id)
        return registered
