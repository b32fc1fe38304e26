"""
Slot Generator

Deterministic expansion of weekly SlotTemplates into dated Slot instances.

Same inputs always produce the same slots with the same ids, so
regenerating after a template or rule change never renames a slot that
already carries bookings.

Per template and date:
1. Skip dates whose weekday differs from the template
2. Skip blackout dates from the location's effective rule
3. Cut the window into duration-minute slots (template duration, else the
   rule's slot duration, else one slot for the whole window); a trailing
   piece shorter than the duration is dropped
4. When "now" is given, drop slots that already started, fall inside the
   lead time, or sit on today after the cutoff
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from slotwise.algorithms.eligibility import check_rule
from slotwise.constants import thresholds
from slotwise.schemas.domain import EffectiveRule, Location, Slot, SlotTemplate, slot_identity

logger = logging.getLogger(__name__)

_UTC = ZoneInfo("UTC")


def _windows(template: SlotTemplate, rule: EffectiveRule, slot_date: date) -> List[tuple]:
    duration = template.duration_minutes or rule.slot_duration_minutes
    window_start = datetime.combine(slot_date, template.start_time)
    window_end = datetime.combine(slot_date, template.end_time)
    if duration is None:
        return [(template.start_time, template.end_time)]

    step = timedelta(minutes=duration)
    windows = []
    current = window_start
    while current + step <= window_end:
        windows.append((current.time(), (current + step).time()))
        current += step
    return windows


def generate_slots(
    templates: List[SlotTemplate],
    rules: Mapping[str, EffectiveRule],
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
    locations: Optional[Mapping[str, Location]] = None,
) -> List[Slot]:
    """
    Expand templates over [start_date, end_date] inclusive.

    Args:
        templates: Weekly templates across one or more locations
        rules: Effective rule per location id (missing -> no constraints)
        start_date: First date of the horizon
        end_date: Last date of the horizon (inclusive)
        now: Optional timezone-aware instant; enables lead time/cutoff pruning
        locations: Location lookup for timezones (default UTC)

    Returns:
        Slots sorted by (date, start, location, fulfillment type)
    """
    if end_date < start_date:
        return []

    locations = locations or {}
    default_rule = EffectiveRule()
    slots: Dict[str, Slot] = {}

    ordered_templates = sorted(templates, key=lambda t: (t.location_id, t.day_of_week, t.start_time, t.id))
    current = start_date
    while current <= end_date:
        for template in ordered_templates:
            if template.day_of_week != current.weekday():
                continue

            rule = rules.get(template.location_id, default_rule)
            if current in rule.blackout_dates:
                continue

            capacity = template.capacity or rule.slot_capacity or thresholds.DEFAULT_SLOT_CAPACITY
            location = locations.get(template.location_id)

            for time_start, time_end in _windows(template, rule, current):
                if now is not None and location is not None:
                    if check_rule(rule, current, now, location, time_start) is not None:
                        continue
                elif now is not None:
                    starts = datetime.combine(current, time_start, tzinfo=_UTC)
                    if starts < now + rule.lead_time:
                        continue

                slot_id = slot_identity(
                    template.location_id, template.fulfillment_type, current, time_start, time_end
                )
                # Overlapping templates collapse onto the first expansion
                if slot_id in slots:
                    continue
                slots[slot_id] = Slot(
                    id=slot_id,
                    location_id=template.location_id,
                    date=current,
                    time_start=time_start,
                    time_end=time_end,
                    fulfillment_type=template.fulfillment_type,
                    capacity=capacity,
                )
        current += timedelta(days=1)

    result = sorted(
        slots.values(),
        key=lambda s: (s.date, s.time_start, s.location_id, s.fulfillment_type, s.id),
    )
    logger.debug(f"Generated {len(result)} slots for {start_date}..{end_date}")
    return result
