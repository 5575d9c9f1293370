# rivalwatch/monitoring/menu_differ.py

"""Compare two parsed menus and emit item-level update events."""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime

from rivalwatch.config.settings import Settings
from rivalwatch.models.snapshot import MenuItem
from rivalwatch.models.update_event import (
    PRICE_CHANGED,
    PRODUCT_ADDED,
    UpdateEvent,
    UpdateEventPayload,
    UpdateEventType,
)

logger = logging.getLogger("rivalwatch.menu_diff")


def _new_event(
    event_type: UpdateEventType,
    payload: UpdateEventPayload,
    competitor_id: str,
    competitor_name: str,
    url: str,
) -> UpdateEvent:
    return UpdateEvent(
        id=f"event-{uuid.uuid4().hex}",
        competitor_id=competitor_id,
        competitor_name=competitor_name,
        url=url,
        type=event_type,
        created_at=datetime.now(),
        payload=payload,
    )


def _first_by_key(items: Sequence[MenuItem]) -> dict[str, MenuItem]:
    """Map each key to the first item carrying it."""
    by_key: dict[str, MenuItem] = {}
    for item in items:
        by_key.setdefault(item.key, item)
    return by_key


def diff_menus(
    old_items: Sequence[MenuItem],
    new_items: Sequence[MenuItem],
    competitor_id: str,
    competitor_name: str,
    url: str,
) -> list[UpdateEvent]:
    """Diff two menus joined on :attr:`MenuItem.key`.

    Emits every ``PRODUCT_ADDED`` event first, then every
    ``PRICE_CHANGED`` event, each in *new_items* order.  Items that
    disappeared from the menu produce no event.  When a key repeats
    within a menu, its first item stands for it, so each key yields
    at most one event.
    """
    logger.debug(
        "Diffing menus: %d old items vs %d new items",
        len(old_items),
        len(new_items),
    )
    old_by_key = _first_by_key(old_items)
    new_by_key = _first_by_key(new_items)
    events: list[UpdateEvent] = []

    for key, item in new_by_key.items():
        if key not in old_by_key:
            events.append(_new_event(
                PRODUCT_ADDED,
                UpdateEventPayload(
                    item_key=key,
                    item_name=item.name,
                    price=item.price,
                    description=item.description,
                ),
                competitor_id,
                competitor_name,
                url,
            ))
            logger.info(
                "PRODUCT_ADDED: %s at $%.2f", item.name, item.price,
            )

    for key, item in new_by_key.items():
        previous = old_by_key.get(key)
        if previous is None:
            continue
        if abs(item.price - previous.price) > Settings.PRICE_TOLERANCE:
            events.append(_new_event(
                PRICE_CHANGED,
                UpdateEventPayload(
                    item_key=key,
                    item_name=item.name,
                    old_price=previous.price,
                    new_price=item.price,
                    description=item.description,
                ),
                competitor_id,
                competitor_name,
                url,
            ))
            logger.info(
                "PRICE_CHANGED: %s $%.2f -> $%.2f",
                item.name,
                previous.price,
                item.price,
            )

    logger.info(
        "Generated %d update events for %s", len(events), competitor_id,
    )
    return events


def filter_events_by_type(
    events: Sequence[UpdateEvent], event_type: UpdateEventType,
) -> list[UpdateEvent]:
    """Keep only events of *event_type*."""
    return [e for e in events if e.type == event_type]
