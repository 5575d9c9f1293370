# rivalwatch/parsing/menu_parser.py

"""Extract structured menu items from a competitor's menu page."""

import json
import logging
import re
from collections import Counter
from functools import lru_cache
from itertools import islice
from pathlib import Path
from typing import Any, cast

from bs4 import BeautifulSoup, Tag

from rivalwatch.config.settings import Settings
from rivalwatch.errors import MenuParseError
from rivalwatch.models.snapshot import MenuItem

logger = logging.getLogger("rivalwatch.menu_parser")

DEFAULT_MENU_SELECTORS: dict[str, str] = {
    "container": "div.product",
    "name": "h3.product-name",
    "price": "span.product-price",
    "description": "p.product-description",
    "product_id_attr": "data-product-id",
}

# Neighbouring tags searched (each side) for a product id in fallback mode
PRODUCT_ID_WINDOW = 4

_PRICE_STRIP_RE = re.compile(r"[$,\s]")
_LEADING_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")


@lru_cache(maxsize=4)
def load_menu_selectors(path: Path | None = None) -> dict[str, str]:
    """Load menu CSS selectors from selectors.json.

    Keys missing from the file fall back to :data:`DEFAULT_MENU_SELECTORS`.
    """
    with open(path or Settings.SELECTORS_PATH, encoding="utf-8") as f:
        all_selectors: dict[str, Any] = json.load(f)
    menu: dict[str, str] = all_selectors.get("menu", {})
    return {**DEFAULT_MENU_SELECTORS, **menu}


def normalize_price(price_text: str | None) -> float:
    """Turn ``"$14"``, ``"$15.40"`` or ``"1,299.00"`` into a float.

    Currency symbols, commas and whitespace are dropped, the leading
    number is parsed and rounded to two decimals.  Text without a
    number yields ``0.0``, which callers treat as a missing price.
    """
    if not price_text:
        return 0.0

    cleaned = _PRICE_STRIP_RE.sub("", price_text)
    match = _LEADING_NUMBER_RE.match(cleaned)
    if not match:
        logger.warning("Failed to parse price: %r", price_text)
        return 0.0

    return round(float(match.group(0)), 2)


def generate_item_key(
    name: str, product_id: str | int | None = None,
) -> str:
    """Stable diff key for a menu item.

    A page-native product id wins (``id-<id>``); otherwise the name is
    lowercased, trimmed, stripped of punctuation and hyphenated.
    """
    if product_id is not None:
        return f"id-{product_id}"

    key = name.lower().strip()
    key = re.sub(r"\s+", " ", key)
    key = re.sub(r"[^\w\s]", "", key)
    return re.sub(r"\s+", "-", key)


def _text_of(tag: Tag | None) -> str:
    return tag.get_text(strip=True) if tag is not None else ""


def _attr_of(tag: Tag, attr: str) -> str | None:
    value = tag.get(attr)
    if value is None:
        return None
    text = " ".join(value) if isinstance(value, list) else str(value)
    return text.strip() or None


def _nearby_product_id(tag: Tag, attr: str) -> str | None:
    """Find a product id on *tag* or within a few tags around it."""
    own = _attr_of(tag, attr)
    if own:
        return own
    for elements in (tag.previous_elements, tag.next_elements):
        neighbours = (el for el in elements if isinstance(el, Tag))
        for element in islice(neighbours, PRODUCT_ID_WINDOW):
            found = _attr_of(element, attr)
            if found:
                return found
    return None


def _build_item(
    name: str,
    price_text: str,
    description: str,
    product_id: str | None,
) -> MenuItem | None:
    price = normalize_price(price_text)
    if not name or price == 0:
        logger.warning(
            "Skipping invalid item: name=%r, price=%r", name, price_text,
        )
        return None
    return MenuItem(
        key=generate_item_key(name, product_id),
        name=name,
        price=price,
        description=description or None,
        product_id=product_id,
    )


def _find_blocks(soup: BeautifulSoup, selectors: dict[str, str]) -> list[Tag]:
    blocks = soup.select(selectors["container"])
    if not blocks:
        raise MenuParseError(
            f"no '{selectors['container']}' product blocks found"
        )
    return blocks


def _parse_blocks(
    blocks: list[Tag], selectors: dict[str, str],
) -> list[MenuItem]:
    """One item per product container."""
    items: list[MenuItem] = []
    for index, block in enumerate(blocks):
        name_tag = block.select_one(selectors["name"])
        price_tag = block.select_one(selectors["price"])
        if name_tag is None or price_tag is None:
            logger.warning(
                "Missing name or price in product block %d", index,
            )
            continue

        item = _build_item(
            name=_text_of(name_tag),
            price_text=_text_of(price_tag),
            description=_text_of(
                block.select_one(selectors["description"])
            ),
            product_id=_attr_of(price_tag, selectors["product_id_attr"]),
        )
        if item is not None:
            items.append(item)
    return items


def _parse_positional(
    soup: BeautifulSoup, selectors: dict[str, str],
) -> list[MenuItem]:
    """Zip names, prices and descriptions by document position."""
    names = soup.select(selectors["name"])
    prices = soup.select(selectors["price"])
    descriptions = soup.select(selectors["description"])

    items: list[MenuItem] = []
    for index in range(max(len(names), len(prices))):
        if index >= len(names) or index >= len(prices):
            continue
        price_tag = prices[index]
        description_tag = (
            descriptions[index] if index < len(descriptions) else None
        )
        item = _build_item(
            name=_text_of(names[index]),
            price_text=_text_of(price_tag),
            description=_text_of(description_tag),
            product_id=_nearby_product_id(
                price_tag, selectors["product_id_attr"],
            ),
        )
        if item is not None:
            items.append(item)
    return items


def parse_menu(
    html: str, selectors: dict[str, str] | None = None,
) -> list[MenuItem]:
    """Parse menu items out of a page's markup.

    Product containers are used when present; otherwise names, prices
    and descriptions are paired up by position.  Any failure is logged
    and yields an empty list, never an exception.
    """
    rules = selectors or load_menu_selectors()
    try:
        soup = BeautifulSoup(html or "", "lxml")
        try:
            items = _parse_blocks(_find_blocks(soup, rules), rules)
        except MenuParseError as exc:
            logger.warning("%s, using positional fallback", exc)
            items = _parse_positional(soup, rules)
    except Exception as exc:
        logger.error("Error parsing menu: %s", exc, exc_info=True)
        return []

    keys = Counter(i.key for i in items)
    duplicates = sorted(k for k, n in keys.items() if n > 1)
    if duplicates:
        logger.warning(
            "Duplicate menu item keys (first occurrence wins when "
            "diffing): %s",
            ", ".join(duplicates),
        )

    logger.info(
        "Parsed %d menu items: %s",
        len(items),
        ", ".join(f"{i.name} - ${i.price}" for i in items),
    )
    return items


def parse_menu_payload(data: object) -> list[MenuItem] | None:
    """Parse a JSON menu document of the form ``{"items": [...]}``.

    Returns ``None`` when the document does not have that shape.
    """
    if not isinstance(data, dict):
        return None
    document = cast(dict[str, Any], data)
    raw_items = document.get("items")
    if not isinstance(raw_items, list):
        return None

    items: list[MenuItem] = []
    for raw in cast(list[object], raw_items):
        if not isinstance(raw, dict):
            continue
        entry = cast(dict[str, Any], raw)
        name = str(entry.get("name") or "").strip()
        raw_price = entry.get("price", 0)
        price = (
            round(float(raw_price), 2)
            if isinstance(raw_price, (int, float))
            else normalize_price(str(raw_price or ""))
        )
        if not name or price == 0:
            continue
        raw_id = entry.get("id")
        product_id = str(raw_id) if raw_id is not None else None
        items.append(MenuItem(
            key=str(entry.get("key") or generate_item_key(name, product_id)),
            name=name,
            price=price,
            description=entry.get("description"),
            product_id=product_id,
        ))
    return items
