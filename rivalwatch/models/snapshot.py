# rivalwatch/models/snapshot.py

"""Point-in-time page captures and the menu items they own."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class MenuItem:
    """One structured product line parsed from a menu page.

    ``key`` is the join key used when diffing two menus and must be
    stable across snapshots for the same logical product.
    """

    key: str
    name: str
    price: float
    description: str | None = None
    product_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict."""
        return {
            "key": self.key,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "productId": self.product_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MenuItem":
        """Rebuild an item serialised with :meth:`to_dict`."""
        return cls(
            key=str(data["key"]),
            name=str(data["name"]),
            price=float(data["price"]),
            description=data.get("description"),
            product_id=data.get("productId"),
        )


@dataclass(frozen=True)
class Snapshot:
    """A point-in-time capture of one competitor page."""

    id: str
    competitor_id: str
    url: str
    title: str
    normalized_text: str
    content_hash: str
    created_at: datetime
    menu_items: tuple[MenuItem, ...] | None = None

    @property
    def has_menu(self) -> bool:
        """True when structured menu data was captured."""
        return self.menu_items is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict."""
        return {
            "id": self.id,
            "competitorId": self.competitor_id,
            "url": self.url,
            "title": self.title,
            "normalizedText": self.normalized_text,
            "contentHash": self.content_hash,
            "menuItems": (
                [item.to_dict() for item in self.menu_items]
                if self.menu_items is not None
                else None
            ),
            "createdAt": self.created_at.isoformat(),
        }
