# rivalwatch/models/update_event.py

"""Item-level events produced by menu diffing."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

UpdateEventType = Literal["PRODUCT_ADDED", "PRICE_CHANGED"]

PRODUCT_ADDED: UpdateEventType = "PRODUCT_ADDED"
PRICE_CHANGED: UpdateEventType = "PRICE_CHANGED"


@dataclass(frozen=True)
class UpdateEventPayload:
    """What changed for one menu item.

    Additions carry ``price``; price changes carry ``old_price`` and
    ``new_price``.
    """

    item_key: str
    item_name: str
    price: float | None = None
    old_price: float | None = None
    new_price: float | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise with the camelCase keys used on the wire."""
        data: dict[str, Any] = {
            "itemKey": self.item_key,
            "itemName": self.item_name,
        }
        if self.price is not None:
            data["price"] = self.price
        if self.old_price is not None:
            data["oldPrice"] = self.old_price
        if self.new_price is not None:
            data["newPrice"] = self.new_price
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UpdateEventPayload":
        """Rebuild a payload serialised with :meth:`to_dict`."""
        return cls(
            item_key=str(data["itemKey"]),
            item_name=str(data["itemName"]),
            price=data.get("price"),
            old_price=data.get("oldPrice"),
            new_price=data.get("newPrice"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class UpdateEvent:
    """One fine-grained menu event (addition or price change)."""

    id: str
    competitor_id: str
    competitor_name: str
    url: str
    type: UpdateEventType
    created_at: datetime
    payload: UpdateEventPayload

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict."""
        return {
            "id": self.id,
            "competitorId": self.competitor_id,
            "competitorName": self.competitor_name,
            "url": self.url,
            "type": self.type,
            "createdAt": self.created_at.isoformat(),
            "payload": self.payload.to_dict(),
        }
